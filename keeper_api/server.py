"""
keeper_api/server.py - FastAPI admin server for the tournament keeper.

Endpoints:
    GET    /                          Liveness message
    GET    /health                    Keeper status + last pass summary
    POST   /api/submit-score          Submit one player's score
    POST   /api/finalize-tournament   Finalize one tournament
    POST   /api/manage-tournaments    Run one reconciliation pass now
    POST   /api/simulate-tournament   Simulate scores for one tournament

Every POST carries the shared admin key in its JSON body. The server adds no
business logic of its own: key check, then straight through to the chain
client or the keeper core.
"""

import hmac
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from starlette.middleware.cors import CORSMiddleware

from tourneykeeper.config import ConfigurationError, KeeperConfig, load_config
from tourneykeeper.contract import ChainClient, ChainReadError, ChainWriteError
from tourneykeeper.executors import Outcome, simulate_scores
from tourneykeeper.reconcile import Reconciler
from tourneykeeper.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass
class KeeperRuntime:
    """Everything the endpoints need, built once at startup."""

    chain: ChainClient
    reconciler: Reconciler
    scheduler: Scheduler
    admin_key: str | None
    chain_id: int | None = None
    contract_address: str | None = None

    @classmethod
    def from_config(cls, config: KeeperConfig) -> "KeeperRuntime":
        config.validate()
        chain = ChainClient.from_config(config)
        reconciler = Reconciler(chain)
        scheduler = Scheduler(reconciler, interval_seconds=config.scheduler.interval_seconds)
        return cls(
            chain=chain,
            reconciler=reconciler,
            scheduler=scheduler,
            admin_key=config.api.admin_key,
            chain_id=config.chain.effective_chain_id,
            contract_address=config.contract_address,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = getattr(app.state, "config", None) or load_config()
    start_scheduler = getattr(app.state, "start_scheduler", config.scheduler.enabled)

    try:
        runtime = KeeperRuntime.from_config(config)
    except ConfigurationError as e:
        # Fatal for the keeper, but the server stays up so /health can report it
        logger.error(f"Keeper configuration invalid, scheduler not started: {e}")
        app.state.keeper = None
        app.state.config_error = str(e)
        yield
        return

    app.state.keeper = runtime
    app.state.config_error = None
    _log_startup_config(runtime, config)

    if start_scheduler:
        runtime.scheduler.start()
    else:
        logger.info("Scheduler disabled; passes run only via /api/manage-tournaments")

    yield

    runtime.scheduler.stop()
    await runtime.scheduler.wait_stopped()
    app.state.keeper = None


def _log_startup_config(runtime: KeeperRuntime, config: KeeperConfig):
    """Log keeper configuration on startup so operators can verify env vars."""
    logger.info("=" * 50)
    logger.info("Keeper startup config:")
    logger.info(f"  Chain: {runtime.chain_id} | RPC: {config.chain.rpc_url}")
    logger.info(f"  Signer: {runtime.chain.address}")
    logger.info(f"  TournamentPlatform: {runtime.contract_address}")
    logger.info(f"  Pass interval: {config.scheduler.interval_ms}ms")
    if not runtime.admin_key:
        logger.warning("  Admin key: NOT configured (ADMIN_KEY missing) - admin endpoints disabled")
    logger.info("=" * 50)


app = FastAPI(title="Tourney Keeper", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_keeper(request: Request) -> KeeperRuntime:
    keeper = getattr(request.app.state, "keeper", None)
    if keeper is None:
        raise HTTPException(status_code=503, detail="Keeper not initialized")
    return keeper


def _check_admin_key(keeper: KeeperRuntime, supplied: str) -> None:
    expected = keeper.admin_key
    if not expected or not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=403, detail="Unauthorized")


# ======================================================================
# Request/Response Models
# ======================================================================


class AdminRequest(BaseModel):
    admin_key: str


class SubmitScoreRequest(AdminRequest):
    tournament_id: int = Field(gt=0)
    player_address: str
    score: int = Field(ge=0)


class TournamentRequest(AdminRequest):
    tournament_id: int = Field(gt=0)


class TransactionResponse(BaseModel):
    success: bool
    message: str
    transaction_hash: str


class SimulateResponse(BaseModel):
    success: bool
    message: str
    transaction_hashes: list[str] = []


class PassResponse(BaseModel):
    success: bool
    message: str
    summary: dict[str, Any]


class HealthResponse(BaseModel):
    status: str
    chain_id: int | None = None
    contract_address: str | None = None
    signer: str | None = None
    scheduler_running: bool = False
    pass_in_flight: bool = False
    last_pass: dict[str, Any] | None = None
    error: str | None = None


# ======================================================================
# Endpoints
# ======================================================================


@app.get("/")
def root() -> dict[str, Any]:
    return {"message": "Tourney Keeper API is running"}


@app.get("/health", response_model=HealthResponse)
def health(request: Request) -> dict[str, Any]:
    """Keeper status. Reports config errors instead of failing."""
    keeper = getattr(request.app.state, "keeper", None)
    if keeper is None:
        return {
            "status": "unconfigured",
            "error": getattr(request.app.state, "config_error", None),
        }

    last = keeper.reconciler.last_summary
    return {
        "status": "ok",
        "chain_id": keeper.chain_id,
        "contract_address": keeper.contract_address,
        "signer": keeper.chain.address,
        "scheduler_running": keeper.scheduler.running,
        "pass_in_flight": keeper.scheduler.busy,
        "last_pass": last.to_dict() if last else None,
    }


@app.post("/api/submit-score", response_model=TransactionResponse)
async def submit_score(
    req: SubmitScoreRequest, keeper: KeeperRuntime = Depends(get_keeper)
) -> dict[str, Any]:
    """Submit a score for one player (admin only)."""
    _check_admin_key(keeper, req.admin_key)
    try:
        receipt = await keeper.chain.submit_score(
            req.tournament_id, req.player_address, req.score
        )
    except ChainWriteError as e:
        logger.error(f"Error submitting score: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to submit score: {e}")

    return {
        "success": True,
        "message": "Score submitted successfully",
        "transaction_hash": receipt.tx_hash,
    }


@app.post("/api/finalize-tournament", response_model=TransactionResponse)
async def finalize_tournament(
    req: TournamentRequest, keeper: KeeperRuntime = Depends(get_keeper)
) -> dict[str, Any]:
    """Finalize a tournament and let the contract distribute rewards (admin only)."""
    _check_admin_key(keeper, req.admin_key)
    try:
        receipt = await keeper.chain.finalize_tournament(req.tournament_id)
    except ChainWriteError as e:
        logger.error(f"Error finalizing tournament: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to finalize tournament: {e}")

    return {
        "success": True,
        "message": "Tournament finalized successfully",
        "transaction_hash": receipt.tx_hash,
    }


@app.post("/api/manage-tournaments", response_model=PassResponse)
async def manage_tournaments(
    req: AdminRequest, keeper: KeeperRuntime = Depends(get_keeper)
) -> dict[str, Any]:
    """Run one reconciliation pass now (admin only)."""
    _check_admin_key(keeper, req.admin_key)

    summary = await keeper.scheduler.trigger()
    if summary is None:
        raise HTTPException(status_code=409, detail="A reconciliation pass is already running")
    if summary.fetch_error:
        raise HTTPException(
            status_code=502, detail=f"Could not list tournaments: {summary.fetch_error}"
        )

    return {
        "success": True,
        "message": "Tournament management task executed successfully",
        "summary": summary.to_dict(),
    }


@app.post("/api/simulate-tournament", response_model=SimulateResponse)
async def simulate_tournament(
    req: TournamentRequest, keeper: KeeperRuntime = Depends(get_keeper)
) -> dict[str, Any]:
    """Simulate scores for one tournament (admin only)."""
    _check_admin_key(keeper, req.admin_key)

    async def read_and_simulate():
        try:
            snapshot = await keeper.chain.get_tournament(req.tournament_id)
        except ChainReadError as e:
            logger.error(f"Error reading tournament {req.tournament_id}: {e}")
            raise HTTPException(status_code=502, detail=f"Failed to read tournament: {e}")

        if snapshot is None:
            raise HTTPException(status_code=404, detail="Tournament not found")
        return await simulate_scores(keeper.chain, snapshot)

    # Same guard as scheduled passes, so the score check and the submissions
    # never interleave with a pass simulating the same tournament
    result = await keeper.scheduler.run_exclusive(read_and_simulate)
    if result is None:
        raise HTTPException(status_code=409, detail="A reconciliation pass is already running")
    if result.outcome == Outcome.SKIPPED:
        raise HTTPException(
            status_code=400,
            detail=f"Could not simulate scores: {result.reason}",
        )
    if result.outcome == Outcome.FAILED:
        raise HTTPException(status_code=502, detail=f"Score submission failed: {result.error}")

    return {
        "success": True,
        "message": f"Successfully simulated scores for tournament #{req.tournament_id}",
        "transaction_hashes": [r.tx_hash for r in result.receipts],
    }
