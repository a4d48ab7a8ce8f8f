"""
tourneykeeper/executors.py - Carry out a classified action against the chain.

Each executor re-checks its precondition against the snapshot right before
writing. A precondition that no longer holds means another actor got there
first; that is reported as SKIPPED, not as an error.

Executors never raise for chain failures. They return an ExecutionResult:
    APPLIED  - the write(s) landed
    SKIPPED  - nothing to do (precondition no longer holds)
    FAILED   - a write was attempted and did not land
"""

import logging
import random
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from .classifier import Action, ActionKind
from .contract import ChainReadError, ChainWriteError, TransactionReceipt
from .tournament import TournamentSnapshot, TournamentStatus

logger = logging.getLogger(__name__)

# Percent of the prize pool per place, keyed by number of paid places.
PRIZE_SPLITS = {
    1: (100,),
    2: (70, 30),
    3: (50, 30, 20),
}

WEI_PER_ETH = Decimal(10**18)


class PreconditionRace(Exception):
    """The snapshot-derived action is no longer valid at execution time."""


class Outcome(Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ExecutionResult:
    """Result of one executor invocation."""

    outcome: Outcome
    tournament_id: int
    action: ActionKind
    reason: str = ""
    error: str | None = None
    receipts: list[TransactionReceipt] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome != Outcome.FAILED


# ============================================================================
# Score generation
# ============================================================================


def generate_score(game_type: str, rng: random.Random | None = None) -> int:
    """Pseudo-random score for one player, shaped by game type.

    Base score is uniform in [100, 1000). "P2W" scales it by a factor in
    [0.5, 1.5); "Free to play" caps it at 800; anything else passes through.
    """
    rng = rng or random
    score = rng.randint(100, 999)

    if game_type == "P2W":
        return int(score * rng.uniform(0.5, 1.5))
    if game_type == "Free to play":
        return min(score, 800)
    return score


# ============================================================================
# Prize reporting (display only, the contract does the payout)
# ============================================================================


@dataclass(frozen=True)
class PrizeShare:
    place: int
    address: str
    percent: int
    amount: Decimal


def prize_shares(prize_pool, winners: list[str]) -> list[PrizeShare]:
    """Split a prize pool across ranked winners for reporting.

    1 winner gets 100%, 2 winners 70/30, 3 or more 50/30/20 over the
    first three. prize_pool is in whatever unit the caller wants back.
    """
    if not winners:
        return []

    split = PRIZE_SPLITS[min(len(winners), 3)]
    pool = Decimal(str(prize_pool))
    return [
        PrizeShare(
            place=place,
            address=address,
            percent=percent,
            amount=pool * percent / 100,
        )
        for place, (address, percent) in enumerate(zip(winners, split), start=1)
    ]


def wei_to_eth(amount_wei: int) -> Decimal:
    return Decimal(amount_wei) / WEI_PER_ETH


def format_prize_report(tournament_id: int, prize_pool_wei: int, winners: list[str]) -> list[str]:
    """Human-readable prize lines for logs and API responses."""
    pool_eth = wei_to_eth(prize_pool_wei)
    lines = [f"Tournament #{tournament_id} prize pool: {pool_eth:.4f} ETH"]
    for share in prize_shares(pool_eth, winners):
        lines.append(
            f"Place {share.place} {share.address} receives "
            f"{share.percent}%: {share.amount:.4f} ETH"
        )
    return lines


# ============================================================================
# Executors
# ============================================================================


def _require_status(snapshot: TournamentSnapshot, expected: TournamentStatus) -> None:
    if snapshot.status != expected:
        raise PreconditionRace(f"status is {snapshot.status.label}, not {expected.label}")


async def cancel_tournament(chain, snapshot: TournamentSnapshot) -> ExecutionResult:
    """Cancel a tournament that reached its start time underfilled.

    The contract refunds every joined player's entry fee.
    """
    tid = snapshot.id
    try:
        _require_status(snapshot, TournamentStatus.REGISTRATION)
    except PreconditionRace as e:
        logger.info(f"Skipping cancel of tournament #{tid}: {e}")
        return ExecutionResult(Outcome.SKIPPED, tid, ActionKind.CANCEL, reason=str(e))

    logger.info(
        f"Cancelling tournament #{tid}: {snapshot.current_players} player(s) at start time"
    )
    try:
        receipt = await chain.cancel_tournament(tid)
    except ChainWriteError as e:
        logger.warning(f"Cancel of tournament #{tid} failed: {e}")
        return ExecutionResult(Outcome.FAILED, tid, ActionKind.CANCEL, error=str(e))

    logger.info(f"Tournament #{tid} cancelled: tx={receipt.tx_hash}")
    return ExecutionResult(
        Outcome.APPLIED, tid, ActionKind.CANCEL, reason="cancelled", receipts=[receipt]
    )


async def simulate_scores(
    chain,
    snapshot: TournamentSnapshot,
    rng: random.Random | None = None,
) -> ExecutionResult:
    """Generate and submit a score for every player, one transaction at a time.

    Best effort across the roster: a failed submission is logged and the
    remaining players still get their scores.
    """
    tid = snapshot.id
    players = list(snapshot.players)

    try:
        _require_status(snapshot, TournamentStatus.IN_PROGRESS)
        if not players:
            raise PreconditionRace("no players to score")
        await _ensure_not_simulated(chain, tid, players[0])
    except PreconditionRace as e:
        logger.info(f"Skipping simulation for tournament #{tid}: {e}")
        return ExecutionResult(
            Outcome.SKIPPED, tid, ActionKind.SIMULATE_SCORES, reason=str(e)
        )

    logger.info(
        f"Simulating gameplay for tournament #{tid} ({snapshot.game_type}) "
        f"with {len(players)} players"
    )

    receipts = []
    failures = []
    for player in players:
        score = generate_score(snapshot.game_type, rng)
        logger.info(f"Submitting score {score} for {player} in tournament #{tid}")
        try:
            receipts.append(await chain.submit_score(tid, player, score))
        except ChainWriteError as e:
            # Keep going: one bad submission shouldn't starve the rest of the roster
            logger.warning(f"Score submission for {player} in tournament #{tid} failed: {e}")
            failures.append(f"{player}: {e}")

    if not receipts:
        return ExecutionResult(
            Outcome.FAILED,
            tid,
            ActionKind.SIMULATE_SCORES,
            error="; ".join(failures),
        )

    logger.info(
        f"Completed score simulation for tournament #{tid}: "
        f"{len(receipts)}/{len(players)} submitted"
    )
    return ExecutionResult(
        Outcome.APPLIED,
        tid,
        ActionKind.SIMULATE_SCORES,
        reason=f"{len(receipts)}/{len(players)} scores submitted",
        error="; ".join(failures) or None,
        receipts=receipts,
    )


async def _ensure_not_simulated(chain, tid: int, first_player: str) -> None:
    """Probe the first player's score as a cheap 'already simulated' check.

    Only one player is probed. If that player's submission failed in an
    earlier pass, the tournament can be simulated again for everyone else.
    """
    try:
        existing = await chain.get_player_score(tid, first_player)
    except ChainReadError as e:
        logger.warning(f"Could not check existing scores for tournament #{tid}: {e}")
        return

    if existing > 0:
        raise PreconditionRace("scores already submitted")


async def finalize_tournament(
    chain,
    snapshot: TournamentSnapshot,
    now: float | None = None,
) -> ExecutionResult:
    """Close an ended tournament. The contract ranks winners and pays out."""
    tid = snapshot.id
    now = time.time() if now is None else now

    try:
        _require_status(snapshot, TournamentStatus.IN_PROGRESS)
        if now <= snapshot.end_time:
            raise PreconditionRace(
                f"not ended yet (now={int(now)}, end={snapshot.end_time})"
            )
    except PreconditionRace as e:
        logger.info(f"Skipping finalize of tournament #{tid}: {e}")
        return ExecutionResult(Outcome.SKIPPED, tid, ActionKind.FINALIZE, reason=str(e))

    logger.info(f"Finalizing tournament #{tid}")
    try:
        receipt = await chain.finalize_tournament(tid)
    except ChainWriteError as e:
        logger.warning(f"Finalize of tournament #{tid} failed: {e}")
        return ExecutionResult(Outcome.FAILED, tid, ActionKind.FINALIZE, error=str(e))

    logger.info(f"Tournament #{tid} finalized: tx={receipt.tx_hash}")

    reason = "finalized"
    try:
        winners = await chain.get_tournament_winners(tid)
        for line in format_prize_report(tid, snapshot.total_prize_pool, winners):
            logger.info(line)
        reason = f"finalized with {len(winners)} winner(s)"
    except ChainReadError as e:
        logger.warning(f"Could not read winners for tournament #{tid}: {e}")

    return ExecutionResult(
        Outcome.APPLIED, tid, ActionKind.FINALIZE, reason=reason, receipts=[receipt]
    )


async def execute(chain, action: Action, now: float | None = None) -> ExecutionResult:
    """Dispatch a classified action to its executor."""
    if action.kind == ActionKind.CANCEL:
        return await cancel_tournament(chain, action.snapshot)
    if action.kind == ActionKind.SIMULATE_SCORES:
        return await simulate_scores(chain, action.snapshot)
    if action.kind == ActionKind.FINALIZE:
        return await finalize_tournament(chain, action.snapshot, now=now)
    return ExecutionResult(
        Outcome.SKIPPED, action.tournament_id, ActionKind.NOOP, reason=action.reason
    )
