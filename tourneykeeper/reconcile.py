"""
tourneykeeper/reconcile.py - One reconciliation pass over every tournament.

fetch all -> for each: classify -> execute -> record. Tournaments are handled
one after another, never concurrently, so writes from the signing account
stay strictly ordered. A failure on one tournament is counted and the pass
moves on; only a failure to list tournaments ends the pass early.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from .classifier import ActionKind, classify
from .contract import ChainReadError
from .executors import ExecutionResult, Outcome, execute

logger = logging.getLogger(__name__)


@dataclass
class TournamentOutcome:
    """What happened to one tournament during a pass."""

    tournament_id: int
    action: ActionKind
    outcome: Outcome | None = None
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "tournament_id": self.tournament_id,
            "action": self.action.value,
            "outcome": self.outcome.value if self.outcome else "error",
            "detail": self.detail,
        }


@dataclass
class PassSummary:
    """Aggregate result of one pass."""

    processed: int = 0
    errors: int = 0
    applied: int = 0
    skipped: int = 0
    elapsed_seconds: float = 0.0
    fetch_error: str | None = None
    outcomes: list[TournamentOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.fetch_error is None and self.errors == 0

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "errors": self.errors,
            "applied": self.applied,
            "skipped": self.skipped,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "fetch_error": self.fetch_error,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class Reconciler:
    """Runs reconciliation passes against one ChainClient.

    Args:
        chain: ChainClient (or anything with the same async methods).
        clock: Returns the current unix time. Read once per tournament.
    """

    def __init__(self, chain, clock: Callable[[], float] = time.time):
        self.chain = chain
        self.clock = clock
        self.last_summary: PassSummary | None = None

    async def run_once(self) -> PassSummary:
        logger.info("===== Starting tournament reconciliation pass =====")
        started = time.monotonic()
        summary = PassSummary()

        try:
            tournaments = await self.chain.fetch_all_tournaments()
        except ChainReadError as e:
            logger.error(f"Could not list tournaments, aborting pass: {e}")
            summary.fetch_error = str(e)
            summary.elapsed_seconds = time.monotonic() - started
            self.last_summary = summary
            return summary

        logger.info(f"Found {len(tournaments)} tournaments")
        for snapshot in tournaments:
            logger.info(f"  - {snapshot.describe()}")

        for snapshot in tournaments:
            action = classify(snapshot, self.clock())
            record = TournamentOutcome(snapshot.id, action.kind)
            summary.outcomes.append(record)

            if action.kind == ActionKind.NOOP:
                logger.debug(f"No action for tournament #{snapshot.id}: {action.reason}")
                record.outcome = Outcome.SKIPPED
                record.detail = action.reason
                summary.skipped += 1
                summary.processed += 1
                continue

            logger.info(
                f"Tournament #{snapshot.id}: {action.kind.value} ({action.reason})"
            )
            try:
                result = await execute(self.chain, action, now=self.clock())
            except Exception as e:
                logger.warning(f"Error processing tournament #{snapshot.id}: {e}")
                record.detail = str(e)
                summary.errors += 1
                continue

            self._record(summary, record, result)

        summary.elapsed_seconds = time.monotonic() - started
        logger.info("===== Tournament reconciliation pass completed =====")
        logger.info(
            f"Processed {summary.processed} tournaments with {summary.errors} errors "
            f"({summary.applied} applied, {summary.skipped} skipped) "
            f"in {summary.elapsed_seconds:.2f}s"
        )
        self.last_summary = summary
        return summary

    @staticmethod
    def _record(summary: PassSummary, record: TournamentOutcome, result: ExecutionResult):
        record.outcome = result.outcome
        record.detail = result.error or result.reason
        if result.outcome == Outcome.FAILED:
            summary.errors += 1
            return
        summary.processed += 1
        if result.outcome == Outcome.APPLIED:
            summary.applied += 1
        else:
            summary.skipped += 1
