"""
tourneykeeper/classifier.py - Decide what (if anything) to do with a tournament.

Pure: same snapshot and clock reading in, same action out. No RPC calls.
"""

from dataclasses import dataclass
from enum import Enum

from .tournament import TournamentSnapshot, TournamentStatus

# A tournament that reaches its start time with fewer players than this is cancelled.
# At or above it, the contract auto-starts on fill or the admin starts it manually.
MIN_PLAYERS = 2


class ActionKind(Enum):
    NOOP = "noop"
    CANCEL = "cancel"
    SIMULATE_SCORES = "simulate_scores"
    FINALIZE = "finalize"


@dataclass(frozen=True)
class Action:
    """What the keeper should do with one tournament this pass."""

    kind: ActionKind
    snapshot: TournamentSnapshot
    reason: str = ""

    @property
    def tournament_id(self) -> int:
        return self.snapshot.id


def classify(snapshot: TournamentSnapshot, now: float) -> Action:
    """Map a snapshot and the current unix time to exactly one Action.

    Rules, first match wins:
        Registration, start reached, < MIN_PLAYERS  -> CANCEL
        Registration, start reached, >= MIN_PLAYERS -> NOOP (left for manual start)
        Registration, start not reached             -> NOOP
        InProgress, now < end_time                  -> SIMULATE_SCORES
        InProgress, now >= end_time                 -> FINALIZE
        Completed / Canceled                        -> NOOP
    """
    status = snapshot.status

    if status == TournamentStatus.REGISTRATION:
        if now >= snapshot.start_time:
            if snapshot.current_players < MIN_PLAYERS:
                return Action(
                    ActionKind.CANCEL,
                    snapshot,
                    f"start time passed with {snapshot.current_players}/{MIN_PLAYERS} "
                    "minimum players",
                )
            return Action(
                ActionKind.NOOP,
                snapshot,
                f"start time passed with {snapshot.current_players}/{snapshot.max_players} "
                "players; contract auto-starts on fill or admin starts manually",
            )
        return Action(ActionKind.NOOP, snapshot, "registration still open")

    if status == TournamentStatus.IN_PROGRESS:
        if now < snapshot.end_time:
            return Action(ActionKind.SIMULATE_SCORES, snapshot, "in progress")
        return Action(ActionKind.FINALIZE, snapshot, "end time reached")

    return Action(ActionKind.NOOP, snapshot, f"already {status.label}")
