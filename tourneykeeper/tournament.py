"""
tourneykeeper/tournament.py - Tournament snapshot read from the TournamentPlatform contract.

A snapshot is a point-in-time read. Nothing here is persisted between passes;
every pass fetches fresh snapshots and re-derives its decisions from them.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class TournamentStatus(IntEnum):
    """Tournament lifecycle status (matches the Solidity enum)."""

    REGISTRATION = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    CANCELED = 3

    @property
    def label(self) -> str:
        return {
            TournamentStatus.REGISTRATION: "Registration",
            TournamentStatus.IN_PROGRESS: "InProgress",
            TournamentStatus.COMPLETED: "Completed",
            TournamentStatus.CANCELED: "Canceled",
        }[self]


# Field order of the Tournament struct as returned by getAllTournaments()
# and getTournamentDetails(). Must match TOURNAMENT_COMPONENTS in contract.py.
TOURNAMENT_FIELDS = (
    "id",
    "name",
    "entryFee",
    "maxPlayers",
    "currentPlayers",
    "startTime",
    "endTime",
    "status",
    "players",
    "totalPrizePool",
    "gameType",
)


@dataclass(frozen=True)
class TournamentSnapshot:
    """One tournament as seen onchain at fetch time."""

    id: int
    status: TournamentStatus
    start_time: int  # unix seconds
    end_time: int  # unix seconds
    current_players: int
    max_players: int
    players: tuple[str, ...] = ()
    game_type: str = "Default"
    total_prize_pool: int = 0  # wei
    name: str = ""
    entry_fee: int = 0  # wei

    @classmethod
    def from_chain(cls, raw: Any) -> "TournamentSnapshot":
        """Build a snapshot from the raw struct web3.py returns.

        Accepts either the positional tuple or a mapping keyed by the
        Solidity field names.
        """
        if isinstance(raw, Mapping):
            data = raw
        else:
            data = dict(zip(TOURNAMENT_FIELDS, raw))

        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            entry_fee=int(data.get("entryFee", 0)),
            max_players=int(data["maxPlayers"]),
            current_players=int(data["currentPlayers"]),
            start_time=int(data["startTime"]),
            end_time=int(data["endTime"]),
            status=TournamentStatus(int(data["status"])),
            players=tuple(data.get("players", ())),
            total_prize_pool=int(data.get("totalPrizePool", 0)),
            game_type=data.get("gameType", "Default"),
        )

    def describe(self) -> str:
        label = f"Tournament #{self.id}"
        if self.name:
            label += f": {self.name}"
        return (
            f"{label} ({self.status.label}) - "
            f"{self.current_players}/{self.max_players} players"
        )
