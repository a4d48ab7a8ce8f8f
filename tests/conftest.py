"""Shared fakes for keeper tests — no RPC, no signing."""

from dataclasses import replace

import pytest

from tourneykeeper.contract import ChainReadError, ChainWriteError, TransactionReceipt
from tourneykeeper.tournament import TournamentSnapshot, TournamentStatus

NOW = 1_700_000_000

PLAYER_A = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
PLAYER_B = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
PLAYER_C = "0x90F79bf6EB2c4f870365E785982E1f101E93b906"


def make_snapshot(
    tid=1,
    status=TournamentStatus.REGISTRATION,
    start_time=NOW - 10,
    end_time=NOW + 3600,
    players=(),
    max_players=4,
    game_type="Default",
    prize_pool=0,
) -> TournamentSnapshot:
    """Helper to build a TournamentSnapshot for testing."""
    return TournamentSnapshot(
        id=tid,
        name=f"Cup {tid}",
        status=status,
        start_time=start_time,
        end_time=end_time,
        current_players=len(players),
        max_players=max_players,
        players=tuple(players),
        game_type=game_type,
        total_prize_pool=prize_pool,
    )


class FakeChain:
    """In-memory stand-in for ChainClient. Records every write."""

    address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

    def __init__(self, tournaments=None):
        self.tournaments = {t.id: t for t in (tournaments or [])}
        self.scores: dict[tuple[int, str], int] = {}
        self.winners: dict[int, list[str]] = {}
        self.writes: list[tuple] = []
        self.fail_list = False
        self.fail_writes_for: set = set()  # tournament ids or player addresses
        self.fail_score_reads = False
        self._tx = 0

    def _receipt(self) -> TransactionReceipt:
        self._tx += 1
        return TransactionReceipt(tx_hash=f"0x{self._tx:064x}", block_number=self._tx)

    async def fetch_all_tournaments(self):
        if self.fail_list:
            raise ChainReadError("getAllTournaments failed: connection refused")
        return list(self.tournaments.values())

    async def get_tournament(self, tournament_id):
        return self.tournaments.get(tournament_id)

    async def get_player_score(self, tournament_id, player):
        if self.fail_score_reads:
            raise ChainReadError("getPlayerScore failed")
        return self.scores.get((tournament_id, player), 0)

    async def get_tournament_winners(self, tournament_id):
        return self.winners.get(tournament_id, [])

    async def submit_score(self, tournament_id, player, score):
        self.writes.append(("submitScore", tournament_id, player, score))
        if player in self.fail_writes_for or tournament_id in self.fail_writes_for:
            raise ChainWriteError(f"submitScore({tournament_id}, {player}) reverted")
        self.scores[(tournament_id, player)] = score
        return self._receipt()

    async def finalize_tournament(self, tournament_id):
        self.writes.append(("finalizeTournament", tournament_id))
        if tournament_id in self.fail_writes_for:
            raise ChainWriteError(f"finalizeTournament({tournament_id}) reverted")
        self._set_status(tournament_id, TournamentStatus.COMPLETED)
        return self._receipt()

    async def cancel_tournament(self, tournament_id):
        self.writes.append(("cancelTournament", tournament_id))
        if tournament_id in self.fail_writes_for:
            raise ChainWriteError(f"cancelTournament({tournament_id}) reverted")
        self._set_status(tournament_id, TournamentStatus.CANCELED)
        return self._receipt()

    def _set_status(self, tournament_id, status):
        t = self.tournaments.get(tournament_id)
        if t is not None:
            self.tournaments[tournament_id] = replace(t, status=status)


@pytest.fixture
def chain():
    return FakeChain()
