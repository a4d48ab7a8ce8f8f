"""Tests for tourneykeeper.reconcile — full passes against FakeChain."""

import asyncio

from conftest import NOW, PLAYER_A, PLAYER_B, FakeChain, make_snapshot
from tourneykeeper.classifier import ActionKind
from tourneykeeper.executors import Outcome
from tourneykeeper.reconcile import Reconciler
from tourneykeeper.tournament import TournamentStatus


def _reconciler(chain) -> Reconciler:
    return Reconciler(chain, clock=lambda: NOW)


class TestRunOnce:
    def test_underfilled_tournament_gets_exactly_one_cancel(self):
        t = make_snapshot(tid=1, start_time=NOW - 10, players=(PLAYER_A,), max_players=4)
        chain = FakeChain([t])
        summary = asyncio.run(_reconciler(chain).run_once())
        assert chain.writes == [("cancelTournament", 1)]
        assert summary.applied == 1
        assert summary.errors == 0

    def test_empty_listing(self):
        chain = FakeChain([])
        summary = asyncio.run(_reconciler(chain).run_once())
        assert summary.processed == 0
        assert summary.ok

    def test_listing_failure_aborts_pass(self):
        chain = FakeChain([make_snapshot(players=(PLAYER_A,))])
        chain.fail_list = True
        summary = asyncio.run(_reconciler(chain).run_once())
        assert summary.processed == 0
        assert summary.fetch_error is not None
        assert not summary.ok
        assert chain.writes == []

    def test_mixed_batch(self):
        chain = FakeChain([
            make_snapshot(tid=1, players=(PLAYER_A,)),
            make_snapshot(
                tid=2,
                status=TournamentStatus.IN_PROGRESS,
                end_time=NOW + 600,
                players=(PLAYER_A, PLAYER_B),
            ),
            make_snapshot(tid=3, status=TournamentStatus.IN_PROGRESS, end_time=NOW - 1),
            make_snapshot(tid=4, status=TournamentStatus.COMPLETED),
        ])
        summary = asyncio.run(_reconciler(chain).run_once())

        kinds = {o.tournament_id: o.action for o in summary.outcomes}
        assert kinds == {
            1: ActionKind.CANCEL,
            2: ActionKind.SIMULATE_SCORES,
            3: ActionKind.FINALIZE,
            4: ActionKind.NOOP,
        }
        assert summary.processed == 4
        assert summary.applied == 3
        assert summary.skipped == 1
        assert summary.errors == 0

    def test_summary_serializes(self):
        chain = FakeChain([make_snapshot(players=(PLAYER_A,))])
        summary = asyncio.run(_reconciler(chain).run_once())
        data = summary.to_dict()
        assert data["applied"] == 1
        assert data["outcomes"][0]["action"] == "cancel"
        assert data["outcomes"][0]["outcome"] == "applied"


class TestIdempotence:
    def test_second_pass_over_finished_tournaments_writes_nothing(self):
        chain = FakeChain([
            make_snapshot(tid=1, players=(PLAYER_A,)),
            make_snapshot(tid=2, status=TournamentStatus.IN_PROGRESS, end_time=NOW - 5),
        ])
        reconciler = _reconciler(chain)

        asyncio.run(reconciler.run_once())
        writes_after_first = len(chain.writes)
        assert writes_after_first == 2

        summary = asyncio.run(reconciler.run_once())
        assert len(chain.writes) == writes_after_first
        assert all(o.action == ActionKind.NOOP for o in summary.outcomes)

    def test_already_finalized_is_noop_both_times(self):
        chain = FakeChain([make_snapshot(tid=1, status=TournamentStatus.COMPLETED)])
        reconciler = _reconciler(chain)
        for _ in range(2):
            summary = asyncio.run(reconciler.run_once())
            assert summary.outcomes[0].action == ActionKind.NOOP
        assert chain.writes == []


class _ExplodingChain(FakeChain):
    """Raises a non-chain error from inside the second tournament's executor."""

    async def cancel_tournament(self, tournament_id):
        if tournament_id == 2:
            raise RuntimeError("nonce too low")
        return await super().cancel_tournament(tournament_id)


class TestPartialFailure:
    def _batch(self):
        return [make_snapshot(tid=i, players=(PLAYER_A,)) for i in (1, 2, 3)]

    def test_exception_in_one_tournament_is_isolated(self):
        chain = _ExplodingChain(self._batch())
        summary = asyncio.run(_reconciler(chain).run_once())

        assert summary.errors == 1
        assert summary.processed == 2
        assert ("cancelTournament", 1) in chain.writes
        assert ("cancelTournament", 3) in chain.writes
        failed = [o for o in summary.outcomes if o.outcome is None]
        assert [o.tournament_id for o in failed] == [2]
        assert "nonce too low" in failed[0].detail

    def test_failed_write_counts_as_error(self):
        chain = FakeChain(self._batch())
        chain.fail_writes_for.add(2)
        summary = asyncio.run(_reconciler(chain).run_once())

        assert summary.errors == 1
        assert summary.applied == 2
        by_id = {o.tournament_id: o.outcome for o in summary.outcomes}
        assert by_id == {1: Outcome.APPLIED, 2: Outcome.FAILED, 3: Outcome.APPLIED}

    def test_last_summary_is_kept(self):
        chain = FakeChain(self._batch())
        reconciler = _reconciler(chain)
        summary = asyncio.run(reconciler.run_once())
        assert reconciler.last_summary is summary
