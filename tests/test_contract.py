"""Tests for tourneykeeper.contract — ChainClient over mocked web3 objects, no RPC."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import PLAYER_A, PLAYER_B
from tourneykeeper.contract import (
    TOURNAMENT_COMPONENTS,
    TOURNAMENT_PLATFORM_ABI,
    ChainClient,
    ChainReadError,
    ChainWriteError,
)
from tourneykeeper.tournament import TOURNAMENT_FIELDS, TournamentSnapshot, TournamentStatus

SIGNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
TX_HASH = bytes.fromhex("ab" * 32)


def _raw_tournament(tid=1, status=1, players=(PLAYER_A, PLAYER_B)):
    """Positional struct tuple, the way web3.py returns it."""
    return (
        tid,
        "Friday Cup",
        10**16,
        4,
        len(players),
        1_700_000_000,
        1_700_003_600,
        status,
        list(players),
        2 * 10**16,
        "P2W",
    )


def _call_returning(value=None, error=None):
    """A contract function object whose .call() resolves to value (or raises)."""
    fn = MagicMock()
    fn.call = AsyncMock(return_value=value, side_effect=error)
    fn.build_transaction = AsyncMock(return_value={"to": "0xcontract", "data": "0x"})
    return fn


def _client(functions: dict, receipt_status=1, send_error=None) -> ChainClient:
    contract = MagicMock()
    for name, fn in functions.items():
        setattr(contract.functions, name, MagicMock(return_value=fn))

    w3 = MagicMock()
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=TX_HASH, side_effect=send_error)
    w3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": receipt_status, "blockNumber": 42, "gasUsed": 51000}
    )

    account = MagicMock()
    account.address = SIGNER
    account.sign_transaction.return_value = MagicMock(raw_transaction=b"\x01\x02")

    return ChainClient(w3, contract, account, chain_id=31337, receipt_timeout=5)


# ============================================================================
# Snapshot decoding
# ============================================================================


class TestSnapshotDecoding:
    def test_abi_and_decoder_agree_on_field_order(self):
        assert tuple(c["name"] for c in TOURNAMENT_COMPONENTS) == TOURNAMENT_FIELDS

    def test_abi_has_every_call_the_keeper_makes(self):
        names = {entry["name"] for entry in TOURNAMENT_PLATFORM_ABI}
        assert names == {
            "getAllTournaments",
            "getTournamentDetails",
            "getPlayerScore",
            "getTournamentWinners",
            "submitScore",
            "finalizeTournament",
            "cancelTournament",
        }

    def test_from_tuple(self):
        t = TournamentSnapshot.from_chain(_raw_tournament())
        assert t.id == 1
        assert t.status == TournamentStatus.IN_PROGRESS
        assert t.players == (PLAYER_A, PLAYER_B)
        assert t.current_players == 2
        assert t.game_type == "P2W"
        assert t.total_prize_pool == 2 * 10**16

    def test_from_mapping(self):
        raw = dict(zip(TOURNAMENT_FIELDS, _raw_tournament(status=0)))
        t = TournamentSnapshot.from_chain(raw)
        assert t.status == TournamentStatus.REGISTRATION

    def test_describe(self):
        t = TournamentSnapshot.from_chain(_raw_tournament(tid=5))
        assert t.describe() == "Tournament #5: Friday Cup (InProgress) - 2/4 players"


# ============================================================================
# Reads
# ============================================================================


class TestReads:
    def test_fetch_all(self):
        client = _client({
            "getAllTournaments": _call_returning([_raw_tournament(1), _raw_tournament(2)])
        })
        tournaments = asyncio.run(client.fetch_all_tournaments())
        assert [t.id for t in tournaments] == [1, 2]

    def test_fetch_all_wraps_rpc_errors(self):
        client = _client({
            "getAllTournaments": _call_returning(error=ConnectionError("refused"))
        })
        with pytest.raises(ChainReadError, match="refused"):
            asyncio.run(client.fetch_all_tournaments())

    def test_fetch_all_wraps_decode_errors(self):
        client = _client({"getAllTournaments": _call_returning([(1, "bad")])})
        with pytest.raises(ChainReadError):
            asyncio.run(client.fetch_all_tournaments())

    def test_get_tournament_unknown_id_is_none(self):
        client = _client({"getTournamentDetails": _call_returning(_raw_tournament(tid=0))})
        assert asyncio.run(client.get_tournament(99)) is None

    def test_get_player_score(self):
        client = _client({"getPlayerScore": _call_returning(512)})
        assert asyncio.run(client.get_player_score(1, PLAYER_A)) == 512

    def test_get_winners(self):
        client = _client({"getTournamentWinners": _call_returning((PLAYER_B, PLAYER_A))})
        assert asyncio.run(client.get_tournament_winners(1)) == [PLAYER_B, PLAYER_A]


# ============================================================================
# Writes
# ============================================================================


class TestWrites:
    def test_cancel_returns_receipt(self):
        fn = _call_returning()
        client = _client({"cancelTournament": fn})
        receipt = asyncio.run(client.cancel_tournament(3))

        assert receipt.tx_hash == "0x" + "ab" * 32
        assert receipt.block_number == 42
        assert receipt.gas_used == 51000
        client.contract.functions.cancelTournament.assert_called_once_with(3)

        tx_params = fn.build_transaction.call_args.args[0]
        assert tx_params["from"] == SIGNER
        assert tx_params["nonce"] == 7
        assert tx_params["chainId"] == 31337

    def test_submit_score_passes_args(self):
        client = _client({"submitScore": _call_returning()})
        asyncio.run(client.submit_score(1, PLAYER_A, 640))
        client.contract.functions.submitScore.assert_called_once_with(1, PLAYER_A, 640)

    def test_reverted_receipt_raises(self):
        client = _client({"finalizeTournament": _call_returning()}, receipt_status=0)
        with pytest.raises(ChainWriteError, match="reverted"):
            asyncio.run(client.finalize_tournament(1))

    def test_send_failure_raises(self):
        client = _client(
            {"cancelTournament": _call_returning()},
            send_error=ValueError("insufficient funds"),
        )
        with pytest.raises(ChainWriteError, match="insufficient funds"):
            asyncio.run(client.cancel_tournament(1))

    def test_chain_id_looked_up_when_unset(self):
        fn = _call_returning()
        client = _client({"cancelTournament": fn})
        client.chain_id = None

        async def chain_id():
            return 11155111

        type(client.w3.eth).chain_id = property(lambda self: chain_id())
        asyncio.run(client.cancel_tournament(1))
        assert client.chain_id == 11155111
        assert fn.build_transaction.call_args.args[0]["chainId"] == 11155111
