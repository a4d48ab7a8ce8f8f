"""
tourneykeeper/contract.py - TournamentPlatform contract interaction via web3.py.

One ChainClient per process. It owns the RPC connection, the signing account
and the contract handle; every onchain read and write the keeper makes goes
through it. Writes are serialized behind a single lock so transactions from
the signing account never race each other for a nonce.

Install: pip install tourney-keeper
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from .tournament import TournamentSnapshot

logger = logging.getLogger(__name__)

# Tournament struct components, in the order the contract returns them.
TOURNAMENT_COMPONENTS = [
    {"name": "id", "type": "uint256"},
    {"name": "name", "type": "string"},
    {"name": "entryFee", "type": "uint256"},
    {"name": "maxPlayers", "type": "uint256"},
    {"name": "currentPlayers", "type": "uint256"},
    {"name": "startTime", "type": "uint256"},
    {"name": "endTime", "type": "uint256"},
    {"name": "status", "type": "uint8"},
    {"name": "players", "type": "address[]"},
    {"name": "totalPrizePool", "type": "uint256"},
    {"name": "gameType", "type": "string"},
]

# TournamentPlatform ABI (subset the keeper calls)
TOURNAMENT_PLATFORM_ABI = [
    {
        "type": "function",
        "name": "getAllTournaments",
        "inputs": [],
        "outputs": [
            {"name": "", "type": "tuple[]", "components": TOURNAMENT_COMPONENTS}
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getTournamentDetails",
        "inputs": [{"name": "tournamentId", "type": "uint256"}],
        "outputs": [
            {"name": "", "type": "tuple", "components": TOURNAMENT_COMPONENTS}
        ],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getPlayerScore",
        "inputs": [
            {"name": "tournamentId", "type": "uint256"},
            {"name": "player", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "getTournamentWinners",
        "inputs": [{"name": "tournamentId", "type": "uint256"}],
        "outputs": [{"name": "", "type": "address[]"}],
        "stateMutability": "view",
    },
    {
        "type": "function",
        "name": "submitScore",
        "inputs": [
            {"name": "tournamentId", "type": "uint256"},
            {"name": "player", "type": "address"},
            {"name": "score", "type": "uint256"},
        ],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "finalizeTournament",
        "inputs": [{"name": "tournamentId", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
    {
        "type": "function",
        "name": "cancelTournament",
        "inputs": [{"name": "tournamentId", "type": "uint256"}],
        "outputs": [],
        "stateMutability": "nonpayable",
    },
]

DEFAULT_RECEIPT_TIMEOUT = 120  # seconds


class ChainReadError(Exception):
    """A view call failed (RPC unreachable, wrong address, ABI mismatch)."""


class ChainWriteError(Exception):
    """A transaction could not be sent, did not confirm, or reverted."""


@dataclass(frozen=True)
class TransactionReceipt:
    """The parts of a mined receipt the keeper reports."""

    tx_hash: str
    block_number: int
    gas_used: int | None = None


def _require_web3():
    """Import and return (AsyncWeb3, AsyncHTTPProvider), raising a clear error if not installed."""
    try:
        from web3 import AsyncHTTPProvider, AsyncWeb3
        return AsyncWeb3, AsyncHTTPProvider
    except ImportError:
        raise ImportError(
            "web3 is required for contract operations. "
            "Install it with: pip install tourney-keeper"
        )


def _hex(tx_hash: Any) -> str:
    """Normalize a tx hash to a 0x-prefixed hex string."""
    value = tx_hash.hex() if hasattr(tx_hash, "hex") else str(tx_hash)
    return value if value.startswith("0x") else "0x" + value


class ChainClient:
    """Async wrapper over the TournamentPlatform contract.

    Args:
        w3: AsyncWeb3 instance.
        contract: AsyncContract bound to the TournamentPlatform address.
        account: eth_account LocalAccount used to sign every write.
        chain_id: Chain ID put into transactions. Looked up from the node
            on first write when None.
        receipt_timeout: Seconds to wait for a write to be mined.
    """

    def __init__(
        self,
        w3,
        contract,
        account,
        chain_id: int | None = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ):
        self.w3 = w3
        self.contract = contract
        self.account = account
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self._write_lock = asyncio.Lock()

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        private_key: str,
        contract_address: str,
        chain_id: int | None = None,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
    ) -> "ChainClient":
        """Build a client from raw connection parameters."""
        AsyncWeb3, AsyncHTTPProvider = _require_web3()
        from eth_account import Account

        if not private_key.startswith("0x"):
            private_key = "0x" + private_key

        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=TOURNAMENT_PLATFORM_ABI,
        )
        account = Account.from_key(private_key)
        logger.info(f"Chain client ready: signer={account.address} contract={contract_address}")
        return cls(w3, contract, account, chain_id=chain_id, receipt_timeout=receipt_timeout)

    @classmethod
    def from_config(cls, config) -> "ChainClient":
        """Build a client from a validated KeeperConfig."""
        return cls.connect(
            rpc_url=config.chain.rpc_url,
            private_key=config.wallet.private_key,
            contract_address=config.contract_address,
            chain_id=config.chain.chain_id,
            receipt_timeout=config.chain.receipt_timeout,
        )

    @property
    def address(self) -> str:
        return self.account.address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_all_tournaments(self) -> list[TournamentSnapshot]:
        """Read every tournament. No partial listing: any failure raises ChainReadError."""
        try:
            raw = await self.contract.functions.getAllTournaments().call()
            return [TournamentSnapshot.from_chain(t) for t in raw]
        except Exception as e:
            raise ChainReadError(f"getAllTournaments failed: {e}") from e

    async def get_tournament(self, tournament_id: int) -> TournamentSnapshot | None:
        """Read one tournament. Returns None if the contract reports id 0 (unknown)."""
        try:
            raw = await self.contract.functions.getTournamentDetails(tournament_id).call()
            snapshot = TournamentSnapshot.from_chain(raw)
        except Exception as e:
            raise ChainReadError(f"getTournamentDetails({tournament_id}) failed: {e}") from e
        if snapshot.id == 0:
            return None
        return snapshot

    async def get_player_score(self, tournament_id: int, player: str) -> int:
        try:
            score = await self.contract.functions.getPlayerScore(tournament_id, player).call()
        except Exception as e:
            raise ChainReadError(
                f"getPlayerScore({tournament_id}, {player}) failed: {e}"
            ) from e
        return int(score)

    async def get_tournament_winners(self, tournament_id: int) -> list[str]:
        try:
            return list(await self.contract.functions.getTournamentWinners(tournament_id).call())
        except Exception as e:
            raise ChainReadError(f"getTournamentWinners({tournament_id}) failed: {e}") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit_score(self, tournament_id: int, player: str, score: int) -> TransactionReceipt:
        return await self._transact(
            self.contract.functions.submitScore(tournament_id, player, int(score)),
            f"submitScore({tournament_id}, {player}, {score})",
        )

    async def finalize_tournament(self, tournament_id: int) -> TransactionReceipt:
        return await self._transact(
            self.contract.functions.finalizeTournament(tournament_id),
            f"finalizeTournament({tournament_id})",
        )

    async def cancel_tournament(self, tournament_id: int) -> TransactionReceipt:
        return await self._transact(
            self.contract.functions.cancelTournament(tournament_id),
            f"cancelTournament({tournament_id})",
        )

    async def _transact(self, call, label: str) -> TransactionReceipt:
        """Build, sign, send and wait for one contract call."""
        async with self._write_lock:
            try:
                if self.chain_id is None:
                    self.chain_id = int(await self.w3.eth.chain_id)

                tx = await call.build_transaction(
                    {
                        "from": self.account.address,
                        "nonce": await self.w3.eth.get_transaction_count(
                            self.account.address, "pending"
                        ),
                        "chainId": self.chain_id,
                    }
                )
                signed = self.account.sign_transaction(tx)
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
                logger.info(f"{label} tx sent: {_hex(tx_hash)}")

                receipt = await self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=self.receipt_timeout
                )
            except Exception as e:
                raise ChainWriteError(f"{label} failed: {e}") from e

        if receipt["status"] != 1:
            raise ChainWriteError(f"{label} reverted: {_hex(tx_hash)}")

        logger.info(f"{label} confirmed in block {receipt['blockNumber']}")
        return TransactionReceipt(
            tx_hash=_hex(tx_hash),
            block_number=int(receipt["blockNumber"]),
            gas_used=receipt.get("gasUsed"),
        )
