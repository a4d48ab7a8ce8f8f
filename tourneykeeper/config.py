"""
tourneykeeper/config.py - Keeper configuration

Reads config from ~/.tourneykeeper/config.toml (or %APPDATA%\\tourneykeeper on
Windows), then applies environment variable overrides. Secrets are usually
supplied through the environment in deployments; the TOML file is for local
development.

Example:
    [chain]
    network = "localhost"           # "localhost" -> chain 31337, else Sepolia
    rpc_url = "http://localhost:8545"

    [chain.contracts]
    31337 = "0x5FbDB2315678afecb367f032d93F642f64180aa3"

    [wallet]
    private_key = "0x..."

    [scheduler]
    interval_ms = 300000

    [api]
    admin_key = "change-me"
    port = 3001

Environment overrides (env wins over file):
    NETWORK, RPC_URL, CHAIN_ID, PRIVATE_KEY, TOURNAMENT_PLATFORM,
    SCHEDULER_INTERVAL (ms), ADMIN_KEY, PORT
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "tourneykeeper"
    return Path.home() / ".tourneykeeper"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"

LOCAL_CHAIN_ID = 31337  # hardhat / anvil
SEPOLIA_CHAIN_ID = 11155111
LOCAL_RPC_URL = "http://localhost:8545"

DEFAULT_INTERVAL_MS = 5 * 60 * 1000
DEFAULT_PORT = 3001


class ConfigurationError(Exception):
    """Missing or invalid startup configuration. Fatal: the keeper does not start."""


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class ChainConfig:
    """Blockchain network configuration."""

    network: str = "sepolia"
    chain_id: int | None = None
    rpc_url: str | None = None
    # Chain ID (as string) -> TournamentPlatform address
    contracts: dict[str, str] = field(default_factory=dict)
    receipt_timeout: float = 120.0

    @property
    def is_local(self) -> bool:
        return self.network == "localhost"

    @property
    def effective_chain_id(self) -> int:
        if self.chain_id is not None:
            return self.chain_id
        return LOCAL_CHAIN_ID if self.is_local else SEPOLIA_CHAIN_ID


@dataclass
class WalletConfig:
    """Keeper signing account."""

    private_key: str | None = None


@dataclass
class SchedulerConfig:
    interval_ms: int = DEFAULT_INTERVAL_MS
    enabled: bool = True

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000


@dataclass
class ApiConfig:
    admin_key: str | None = None
    port: int = DEFAULT_PORT


@dataclass
class KeeperConfig:
    """Top-level configuration."""

    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    contract_override: str | None = None

    @property
    def contract_address(self) -> str | None:
        """TournamentPlatform address for the active chain."""
        if self.contract_override:
            return self.contract_override
        return self.chain.contracts.get(str(self.chain.effective_chain_id))

    def validate(self) -> "KeeperConfig":
        """Raise ConfigurationError if the keeper cannot start with this config."""
        if not self.chain.rpc_url:
            raise ConfigurationError("RPC URL is not configured (set RPC_URL)")

        key = self.wallet.private_key
        if not key:
            raise ConfigurationError("Signing key is not configured (set PRIVATE_KEY)")
        from eth_account import Account

        try:
            Account.from_key(key if key.startswith("0x") else "0x" + key)
        except Exception:
            raise ConfigurationError("Signing key is not a valid 32-byte private key")

        address = self.contract_address
        if not address:
            raise ConfigurationError(
                "TournamentPlatform address not configured for chain ID "
                f"{self.chain.effective_chain_id} (set TOURNAMENT_PLATFORM or [chain.contracts])"
            )
        from web3 import Web3

        if not Web3.is_address(address):
            raise ConfigurationError(f"Invalid contract address: {address}")

        if self.scheduler.interval_ms <= 0:
            raise ConfigurationError(
                f"Scheduler interval must be positive, got {self.scheduler.interval_ms}ms"
            )
        return self


# ============================================================================
# Parsing
# ============================================================================


def _read_toml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {path}: {e}")
        return {}


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _int_env(env: dict, name: str, current: int | None) -> int | None:
    value = env.get(name)
    if value is None or value == "":
        return current
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")


def load_config(path: Path | None = None, env: dict | None = None) -> KeeperConfig:
    """
    Read config from TOML, then apply environment overrides.

    Args:
        path: Override config file path (default: ~/.tourneykeeper/config.toml)
        env: Environment mapping (default: os.environ)

    Returns:
        KeeperConfig. Missing file or bad TOML yields defaults. Call
        validate() before using it to start the keeper.
    """
    raw = _read_toml(path or CONFIG_PATH)
    env = os.environ if env is None else env

    # Parse [chain] section
    chain_data = _section(raw, "chain")
    chain = ChainConfig(
        network=chain_data.get("network", "sepolia"),
        chain_id=chain_data.get("chain_id"),
        rpc_url=chain_data.get("rpc_url"),
        contracts={str(k): v for k, v in _section(chain_data, "contracts").items()},
        receipt_timeout=chain_data.get("receipt_timeout", 120.0),
    )

    # Parse [wallet] section
    wallet = WalletConfig(private_key=_section(raw, "wallet").get("private_key"))

    # Parse [scheduler] section
    sched_data = _section(raw, "scheduler")
    scheduler = SchedulerConfig(
        interval_ms=sched_data.get("interval_ms", DEFAULT_INTERVAL_MS),
        enabled=sched_data.get("enabled", True),
    )

    # Parse [api] section
    api_data = _section(raw, "api")
    api = ApiConfig(
        admin_key=api_data.get("admin_key"),
        port=api_data.get("port", DEFAULT_PORT),
    )

    # Environment overrides
    chain.network = env.get("NETWORK") or chain.network
    chain.chain_id = _int_env(env, "CHAIN_ID", chain.chain_id)
    chain.rpc_url = env.get("RPC_URL") or chain.rpc_url
    if not chain.rpc_url and chain.is_local:
        chain.rpc_url = LOCAL_RPC_URL
    wallet.private_key = env.get("PRIVATE_KEY") or wallet.private_key
    scheduler.interval_ms = _int_env(env, "SCHEDULER_INTERVAL", scheduler.interval_ms)
    api.admin_key = env.get("ADMIN_KEY") or api.admin_key
    api.port = _int_env(env, "PORT", api.port)

    return KeeperConfig(
        chain=chain,
        wallet=wallet,
        scheduler=scheduler,
        api=api,
        contract_override=env.get("TOURNAMENT_PLATFORM") or None,
    )
