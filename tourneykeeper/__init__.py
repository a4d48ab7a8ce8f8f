"""
Tourney Keeper - lifecycle keeper for onchain tournaments

Polls the TournamentPlatform contract, cancels tournaments that never filled,
simulates scores for running ones, and finalizes the ones that have ended.
"""

__version__ = "0.1.0"

from .tournament import (
    TournamentStatus,
    TournamentSnapshot,
)

from .classifier import (
    MIN_PLAYERS,
    Action,
    ActionKind,
    classify,
)

from .contract import (
    ChainClient,
    ChainReadError,
    ChainWriteError,
    TransactionReceipt,
)

from .executors import (
    ExecutionResult,
    Outcome,
    PreconditionRace,
    cancel_tournament,
    simulate_scores,
    finalize_tournament,
    generate_score,
    prize_shares,
)

from .reconcile import (
    PassSummary,
    Reconciler,
)

from .scheduler import Scheduler

from .config import (
    ConfigurationError,
    KeeperConfig,
    load_config,
)

__all__ = [
    # Version
    "__version__",
    # Data model
    "TournamentStatus",
    "TournamentSnapshot",
    # Classification
    "MIN_PLAYERS",
    "Action",
    "ActionKind",
    "classify",
    # Chain
    "ChainClient",
    "ChainReadError",
    "ChainWriteError",
    "TransactionReceipt",
    # Executors
    "ExecutionResult",
    "Outcome",
    "PreconditionRace",
    "cancel_tournament",
    "simulate_scores",
    "finalize_tournament",
    "generate_score",
    "prize_shares",
    # Loop
    "PassSummary",
    "Reconciler",
    "Scheduler",
    # Config
    "ConfigurationError",
    "KeeperConfig",
    "load_config",
]
