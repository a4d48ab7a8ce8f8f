#!/usr/bin/env python3
"""
tourneykeeper/cli.py - Command line interface for Tourney Keeper

Usage:
    tourneykeeper serve [--port PORT] [--no-scheduler]
    tourneykeeper watch
    tourneykeeper reconcile
    tourneykeeper list
    tourneykeeper simulate <tournament_id>
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _load_runtime(args):
    """Load + validate config and build the chain client. Returns (config, chain) or None."""
    from .config import ConfigurationError, load_config
    from .contract import ChainClient

    config = load_config(args.config)
    try:
        config.validate()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return None
    return config, ChainClient.from_config(config)


def cmd_serve(args):
    """Start the admin API with the reconciliation scheduler."""
    try:
        import uvicorn
    except ImportError:
        logger.error("The admin API requires extra dependencies: pip install tourney-keeper[api]")
        return 1

    from keeper_api.server import app
    from .config import load_config

    config = load_config(args.config)
    port = args.port or config.api.port

    # Lifespan picks these up
    app.state.config = config
    app.state.start_scheduler = not args.no_scheduler and config.scheduler.enabled
    logger.info(f"Starting keeper API on port {port}")
    uvicorn.run(app, host=args.host, port=port, log_level="info")
    return 0


def cmd_watch(args):
    """Run the scheduler in the foreground until interrupted."""
    from .reconcile import Reconciler
    from .scheduler import Scheduler

    loaded = _load_runtime(args)
    if loaded is None:
        return 1
    config, chain = loaded

    async def _run():
        scheduler = Scheduler(Reconciler(chain), config.scheduler.interval_seconds)
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except NotImplementedError:
                # Windows: Ctrl-C still raises KeyboardInterrupt
                pass
        scheduler.start()
        await scheduler.wait_stopped()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("\nStopped.")
        return 130
    return 0


def cmd_reconcile(args):
    """Run a single reconciliation pass and exit."""
    from .reconcile import Reconciler

    loaded = _load_runtime(args)
    if loaded is None:
        return 1
    _, chain = loaded

    summary = asyncio.run(Reconciler(chain).run_once())
    if summary.fetch_error:
        return 1
    return 0 if summary.errors == 0 else 1


def cmd_list(args):
    """List tournaments with the action the keeper would take right now."""
    try:
        from rich.console import Console
        from rich.table import Table
    except ImportError:
        logger.error("Missing dependency: rich. Install: pip install tourney-keeper")
        return 1

    from .classifier import ActionKind, classify
    from .contract import ChainReadError
    from .executors import wei_to_eth

    loaded = _load_runtime(args)
    if loaded is None:
        return 1
    _, chain = loaded

    try:
        tournaments = asyncio.run(chain.fetch_all_tournaments())
    except ChainReadError as e:
        logger.error(f"Could not list tournaments: {e}")
        return 1

    console = Console()
    if not tournaments:
        console.print("No tournaments found.")
        return 0

    table = Table(title="Tournaments", show_header=True, header_style="bold cyan")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="bold", min_width=14)
    table.add_column("Status")
    table.add_column("Players", justify="right")
    table.add_column("Pool (ETH)", justify="right")
    table.add_column("Next action")

    now = time.time()
    for t in tournaments:
        action = classify(t, now)
        style = "dim" if action.kind == ActionKind.NOOP else "yellow"
        table.add_row(
            str(t.id),
            t.name,
            t.status.label,
            f"{t.current_players}/{t.max_players}",
            f"{wei_to_eth(t.total_prize_pool):.4f}",
            f"[{style}]{action.kind.value}[/{style}] ({action.reason})",
        )

    console.print(table)
    return 0


def cmd_simulate(args):
    """Simulate scores for one tournament."""
    from .contract import ChainReadError
    from .executors import Outcome, simulate_scores

    loaded = _load_runtime(args)
    if loaded is None:
        return 1
    _, chain = loaded

    async def _run():
        snapshot = await chain.get_tournament(args.tournament_id)
        if snapshot is None:
            logger.error(f"Tournament #{args.tournament_id} not found")
            return None
        return await simulate_scores(chain, snapshot)

    try:
        result = asyncio.run(_run())
    except ChainReadError as e:
        logger.error(f"Could not read tournament: {e}")
        return 1

    if result is None:
        return 1
    if result.outcome == Outcome.SKIPPED:
        logger.info(f"Nothing to do: {result.reason}")
        return 0
    return 0 if result.outcome == Outcome.APPLIED else 1


def main():
    parser = argparse.ArgumentParser(
        prog="tourneykeeper",
        description="Lifecycle keeper for onchain tournaments",
    )
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: ~/.tourneykeeper/config.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the admin API and scheduler")
    serve_parser.add_argument("--port", "-p", type=int, default=None, help="Server port (default: config or 3001)")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    serve_parser.add_argument("--no-scheduler", action="store_true", help="Serve the API without periodic passes")
    serve_parser.set_defaults(func=cmd_serve)

    # watch command
    watch_parser = subparsers.add_parser("watch", help="Run periodic passes without the API")
    watch_parser.set_defaults(func=cmd_watch)

    # reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Run one reconciliation pass")
    reconcile_parser.set_defaults(func=cmd_reconcile)

    # list command
    list_parser = subparsers.add_parser("list", help="List tournaments and their pending action")
    list_parser.set_defaults(func=cmd_list)

    # simulate command
    simulate_parser = subparsers.add_parser("simulate", help="Simulate scores for one tournament")
    simulate_parser.add_argument("tournament_id", type=int, help="Tournament ID")
    simulate_parser.set_defaults(func=cmd_simulate)

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
