"""
keeper_api - Admin HTTP surface for the tournament keeper

Hosts the reconciliation scheduler and exposes a few admin-key protected
endpoints that pass straight through to the chain client.
"""

from .server import app, KeeperRuntime

__all__ = ["app", "KeeperRuntime"]
