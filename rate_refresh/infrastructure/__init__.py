"""
Infrastructure package for the rate refresh service.

Centralizes database connectivity concerns (pool lifecycle, one-off
connections). Keep this layer focused on I/O and resource management,
decoupled from orchestration logic.
"""

from rate_refresh.infrastructure.db_factory import PoolManager, get_pool, get_sync_connection

__all__ = [
    "PoolManager",
    "get_pool",
    "get_sync_connection",
]
