"""
Rate record stores.

Re-exports the store interfaces and concrete implementations, plus a small
registry so the CLI can build the configured backend by name.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from rate_refresh.config import Settings, get_settings
from rate_refresh.store.abstract import AbstractRateStore, RateStore
from rate_refresh.store.memory import InMemoryRateStore
from rate_refresh.store.postgres import PostgresRateStore


def _store_factories(settings: Settings) -> Dict[str, Callable[[], AbstractRateStore]]:
    """Registry of available stores."""
    return {
        "postgres": lambda: PostgresRateStore(
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
        ),
        "memory": lambda: InMemoryRateStore(),
    }


def available_stores() -> List[str]:
    """List available store backend names."""
    return sorted(_store_factories(get_settings()).keys())


def build_store(settings: Optional[Settings] = None) -> AbstractRateStore:
    """Instantiate the store selected by ``settings.store_backend``."""
    settings = settings or get_settings()
    factories = _store_factories(settings)
    if settings.store_backend not in factories:
        raise ValueError(
            f"Unknown store backend '{settings.store_backend}'. Available: {', '.join(factories)}"
        )
    return factories[settings.store_backend]()


__all__ = [
    "AbstractRateStore",
    "InMemoryRateStore",
    "PostgresRateStore",
    "RateStore",
    "available_stores",
    "build_store",
]
