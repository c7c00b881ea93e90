"""
Utilities package for the rate refresh service.

Exports shared helpers for logging and cycle timing.
Keep this package lightweight and free of domain-specific logic.
"""

from rate_refresh.utils.logging import configure_logging, get_logger
from rate_refresh.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
