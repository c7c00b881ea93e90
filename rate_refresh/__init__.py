"""
Rate Refresh - exchange rate requests refreshed on a timer.

Clients submit rate requests for a currency pair (deduplicated by idempotency
key); a periodic job claims pending requests in batches, looks quotes up from an
upstream provider once per base currency and records each request as completed
or failed. The package provides:

- A claim-based rate record store (Postgres with skip-locked claims, in-memory)
- Rate lookup gateways (Frankfurter API, static quotes)
- The refresh orchestrator and its periodic trigger
- A small service layer and CLI for creating and reading rates
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from rate_refresh.config import Settings, get_settings
from rate_refresh.domain.models import CurrencyCode, RateRequest, RateStatus
from rate_refresh.gateway import RateGateway, build_gateway
from rate_refresh.grouping import CurrencyPairGroup, group_rates
from rate_refresh.orchestrator import RateRefreshOrchestrator
from rate_refresh.scheduler import PeriodicTrigger
from rate_refresh.service import CurrencyRateService
from rate_refresh.store import RateStore, build_store
from rate_refresh.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Domain
    "CurrencyCode",
    "RateRequest",
    "RateStatus",
    # Pipeline
    "CurrencyPairGroup",
    "PeriodicTrigger",
    "RateRefreshOrchestrator",
    "group_rates",
    # Collaborators
    "CurrencyRateService",
    "RateGateway",
    "RateStore",
    "build_gateway",
    "build_store",
    # Logging
    "configure_logging",
    "get_logger",
]
