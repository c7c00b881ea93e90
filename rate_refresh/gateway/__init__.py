"""
Rate lookup gateways.

Re-exports the gateway protocol and implementations plus a registry keyed by
the ``RATES_API_TYPE`` setting.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Optional

from rate_refresh.config import Settings, get_settings
from rate_refresh.gateway.abstract import RateGateway
from rate_refresh.gateway.frankfurter import FrankfurterGateway
from rate_refresh.gateway.static import StaticRateGateway


def _gateway_factories(settings: Settings) -> Dict[str, Callable[[], RateGateway]]:
    """Registry of available gateways."""
    return {
        "frankfurter": lambda: FrankfurterGateway(
            base_url=settings.frankfurter_api_url,
            timeout=settings.http_timeout_seconds,
        ),
        "mock": StaticRateGateway.from_reference_rates,
    }


def available_gateways() -> List[str]:
    """List available gateway names."""
    return sorted(_gateway_factories(get_settings()).keys())


def build_gateway(settings: Optional[Settings] = None) -> RateGateway:
    """Instantiate the gateway selected by ``settings.rates_api_type``."""
    settings = settings or get_settings()
    factories = _gateway_factories(settings)
    if settings.rates_api_type not in factories:
        raise ValueError(
            f"Unknown rates API '{settings.rates_api_type}'. Available: {', '.join(factories)}"
        )
    return factories[settings.rates_api_type]()


__all__ = [
    "FrankfurterGateway",
    "RateGateway",
    "StaticRateGateway",
    "available_gateways",
    "build_gateway",
]
