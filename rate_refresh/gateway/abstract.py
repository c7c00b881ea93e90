"""
Rate lookup gateway interface.

One ``fetch_data`` call returns quotes for every result currency the provider
knows relative to ``base``. A missing key means "no quote available", which the
orchestrator records as a failed request; failures of the call itself raise
``GatewayError``.
"""

from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable

from rate_refresh.domain.models import CurrencyCode


@runtime_checkable
class RateGateway(Protocol):
    name: str

    def fetch_data(self, base_currency: CurrencyCode) -> Mapping[str, float]:
        """Return ``{result_code: rate}`` quotes for ``base_currency``."""
        ...


__all__ = ["RateGateway"]
