"""
Static rate gateway for local runs and tests.

Quotes are injected per instance; nothing is shared at module level, so tests
can parameterize each gateway independently.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

from rate_refresh.domain.errors import GatewayError
from rate_refresh.domain.models import CurrencyCode

# Units of each currency per 1 USD; only used to seed the local mock.
DEFAULT_REFERENCE_RATES: Mapping[str, float] = {"USD": 1.0, "EUR": 0.92, "MXN": 17.1}


class StaticRateGateway:
    """Serve fixed quotes from an in-memory ``{base: {result: rate}}`` table."""

    name: str = "mock"

    def __init__(self, quotes: Optional[Mapping[str, Mapping[str, float]]] = None) -> None:
        self._quotes: Dict[str, Dict[str, float]] = {
            str(base).upper(): dict(rates) for base, rates in (quotes or {}).items()
        }

    @classmethod
    def from_reference_rates(
        cls, reference: Mapping[str, float] = DEFAULT_REFERENCE_RATES
    ) -> "StaticRateGateway":
        """Derive every cross rate from per-unit values against a common anchor."""
        quotes = {
            base: {
                result: round(value / base_value, 6)
                for result, value in reference.items()
                if result != base
            }
            for base, base_value in reference.items()
        }
        return cls(quotes)

    def fetch_data(self, base_currency: CurrencyCode) -> Dict[str, float]:
        base = CurrencyCode(base_currency).value
        if base not in self._quotes:
            raise GatewayError(f"no static quotes configured for base {base}")
        return dict(self._quotes[base])


__all__ = ["DEFAULT_REFERENCE_RATES", "StaticRateGateway"]
