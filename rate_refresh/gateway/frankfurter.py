"""
Frankfurter API gateway.

Fetches the latest ECB reference rates for a base currency from
``{base_url}/v1/latest?base=XXX``. The expected payload is
``{"base": "USD", "date": "2025-01-02", "rates": {"EUR": 0.96, ...}}``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from rate_refresh.config import get_settings
from rate_refresh.domain.errors import GatewayError
from rate_refresh.domain.models import CurrencyCode
from rate_refresh.utils.logging import get_logger

log = get_logger(__name__)


def _log_response(response: requests.Response, *args: Any, **kwargs: Any) -> None:
    """requests response hook: one DEBUG line per outbound call."""
    log.debug(
        "HTTP %s %s -> %s",
        response.request.method,
        response.url,
        response.status_code,
        extra={
            "http_method": response.request.method,
            "url": response.url,
            "status_code": response.status_code,
            "elapsed_ms": int(response.elapsed.total_seconds() * 1000),
        },
    )


class FrankfurterGateway:
    """Rate gateway backed by the public Frankfurter API."""

    name: str = "frankfurter"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.frankfurter_api_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout_seconds
        self._session = session or requests.Session()
        self._session.hooks["response"].append(_log_response)

    def fetch_data(self, base_currency: CurrencyCode) -> Dict[str, float]:
        base = CurrencyCode(base_currency).value
        url = f"{self.base_url}/v1/latest"
        try:
            resp = self._session.get(url, params={"base": base}, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except requests.exceptions.Timeout as e:
            raise GatewayError(f"Frankfurter timeout after {self.timeout}s for base {base}") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else "unknown"
            raise GatewayError(f"Frankfurter responded with HTTP {status} for base {base}") from e
        except requests.exceptions.RequestException as e:
            raise GatewayError(f"Frankfurter request failed for base {base}: {e}") from e
        except ValueError as e:
            raise GatewayError(f"Frankfurter returned invalid JSON for base {base}") from e

        try:
            rates = data["rates"]
            quotes = {str(code).upper(): float(value) for code, value in rates.items()}
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.error("Frankfurter unexpected schema", extra={"base_currency": base})
            raise GatewayError(f"Frankfurter schema error for base {base}: {e}") from e

        log.debug("Frankfurter quotes received", extra={"base_currency": base, "quotes": len(quotes)})
        return quotes

    def close(self) -> None:
        self._session.close()


__all__ = ["FrankfurterGateway"]
