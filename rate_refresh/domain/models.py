"""
Domain models for the rate refresh service.

Defines the rate request schema aligned with the ``currencies_rates`` table,
the closed set of supported currency codes and the request lifecycle statuses.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from rate_refresh.domain.errors import CurrenciesShouldDifferError, InvalidCurrencyCodeError


class CurrencyCode(str, Enum):
    USD = "USD"
    EUR = "EUR"
    MXN = "MXN"

    @classmethod
    def parse(cls, value: Union[str, "CurrencyCode"]) -> "CurrencyCode":
        """Coerce a raw code (case-insensitive) into a supported currency."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise InvalidCurrencyCodeError(f"unsupported currency code {value!r}") from None


class RateStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class RateRequest(BaseModel):
    """
    Representation of a single row in the ``currencies_rates`` table.

    ``rate`` and ``completed_at`` are only populated once the request reaches
    ``COMPLETED``; readers must go through the service read-guard rather than
    trusting them blindly.
    """

    id: str = Field(..., description="Opaque identifier (UUID string).")
    idempotency_key: str = Field(..., description="Caller-supplied deduplication token.")
    base_currency: CurrencyCode = Field(..., description="Currency quoted from.")
    result_currency: CurrencyCode = Field(..., description="Currency quoted to.")
    status: RateStatus = Field(RateStatus.PENDING, description="Lifecycle status.")
    rate: Optional[float] = Field(None, description="Quoted rate, set on completion.")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp.")
    created_at: datetime = Field(..., description="Row creation timestamp.")
    updated_at: datetime = Field(..., description="Last mutation timestamp.")

    model_config = {
        "frozen": True,
        "populate_by_name": True,
    }

    @property
    def pair(self) -> tuple[CurrencyCode, CurrencyCode]:
        return self.base_currency, self.result_currency


def validate_currency_pair(
    base_currency: Union[str, CurrencyCode],
    result_currency: Union[str, CurrencyCode],
) -> tuple[CurrencyCode, CurrencyCode]:
    """
    Parse both sides of a pair and reject identical currencies.

    Raises
    ------
    InvalidCurrencyCodeError
        If either code is outside the supported set.
    CurrenciesShouldDifferError
        If base and result are the same currency.
    """
    base = CurrencyCode.parse(base_currency)
    result = CurrencyCode.parse(result_currency)
    if base == result:
        raise CurrenciesShouldDifferError(f"{base.value}/{result.value}")
    return base, result


__all__ = ["CurrencyCode", "RateRequest", "RateStatus", "validate_currency_pair"]
