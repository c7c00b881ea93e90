"""
Domain package for the rate refresh service.

Exports the rate request model, currency/status enums and the error taxonomy.
Keep this package focused on data definitions and validation concerns.
"""

from rate_refresh.domain.errors import (
    CurrenciesShouldDifferError,
    ErrorKind,
    GatewayError,
    IdempotencyConflictError,
    IdempotencyKeyRequiredError,
    InconsistentStateError,
    InvalidCurrencyCodeError,
    RateFetchFailedError,
    RateIdRequiredError,
    RateNotCompletedYetError,
    RateNotFoundError,
    RateServiceError,
    StoreError,
)
from rate_refresh.domain.models import (
    CurrencyCode,
    RateRequest,
    RateStatus,
    validate_currency_pair,
)

__all__ = [
    "CurrenciesShouldDifferError",
    "CurrencyCode",
    "ErrorKind",
    "GatewayError",
    "IdempotencyConflictError",
    "IdempotencyKeyRequiredError",
    "InconsistentStateError",
    "InvalidCurrencyCodeError",
    "RateFetchFailedError",
    "RateIdRequiredError",
    "RateNotCompletedYetError",
    "RateNotFoundError",
    "RateRequest",
    "RateServiceError",
    "RateStatus",
    "StoreError",
    "validate_currency_pair",
]
