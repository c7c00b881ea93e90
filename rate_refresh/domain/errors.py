"""
Error taxonomy for the rate refresh service.

Every application error carries a machine-friendly ``code`` and an ``ErrorKind``
so outer layers (CLI today, an HTTP layer tomorrow) can map it to a response
without inspecting exception types.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    BUSINESS_LOGIC = "business_logic"
    UNEXPECTED = "unexpected"


class RateServiceError(Exception):
    """Base exception for all rate service errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED
    code: str = "InternalServerError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message

    def __str__(self) -> str:
        if not self.message:
            return self.code
        return f"{self.code}: {self.message}"


class InvalidCurrencyCodeError(RateServiceError):
    kind = ErrorKind.BUSINESS_LOGIC
    code = "InvalidCurrencyCode"


class CurrenciesShouldDifferError(RateServiceError):
    kind = ErrorKind.BUSINESS_LOGIC
    code = "CurrenciesShouldDiffer"


class RateIdRequiredError(RateServiceError):
    kind = ErrorKind.BAD_REQUEST
    code = "CurrencyRateIdIsRequired"


class IdempotencyKeyRequiredError(RateServiceError):
    kind = ErrorKind.BAD_REQUEST
    code = "IdempotencyKeyIsRequired"


class RateNotFoundError(RateServiceError):
    kind = ErrorKind.NOT_FOUND
    code = "CurrencyRateNotFound"


class RateNotCompletedYetError(RateServiceError):
    kind = ErrorKind.BUSINESS_LOGIC
    code = "CurrencyRateNotCompletedYet"


class RateFetchFailedError(RateServiceError):
    kind = ErrorKind.BUSINESS_LOGIC
    code = "CurrencyRateFetchFailed"


class IdempotencyConflictError(RateServiceError):
    """Raised when an idempotency key is reused for a different currency pair."""

    kind = ErrorKind.BUSINESS_LOGIC
    code = "CurrencyRateIdempotencyConflict"


class InconsistentStateError(RateServiceError):
    """Raised when a stored record violates the status/rate lifecycle."""

    code = "InconsistentEntityState"


class StoreError(RateServiceError):
    """Raised when the backing store cannot complete an operation."""

    code = "StoreUnavailable"


class GatewayError(RateServiceError):
    """Raised when the upstream rates provider cannot fulfil a request."""

    code = "RatesProviderUnavailable"


__all__ = [
    "CurrenciesShouldDifferError",
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
    "RateServiceError",
    "StoreError",
]
