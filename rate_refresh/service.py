"""
Application service for reading and requesting currency rates.

Validates caller input and guards reads so callers never see a partially
processed record as if it carried a usable rate.
"""

from __future__ import annotations

from typing import Union

from rate_refresh.domain.errors import (
    IdempotencyKeyRequiredError,
    InconsistentStateError,
    RateFetchFailedError,
    RateIdRequiredError,
    RateNotCompletedYetError,
)
from rate_refresh.domain.models import CurrencyCode, RateRequest, RateStatus, validate_currency_pair
from rate_refresh.store.abstract import RateStore
from rate_refresh.utils.logging import get_logger

log = get_logger(__name__)

CurrencyLike = Union[str, CurrencyCode]


class CurrencyRateService:
    def __init__(self, store: RateStore) -> None:
        self._store = store

    def get_actual_rate(self, base_currency: CurrencyLike, result_currency: CurrencyLike) -> RateRequest:
        """Latest completed quote for the pair."""
        base, result = validate_currency_pair(base_currency, result_currency)
        return self._store.get_latest_completed(base, result)

    def get_completed_rate_by_id(self, rate_id: str) -> RateRequest:
        """
        Return the record only if it finished successfully.

        Raises
        ------
        RateNotCompletedYetError
            Still PENDING or PROCESSING.
        RateFetchFailedError
            The provider could not quote the pair.
        InconsistentStateError
            Any other status, or COMPLETED without a rate.
        """
        if not rate_id or not rate_id.strip():
            raise RateIdRequiredError()
        record = self._store.get_by_id(rate_id.strip())

        if record.status == RateStatus.COMPLETED and record.rate is not None:
            return record
        if record.status in (RateStatus.PENDING, RateStatus.PROCESSING):
            raise RateNotCompletedYetError()
        if record.status == RateStatus.FAILED:
            raise RateFetchFailedError()
        log.error(
            "Inconsistent rate request state",
            extra={"id": record.id, "status": str(record.status), "has_rate": record.rate is not None},
        )
        raise InconsistentStateError("inconsistent entity state")

    def create_rate(
        self,
        base_currency: CurrencyLike,
        result_currency: CurrencyLike,
        idempotency_key: str,
    ) -> RateRequest:
        """Create a pending rate request, or replay the one already stored for the key."""
        base, result = validate_currency_pair(base_currency, result_currency)
        if not idempotency_key or not idempotency_key.strip():
            raise IdempotencyKeyRequiredError()
        record = self._store.create_if_absent(base, result, idempotency_key.strip())
        log.info(
            "Rate request accepted",
            extra={
                "id": record.id,
                "base_currency": base.value,
                "result_currency": result.value,
                "status": record.status.value,
            },
        )
        return record


__all__ = ["CurrencyRateService"]
