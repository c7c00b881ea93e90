"""
In-memory rate record store.

Used by unit tests and local runs without Postgres. A single re-entrant lock
stands in for the database's row locks and unique index: claim and
create-if-absent are atomic with respect to each other, so the same
exclusivity and idempotency guarantees hold across threads.
"""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from rate_refresh.domain.errors import IdempotencyConflictError, RateNotFoundError
from rate_refresh.domain.models import CurrencyCode, RateRequest, RateStatus, validate_currency_pair
from rate_refresh.store.abstract import AbstractRateStore


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRateStore(AbstractRateStore):
    """Thread-safe store keeping records in process memory."""

    name: str = "memory"

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or _utcnow
        self._lock = threading.RLock()
        self._records: Dict[str, RateRequest] = {}
        self._ids_by_key: Dict[str, str] = {}
        # Tie-breaker for records created within the same clock tick.
        self._sequence: Dict[str, int] = {}
        self._counter = itertools.count()

    def _put(self, record: RateRequest) -> None:
        self._records[record.id] = record

    def _update(self, ids: Sequence[str], **changes: object) -> None:
        for rate_id in ids:
            record = self._records.get(rate_id)
            if record is None:
                continue
            self._put(record.model_copy(update=changes))

    def claim(self, limit: int) -> List[RateRequest]:
        if limit <= 0:
            return []
        with self._lock:
            pending = sorted(
                (r for r in self._records.values() if r.status == RateStatus.PENDING),
                key=lambda r: (r.created_at, self._sequence[r.id]),
            )[:limit]
            now = self._clock()
            claimed = []
            for record in pending:
                updated = record.model_copy(
                    update={"status": RateStatus.PROCESSING, "updated_at": now}
                )
                self._put(updated)
                claimed.append(updated)
            return claimed

    def complete(self, ids: Sequence[str], rate: float) -> None:
        with self._lock:
            now = self._clock()
            self._update(
                ids,
                status=RateStatus.COMPLETED,
                rate=rate,
                completed_at=now,
                updated_at=now,
            )

    def fail(self, ids: Sequence[str]) -> None:
        with self._lock:
            self._update(ids, status=RateStatus.FAILED, updated_at=self._clock())

    def get_latest_completed(
        self, base_currency: CurrencyCode, result_currency: CurrencyCode
    ) -> RateRequest:
        pair = (CurrencyCode(base_currency), CurrencyCode(result_currency))
        with self._lock:
            completed = [
                r
                for r in self._records.values()
                if r.status == RateStatus.COMPLETED and r.pair == pair
            ]
        if not completed:
            raise RateNotFoundError(f"no completed rate for {pair[0].value}/{pair[1].value}")
        return max(completed, key=lambda r: r.completed_at)

    def get_by_id(self, rate_id: str) -> RateRequest:
        with self._lock:
            record = self._records.get(rate_id)
        if record is None:
            raise RateNotFoundError(f"no rate request with id {rate_id!r}")
        return record

    def create_if_absent(
        self,
        base_currency: CurrencyCode,
        result_currency: CurrencyCode,
        idempotency_key: str,
    ) -> RateRequest:
        base, result = validate_currency_pair(base_currency, result_currency)
        with self._lock:
            existing_id = self._ids_by_key.get(idempotency_key)
            if existing_id is None:
                now = self._clock()
                record = RateRequest(
                    id=str(uuid.uuid4()),
                    idempotency_key=idempotency_key,
                    base_currency=base,
                    result_currency=result,
                    status=RateStatus.PENDING,
                    created_at=now,
                    updated_at=now,
                )
                self._put(record)
                self._ids_by_key[idempotency_key] = record.id
                self._sequence[record.id] = next(self._counter)
                return record
            existing = self._records[existing_id]

        if existing.pair != (base, result):
            raise IdempotencyConflictError(
                f"key {idempotency_key!r} already used for "
                f"{existing.base_currency.value}/{existing.result_currency.value}"
            )
        return existing

    def requeue_stale(self, older_than: timedelta) -> int:
        with self._lock:
            now = self._clock()
            stale = [
                r.id
                for r in self._records.values()
                if r.status == RateStatus.PROCESSING and r.updated_at < now - older_than
            ]
            self._update(stale, status=RateStatus.PENDING, updated_at=now)
            return len(stale)


__all__ = ["InMemoryRateStore"]
