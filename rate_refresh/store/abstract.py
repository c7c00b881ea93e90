"""
Rate record store interfaces.

Concrete stores (Postgres, in-memory) implement the RateStore protocol so the
orchestrator and service layer stay storage-agnostic. The claim contract is the
heart of the refresh pipeline: it must be atomic and mutually exclusive across
concurrent callers, skipping (not waiting on) records another claim holds.
"""

from __future__ import annotations

import abc
from datetime import timedelta
from typing import List, Protocol, Sequence, runtime_checkable

from rate_refresh.domain.models import CurrencyCode, RateRequest


@runtime_checkable
class RateStore(Protocol):
    """
    Common interface all rate record stores must implement.

    Attributes
    ----------
    name : str
        A short machine-friendly identifier.
    """

    name: str

    def claim(self, limit: int) -> List[RateRequest]:
        """
        Move up to ``limit`` oldest PENDING records to PROCESSING and return them.

        Returns an empty list when nothing is pending.
        """
        ...

    def complete(self, ids: Sequence[str], rate: float) -> None:
        """Mark records COMPLETED with ``rate``; unconditional, last write wins."""
        ...

    def fail(self, ids: Sequence[str]) -> None:
        """Mark records FAILED; unconditional."""
        ...

    def get_latest_completed(
        self, base_currency: CurrencyCode, result_currency: CurrencyCode
    ) -> RateRequest:
        """Most recently completed record for the pair; raises RateNotFoundError."""
        ...

    def get_by_id(self, rate_id: str) -> RateRequest:
        """Record by id; raises RateNotFoundError."""
        ...

    def create_if_absent(
        self,
        base_currency: CurrencyCode,
        result_currency: CurrencyCode,
        idempotency_key: str,
    ) -> RateRequest:
        """
        Insert a PENDING record unless the key already exists.

        Replays with the same pair return the existing record; a different pair
        raises IdempotencyConflictError.
        """
        ...

    def requeue_stale(self, older_than: timedelta) -> int:
        """Move PROCESSING records untouched for ``older_than`` back to PENDING."""
        ...


class AbstractRateStore(abc.ABC):
    """
    Optional ABC helper for class-based implementations.

    Subclasses set ``name`` and implement the storage primitives.
    """

    name: str

    @abc.abstractmethod
    def claim(self, limit: int) -> List[RateRequest]:  # pragma: no cover - interface only
        raise NotImplementedError

    @abc.abstractmethod
    def complete(self, ids: Sequence[str], rate: float) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def fail(self, ids: Sequence[str]) -> None:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_latest_completed(
        self, base_currency: CurrencyCode, result_currency: CurrencyCode
    ) -> RateRequest:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def get_by_id(self, rate_id: str) -> RateRequest:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def create_if_absent(
        self,
        base_currency: CurrencyCode,
        result_currency: CurrencyCode,
        idempotency_key: str,
    ) -> RateRequest:  # pragma: no cover
        raise NotImplementedError

    @abc.abstractmethod
    def requeue_stale(self, older_than: timedelta) -> int:  # pragma: no cover
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Stores may override to release connections/resources."""


__all__ = ["AbstractRateStore", "RateStore"]
