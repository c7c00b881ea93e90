"""
PostgreSQL rate record store.

Claims use a single ``UPDATE ... FROM (SELECT ... FOR UPDATE SKIP LOCKED)``
statement so selecting and marking PROCESSING happen in one transaction:
overlapping refresh cycles skip rows another claimant holds rather than
blocking on them. Idempotent creation relies on the unique index on
``idempotency_key`` via ``INSERT ... ON CONFLICT DO NOTHING``.
"""

from __future__ import annotations

import contextlib
import uuid
from datetime import timedelta
from typing import Any, Dict, Generator, List, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool
from pydantic import ValidationError

from rate_refresh.domain.errors import (
    IdempotencyConflictError,
    InconsistentStateError,
    RateNotFoundError,
    StoreError,
)
from rate_refresh.domain.models import CurrencyCode, RateRequest, RateStatus, validate_currency_pair
from rate_refresh.infrastructure.db_factory import get_pool, get_sync_connection
from rate_refresh.store.abstract import AbstractRateStore
from rate_refresh.utils.logging import get_logger

log = get_logger(__name__)

TABLE = "public.currencies_rates"

_COLUMNS = (
    "idempotency_key",
    "base_currency",
    "result_currency",
    "status",
    "rate",
    "completed_at",
    "created_at",
    "updated_at",
)


def _select_list(alias: str = "") -> str:
    prefix = f"{alias}." if alias else ""
    return ", ".join([f"{prefix}id::text AS id"] + [f"{prefix}{col}" for col in _COLUMNS])


SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {TABLE} (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        idempotency_key TEXT NOT NULL,
        base_currency TEXT NOT NULL,
        result_currency TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING',
        rate DOUBLE PRECISION,
        completed_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT currencies_rates_idempotency_key_key UNIQUE (idempotency_key),
        CONSTRAINT currencies_rates_pair_differs CHECK (base_currency <> result_currency),
        CONSTRAINT currencies_rates_status_check
            CHECK (status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED'))
    )
    """,
    f"""
    CREATE INDEX IF NOT EXISTS currencies_rates_status_created_at_idx
        ON {TABLE} (status, created_at)
    """,
    f"""
    CREATE INDEX IF NOT EXISTS currencies_rates_pair_completed_at_idx
        ON {TABLE} (base_currency, result_currency, completed_at DESC)
        WHERE status = 'COMPLETED'
    """,
)

_CLAIM_SQL = f"""
WITH claimable AS (
    SELECT id
    FROM {TABLE}
    WHERE status = %(pending)s
    ORDER BY created_at ASC
    LIMIT %(limit)s
    FOR UPDATE SKIP LOCKED
)
UPDATE {TABLE} AS r
SET status = %(processing)s, updated_at = now()
FROM claimable
WHERE r.id = claimable.id
RETURNING {_select_list("r")}
"""

_COMPLETE_SQL = f"""
UPDATE {TABLE}
SET status = %(completed)s, rate = %(rate)s, completed_at = now(), updated_at = now()
WHERE id = ANY(%(ids)s::uuid[])
"""

_FAIL_SQL = f"""
UPDATE {TABLE}
SET status = %(failed)s, updated_at = now()
WHERE id = ANY(%(ids)s::uuid[])
"""

_REQUEUE_STALE_SQL = f"""
UPDATE {TABLE}
SET status = %(pending)s, updated_at = now()
WHERE status = %(processing)s AND updated_at < now() - %(older_than)s
"""

_LATEST_COMPLETED_SQL = f"""
SELECT {_select_list()}
FROM {TABLE}
WHERE base_currency = %(base)s AND result_currency = %(result)s AND status = %(completed)s
ORDER BY completed_at DESC
LIMIT 1
"""

_BY_ID_SQL = f"SELECT {_select_list()} FROM {TABLE} WHERE id = %(id)s"

_BY_KEY_SQL = f"SELECT {_select_list()} FROM {TABLE} WHERE idempotency_key = %(key)s"

_INSERT_SQL = f"""
INSERT INTO {TABLE} (idempotency_key, base_currency, result_currency, status)
VALUES (%(key)s, %(base)s, %(result)s, %(pending)s)
ON CONFLICT (idempotency_key) DO NOTHING
RETURNING {_select_list()}
"""


def _to_domain(row: Dict[str, Any]) -> RateRequest:
    try:
        return RateRequest.model_validate(row)
    except ValidationError as exc:
        log.error(
            "Stored rate request failed validation",
            extra={"id": row.get("id"), "status": row.get("status"), "errors": exc.error_count()},
        )
        raise InconsistentStateError(f"stored row {row.get('id')!r} is invalid") from exc


def create_schema(conn: psycopg.Connection) -> None:
    """Create the rate table and its indexes on ``conn`` (idempotent)."""
    with conn.cursor() as cur:
        for statement in SCHEMA_STATEMENTS:
            cur.execute(statement)
    conn.commit()


class PostgresRateStore(AbstractRateStore):
    """
    Rate store backed by a psycopg ConnectionPool.

    The pool is shared by every orchestrator worker thread; each operation
    borrows one connection for a single short transaction.
    """

    name: str = "postgres"

    def __init__(
        self,
        pool: Optional[ConnectionPool] = None,
        dsn_override: Optional[str] = None,
        pool_min_size: Optional[int] = None,
        pool_max_size: Optional[int] = None,
    ) -> None:
        self._pool_instance: Optional[ConnectionPool] = pool
        self._owns_pool = False
        self._dsn_override = dsn_override
        self.pool_min_size = pool_min_size
        self.pool_max_size = pool_max_size

    def _get_pool(self) -> ConnectionPool:
        if self._pool_instance is not None:
            return self._pool_instance
        if self._dsn_override:
            self._pool_instance = ConnectionPool(
                conninfo=self._dsn_override,
                min_size=self.pool_min_size or 1,
                max_size=self.pool_max_size or 10,
                open=True,
            )
            self._owns_pool = True
        else:
            self._pool_instance = get_pool(
                min_size=self.pool_min_size, max_size=self.pool_max_size
            )
        return self._pool_instance

    @contextlib.contextmanager
    def _cursor(self, operation: str) -> Generator[psycopg.Cursor, None, None]:
        """Borrow a connection, open a dict cursor and translate driver errors."""
        try:
            with self._get_pool().connection() as conn:
                with conn.cursor(row_factory=dict_row) as cur:
                    yield cur
        except psycopg.Error as exc:
            raise StoreError(f"{operation} failed: {exc}") from exc

    def ensure_schema(self) -> None:
        """
        Create the rate table and its indexes if they do not exist.

        Runs on a dedicated connection (retried on transient failures) rather
        than the pool, so it works before any pool is opened.
        """
        try:
            with get_sync_connection(self._dsn_override) as conn:
                create_schema(conn)
        except psycopg.Error as exc:
            raise StoreError(f"ensure_schema failed: {exc}") from exc
        log.info("Schema ensured", extra={"table": TABLE})

    def claim(self, limit: int) -> List[RateRequest]:
        if limit <= 0:
            return []
        with self._cursor("claim") as cur:
            cur.execute(
                _CLAIM_SQL,
                {
                    "pending": RateStatus.PENDING.value,
                    "processing": RateStatus.PROCESSING.value,
                    "limit": limit,
                },
            )
            rows = cur.fetchall()
        # UPDATE ... RETURNING does not preserve the subquery ordering.
        claimed = sorted((_to_domain(row) for row in rows), key=lambda r: (r.created_at, r.id))
        log.debug("Claimed rate requests", extra={"limit": limit, "claimed": len(claimed)})
        return claimed

    def complete(self, ids: Sequence[str], rate: float) -> None:
        if not ids:
            return
        with self._cursor("complete") as cur:
            cur.execute(
                _COMPLETE_SQL,
                {"completed": RateStatus.COMPLETED.value, "rate": rate, "ids": list(ids)},
            )

    def fail(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        with self._cursor("fail") as cur:
            cur.execute(_FAIL_SQL, {"failed": RateStatus.FAILED.value, "ids": list(ids)})

    def get_latest_completed(
        self, base_currency: CurrencyCode, result_currency: CurrencyCode
    ) -> RateRequest:
        with self._cursor("get_latest_completed") as cur:
            cur.execute(
                _LATEST_COMPLETED_SQL,
                {
                    "base": CurrencyCode(base_currency).value,
                    "result": CurrencyCode(result_currency).value,
                    "completed": RateStatus.COMPLETED.value,
                },
            )
            row = cur.fetchone()
        if row is None:
            raise RateNotFoundError(f"no completed rate for {base_currency}/{result_currency}")
        return _to_domain(row)

    def get_by_id(self, rate_id: str) -> RateRequest:
        try:
            parsed = uuid.UUID(str(rate_id))
        except ValueError:
            raise RateNotFoundError(f"no rate request with id {rate_id!r}") from None
        with self._cursor("get_by_id") as cur:
            cur.execute(_BY_ID_SQL, {"id": parsed})
            row = cur.fetchone()
        if row is None:
            raise RateNotFoundError(f"no rate request with id {rate_id!r}")
        return _to_domain(row)

    def create_if_absent(
        self,
        base_currency: CurrencyCode,
        result_currency: CurrencyCode,
        idempotency_key: str,
    ) -> RateRequest:
        base, result = validate_currency_pair(base_currency, result_currency)
        with self._cursor("create_if_absent") as cur:
            cur.execute(
                _INSERT_SQL,
                {
                    "key": idempotency_key,
                    "base": base.value,
                    "result": result.value,
                    "pending": RateStatus.PENDING.value,
                },
            )
            inserted = cur.fetchone()
            if inserted is not None:
                return _to_domain(inserted)
            # Lost the race (or a replay): the unique index decided, now reconcile.
            cur.execute(_BY_KEY_SQL, {"key": idempotency_key})
            existing = cur.fetchone()

        if existing is None:
            raise StoreError(f"idempotency key {idempotency_key!r} conflicted but no row found")
        record = _to_domain(existing)
        if record.pair != (base, result):
            raise IdempotencyConflictError(
                f"key {idempotency_key!r} already used for "
                f"{record.base_currency.value}/{record.result_currency.value}"
            )
        log.debug("Idempotent replay", extra={"idempotency_key": idempotency_key, "id": record.id})
        return record

    def requeue_stale(self, older_than: timedelta) -> int:
        with self._cursor("requeue_stale") as cur:
            cur.execute(
                _REQUEUE_STALE_SQL,
                {
                    "pending": RateStatus.PENDING.value,
                    "processing": RateStatus.PROCESSING.value,
                    "older_than": older_than,
                },
            )
            moved = cur.rowcount
        return max(moved, 0)

    def close(self) -> None:
        """Close the pool when this store created it; shared pools are left alone."""
        if self._owns_pool and self._pool_instance is not None:
            self._pool_instance.close()
        self._pool_instance = None
        self._owns_pool = False


__all__ = ["PostgresRateStore", "SCHEMA_STATEMENTS", "TABLE", "create_schema"]
