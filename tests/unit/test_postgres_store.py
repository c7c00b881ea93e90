from __future__ import annotations

import contextlib
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import psycopg
import pytest

from rate_refresh.domain.errors import (
    CurrenciesShouldDifferError,
    IdempotencyConflictError,
    InconsistentStateError,
    RateNotFoundError,
    StoreError,
)
from rate_refresh.domain.models import CurrencyCode, RateStatus
from rate_refresh.store import postgres
from rate_refresh.store.postgres import PostgresRateStore

USD, EUR, MXN = CurrencyCode.USD, CurrencyCode.EUR, CurrencyCode.MXN
T0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
RATE_ID = "6f1c9a52-3c1e-4d0e-9b8f-0c2f5b1c7e11"


def _row(rate_id: str, created_at: datetime, **overrides: Any) -> Dict[str, Any]:
    row = {
        "id": rate_id,
        "idempotency_key": f"key-{rate_id}",
        "base_currency": "USD",
        "result_currency": "EUR",
        "status": "PROCESSING",
        "rate": None,
        "completed_at": None,
        "created_at": created_at,
        "updated_at": created_at,
    }
    row.update(overrides)
    return row


class _FakeCursor:
    def __init__(self, results: List[Any], error: Optional[Exception], rowcount: int) -> None:
        self._results = results
        self._error = error
        self.rowcount = rowcount
        self.executed: List[tuple[str, Optional[Dict[str, Any]]]] = []

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> None:
        self.executed.append((sql, params))
        if self._error is not None:
            raise self._error

    def fetchall(self) -> List[Dict[str, Any]]:
        return self._results.pop(0)

    def fetchone(self) -> Optional[Dict[str, Any]]:
        return self._results.pop(0)


class _FakeConnection:
    def __init__(self, cursor: _FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self, row_factory: Any = None) -> _FakeCursor:
        return self._cursor


class _FakePool:
    """Stands in for psycopg_pool.ConnectionPool; every borrow shares one cursor."""

    def __init__(
        self, results: Optional[List[Any]] = None, error: Optional[Exception] = None, rowcount: int = 0
    ) -> None:
        self.cursor = _FakeCursor(list(results or []), error, rowcount)
        self.borrows = 0

    @contextlib.contextmanager
    def connection(self):
        self.borrows += 1
        yield _FakeConnection(self.cursor)


def test_claim_uses_skip_locked_and_sorts_oldest_first() -> None:
    pool = _FakePool(
        results=[[_row("b", T0 + timedelta(seconds=2)), _row("a", T0), _row("c", T0 + timedelta(seconds=1))]]
    )

    claimed = PostgresRateStore(pool=pool).claim(3)

    assert [r.id for r in claimed] == ["a", "c", "b"]
    assert all(r.status == RateStatus.PROCESSING for r in claimed)
    ((sql, params),) = pool.cursor.executed
    assert "FOR UPDATE SKIP LOCKED" in sql
    assert params == {"pending": "PENDING", "processing": "PROCESSING", "limit": 3}


def test_non_positive_claim_and_empty_writes_skip_the_database() -> None:
    pool = _FakePool()
    store = PostgresRateStore(pool=pool)

    assert store.claim(0) == []
    store.complete([], 1.0)
    store.fail([])

    assert pool.borrows == 0


def test_complete_and_fail_update_by_id_list() -> None:
    pool = _FakePool()
    store = PostgresRateStore(pool=pool)

    store.complete(("1", "4"), 0.85)
    store.fail(["2"])

    (_, complete_params), (_, fail_params) = pool.cursor.executed
    assert complete_params == {"completed": "COMPLETED", "rate": 0.85, "ids": ["1", "4"]}
    assert fail_params == {"failed": "FAILED", "ids": ["2"]}


def test_get_by_id_rejects_malformed_uuid_without_query() -> None:
    pool = _FakePool()

    with pytest.raises(RateNotFoundError):
        PostgresRateStore(pool=pool).get_by_id("not-a-uuid")

    assert pool.borrows == 0


def test_get_by_id_missing_row() -> None:
    with pytest.raises(RateNotFoundError):
        PostgresRateStore(pool=_FakePool(results=[None])).get_by_id(RATE_ID)


def test_get_latest_completed_maps_row() -> None:
    row = _row(RATE_ID, T0, status="COMPLETED", rate=0.9, completed_at=T0)

    record = PostgresRateStore(pool=_FakePool(results=[row])).get_latest_completed(USD, EUR)

    assert record.rate == 0.9
    assert record.status == RateStatus.COMPLETED


def test_create_if_absent_returns_inserted_row() -> None:
    pool = _FakePool(results=[_row(RATE_ID, T0, status="PENDING")])

    record = PostgresRateStore(pool=pool).create_if_absent(USD, EUR, "k1")

    assert record.id == RATE_ID
    assert len(pool.cursor.executed) == 1
    assert "ON CONFLICT (idempotency_key) DO NOTHING" in pool.cursor.executed[0][0]


def test_create_if_absent_replays_existing_row_for_same_pair() -> None:
    existing = _row(RATE_ID, T0, status="COMPLETED", rate=0.9, completed_at=T0, idempotency_key="k1")
    pool = _FakePool(results=[None, existing])

    record = PostgresRateStore(pool=pool).create_if_absent(USD, EUR, "k1")

    assert record.id == RATE_ID
    assert record.status == RateStatus.COMPLETED
    assert pool.cursor.executed[1][1] == {"key": "k1"}


def test_create_if_absent_conflicting_pair() -> None:
    existing = _row(RATE_ID, T0, status="PENDING", idempotency_key="k1")
    pool = _FakePool(results=[None, existing])

    with pytest.raises(IdempotencyConflictError):
        PostgresRateStore(pool=pool).create_if_absent(USD, MXN, "k1")


def test_requeue_stale_reports_rowcount() -> None:
    pool = _FakePool(rowcount=4)

    moved = PostgresRateStore(pool=pool).requeue_stale(timedelta(minutes=5))

    assert moved == 4
    ((_, params),) = pool.cursor.executed
    assert params["older_than"] == timedelta(minutes=5)


def test_driver_errors_become_store_errors() -> None:
    pool = _FakePool(error=psycopg.OperationalError("connection reset"))

    with pytest.raises(StoreError) as excinfo:
        PostgresRateStore(pool=pool).claim(5)

    assert "claim failed" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, psycopg.OperationalError)


def test_close_leaves_injected_pool_open() -> None:
    pool = _FakePool()
    pool.close = lambda: pytest.fail("shared pool must not be closed")  # type: ignore[attr-defined]

    PostgresRateStore(pool=pool).close()


def test_create_if_absent_rejects_identical_currencies_without_query() -> None:
    pool = _FakePool()

    with pytest.raises(CurrenciesShouldDifferError):
        PostgresRateStore(pool=pool).create_if_absent(EUR, EUR, "k1")

    assert pool.borrows == 0


def test_row_with_unknown_status_is_inconsistent() -> None:
    row = _row(RATE_ID, T0, status="ARCHIVED")

    with pytest.raises(InconsistentStateError):
        PostgresRateStore(pool=_FakePool(results=[row])).get_by_id(RATE_ID)


class _SchemaConnection:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.cursor_ = _FakeCursor([], error, 0)
        self.commits = 0

    def __enter__(self) -> "_SchemaConnection":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def cursor(self) -> _FakeCursor:
        return self.cursor_

    def commit(self) -> None:
        self.commits += 1


def test_ensure_schema_runs_ddl_on_dedicated_connection(monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _SchemaConnection()
    dsns: List[Optional[str]] = []

    def connect(dsn: Optional[str] = None) -> _SchemaConnection:
        dsns.append(dsn)
        return conn

    monkeypatch.setattr(postgres, "get_sync_connection", connect)

    PostgresRateStore(dsn_override="postgresql://u:p@db/rates").ensure_schema()

    assert dsns == ["postgresql://u:p@db/rates"]
    assert [sql for sql, _ in conn.cursor_.executed] == list(postgres.SCHEMA_STATEMENTS)
    assert conn.commits == 1


def test_ensure_schema_wraps_driver_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    conn = _SchemaConnection(error=psycopg.errors.InsufficientPrivilege("denied"))
    monkeypatch.setattr(postgres, "get_sync_connection", lambda dsn=None: conn)

    with pytest.raises(StoreError):
        PostgresRateStore().ensure_schema()
