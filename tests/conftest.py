"""
Pytest configuration for the rate refresh service.

Provides fixtures for:
- Settings override for integration tests
- Database connection management and table cleanup
- In-memory store and a controllable clock for unit tests
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import psycopg
import pytest

from rate_refresh.config import Settings
from rate_refresh.store.memory import InMemoryRateStore
from rate_refresh.store.postgres import TABLE, PostgresRateStore, create_schema


class FakeClock:
    """Deterministic clock; each call advances by ``step``."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store(clock: FakeClock) -> InMemoryRateStore:
    return InMemoryRateStore(clock=clock)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.

    Can be overridden via environment variables in CI or local testing.
    """
    return Settings(
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=int(os.getenv("DB_PORT", "5432")),
        db_user=os.getenv("DB_USER", "postgres"),
        db_password=os.getenv("DB_PASSWORD", "postgres"),
        db_name=os.getenv("DB_NAME", "currency_rates"),
        log_level="DEBUG",
    )


@pytest.fixture(scope="session")
def test_dsn(test_settings: Settings) -> str:
    """
    Database connection string for tests.
    """
    return (
        f"postgresql://{test_settings.db_user}:{test_settings.db_password}"
        f"@{test_settings.db_host}:{test_settings.db_port}/{test_settings.db_name}"
    )


@pytest.fixture(scope="session")
def db_connection_available(test_dsn: str) -> bool:
    """
    Check if database is reachable.

    Used to conditionally skip integration tests when DB is not available.
    """
    try:
        with psycopg.connect(test_dsn, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
    except psycopg.Error:
        return False


@pytest.fixture(scope="session")
def db_connection(
    test_dsn: str, db_connection_available: bool
) -> Generator[psycopg.Connection, None, None]:
    """
    Provide a session-scoped database connection for integration tests.

    Skips tests if database is not available.
    """
    if not db_connection_available:
        pytest.skip("Database not available for integration tests")

    conn = psycopg.connect(test_dsn)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture(scope="session")
def db_schema_initialized(db_connection: psycopg.Connection) -> bool:
    """
    Ensure the rate requests table exists.
    """
    create_schema(db_connection)
    return True


@pytest.fixture(scope="function")
def clean_rates_table(db_connection: psycopg.Connection, db_schema_initialized: bool):
    """
    Empty the rate requests table before and after each test function.
    """
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE {TABLE};")
    db_connection.commit()
    yield
    with db_connection.cursor() as cur:
        cur.execute(f"TRUNCATE TABLE {TABLE};")
    db_connection.commit()


@pytest.fixture(scope="function")
def pg_store(test_dsn: str, clean_rates_table) -> Generator[PostgresRateStore, None, None]:
    """
    Postgres store with its own small pool, closed after the test.
    """
    store = PostgresRateStore(dsn_override=test_dsn, pool_min_size=1, pool_max_size=4)
    try:
        yield store
    finally:
        store.close()
