from __future__ import annotations

import contextlib
import signal
import sys
import threading
from datetime import timedelta
from typing import Generator, Optional

import typer

from rate_refresh.config import Settings, get_settings
from rate_refresh.domain.errors import RateServiceError
from rate_refresh.gateway import build_gateway
from rate_refresh.orchestrator import RateRefreshOrchestrator
from rate_refresh.reporter import print_records
from rate_refresh.scheduler import PeriodicTrigger, build_refresh_job
from rate_refresh.service import CurrencyRateService
from rate_refresh.store import build_store
from rate_refresh.store.postgres import PostgresRateStore
from rate_refresh.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Currency rate refresh service CLI.")
log = get_logger(__name__)


def _bootstrap() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    return settings


@contextlib.contextmanager
def _handle_errors() -> Generator[None, None, None]:
    """Turn application errors into a one-line message and exit code 1."""
    try:
        yield
    except RateServiceError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    stale = settings.stale_processing_timeout_seconds
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"store={settings.store_backend} api={settings.rates_api_type} | "
        f"interval={settings.rates_update_interval_seconds}s "
        f"batch={settings.rates_update_batch_size} "
        f"stale_requeue={f'{stale}s' if stale else 'disabled'}"
    )


@app.command("init-db")
def init_db() -> None:
    """
    Create the rate requests table and indexes.
    """
    _bootstrap()
    store = PostgresRateStore()
    try:
        with _handle_errors():
            store.ensure_schema()
    finally:
        store.close()
    typer.echo("Schema ready.")


@app.command()
def run() -> None:
    """
    Refresh pending rates on a timer until SIGINT/SIGTERM.
    """
    settings = _bootstrap()
    store = build_store(settings)
    orchestrator = RateRefreshOrchestrator(store, build_gateway(settings))
    stale = settings.stale_processing_timeout_seconds
    job = build_refresh_job(
        orchestrator,
        store,
        batch_size=settings.rates_update_batch_size,
        stale_after=timedelta(seconds=stale) if stale else None,
    )
    trigger = PeriodicTrigger(
        job,
        interval_seconds=settings.rates_update_interval_seconds,
        max_overlapping=settings.max_overlapping_cycles,
    )

    shutdown = threading.Event()

    def _request_shutdown(signum: int, frame: object) -> None:
        log.info("Shutting down...", extra={"signal": signum})
        shutdown.set()

    signal.signal(signal.SIGINT, _request_shutdown)
    signal.signal(signal.SIGTERM, _request_shutdown)

    trigger.start()
    try:
        while not shutdown.wait(timeout=0.5):
            pass
    finally:
        # In-flight cycles finish their dispatched work before we exit.
        trigger.stop(wait=True)
        store.close()
    log.info("Exited gracefully")


@app.command()
def refresh(
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        "-b",
        help="Override the number of requests claimed (default from settings).",
    ),
) -> None:
    """
    Run a single refresh cycle and exit.
    """
    settings = _bootstrap()
    store = build_store(settings)
    try:
        RateRefreshOrchestrator(store, build_gateway(settings)).run_cycle(
            batch_size or settings.rates_update_batch_size
        )
    finally:
        store.close()


@app.command()
def create(
    base: str = typer.Argument(..., help="Base currency code, e.g. USD."),
    result: str = typer.Argument(..., help="Result currency code, e.g. EUR."),
    key: str = typer.Option(..., "--key", "-k", help="Idempotency key for this request."),
) -> None:
    """
    Request a rate refresh for a currency pair.
    """
    settings = _bootstrap()
    store = build_store(settings)
    try:
        with _handle_errors():
            record = CurrencyRateService(store).create_rate(base, result, key)
        print_records([record], title="Rate Request")
    finally:
        store.close()


@app.command()
def get(
    rate_id: str = typer.Argument(..., help="Rate request id."),
) -> None:
    """
    Show a completed rate request by id.
    """
    settings = _bootstrap()
    store = build_store(settings)
    try:
        with _handle_errors():
            record = CurrencyRateService(store).get_completed_rate_by_id(rate_id)
        print_records([record], title="Rate")
    finally:
        store.close()


@app.command()
def latest(
    base: str = typer.Argument(..., help="Base currency code."),
    result: str = typer.Argument(..., help="Result currency code."),
) -> None:
    """
    Show the most recently completed rate for a pair.
    """
    settings = _bootstrap()
    store = build_store(settings)
    try:
        with _handle_errors():
            record = CurrencyRateService(store).get_actual_rate(base, result)
        print_records([record], title="Latest Rate")
    finally:
        store.close()


@app.command("requeue-stale")
def requeue_stale(
    older_than: int = typer.Option(
        300,
        "--older-than",
        "-o",
        min=1,
        help="Seconds a request may sit in PROCESSING before it is returned to PENDING.",
    ),
) -> None:
    """
    Return requests stranded in PROCESSING back to PENDING.
    """
    settings = _bootstrap()
    store = build_store(settings)
    try:
        with _handle_errors():
            moved = store.requeue_stale(timedelta(seconds=older_than))
        typer.echo(f"Requeued {moved} request(s).")
    finally:
        store.close()


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
