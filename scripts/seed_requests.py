"""
Seed script for the rate refresh service.

Creates deterministic pseudo-random pending rate requests through the
idempotent creation path, for load testing the claim and refresh cycle.
"""

from __future__ import annotations

import random
import sys
import time
from itertools import permutations
from typing import List, Tuple

import typer

from rate_refresh.config import get_settings
from rate_refresh.domain.models import CurrencyCode
from rate_refresh.store import build_store
from rate_refresh.store.abstract import RateStore
from rate_refresh.utils.logging import configure_logging

app = typer.Typer(help="Create pending rate requests for load testing.")

PAIRS: List[Tuple[CurrencyCode, CurrencyCode]] = list(permutations(CurrencyCode, 2))


def _generate_requests(count: int, seed: int, key_prefix: str) -> List[Tuple[CurrencyCode, CurrencyCode, str]]:
    rng = random.Random(seed)
    return [(*rng.choice(PAIRS), f"{key_prefix}-{seed}-{i}") for i in range(count)]


def _seed_store(store: RateStore, requests: List[Tuple[CurrencyCode, CurrencyCode, str]]) -> int:
    """Submit every request; replays of existing keys count as submitted, not created."""
    submitted = 0
    for base, result, key in requests:
        store.create_if_absent(base, result, key)
        submitted += 1
    return submitted


@app.command()
def main(
    count: int = typer.Option(
        100,
        "--count",
        "-n",
        help="Number of rate requests to create.",
    ),
    seed: int = typer.Option(
        42,
        "--seed",
        help="Deterministic RNG seed; re-running with the same seed is a no-op replay.",
    ),
    key_prefix: str = typer.Option(
        "seed",
        "--key-prefix",
        help="Prefix for generated idempotency keys.",
    ),
) -> None:
    """
    Create pending rate requests using the configured store backend.
    """
    settings = get_settings()
    configure_logging(level="WARNING", json_logs=settings.json_logs)
    store = build_store(settings)

    start = time.perf_counter()
    requests = _generate_requests(count, seed, key_prefix)
    typer.echo(f"Submitting {count:,} rate requests (seed={seed}, store={settings.store_backend})")
    try:
        submitted = _seed_store(store, requests)
    finally:
        store.close()
    duration = time.perf_counter() - start
    typer.echo(
        f"Submitted {submitted:,} in {duration:.2f}s "
        f"({submitted / duration if duration else 0:,.0f} req/s, existing keys replayed)."
    )


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
