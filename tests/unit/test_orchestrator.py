from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from rate_refresh.domain.errors import GatewayError, StoreError
from rate_refresh.domain.models import CurrencyCode, RateRequest, RateStatus
from rate_refresh.gateway.static import StaticRateGateway
from rate_refresh.orchestrator import RateRefreshOrchestrator
from rate_refresh.store.memory import InMemoryRateStore

USD, EUR, MXN = CurrencyCode.USD, CurrencyCode.EUR, CurrencyCode.MXN
NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
BATCH_SIZE = 10
EUR_QUOTE = 0.85
USD_QUOTE = 1.1


def _request(base: CurrencyCode, result: CurrencyCode, rate_id: str) -> RateRequest:
    return RateRequest(
        id=rate_id,
        idempotency_key=f"key-{rate_id}",
        base_currency=base,
        result_currency=result,
        status=RateStatus.PROCESSING,
        created_at=NOW,
        updated_at=NOW,
    )


class _RecordingStore:
    name = "recording"

    def __init__(
        self,
        claimed: Optional[List[RateRequest]] = None,
        claim_error: Optional[Exception] = None,
        complete_errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self._claimed = claimed or []
        self._claim_error = claim_error
        self._complete_errors = complete_errors or {}
        self._lock = threading.Lock()
        self.claim_calls: List[int] = []
        self.completed: List[tuple[list[str], float]] = []
        self.failed: List[list[str]] = []

    def claim(self, limit: int) -> List[RateRequest]:
        self.claim_calls.append(limit)
        if self._claim_error:
            raise self._claim_error
        return list(self._claimed)

    def complete(self, ids: Sequence[str], rate: float) -> None:
        for rate_id in ids:
            if rate_id in self._complete_errors:
                raise self._complete_errors[rate_id]
        with self._lock:
            self.completed.append((list(ids), rate))

    def fail(self, ids: Sequence[str]) -> None:
        with self._lock:
            self.failed.append(list(ids))

    @property
    def writes(self) -> int:
        return len(self.completed) + len(self.failed)


class _FakeGateway:
    name = "fake"

    def __init__(self, responses: Mapping[CurrencyCode, Any]) -> None:
        self._responses = responses
        self._lock = threading.Lock()
        self.calls: List[CurrencyCode] = []

    def fetch_data(self, base_currency: CurrencyCode) -> Mapping[str, float]:
        with self._lock:
            self.calls.append(base_currency)
        response = self._responses[base_currency]
        if isinstance(response, Exception):
            raise response
        return response


def test_run_cycle_completes_every_quoted_pair() -> None:
    store = _RecordingStore(claimed=[_request(USD, EUR, "1"), _request(USD, MXN, "2")])
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE, "MXN": 20.5}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert store.claim_calls == [BATCH_SIZE]
    assert gateway.calls == [USD]
    assert store.completed == [(["1"], EUR_QUOTE), (["2"], 20.5)]
    assert store.failed == []


def test_missing_quote_fails_only_that_pair() -> None:
    store = _RecordingStore(
        claimed=[_request(USD, EUR, "1"), _request(USD, MXN, "2"), _request(EUR, USD, "3")]
    )
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE}, EUR: {"USD": USD_QUOTE}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert sorted(store.completed) == [(["1"], EUR_QUOTE), (["3"], USD_QUOTE)]
    assert store.failed == [["2"]]


def test_missing_quote_logs_structured_warning(caplog: pytest.LogCaptureFixture) -> None:
    store = _RecordingStore(claimed=[_request(USD, MXN, "2")])
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE}})

    with caplog.at_level(logging.WARNING, logger="rate_refresh.orchestrator"):
        RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert warnings[0].base_currency == "USD"
    assert warnings[0].result_currency == "MXN"
    assert warnings[0].ids == ["2"]


def test_gateway_failure_fails_whole_base_currency_only() -> None:
    store = _RecordingStore(
        claimed=[
            _request(USD, EUR, "1"),
            _request(USD, MXN, "2"),
            _request(EUR, USD, "3"),
            _request(USD, EUR, "4"),
        ]
    )
    gateway = _FakeGateway({USD: GatewayError("boom"), EUR: {"USD": USD_QUOTE}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert store.failed == [["1", "4", "2"]]
    assert store.completed == [(["3"], USD_QUOTE)]


def test_empty_claim_makes_no_calls_and_no_writes() -> None:
    store = _RecordingStore(claimed=[])
    gateway = _FakeGateway({})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert store.claim_calls == [BATCH_SIZE]
    assert gateway.calls == []
    assert store.writes == 0


def test_claim_error_is_logged_and_cycle_returns(caplog: pytest.LogCaptureFixture) -> None:
    store = _RecordingStore(claim_error=StoreError("db down"))
    gateway = _FakeGateway({})

    with caplog.at_level(logging.ERROR, logger="rate_refresh.orchestrator"):
        RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert gateway.calls == []
    assert store.writes == 0
    assert any("claim failed" in r.getMessage() for r in caplog.records)


def test_unexpected_task_error_does_not_abort_siblings() -> None:
    store = _RecordingStore(
        claimed=[_request(USD, EUR, "1"), _request(EUR, USD, "3")],
        complete_errors={"1": RuntimeError("unexpected")},
    )
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE}, EUR: {"USD": USD_QUOTE}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert store.completed == [(["3"], USD_QUOTE)]


def test_store_error_on_one_group_does_not_stop_the_next() -> None:
    store = _RecordingStore(
        claimed=[_request(USD, EUR, "1"), _request(USD, MXN, "2")],
        complete_errors={"1": StoreError("write timeout")},
    )
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE, "MXN": 20.5}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert store.completed == [(["2"], 20.5)]


def test_duplicate_pairs_share_one_lookup_and_one_write() -> None:
    store = _RecordingStore(claimed=[_request(USD, EUR, "1"), _request(USD, EUR, "4")])
    gateway = _FakeGateway({USD: {"EUR": EUR_QUOTE}})

    RateRefreshOrchestrator(store, gateway).run_cycle(BATCH_SIZE)

    assert gateway.calls == [USD]
    assert store.completed == [(["1", "4"], EUR_QUOTE)]


def test_base_currencies_are_looked_up_concurrently() -> None:
    # Both lookups must be in flight at once for the barrier to release.
    barrier = threading.Barrier(2, timeout=5)

    class _BarrierGateway:
        name = "barrier"

        def fetch_data(self, base_currency: CurrencyCode) -> Mapping[str, float]:
            barrier.wait()
            return {"EUR": EUR_QUOTE, "USD": USD_QUOTE}

    store = _RecordingStore(claimed=[_request(USD, EUR, "1"), _request(EUR, USD, "3")])

    RateRefreshOrchestrator(store, _BarrierGateway()).run_cycle(BATCH_SIZE)

    assert sorted(store.completed) == [(["1"], EUR_QUOTE), (["3"], USD_QUOTE)]
    assert store.failed == []


def test_every_claimed_request_ends_terminal_after_one_cycle(
    memory_store: InMemoryRateStore,
) -> None:
    pairs = [(USD, EUR), (USD, MXN), (EUR, USD), (EUR, MXN), (MXN, USD)]
    created = [
        memory_store.create_if_absent(base, result, f"k{i}")
        for i, (base, result) in enumerate(pairs * 3)
    ]
    # MXN has no quotes configured: the whole base fails.
    gateway = StaticRateGateway({"USD": {"EUR": EUR_QUOTE}, "EUR": {"USD": USD_QUOTE, "MXN": 21.0}})

    RateRefreshOrchestrator(memory_store, gateway).run_cycle(len(created))

    statuses = {r.id: memory_store.get_by_id(r.id).status for r in created}
    assert set(statuses.values()) <= {RateStatus.COMPLETED, RateStatus.FAILED}
    by_pair = {
        (r.base_currency, r.result_currency): memory_store.get_by_id(r.id).status for r in created
    }
    assert by_pair[(USD, EUR)] == RateStatus.COMPLETED
    assert by_pair[(USD, MXN)] == RateStatus.FAILED
    assert by_pair[(EUR, MXN)] == RateStatus.COMPLETED
    assert by_pair[(MXN, USD)] == RateStatus.FAILED
    assert memory_store.claim(BATCH_SIZE) == []
