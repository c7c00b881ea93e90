"""
Orchestrator for rate refresh cycles.

One cycle claims a batch of pending requests, groups them by currency pair and
fans out one worker per distinct base currency. Each worker makes a single
provider call and reconciles every pair under its base back into the store.

Usage (example from the trigger):
    from rate_refresh.orchestrator import RateRefreshOrchestrator

    orchestrator = RateRefreshOrchestrator(store, gateway)
    orchestrator.run_cycle(batch_size=10)

Outcomes are observable through the store and the logs only; a failing worker
never aborts its siblings or the cycle.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional

from rate_refresh.domain.errors import StoreError
from rate_refresh.domain.models import CurrencyCode
from rate_refresh.gateway.abstract import RateGateway
from rate_refresh.grouping import CurrencyPairGroup, flatten_group_ids, group_rates
from rate_refresh.store.abstract import RateStore
from rate_refresh.utils.logging import get_logger
from rate_refresh.utils.profiler import profile_block

log = get_logger(__name__)


@dataclass
class TaskOutcome:
    """Per-base-currency result collected for the cycle summary."""

    base_currency: CurrencyCode
    completed: int = 0
    failed: int = 0
    error: Optional[str] = None


class RateRefreshOrchestrator:
    """
    Claim, group, dispatch and reconcile pending rate requests.

    Parameters
    ----------
    store : RateStore
        Backing store; must tolerate concurrent use from worker threads.
    gateway : RateGateway
        Upstream quote provider.
    max_workers : int | None
        Cap on concurrent workers per cycle. Defaults to one per base currency.
    """

    def __init__(
        self,
        store: RateStore,
        gateway: RateGateway,
        max_workers: Optional[int] = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._max_workers = max_workers

    def run_cycle(self, batch_size: int) -> None:
        try:
            claimed = self._store.claim(batch_size)
        except Exception:  # noqa: BLE001 - a failed claim leaves nothing to reconcile
            log.exception("[CYCLE ABORTED] Rates claim failed", extra={"batch_size": batch_size})
            return

        if not claimed:
            log.info("No rates to process", extra={"batch_size": batch_size})
            return

        grouped = group_rates(claimed)
        log.info(
            f"[CYCLE START] Processing {len(claimed)} rate request(s)",
            extra={
                "claimed": len(claimed),
                "base_currencies": [base.value for base in grouped],
            },
        )

        with profile_block("refresh-cycle") as stats:
            outcomes = self._dispatch(grouped)

        log.info(
            "[CYCLE COMPLETE] Finished processing rates",
            extra={
                "claimed": len(claimed),
                "completed": sum(o.completed for o in outcomes),
                "failed": sum(o.failed for o in outcomes),
                "task_errors": sum(1 for o in outcomes if o.error),
                "duration_seconds": round(stats.duration_seconds, 3),
                "cpu_percent": stats.cpu_percent,
            },
        )

    def _dispatch(self, grouped: Dict[CurrencyCode, List[CurrencyPairGroup]]) -> List[TaskOutcome]:
        """Run one worker per base currency and wait for all of them."""
        workers = self._max_workers or len(grouped)
        outcomes: List[TaskOutcome] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rate-refresh") as pool:
            futures = [
                pool.submit(self._supervised, base, groups) for base, groups in grouped.items()
            ]
            for future in as_completed(futures):
                outcomes.append(future.result())
        return outcomes

    def _supervised(self, base: CurrencyCode, groups: List[CurrencyPairGroup]) -> TaskOutcome:
        """Task boundary: nothing raised while processing a base escapes from here."""
        try:
            return self._process_base(base, groups)
        except Exception as exc:  # noqa: BLE001 - isolate the failure to this base currency
            log.exception(
                f"[TASK FAILED] {base.value}",
                extra={"base_currency": base.value, "error": str(exc)},
            )
            return TaskOutcome(base_currency=base, error=str(exc))

    def _process_base(self, base: CurrencyCode, groups: List[CurrencyPairGroup]) -> TaskOutcome:
        outcome = TaskOutcome(base_currency=base)
        try:
            quotes = self._gateway.fetch_data(base)
        except Exception as exc:  # noqa: BLE001 - any provider failure abandons the base
            ids = flatten_group_ids(groups)
            log.error(
                f"Rate lookup failed for {base.value}",
                extra={"base_currency": base.value, "ids": ids, "error": str(exc)},
            )
            self._store.fail(ids)
            outcome.failed = len(ids)
            outcome.error = str(exc)
            return outcome

        for group in groups:
            pair = {"base_currency": base.value, "result_currency": group.result_currency.value}
            quote = quotes.get(group.result_currency.value)
            try:
                if quote is None:
                    log.warning(
                        f"Currency pair not found: {base.value}/{group.result_currency.value}",
                        extra={**pair, "ids": group.ids},
                    )
                    self._store.fail(group.ids)
                    outcome.failed += len(group.ids)
                else:
                    self._store.complete(group.ids, quote)
                    outcome.completed += len(group.ids)
            except StoreError as exc:
                # Left in PROCESSING; see requeue_stale.
                log.error("Update failed", extra={**pair, "ids": group.ids, "error": str(exc)})
        return outcome


__all__ = ["RateRefreshOrchestrator", "TaskOutcome"]
