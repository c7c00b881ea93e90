"""
Periodic trigger for refresh cycles.

A timer thread ticks every ``interval_seconds`` and hands the job to a small
cycle executor, so a cycle that overruns its tick does not stop the next one
from claiming work. Overlapping cycles are safe because claims skip rows held
by other claimants. At most ``max_overlapping`` cycles run or wait at once;
extra ticks are skipped. ``stop()`` ends ticking, drops anything not yet
started and waits for in-flight cycles.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import timedelta
from typing import Callable, Optional

from rate_refresh.domain.errors import StoreError
from rate_refresh.orchestrator import RateRefreshOrchestrator
from rate_refresh.store.abstract import RateStore
from rate_refresh.utils.logging import get_logger

log = get_logger(__name__)


class PeriodicTrigger:
    """
    Run ``job`` every ``interval_seconds`` until stopped.

    Parameters
    ----------
    job : Callable[[], None]
        Work to run on each tick. Exceptions are logged and swallowed per tick.
    interval_seconds : float
        Delay between ticks. The first tick fires one interval after ``start``.
    max_overlapping : int
        Maximum cycles running or queued at once; a tick that finds every slot
        taken is skipped rather than queued.
    """

    def __init__(
        self,
        job: Callable[[], None],
        interval_seconds: float,
        max_overlapping: int = 2,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._job = job
        self._interval = interval_seconds
        self._max_overlapping = max_overlapping
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self.ticks = 0
        self.skipped = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            raise RuntimeError("trigger already started")
        self._stop_event.clear()
        # Fresh slots: cycles cancelled by a previous stop never released theirs.
        self._slots = threading.BoundedSemaphore(self._max_overlapping)
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_overlapping, thread_name_prefix="refresh-cycle"
        )
        self._thread = threading.Thread(
            target=self._loop, args=(self._executor,), name="refresh-trigger", daemon=True
        )
        self._thread.start()
        log.info(
            "[TRIGGER START]",
            extra={"interval_seconds": self._interval, "max_overlapping": self._max_overlapping},
        )

    def _loop(self, executor: ThreadPoolExecutor) -> None:
        while not self._stop_event.wait(self._interval):
            self.ticks += 1
            if not self._slots.acquire(blocking=False):
                self.skipped += 1
                log.debug("[TICK SKIPPED] All cycle slots busy", extra={"ticks": self.ticks})
                continue
            executor.submit(self._run_in_slot)

    def _run_in_slot(self) -> None:
        try:
            self._run_guarded()
        finally:
            self._slots.release()

    def _run_guarded(self) -> None:
        if self._stop_event.is_set():
            return
        try:
            self._job()
        except Exception:  # noqa: BLE001 - one crashed cycle must not kill the trigger
            log.exception("[CYCLE CRASHED]")

    def trigger_now(self) -> Future:
        """Submit one cycle immediately, outside the tick schedule."""
        if self._executor is None:
            raise RuntimeError("trigger not started")
        return self._executor.submit(self._run_guarded)

    def stop(self, wait: bool = True) -> None:
        """
        Stop ticking and drop queued cycles; with ``wait`` block until
        in-flight cycles finish.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._executor is not None:
            self._executor.shutdown(wait=wait, cancel_futures=True)
            self._executor = None
        log.info("[TRIGGER STOP]", extra={"ticks": self.ticks, "skipped": self.skipped})


def build_refresh_job(
    orchestrator: RateRefreshOrchestrator,
    store: RateStore,
    batch_size: int,
    stale_after: Optional[timedelta] = None,
) -> Callable[[], None]:
    """
    Build the per-tick job: optional stale requeue, then one refresh cycle.

    With ``stale_after`` unset, records stranded in PROCESSING by a crash stay
    there until an operator runs ``requeue-stale``.
    """

    def job() -> None:
        if stale_after is not None:
            try:
                moved = store.requeue_stale(stale_after)
            except StoreError:
                log.exception("[REQUEUE FAILED]")
            else:
                if moved:
                    log.warning(
                        f"[REQUEUE] Returned {moved} stale request(s) to PENDING",
                        extra={"requeued": moved, "older_than_seconds": stale_after.total_seconds()},
                    )
        orchestrator.run_cycle(batch_size)

    return job


__all__ = ["PeriodicTrigger", "build_refresh_job"]
