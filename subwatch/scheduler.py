"""Cancellable polling loop.

A tick that arrives while the previous cycle is still running is dropped, not
queued. Stopping is cooperative: set the stop event (or call ``stop()``) and
the loop exits after the in-flight cycle finishes.
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable

from subwatch.log import get_logger

log = get_logger(__name__)


class PollScheduler:
    def __init__(
        self,
        task: Callable[[], Any],
        interval_seconds: float,
        *,
        stop_event: threading.Event | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.task = task
        self.interval_seconds = interval_seconds
        self.stop_event = stop_event or threading.Event()
        self.execution_count = 0
        self.failure_count = 0
        self.dropped_ticks = 0
        self.last_execution_time: datetime | None = None
        self.is_running = False
        self._inflight: Future | None = None
        self._pool: ThreadPoolExecutor | None = None

    def _execute(self) -> bool:
        self.execution_count += 1
        n = self.execution_count
        self.last_execution_time = datetime.now()
        log.info("=" * 60)
        log.info("Scheduled execution #%d", n)
        try:
            self.task()
        except Exception as exc:
            self.failure_count += 1
            log.error("Execution #%d failed: %s (retrying in %.0fs)", n, exc, self.interval_seconds)
            return False
        log.info("Execution #%d completed, next in %.0fs", n, self.interval_seconds)
        return True

    def run_once(self) -> bool:
        return self._execute()

    def tick(self) -> Future | None:
        """Start a cycle in the background unless one is still running."""
        if self._pool is None:
            raise RuntimeError("tick() is only valid while the scheduler is running")
        if self._inflight is not None and not self._inflight.done():
            self.dropped_ticks += 1
            log.warning("Previous cycle still running, dropping tick (%d dropped so far)", self.dropped_ticks)
            return None
        self._inflight = self._pool.submit(self._execute)
        return self._inflight

    def run(self, max_ticks: int | None = None) -> None:
        """Tick every ``interval_seconds`` until stopped (or *max_ticks* ticks)."""
        if self.is_running:
            log.warning("Scheduler is already running")
            return
        self.is_running = True
        log.info("Scheduler started, polling every %.0fs", self.interval_seconds)
        ticks = 0
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="poll")
        try:
            while not self.stop_event.is_set():
                self.tick()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                if self.stop_event.wait(self.interval_seconds):
                    break
        finally:
            self._pool.shutdown(wait=True)
            self._pool = None
            self.is_running = False
            self._log_summary()

    def stop(self) -> None:
        self.stop_event.set()

    def _log_summary(self) -> None:
        log.info("Scheduler stopped")
        log.info(
            "  executions=%d, successful=%d, failed=%d, dropped ticks=%d",
            self.execution_count,
            self.execution_count - self.failure_count,
            self.failure_count,
            self.dropped_ticks,
        )
        if self.last_execution_time:
            log.info("  last execution: %s", self.last_execution_time.strftime("%H:%M:%S"))

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "execution_count": self.execution_count,
            "failure_count": self.failure_count,
            "dropped_ticks": self.dropped_ticks,
            "polling_interval": self.interval_seconds,
            "last_execution_time": self.last_execution_time,
        }
