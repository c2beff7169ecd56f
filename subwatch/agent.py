"""
Substitute-job watcher.

One cycle: ensure session → fetch scheduled + available (in parallel, cached)
→ preference filter → compare against schedule → (optional) accept → report.
"""
from __future__ import annotations

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError, wait
from typing import Callable

from subwatch.applications import ApplicationDispatcher, PortalApplicationDispatcher, apply_to_jobs
from subwatch.comparison import compare, summary_stats
from subwatch.config import Settings
from subwatch.credentials import CredentialExchange, EnvCredentialExchange
from subwatch.errors import CycleTimeout, FetchError, SessionExpired
from subwatch.fetcher import JobFetcher
from subwatch.log import get_logger
from subwatch.models import BatchApplicationResult, CycleResult, FetchResult, JobKind, JobRecord, SessionBundle
from subwatch.preferences import evaluate_all
from subwatch.report import build_cycle_report, write_cycle_report
from subwatch.retry import retry
from subwatch.session import SessionManager, SessionStore
from subwatch.sources import get_source

log = get_logger(__name__)


class Watcher:
    def __init__(
        self,
        settings: Settings,
        *,
        sessions: SessionManager,
        fetcher: JobFetcher,
        dispatcher: ApplicationDispatcher | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings
        self.sessions = sessions
        self.fetcher = fetcher
        self.dispatcher = dispatcher
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, exchange: CredentialExchange | None = None) -> Watcher:
        auth = settings.authentication
        sessions = SessionManager(
            exchange or EnvCredentialExchange(),
            ttl_seconds=auth.session_ttl_seconds,
            store=SessionStore(auth.session_cache_path),
            refresh_threshold=auth.refresh_threshold,
        )
        fetcher = JobFetcher(
            get_source(settings),
            {
                JobKind.SCHEDULED: settings.cache.scheduled_ttl_seconds,
                JobKind.AVAILABLE: settings.cache.available_ttl_seconds,
            },
        )
        dispatcher = PortalApplicationDispatcher(settings.portal) if settings.auto_apply.enabled else None
        return cls(settings, sessions=sessions, fetcher=fetcher, dispatcher=dispatcher)

    # -- fetch with one re-authentication ----------------------------------

    def _fetch_with_reauth(
        self,
        kind: JobKind,
        bundle: SessionBundle,
        abandoned: threading.Event | None = None,
    ) -> FetchResult:
        state = {"bundle": bundle, "retried": False}
        refresh = self.settings.authentication.refresh_on_auth_failure

        def reauthenticate(exc: BaseException, attempt: int) -> None:
            self.sessions.invalidate(state["bundle"])
            state["bundle"] = self.sessions.ensure_valid_session()
            state["retried"] = True

        @retry(
            max_attempts=2,
            base_delay=0.0,
            jitter=False,
            retryable=(FetchError,),
            should_retry=lambda exc: refresh and exc.is_auth_failure,
            on_retry=reauthenticate,
        )
        def attempt() -> FetchResult:
            return self.fetcher.fetch(kind, state["bundle"], abandoned=abandoned)

        try:
            return attempt()
        except FetchError as exc:
            if state["retried"]:
                raise SessionExpired(f"{kind.value} fetch still failing after re-authentication: {exc}") from exc
            raise

    # -- cycle --------------------------------------------------------------

    def _remaining(self, deadline: float, what: str) -> float:
        left = deadline - self._clock()
        if left <= 0:
            raise CycleTimeout(f"Cycle deadline reached before {what}")
        return left

    def run_cycle(self) -> CycleResult:
        """Run one poll cycle.

        Raises AuthError when no session can be obtained (or a fetch is still
        rejected after re-authenticating) and CycleTimeout when the deadline
        passes; every other failure degrades to an empty job list.
        """
        timeout = self.settings.polling.cycle_timeout_seconds
        deadline = self._clock() + timeout
        result = CycleResult()

        abandoned = threading.Event()
        pool = ThreadPoolExecutor(max_workers=3, thread_name_prefix="cycle")
        try:
            session_future = pool.submit(self.sessions.ensure_valid_session)
            try:
                bundle = session_future.result(timeout=self._remaining(deadline, "authentication"))
            except TimeoutError as exc:
                raise CycleTimeout(f"Authentication exceeded the {timeout:g}s cycle deadline") from exc

            futures: dict[JobKind, Future] = {
                kind: pool.submit(self._fetch_with_reauth, kind, bundle, abandoned) for kind in JobKind
            }
            _, pending = wait(futures.values(), timeout=self._remaining(deadline, "fetching jobs"))
            if pending:
                late = ", ".join(k.value for k, f in futures.items() if f in pending)
                raise CycleTimeout(f"Fetching {late} jobs exceeded the {timeout:g}s cycle deadline")

            jobs: dict[JobKind, list[JobRecord]] = {}
            for kind, future in futures.items():
                try:
                    fetched = future.result()
                except FetchError as exc:
                    log.warning("%s jobs unavailable this cycle (degraded): %s", kind.value, exc)
                    result.degraded[kind.value] = str(exc)
                    jobs[kind] = []
                    continue
                jobs[kind] = fetched.jobs
                if fetched.from_cache:
                    result.cache_hits.append(kind.value)
        except CycleTimeout:
            abandoned.set()
            raise
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        result.scheduled = jobs[JobKind.SCHEDULED]
        result.available = jobs[JobKind.AVAILABLE]
        result.filtered = evaluate_all(result.available, self.settings.rules)
        result.comparison = compare(result.scheduled, result.filtered.passed)
        log.info("\n%s", summary_stats(result.comparison))
        for rec in result.comparison.recommendations:
            log.info("  %s", rec)

        result.applications = self._dispatch(result.comparison.new_opportunities)

        content = build_cycle_report(result, self.settings.rules, max_rows=self.settings.display.max_rows)
        log.debug("Cycle report:\n%s", content)
        if self.settings.display.write_report:
            result.report_path = str(write_cycle_report(content))

        log.info(
            "Cycle complete: scheduled=%d, available=%d, matched=%d, new=%d, conflicts=%d",
            len(result.scheduled), len(result.available), len(result.filtered.passed),
            result.comparison.summary.new_opportunities, result.comparison.summary.conflicts,
        )
        return result

    def _dispatch(self, opportunities: list[JobRecord]) -> BatchApplicationResult | None:
        cfg = self.settings.auto_apply
        if not cfg.enabled or self.dispatcher is None:
            log.info("Auto-apply disabled, not dispatching")
            return None
        if not opportunities:
            log.info("No new opportunities to apply to")
            return None
        if not cfg.auto_apply_on_matches:
            log.info("Manual review: %d opportunity(ies) awaiting approval", len(opportunities))
            for i, job in enumerate(opportunities[:5], 1):
                start = job.start_date.isoformat() if job.start_date else "N/A"
                log.info("  %d. %s (%s)", i, job.label, start)
            if len(opportunities) > 5:
                log.info("  ... and %d more", len(opportunities) - 5)
            return None

        bundle = self.sessions.current() or self.sessions.ensure_valid_session()
        batch = apply_to_jobs(self.dispatcher, opportunities, bundle, dry_run=cfg.dry_run)
        log.info("%s", batch.summary)
        return batch
