"""Cache-aware retrieval of scheduled and available jobs.

Raw portal records come in several shapes; ``normalize_record`` maps them onto
``JobRecord`` and keeps every field it does not interpret in ``raw``.
"""
from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Any, Callable

from subwatch.cache import TTLCache
from subwatch.errors import FetchError
from subwatch.log import get_logger
from subwatch.models import FetchResult, JobKind, JobRecord, SessionBundle
from subwatch.sources.base import JobSource

log = get_logger(__name__)

# Top-level fields folded into the canonical record; nested objects
# (schedules, positionType, ...) stay in ``raw`` since they carry more.
_CANONICAL_KEYS: frozenset[str] = frozenset({
    "id", "jobId", "positionTitle", "title", "startDate", "endDate", "date", "longTerm",
})


def normalize_payload(payload: Any) -> list[dict[str, Any]]:
    """Extract the record list from a bare list, ``{"content": [...]}`` or ``{"jobs": [...]}``."""
    if payload is None:
        return []
    if isinstance(payload, list):
        items = payload
    elif isinstance(payload, dict) and isinstance(payload.get("content"), list):
        items = payload["content"]
    elif isinstance(payload, dict) and isinstance(payload.get("jobs"), list):
        items = payload["jobs"]
    else:
        log.warning("Unrecognised job payload of type %s", type(payload).__name__)
        return []

    records = [item for item in items if isinstance(item, dict)]
    if len(records) != len(items):
        log.warning("Dropped %d non-object job entries", len(items) - len(records))
    return records


def parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        return None


def _title_of(job: dict[str, Any]) -> str:
    if job.get("positionTitle"):
        return str(job["positionTitle"])
    position = job.get("position")
    if isinstance(position, str) and position:
        return position
    if isinstance(position, dict) and position.get("title"):
        return str(position["title"])
    position_type = job.get("positionType")
    if isinstance(position_type, dict) and position_type.get("title"):
        return str(position_type["title"])
    return str(job.get("title") or "Untitled")


def _first_schedule(job: dict[str, Any]) -> dict[str, Any]:
    schedules = job.get("schedules")
    if isinstance(schedules, list) and schedules and isinstance(schedules[0], dict):
        return schedules[0]
    return {}


def normalize_record(job: dict[str, Any], kind: JobKind, today: date | None = None) -> JobRecord:
    """Map one raw record onto ``JobRecord``.

    Only ``available`` jobs get today's date when ``startDate`` is missing;
    scheduled jobs keep an unknown start. A missing end date falls back to
    the start date for both kinds. If either date is present but unparsable
    the record has no usable range and both come back as None.
    """
    schedule = _first_schedule(job)
    building = schedule.get("building") if isinstance(schedule.get("building"), dict) else {}

    raw_start = job.get("startDate") or job.get("date")
    if raw_start:
        start = parse_date(raw_start)
    elif kind is JobKind.AVAILABLE:
        start = today or date.today()
    else:
        start = None
    raw_end = job.get("endDate")
    end = parse_date(raw_end) if raw_end else start
    if (raw_start and start is None) or (raw_end and end is None):
        log.warning("Job %s has an unparsable date range (%r to %r)", job.get("id") or job.get("jobId"), raw_start, raw_end)
        start = end = None

    location_id = building.get("id")
    time_of_day = schedule.get("startTime")
    location_name = building.get("title") or building.get("name") or job.get("location") or ""

    return JobRecord(
        id=str(job.get("id") or job.get("jobId") or ""),
        title=_title_of(job),
        kind=kind,
        start_date=start,
        end_date=end,
        location_name=str(location_name),
        location_id=str(location_id) if location_id not in (None, "") else None,
        time_of_day=str(time_of_day) if time_of_day else None,
        schedule_kind=schedule.get("scheduleType") or None,
        is_long_term=job.get("longTerm") is True,
        raw={k: v for k, v in job.items() if k not in _CANONICAL_KEYS},
    )


class JobFetcher:
    """Per-kind fetch through a TTL cache; the two kinds never share an entry."""

    def __init__(
        self,
        source: JobSource,
        ttls: dict[JobKind, float],
        *,
        cache: TTLCache[JobKind, tuple[JobRecord, ...]] | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        missing = [k.value for k in JobKind if k not in ttls]
        if missing:
            raise ValueError(f"Missing cache TTL for: {', '.join(missing)}")
        self.source = source
        self.ttls = ttls
        self.cache: TTLCache[JobKind, tuple[JobRecord, ...]] = cache or TTLCache()
        self._today = today
        self.network_calls: dict[JobKind, int] = {k: 0 for k in JobKind}

    def fetch(
        self,
        kind: JobKind,
        bundle: SessionBundle,
        *,
        abandoned: threading.Event | None = None,
    ) -> FetchResult:
        """Cached jobs when fresh, otherwise one call to the source.

        Raises FetchError on a rejected or failed request; the cache is left
        untouched in that case. A response that arrives after *abandoned* is
        set is discarded without being cached.
        """
        cached = self.cache.get(kind)
        if cached is not None:
            log.info("Loaded %d %s jobs from cache (%.0fs old)", len(cached), kind.value, self.cache.age(kind) or 0)
            return FetchResult(kind=kind, jobs=list(cached), from_cache=True, fetched_at=self.cache.now())

        log.info("Fetching %s jobs from %s", kind.value, self.source.name)
        self.network_calls[kind] += 1
        try:
            payload = self.source.fetch(kind, bundle.token, bundle.identity, bundle.cookie_string)
        except FetchError:
            raise
        except Exception as exc:
            raise FetchError(None, f"{kind.value} fetch failed: {exc}") from exc

        if abandoned is not None and abandoned.is_set():
            log.info("Discarding late %s response from an abandoned cycle", kind.value)
            return FetchResult(kind=kind, jobs=[], from_cache=False, fetched_at=self.cache.now())

        today = self._today()
        jobs = tuple(normalize_record(item, kind, today) for item in normalize_payload(payload))
        entry = self.cache.put(kind, jobs, self.ttls[kind])
        log.info("Retrieved %d %s jobs, cached for %.0fs", len(jobs), kind.value, self.ttls[kind])
        return FetchResult(kind=kind, jobs=list(jobs), from_cache=False, fetched_at=entry.stored_at)

    def cache_age(self, kind: JobKind) -> float | None:
        return self.cache.age(kind)

    def clear(self, kind: JobKind | None = None) -> None:
        if kind is None:
            self.cache.invalidate_all()
            log.info("Cleared all job caches")
        else:
            self.cache.invalidate(kind)
            log.info("Cleared %s job cache", kind.value)
