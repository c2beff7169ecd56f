"""Compare available jobs against the user's schedule.

An available job that overlaps any scheduled job (closed date ranges, touching
endpoints count) is a conflict; only the first overlapping scheduled job in
input order is reported. Everything else is a new opportunity. Available jobs
without a usable date range are dropped from both lists.
"""
from __future__ import annotations

from collections import Counter
from datetime import date

from subwatch.log import get_logger
from subwatch.models import ComparisonResult, ComparisonSummary, Conflict, JobRecord

log = get_logger(__name__)

PRIORITY_KEYWORDS: tuple[str, ...] = ("teacher", "math", "science")
LONG_CONTRACT_DAYS = 7


def _date_range(job: JobRecord) -> tuple[date, date] | None:
    if job.start_date is None:
        return None
    end = job.end_date or job.start_date
    return job.start_date, end


def _overlaps(a: tuple[date, date], b: tuple[date, date]) -> bool:
    return a[0] <= b[1] and b[0] <= a[1]


def _location_key(job: JobRecord) -> str | None:
    if job.location_id is not None:
        return f"id:{job.location_id}"
    name = job.location_name.strip().lower()
    return f"name:{name}" if name else None


def _same_location(a: JobRecord, b: JobRecord) -> bool:
    if a.location_id is not None and b.location_id is not None:
        return a.location_id == b.location_id
    name_a = a.location_name.strip().lower()
    return bool(name_a) and name_a == b.location_name.strip().lower()


def _conflict_reason(same: bool, scheduled: JobRecord, rng: tuple[date, date]) -> str:
    where = scheduled.location_name or "Unknown"
    span = f"{rng[0].isoformat()} to {rng[1].isoformat()}"
    if same:
        return f"Same location ({where}) on overlapping dates {span}: double-booking risk, same location"
    return f"Already scheduled {span} at {where}: date collision, different locations"


def compare(scheduled: list[JobRecord], available: list[JobRecord]) -> ComparisonResult:
    scheduled_ranges = [(job, _date_range(job)) for job in scheduled]
    opportunities: list[JobRecord] = []
    conflicts: list[Conflict] = []

    for job in available:
        rng = _date_range(job)
        if rng is None:
            log.debug("Skipping %s: no usable dates", job.label)
            continue

        clash: Conflict | None = None
        for other, other_rng in scheduled_ranges:
            if other_rng is None or not _overlaps(rng, other_rng):
                continue
            same = _same_location(job, other)
            clash = Conflict(
                available=job,
                scheduled=other,
                reason=_conflict_reason(same, other, other_rng),
                same_location=same,
            )
            break

        if clash is None:
            opportunities.append(job)
        else:
            conflicts.append(clash)
            log.info("Conflict: %s vs scheduled %s (%s)", job.label, clash.scheduled.label, clash.reason)

    result = ComparisonResult(
        new_opportunities=opportunities,
        conflicts=conflicts,
        recommendations=recommend(scheduled, opportunities),
        summary=ComparisonSummary(
            total_scheduled=len(scheduled),
            total_available=len(available),
            new_opportunities=len(opportunities),
            conflicts=len(conflicts),
        ),
    )
    log.info(
        "Compared %d available vs %d scheduled → %d new, %d conflicts",
        len(available), len(scheduled), len(opportunities), len(conflicts),
    )
    return result


def recommend(scheduled: list[JobRecord], opportunities: list[JobRecord]) -> list[str]:
    """Advisory notes about the opportunity set; nothing downstream reads them."""
    if not opportunities:
        return ["No new opportunities available"]

    notes: list[str] = []
    priority = sum(
        1 for job in opportunities
        if any(word in job.title.lower() for word in PRIORITY_KEYWORDS)
    )
    if priority:
        notes.append(f"🌟 {priority} high-priority Teacher/Math/Science position(s) available")

    long_contracts = sum(
        1 for job in opportunities
        if (job.duration_days or 0) > LONG_CONTRACT_DAYS
    )
    if long_contracts:
        notes.append(f"📅 {long_contracts} long-term contract(s)")

    per_location = Counter(key for key in map(_location_key, opportunities) if key)
    busy = sum(1 for count in per_location.values() if count > 1)
    if busy:
        notes.append(f"🏢 Multiple opportunities at {busy} location(s)")

    if len(scheduled) < 5:
        notes.append("💡 Consider accepting some of these opportunities to increase your schedule")
    if len(opportunities) > 5:
        notes.append("📊 You have plenty of opportunities to choose from - be selective!")
    return notes


def summary_stats(result: ComparisonResult) -> str:
    s = result.summary
    return "\n".join([
        "📊 Job Comparison Summary:",
        f"   Scheduled Jobs: {s.total_scheduled}",
        f"   Available Jobs: {s.total_available}",
        f"   New Opportunities: {s.new_opportunities} ✅",
        f"   Potential Conflicts: {s.conflicts} ⚠️",
    ])
