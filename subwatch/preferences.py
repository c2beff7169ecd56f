"""Preference rules that decide which available jobs are worth considering."""
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Iterable

from subwatch.errors import FilterConfigError
from subwatch.log import get_logger
from subwatch.models import FilterOutcome, FilterReport, JobRecord, Rejection, span_days

log = get_logger(__name__)

duration_days = span_days


@dataclass(frozen=True)
class PreferenceRuleSet:
    exclude_titles: tuple[str, ...] = ()
    exclude_locations: tuple[str, ...] = ()
    exclude_location_ids: tuple[str, ...] = ()
    include_long_term: bool | None = None
    include_short_term: bool | None = None
    include_titles: tuple[str, ...] = ()
    include_locations: tuple[str, ...] = ()
    include_location_ids: tuple[str, ...] = ()
    include_schedule_kinds: tuple[str, ...] = ()
    only_multiple_days: bool = False
    min_days: int | None = None
    max_days: int | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, f.name) in (None, (), False) for f in fields(self))


def _norm(s: str | None) -> str:
    return (s or "").lower().strip()


def _first_substring(needles: Iterable[str], haystack: str) -> str | None:
    hay = _norm(haystack)
    for needle in needles:
        if _norm(needle) and _norm(needle) in hay:
            return needle
    return None


def evaluate(job: JobRecord, rules: PreferenceRuleSet) -> FilterOutcome:
    """Check *job* against *rules*; the first failing rule decides the reason.

    Excludes run before includes, so a job matching both an exclude and an
    include rule is rejected. Jobs whose length cannot be computed pass the
    duration rules.
    """
    hit = _first_substring(rules.exclude_titles, job.title)
    if hit is not None:
        return FilterOutcome(False, f'Excluded title: "{hit}" found in "{job.title}"')

    hit = _first_substring(rules.exclude_locations, job.location_name)
    if hit is not None:
        return FilterOutcome(False, f'Excluded location: "{hit}" found in "{job.location_name}"')

    if job.location_id is not None and job.location_id in rules.exclude_location_ids:
        return FilterOutcome(False, f"Excluded location ID: {job.location_id}")

    if rules.include_long_term is not None or rules.include_short_term is not None:
        if job.is_long_term and rules.include_long_term is False:
            return FilterOutcome(False, "Long-term jobs are excluded from your preferences")
        if not job.is_long_term and rules.include_short_term is False:
            return FilterOutcome(False, "Short-term jobs are excluded from your preferences")

    if rules.include_titles and _first_substring(rules.include_titles, job.title) is None:
        return FilterOutcome(
            False, f'Title "{job.title}" doesn\'t match preferences: {", ".join(rules.include_titles)}'
        )

    if rules.include_locations and _first_substring(rules.include_locations, job.location_name) is None:
        return FilterOutcome(
            False,
            f'Location "{job.location_name}" doesn\'t match preferences: {", ".join(rules.include_locations)}',
        )

    if rules.include_location_ids and job.location_id not in rules.include_location_ids:
        return FilterOutcome(
            False,
            f"Location ID {job.location_id} doesn't match preferred IDs: {', '.join(rules.include_location_ids)}",
        )

    if rules.include_schedule_kinds and (job.schedule_kind or "") not in rules.include_schedule_kinds:
        return FilterOutcome(
            False,
            f'Schedule type "{job.schedule_kind or ""}" not in preferred: {", ".join(rules.include_schedule_kinds)}',
        )

    days = job.duration_days
    if days is not None:
        if rules.only_multiple_days and days < 2:
            return FilterOutcome(False, "Single-day job (only multiple-day jobs preferred)")
        if rules.min_days and days < rules.min_days:
            return FilterOutcome(False, f"Duration {days} days is less than minimum {rules.min_days}")
        if rules.max_days and days > rules.max_days:
            return FilterOutcome(False, f"Duration {days} days exceeds maximum {rules.max_days}")

    return FilterOutcome(True)


def evaluate_all(jobs: Iterable[JobRecord], rules: PreferenceRuleSet) -> FilterReport:
    report = FilterReport()
    for job in jobs:
        outcome = evaluate(job, rules)
        if outcome.passed:
            report.passed.append(job)
        else:
            reason = outcome.reason or "Unknown reason"
            report.rejected.append(Rejection(job=job, reason=reason))
            log.debug("Filtered out %s: %s", job.label, reason)
    log.info(
        "Preference filter: %d passed, %d rejected",
        len(report.passed), len(report.rejected),
    )
    return report


def describe_rules(rules: PreferenceRuleSet) -> str:
    parts: list[str] = []
    if rules.include_titles:
        parts.append(f"✓ Preferred titles: {', '.join(rules.include_titles)}")
    if rules.include_locations:
        parts.append(f"✓ Preferred locations: {', '.join(rules.include_locations)}")
    if rules.include_location_ids:
        parts.append(f"✓ Preferred location IDs: {', '.join(rules.include_location_ids)}")
    if rules.include_schedule_kinds:
        parts.append(f"✓ Preferred schedule types: {', '.join(rules.include_schedule_kinds)}")
    if rules.exclude_titles:
        parts.append(f"✗ Exclude titles: {', '.join(rules.exclude_titles)}")
    if rules.exclude_locations:
        parts.append(f"✗ Exclude locations: {', '.join(rules.exclude_locations)}")
    if rules.exclude_location_ids:
        parts.append(f"✗ Exclude location IDs: {', '.join(rules.exclude_location_ids)}")

    if rules.include_long_term is not None or rules.include_short_term is not None:
        long_ok = rules.include_long_term is not False
        short_ok = rules.include_short_term is not False
        if long_ok and short_ok:
            parts.append("✓ Job types: Both long-term and short-term")
        elif long_ok:
            parts.append("✓ Job types: Long-term only")
        elif short_ok:
            parts.append("✓ Job types: Short-term only")
        else:
            parts.append("✗ Job types: none (every job is rejected)")

    if rules.only_multiple_days:
        parts.append("✓ Only multiple-day contracts")
    if rules.min_days:
        parts.append(f"✓ Minimum {rules.min_days} days")
    if rules.max_days:
        parts.append(f"✓ Maximum {rules.max_days} days")

    return "\n".join(parts) if parts else "No filters configured"


# ---------------------------------------------------------------------------
# Settings-file parsing
# ---------------------------------------------------------------------------


def _group(cfg: dict[str, Any], name: str) -> dict[str, Any]:
    block = cfg.get(name)
    if block is None:
        return {}
    if not isinstance(block, dict):
        raise FilterConfigError(f"job_filtering.{name} must be a mapping, got {type(block).__name__}")
    if not block.get("enabled", False):
        return {}
    return block


def _strings(block: dict[str, Any], key: str, where: str) -> tuple[str, ...]:
    value = block.get(key)
    if value is None:
        return ()
    if isinstance(value, (str, int)):
        value = [value]
    if not isinstance(value, list):
        raise FilterConfigError(f"{where}.{key} must be a list")
    out: list[str] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (str, int)):
            raise FilterConfigError(f"{where}.{key} entries must be strings or integers, got {item!r}")
        text = str(item).strip()
        if text:
            out.append(text)
    return tuple(out)


def _flag(block: dict[str, Any], key: str, where: str) -> bool | None:
    value = block.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise FilterConfigError(f"{where}.{key} must be true or false")
    return value


def _days(block: dict[str, Any], key: str, where: str) -> int | None:
    value = block.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise FilterConfigError(f"{where}.{key} must be a positive integer, got {value!r}")
    return value


def rules_from_config(cfg: dict[str, Any] | None) -> PreferenceRuleSet:
    """Build a rule set from the ``job_filtering`` settings block.

    Raises FilterConfigError for anything malformed so bad rules surface when
    settings load, not halfway through a poll cycle.
    """
    if not cfg:
        return PreferenceRuleSet()
    if not isinstance(cfg, dict):
        raise FilterConfigError("job_filtering must be a mapping")
    if not cfg.get("enabled", False):
        return PreferenceRuleSet()

    title = _group(cfg, "filter_by_position_type")
    where = "job_filtering.filter_by_position_type"
    include_titles = _strings(title, "preferred", where)
    exclude_titles = _strings(title, "exclude", where)

    loc = _group(cfg, "filter_by_building")
    where = "job_filtering.filter_by_building"
    include_locations = _strings(loc, "preferred", where)
    exclude_locations = _strings(loc, "exclude", where)
    include_location_ids = _strings(loc, "preferred_building_ids", where)
    exclude_location_ids = _strings(loc, "exclude_building_ids", where)

    sched = _group(cfg, "filter_by_schedule_type")
    include_schedule_kinds = _strings(sched, "preferred", "job_filtering.filter_by_schedule_type")

    dur = _group(cfg, "filter_by_duration")
    where = "job_filtering.filter_by_duration"
    min_days = _days(dur, "min_days", where)
    max_days = _days(dur, "max_days", where)
    only_multiple = _flag(dur, "only_multiple_days", where) or False
    if min_days is not None and max_days is not None and min_days > max_days:
        raise FilterConfigError(f"{where}: min_days ({min_days}) is greater than max_days ({max_days})")

    kind = _group(cfg, "filter_by_job_type")
    where = "job_filtering.filter_by_job_type"
    include_long = _flag(kind, "include_long_term", where)
    include_short = _flag(kind, "include_short_term", where)

    rules = PreferenceRuleSet(
        exclude_titles=exclude_titles,
        exclude_locations=exclude_locations,
        exclude_location_ids=exclude_location_ids,
        include_long_term=include_long,
        include_short_term=include_short,
        include_titles=include_titles,
        include_locations=include_locations,
        include_location_ids=include_location_ids,
        include_schedule_kinds=include_schedule_kinds,
        only_multiple_days=only_multiple,
        min_days=min_days,
        max_days=max_days,
    )
    if include_long is False and include_short is False:
        log.warning("Both long-term and short-term jobs are excluded; nothing will pass the filter")
    return rules
