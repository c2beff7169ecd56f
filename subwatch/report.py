"""Markdown report of a single poll cycle."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from subwatch.config import REPORTS_DIR
from subwatch.log import get_logger
from subwatch.models import CycleResult, JobRecord
from subwatch.preferences import PreferenceRuleSet, describe_rules

log = get_logger(__name__)


def _clip(text: str, width: int) -> str:
    return text[:width] + ("…" if len(text) > width else "")


def _dates(job: JobRecord) -> tuple[str, str]:
    start = job.start_date.isoformat() if job.start_date else "N/A"
    end = job.end_date.isoformat() if job.end_date else start
    return start, end


def _job_table(jobs: list[JobRecord], max_rows: int) -> list[str]:
    lines = [
        "| # | Title | Location | Schedule | Start | End | Time |",
        "|--:|-------|----------|----------|-------|-----|------|",
    ]
    for i, job in enumerate(jobs[:max_rows], 1):
        start, end = _dates(job)
        lines.append(
            f"| {i} | {_clip(job.title, 30)} | {_clip(job.location_name or 'N/A', 24)} "
            f"| {job.schedule_kind or 'N/A'} | {start} | {end} | {job.time_of_day or ''} |"
        )
    if len(jobs) > max_rows:
        lines.append("")
        lines.append(f"_... and {len(jobs) - max_rows} more_")
    return lines


def build_cycle_report(
    result: CycleResult,
    rules: PreferenceRuleSet,
    *,
    max_rows: int = 10,
) -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M")
    lines: list[str] = [f"# Substitute Jobs — {stamp} UTC", ""]

    cmp = result.comparison
    new_count = cmp.summary.new_opportunities if cmp else 0
    conflict_count = cmp.summary.conflicts if cmp else 0
    lines.append(
        f"**{len(result.scheduled)}** scheduled | **{len(result.available)}** available | "
        f"**{len(result.filtered.passed)}** match preferences | **{new_count}** new | "
        f"**{conflict_count}** conflicts"
    )
    lines.append("")

    if result.degraded:
        lines.append("## Degraded")
        lines.append("")
        for kind, message in result.degraded.items():
            lines.append(f"- **{kind}:** {message}")
        lines.append("")

    if cmp and cmp.new_opportunities:
        lines.append("## New Opportunities")
        lines.append("")
        lines.extend(_job_table(cmp.new_opportunities, max_rows))
        lines.append("")

    if cmp and cmp.conflicts:
        lines.append("## Conflicts")
        lines.append("")
        for c in cmp.conflicts[:max_rows]:
            lines.append(f"- **{c.available.title}** vs scheduled **{c.scheduled.title}** — {c.reason}")
        lines.append("")

    if result.filtered.rejected:
        lines.append("## Filtered Out")
        lines.append("")
        for r in result.filtered.rejected[:max_rows]:
            lines.append(f"- {r.job.label} — _{r.reason}_")
        if len(result.filtered.rejected) > max_rows:
            lines.append(f"- _... and {len(result.filtered.rejected) - max_rows} more_")
        lines.append("")

    if cmp and cmp.recommendations:
        lines.append("## Recommendations")
        lines.append("")
        for rec in cmp.recommendations:
            lines.append(f"- {rec}")
        lines.append("")

    apps = result.applications
    if apps is not None:
        lines.append("## Applications")
        lines.append("")
        lines.append(f"**Mode:** {'DRY RUN (preview)' if apps.dry_run else 'LIVE'} — {apps.summary}")
        lines.append("")
        for a in apps.results:
            badge = {"success": "✅", "failed": "❌"}.get(a.status, "⏭")
            lines.append(f"- {badge} {a.job_title} — {a.message}")
        lines.append("")

    lines.append("---")
    lines.append("")
    lines.append("## Active Filters")
    lines.append("")
    for line in describe_rules(rules).splitlines():
        lines.append(f"- {line}")
    lines.append("")

    return "\n".join(lines)


def write_cycle_report(content: str, reports_dir: Path = REPORTS_DIR) -> Path:
    reports_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")
    path = reports_dir / f"cycle_{stamp}.md"
    path.write_text(content, encoding="utf-8")
    log.info("Report written → %s", path)
    return path
