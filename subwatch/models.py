"""Data models for portal jobs, sessions and cycle outcomes."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal


class JobKind(str, Enum):
    SCHEDULED = "scheduled"
    AVAILABLE = "available"


def span_days(start: date | None, end: date | None) -> int | None:
    """Inclusive length of a date range; None when either end is unknown."""
    if start is None or end is None:
        return None
    return (end - start).days + 1


@dataclass
class JobRecord:
    id: str
    title: str
    kind: JobKind
    start_date: date | None
    end_date: date | None
    location_name: str = ""
    location_id: str | None = None
    time_of_day: str | None = None
    schedule_kind: str | None = None
    is_long_term: bool = False
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_days(self) -> int | None:
        return span_days(self.start_date, self.end_date)

    @property
    def label(self) -> str:
        return f"{self.title} @ {self.location_name or 'N/A'}"


@dataclass(frozen=True)
class SessionBundle:
    token: str
    cookie_string: str
    identity: str
    obtained_at: float
    ttl: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.obtained_at)

    def to_record(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "cookieString": self.cookie_string,
            "identity": self.identity,
            "timestamp": self.obtained_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_record(cls, data: dict[str, Any]) -> SessionBundle:
        return cls(
            token=str(data["token"]),
            cookie_string=str(data.get("cookieString") or ""),
            identity=str(data.get("identity") or ""),
            obtained_at=float(data["timestamp"]),
            ttl=float(data["ttl"]),
        )


@dataclass
class FetchResult:
    kind: JobKind
    jobs: list[JobRecord]
    from_cache: bool
    fetched_at: float


@dataclass
class FilterOutcome:
    passed: bool
    reason: str | None = None


@dataclass
class Rejection:
    job: JobRecord
    reason: str


@dataclass
class FilterReport:
    passed: list[JobRecord] = field(default_factory=list)
    rejected: list[Rejection] = field(default_factory=list)


@dataclass
class Conflict:
    available: JobRecord
    scheduled: JobRecord
    reason: str
    same_location: bool


@dataclass
class ComparisonSummary:
    total_scheduled: int
    total_available: int
    new_opportunities: int
    conflicts: int


@dataclass
class ComparisonResult:
    new_opportunities: list[JobRecord]
    conflicts: list[Conflict]
    recommendations: list[str]
    summary: ComparisonSummary


ApplicationStatus = Literal["success", "failed", "skipped"]


@dataclass
class ApplicationResult:
    job_id: str
    job_title: str
    status: ApplicationStatus
    message: str = ""
    timestamp: datetime | None = None


@dataclass
class BatchApplicationResult:
    total_requested: int
    successful: int
    failed: int
    skipped: int
    results: list[ApplicationResult]
    dry_run: bool
    summary: str


@dataclass
class CycleResult:
    scheduled: list[JobRecord] = field(default_factory=list)
    available: list[JobRecord] = field(default_factory=list)
    filtered: FilterReport = field(default_factory=FilterReport)
    comparison: ComparisonResult | None = None
    applications: BatchApplicationResult | None = None
    degraded: dict[str, str] = field(default_factory=dict)
    cache_hits: list[str] = field(default_factory=list)
    report_path: str | None = None
