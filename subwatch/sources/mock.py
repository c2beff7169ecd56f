"""Offline job source with sample records, used when no portal is configured."""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Callable

from subwatch.log import get_logger
from subwatch.models import JobKind
from subwatch.sources.base import JobSource

log = get_logger(__name__)


def _schedule(building_id: int, name: str, start: str = "07:45", kind: str = "FULL_DAY") -> list[dict]:
    return [{"startTime": start, "scheduleType": kind, "building": {"id": building_id, "title": name}}]


class MockSource(JobSource):
    name = "mock"

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today

    def fetch(self, kind: JobKind, token: str, identity: str, cookie_string: str = "") -> Any:
        d0 = self._today()

        def iso(offset: int) -> str:
            return (d0 + timedelta(days=offset)).isoformat()

        log.info("MockSource generating sample %s jobs", kind.value)
        if kind is JobKind.SCHEDULED:
            return {
                "content": [
                    {"id": 9001, "positionType": {"title": "Teacher - Grade 4"},
                     "startDate": iso(1), "endDate": iso(1), "schedules": _schedule(11, "Lincoln Elementary")},
                ],
                "totalElements": 1,
            }
        return [
            {"id": 9101, "positionType": {"title": "Math Teacher"}, "startDate": iso(1), "endDate": iso(2),
             "schedules": _schedule(12, "Roosevelt Middle School")},
            {"id": 9102, "positionType": {"title": "Science Teacher"}, "startDate": iso(3), "endDate": iso(3),
             "schedules": _schedule(12, "Roosevelt Middle School", kind="HALF_DAY")},
            {"id": 9103, "positionType": {"title": "Paraprofessional"}, "startDate": iso(4), "endDate": iso(4),
             "schedules": _schedule(13, "Washington High School")},
            {"id": 9104, "positionType": {"title": "Art Teacher"}, "startDate": iso(7), "endDate": iso(20),
             "longTerm": True, "schedules": _schedule(11, "Lincoln Elementary")},
        ]
