import os

os.environ.setdefault("SUBWATCH_LOG_TO_FILE", "false")

import threading
from datetime import date
from typing import Any

import pytest

from subwatch.config import Settings
from subwatch.credentials import CredentialExchange, Credentials
from subwatch.errors import AuthError, FetchError
from subwatch.models import JobKind, JobRecord, SessionBundle
from subwatch.sources.base import JobSource

TODAY = date(2024, 1, 15)


class FakeClock:
    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeExchange(CredentialExchange):
    """Hands out token-1, token-2, ... and counts logins."""

    def __init__(self, *, fail: bool = False, gate: threading.Event | None = None):
        self.calls = 0
        self.fail = fail
        self.gate = gate
        self._lock = threading.Lock()

    def login(self) -> Credentials:
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            raise AuthError("bad credentials")
        return Credentials(token=f"token-{n}", cookie_string="sid=abc", identity="4242")


class FakeSource(JobSource):
    """Returns canned payloads; a queued exception is raised instead of the next payload."""

    name = "fake"

    def __init__(self, payloads: dict[JobKind, Any] | None = None, *, delay: float = 0.0):
        self.payloads = payloads or {JobKind.SCHEDULED: [], JobKind.AVAILABLE: []}
        self.errors: dict[JobKind, list[BaseException]] = {k: [] for k in JobKind}
        self.calls: list[tuple[JobKind, str]] = []
        self.delay = delay

    def fail_next(self, kind: JobKind, *errors: BaseException) -> None:
        self.errors[kind].extend(errors)

    def fetch(self, kind: JobKind, token: str, identity: str, cookie_string: str = "") -> Any:
        self.calls.append((kind, token))
        if self.delay:
            threading.Event().wait(self.delay)
        if self.errors[kind]:
            raise self.errors[kind].pop(0)
        return self.payloads[kind]


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, text: str | None = None):
        self.status_code = status_code
        self._payload = payload
        self._text = text

    def json(self) -> Any:
        if self._text is not None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttp:
    """Stands in for requests.Session; records every call."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def _next(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, **kwargs)


def raw_job(
    job_id: int,
    title: str,
    start: str,
    end: str | None = None,
    *,
    building_id: int | None = 1,
    building: str = "Lincoln Elementary",
    schedule_type: str = "FULL_DAY",
    long_term: bool = False,
) -> dict[str, Any]:
    job: dict[str, Any] = {
        "id": job_id,
        "positionType": {"title": title},
        "startDate": start,
        "endDate": end or start,
        "longTerm": long_term,
        "schedules": [{
            "startTime": "07:45",
            "scheduleType": schedule_type,
            "building": {"id": building_id, "title": building},
        }],
    }
    return job


def make_job(
    job_id: str,
    title: str = "Teacher",
    start: date | None = TODAY,
    end: date | None = None,
    *,
    kind: JobKind = JobKind.AVAILABLE,
    location: str = "Lincoln Elementary",
    location_id: str | None = "1",
    schedule_kind: str | None = "FULL_DAY",
    long_term: bool = False,
) -> JobRecord:
    return JobRecord(
        id=job_id,
        title=title,
        kind=kind,
        start_date=start,
        end_date=end if end is not None else start,
        location_name=location,
        location_id=location_id,
        schedule_kind=schedule_kind,
        is_long_term=long_term,
    )


def bundle(token: str = "token-1", obtained_at: float = 1_000.0, ttl: float = 3600) -> SessionBundle:
    return SessionBundle(token=token, cookie_string="", identity="4242", obtained_at=obtained_at, ttl=ttl)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    s = Settings()
    s.authentication.session_cache_path = tmp_path / "session_cache.json"
    s.polling.cycle_timeout_seconds = 5
    return s


def auth_failure(status: int = 401) -> FetchError:
    return FetchError(status, f"API returned {status}")
