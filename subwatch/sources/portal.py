"""Substitute-jobs portal REST endpoints (scheduled and available listings)."""
from __future__ import annotations

from datetime import date
from typing import Any, Callable

import requests

from subwatch.config import PortalSettings
from subwatch.errors import FetchError
from subwatch.log import get_logger, mask_token
from subwatch.models import JobKind
from subwatch.sources.base import JobSource

log = get_logger(__name__)

_PATHS: dict[JobKind, str] = {
    JobKind.SCHEDULED: "/api/substitute-jobs/scheduled",
    JobKind.AVAILABLE: "/api/substitute-jobs/available",
}


def auth_headers(token: str, cookie_string: str = "") -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "Content-Type": "application/json",
    }
    if cookie_string:
        headers["Cookie"] = cookie_string
    return headers


class PortalJobSource(JobSource):
    name = "portal"

    def __init__(
        self,
        settings: PortalSettings,
        *,
        include_long_term: bool = True,
        http: requests.Session | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.settings = settings
        self.include_long_term = include_long_term
        self.http = http or requests.Session()
        self._today = today

    def _get(self, kind: JobKind, params: dict[str, Any], token: str, cookie_string: str) -> Any:
        url = f"{self.settings.base_url.rstrip('/')}{_PATHS[kind]}"
        log.debug("GET %s params=%s token=%s", url, params, mask_token(token))
        try:
            r = self.http.get(
                url,
                params=params,
                headers=auth_headers(token, cookie_string),
                timeout=self.settings.request_timeout,
            )
        except requests.RequestException as exc:
            raise FetchError(None, f"{kind.value} request failed: {exc}") from exc

        if r.status_code != 200:
            log.warning("Portal %s returned %d", kind.value, r.status_code)
            raise FetchError(r.status_code, f"API returned {r.status_code}")
        try:
            return r.json()
        except ValueError as exc:
            raise FetchError(r.status_code, f"{kind.value} response is not JSON: {exc}") from exc

    def fetch(self, kind: JobKind, token: str, identity: str, cookie_string: str = "") -> Any:
        params: dict[str, Any] = {"page": 0, "size": self.settings.page_size, "userId": identity}
        if kind is JobKind.SCHEDULED:
            return self._get(kind, params, token, cookie_string)

        params["startDate"] = self._today().isoformat()
        short_term = self._get(kind, {**params, "longTerm": "false"}, token, cookie_string)
        if not self.include_long_term:
            return short_term

        long_term = self._get(kind, {**params, "longTerm": "true"}, token, cookie_string)
        return _unwrap(short_term) + _unwrap(long_term)


def _unwrap(payload: Any) -> list:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("content", "jobs"):
            if isinstance(payload.get(key), list):
                return payload[key]
    return []
