"""Exception types shared by the watcher components."""
from __future__ import annotations

AUTH_FAILURE_STATUSES: frozenset[int] = frozenset({401, 403})


class WatcherError(Exception):
    pass


class AuthError(WatcherError):
    """Credential exchange failed. Fatal for the cycle, never for the process."""


class SessionExpired(AuthError):
    """A downstream call rejected the session (401/403)."""


class FetchError(WatcherError):
    """The job source rejected or errored. ``status_code`` is None for transport failures."""

    def __init__(self, status_code: int | None, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in AUTH_FAILURE_STATUSES

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"[{self.status_code}] {self.message}"


class FilterConfigError(WatcherError, ValueError):
    """Preference rules in the settings file are malformed."""


class CycleTimeout(WatcherError):
    pass
