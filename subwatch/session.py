"""Cached portal session with early refresh and single-flight re-authentication.

Lifecycle: no session → authenticating → valid → stale (age ≥ threshold·ttl,
refreshed proactively) → expired (age ≥ ttl, or invalidated after a 401).
Only one login runs at a time; callers arriving while it is in flight wait for
its outcome. Successful bundles are written to a small JSON file so a restart
inside the TTL window skips the login entirely.
"""
from __future__ import annotations

import json
import threading
import time
from concurrent.futures import Future
from enum import Enum
from pathlib import Path
from typing import Callable

from subwatch.cache import TTLCache
from subwatch.credentials import CredentialExchange
from subwatch.errors import AuthError
from subwatch.log import get_logger, mask_token
from subwatch.models import SessionBundle

log = get_logger(__name__)

SESSION_KEY = "session"


class SessionState(str, Enum):
    NO_SESSION = "no_session"
    AUTHENTICATING = "authenticating"
    VALID = "valid"
    STALE = "stale"
    EXPIRED = "expired"


class SessionStore:
    """Side-channel JSON file holding the last bundle."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> SessionBundle | None:
        if not self.path.exists():
            log.debug("No cached session at %s", self.path)
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return SessionBundle.from_record(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            log.warning("Ignoring unreadable session cache %s: %s", self.path.name, exc)
            return None

    def save(self, bundle: SessionBundle) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(bundle.to_record()), encoding="utf-8")
            log.debug("Session cached → %s", self.path)
        except OSError as exc:
            log.warning("Could not save session cache: %s", exc)

    def clear(self) -> None:
        try:
            self.path.unlink()
            log.debug("Session cache cleared")
        except FileNotFoundError:
            pass
        except OSError as exc:
            log.warning("Could not clear session cache: %s", exc)


class SessionManager:
    def __init__(
        self,
        exchange: CredentialExchange,
        *,
        ttl_seconds: float,
        store: SessionStore | None = None,
        refresh_threshold: float = 0.8,
        cache: TTLCache[str, SessionBundle] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.exchange = exchange
        self.ttl_seconds = ttl_seconds
        self.refresh_threshold = refresh_threshold
        self.store = store
        self._clock = clock
        self._cache: TTLCache[str, SessionBundle] = cache or TTLCache(clock)
        self._lock = threading.Lock()
        self._inflight: Future | None = None
        self.login_count = 0
        self._restore()

    # -- persistence -------------------------------------------------------

    def _restore(self) -> None:
        if self.store is None:
            return
        bundle = self.store.load()
        if bundle is None:
            return
        age = bundle.age(self._clock())
        if age >= bundle.ttl or bundle.ttl <= 0:
            log.info("Cached session expired (%.0fs old)", age)
            self.store.clear()
            return
        self._cache.put(SESSION_KEY, bundle, bundle.ttl, stored_at=bundle.obtained_at)
        log.info("Resumed cached session (%.0fs old, TTL %.0fs)", age, bundle.ttl)

    # -- state -------------------------------------------------------------

    def current(self) -> SessionBundle | None:
        """Bundle held right now, if still inside its TTL."""
        return self._cache.get(SESSION_KEY)

    def age(self) -> float | None:
        return self._cache.age(SESSION_KEY)

    @property
    def state(self) -> SessionState:
        with self._lock:
            if self._inflight is not None:
                return SessionState.AUTHENTICATING
        entry = self._cache.entry(SESSION_KEY)
        if entry is None:
            return SessionState.NO_SESSION
        age = entry.age(self._clock())
        if age >= entry.ttl:
            return SessionState.EXPIRED
        if age >= self.refresh_threshold * entry.ttl:
            return SessionState.STALE
        return SessionState.VALID

    def _reusable(self) -> SessionBundle | None:
        entry = self._cache.entry(SESSION_KEY)
        if entry is None:
            return None
        age = entry.age(self._clock())
        if age >= entry.ttl:
            log.info("Session expired (%.0fs old, TTL %.0fs)", age, entry.ttl)
            return None
        if age >= self.refresh_threshold * entry.ttl:
            log.warning(
                "Session at %.0f%% of its TTL - refreshing early",
                100 * age / entry.ttl,
            )
            return None
        log.debug("Reusing session (%.0fs old)", age)
        return entry.value

    # -- transitions -------------------------------------------------------

    def ensure_valid_session(self, force_refresh: bool = False) -> SessionBundle:
        """Return a usable bundle, logging in only when needed.

        Raises AuthError when the credential exchange fails; the manager is
        then left without a session and the next call starts over.
        """
        with self._lock:
            if self._inflight is not None:
                waiter = self._inflight
            else:
                waiter = None
                if not force_refresh:
                    bundle = self._reusable()
                    if bundle is not None:
                        return bundle
                self._inflight = Future()
                mine = self._inflight

        if waiter is not None:
            log.debug("Waiting for in-flight authentication")
            return waiter.result()

        try:
            bundle = self._authenticate(forced=force_refresh)
        except BaseException as exc:
            mine.set_exception(exc)
            raise
        else:
            mine.set_result(bundle)
            return bundle
        finally:
            with self._lock:
                self._inflight = None

    def _authenticate(self, *, forced: bool) -> SessionBundle:
        # Drop the previous bundle first so a bad one can never be handed out again
        self._cache.invalidate(SESSION_KEY)
        if self.store is not None:
            self.store.clear()

        log.info("Authenticating with portal%s", " (forced)" if forced else "")
        self.login_count += 1
        try:
            creds = self.exchange.login()
        except AuthError as exc:
            log.error("Login failed: %s", exc)
            raise
        except Exception as exc:
            log.error("Login failed: %s", exc)
            raise AuthError(f"Credential exchange failed: {exc}") from exc

        if not creds.token:
            raise AuthError("Credential exchange returned an empty token")

        bundle = SessionBundle(
            token=creds.token,
            cookie_string=creds.cookie_string,
            identity=creds.identity,
            obtained_at=self._clock(),
            ttl=self.ttl_seconds,
        )
        self._cache.put(SESSION_KEY, bundle, bundle.ttl, stored_at=bundle.obtained_at)
        if self.store is not None:
            self.store.save(bundle)
        log.info("Authenticated as %s, token %s", bundle.identity, mask_token(bundle.token))
        return bundle

    def invalidate(self, bundle: SessionBundle | None = None) -> bool:
        """Expire the session after a downstream auth failure.

        With *bundle*, only that exact bundle object is dropped; a newer one
        obtained by another caller in the meantime is left alone even when the
        portal handed back the same token string.
        """
        with self._lock:
            entry = self._cache.entry(SESSION_KEY)
            if entry is None:
                return False
            if bundle is not None and entry.value is not bundle:
                log.debug("Session already replaced, not invalidating")
                return False
            self._cache.invalidate(SESSION_KEY)
        if self.store is not None:
            self.store.clear()
        log.warning("Session invalidated")
        return True
