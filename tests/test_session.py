import json
import threading

import pytest

from conftest import FakeExchange, bundle
from subwatch.errors import AuthError
from subwatch.session import SessionManager, SessionState, SessionStore

TTL = 1000.0


def _manager(clock, exchange=None, store=None):
    return SessionManager(exchange or FakeExchange(), ttl_seconds=TTL, store=store, clock=clock)


def test_first_call_logs_in_once(clock):
    exchange = FakeExchange()
    sessions = _manager(clock, exchange)
    assert sessions.state is SessionState.NO_SESSION

    first = sessions.ensure_valid_session()
    second = sessions.ensure_valid_session()

    assert first is second
    assert first.token == "token-1"
    assert first.identity == "4242"
    assert exchange.calls == 1
    assert sessions.state is SessionState.VALID


def test_concurrent_callers_share_one_login(clock):
    gate = threading.Event()
    exchange = FakeExchange(gate=gate)
    sessions = _manager(clock, exchange)
    results = []

    def worker():
        results.append(sessions.ensure_valid_session())

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    # Let every thread reach the in-flight login before it completes
    for _ in range(100):
        if sessions.state is SessionState.AUTHENTICATING:
            break
        threading.Event().wait(0.01)
    threading.Event().wait(0.1)
    gate.set()
    for t in threads:
        t.join(5)

    assert exchange.calls == 1
    assert len(results) == 8
    assert {r.token for r in results} == {"token-1"}


def test_refreshes_early_past_threshold(clock):
    exchange = FakeExchange()
    sessions = _manager(clock, exchange)
    sessions.ensure_valid_session()

    clock.advance(0.79 * TTL)
    assert sessions.ensure_valid_session().token == "token-1"
    assert exchange.calls == 1

    clock.advance(0.02 * TTL)
    assert sessions.state is SessionState.STALE
    refreshed = sessions.ensure_valid_session()
    assert refreshed.token == "token-2"
    assert exchange.calls == 2


def test_expired_session_is_not_reused(clock):
    exchange = FakeExchange()
    sessions = _manager(clock, exchange)
    sessions.ensure_valid_session()
    clock.advance(TTL)

    assert sessions.state is SessionState.EXPIRED
    assert sessions.current() is None
    assert sessions.age() == TTL
    assert sessions.ensure_valid_session().token == "token-2"


def test_force_refresh(clock):
    exchange = FakeExchange()
    sessions = _manager(clock, exchange)
    sessions.ensure_valid_session()
    assert sessions.ensure_valid_session(force_refresh=True).token == "token-2"
    assert sessions.login_count == 2


def test_invalidate_only_drops_the_matching_bundle(clock):
    sessions = _manager(clock)
    old = sessions.ensure_valid_session()
    new = sessions.ensure_valid_session(force_refresh=True)

    assert sessions.invalidate(old) is False
    assert sessions.current() is new

    assert sessions.invalidate(new) is True
    assert sessions.current() is None
    assert sessions.state is SessionState.NO_SESSION


def test_failed_login_leaves_no_session(clock):
    exchange = FakeExchange(fail=True)
    sessions = _manager(clock, exchange)

    with pytest.raises(AuthError):
        sessions.ensure_valid_session()
    assert sessions.current() is None

    exchange.fail = False
    assert sessions.ensure_valid_session().token == "token-2"


def test_unexpected_login_error_is_wrapped(clock):
    class Broken(FakeExchange):
        def login(self):
            raise RuntimeError("browser crashed")

    with pytest.raises(AuthError, match="browser crashed"):
        _manager(clock, Broken()).ensure_valid_session()


def test_session_is_persisted_and_restored(tmp_path, clock):
    store = SessionStore(tmp_path / "session_cache.json")
    first = _manager(clock, store=store).ensure_valid_session()

    saved = json.loads(store.path.read_text())
    assert saved["token"] == first.token
    assert saved["cookieString"] == "sid=abc"
    assert saved["timestamp"] == clock()

    clock.advance(100)
    exchange = FakeExchange()
    restored = _manager(clock, exchange, store=store)
    assert restored.current() == first
    assert restored.age() == 100
    assert restored.ensure_valid_session().token == first.token
    assert exchange.calls == 0


def test_expired_stored_session_is_discarded(tmp_path, clock):
    store = SessionStore(tmp_path / "session_cache.json")
    store.save(bundle(obtained_at=clock() - TTL, ttl=TTL))

    sessions = _manager(clock, store=store)
    assert sessions.current() is None
    assert not store.path.exists()


def test_corrupt_session_file_is_ignored(tmp_path, clock):
    path = tmp_path / "session_cache.json"
    path.write_text("{not json")
    sessions = _manager(clock, store=SessionStore(path))
    assert sessions.state is SessionState.NO_SESSION
    assert sessions.ensure_valid_session().token == "token-1"


def test_invalidate_clears_the_store(tmp_path, clock):
    store = SessionStore(tmp_path / "session_cache.json")
    sessions = _manager(clock, store=store)
    sessions.invalidate(sessions.ensure_valid_session())
    assert not store.path.exists()


def test_invalidate_tells_bundles_apart_when_the_token_repeats(clock):
    class SameToken(FakeExchange):
        def login(self):
            creds = super().login()
            return type(creds)(token="env-token", cookie_string="", identity=creds.identity)

    sessions = _manager(clock, SameToken())
    old = sessions.ensure_valid_session()
    clock.advance(1)
    new = sessions.ensure_valid_session(force_refresh=True)

    assert old.token == new.token
    assert sessions.invalidate(old) is False
    assert sessions.current() is new
