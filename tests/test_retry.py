import pytest

from subwatch.retry import retry


class Flaky(Exception):
    pass


def test_retries_until_success(monkeypatch):
    calls = []
    sleeps = []
    monkeypatch.setattr("subwatch.retry.time.sleep", sleeps.append)

    @retry(max_attempts=3, base_delay=1.0, jitter=False)
    def op():
        calls.append(1)
        if len(calls) < 3:
            raise Flaky("boom")
        return "ok"

    assert op() == "ok"
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_gives_up_after_max_attempts():
    calls = []

    @retry(max_attempts=2, base_delay=0.0, jitter=False)
    def op():
        calls.append(1)
        raise Flaky("boom")

    with pytest.raises(Flaky):
        op()
    assert len(calls) == 2


def test_non_retryable_error_propagates_immediately():
    calls = []

    @retry(max_attempts=5, base_delay=0.0, retryable=(Flaky,))
    def op():
        calls.append(1)
        raise KeyError("x")

    with pytest.raises(KeyError):
        op()
    assert len(calls) == 1


def test_should_retry_narrows_retryable_errors():
    calls = []

    @retry(max_attempts=5, base_delay=0.0, should_retry=lambda exc: "again" in str(exc))
    def op():
        calls.append(1)
        raise Flaky("again" if len(calls) == 1 else "stop")

    with pytest.raises(Flaky, match="stop"):
        op()
    assert len(calls) == 2


def test_on_retry_runs_between_attempts():
    seen = []

    @retry(max_attempts=3, base_delay=0.0, on_retry=lambda exc, n: seen.append((str(exc), n)))
    def op():
        if len(seen) < 2:
            raise Flaky(f"fail-{len(seen)}")
        return len(seen)

    assert op() == 2
    assert seen == [("fail-0", 1), ("fail-1", 2)]
