"""
Tests for the bounded exponential-backoff retry primitive.
"""
import pytest

from bothive.services.retry import RetryPolicy, execute_with_retry


class Recorder:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0
        self.sleeps = []
        self.failures = []

    async def operation(self):
        self.calls += 1
        return self.results.pop(0)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)

    def on_failed_attempt(self, attempt, result):
        self.failures.append((attempt, result))


def test_policy_delays():
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2)
    assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"base_delay": -1}, {"multiplier": 0.5}])
def test_policy_rejects_nonsense(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


@pytest.mark.asyncio
async def test_exhaustion_returns_last_result():
    """Three failed attempts, two backoff sleeps, last result returned."""
    recorder = Recorder(["fail-1", "fail-2", "fail-3"])

    result = await execute_with_retry(
        recorder.operation,
        RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2),
        should_retry=lambda r: r.startswith("fail"),
        on_failed_attempt=recorder.on_failed_attempt,
        sleep=recorder.sleep,
    )

    assert result == "fail-3"
    assert recorder.calls == 3
    assert recorder.sleeps == [1.0, 2.0]
    assert recorder.failures == [(1, "fail-1"), (2, "fail-2"), (3, "fail-3")]


@pytest.mark.asyncio
async def test_stops_at_first_success():
    recorder = Recorder(["fail-1", "ok", "never"])

    result = await execute_with_retry(
        recorder.operation,
        RetryPolicy(max_attempts=3, base_delay=0.5, multiplier=2),
        should_retry=lambda r: r.startswith("fail"),
        on_failed_attempt=recorder.on_failed_attempt,
        sleep=recorder.sleep,
    )

    assert result == "ok"
    assert recorder.calls == 2
    assert recorder.sleeps == [0.5]
    assert recorder.failures == [(1, "fail-1")]


@pytest.mark.asyncio
async def test_lambda_returning_coroutine_is_awaited():
    """Callers wrap bound calls in a lambda; the coroutine it returns must be awaited."""
    recorder = Recorder(["fail-1", "ok"])

    async def upsert(record):
        return f"{await recorder.operation()}:{record}"

    result = await execute_with_retry(
        lambda: upsert("sub_1"),
        RetryPolicy(max_attempts=3, base_delay=0),
        should_retry=lambda r: r.startswith("fail"),
        sleep=recorder.sleep,
    )

    assert result == "ok:sub_1"
    assert recorder.calls == 2


@pytest.mark.asyncio
async def test_single_attempt_policy_never_sleeps():
    recorder = Recorder(["fail"])
    result = await execute_with_retry(
        recorder.operation,
        RetryPolicy(max_attempts=1),
        should_retry=lambda r: True,
        sleep=recorder.sleep,
    )
    assert result == "fail"
    assert recorder.sleeps == []
