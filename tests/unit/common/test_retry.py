import pytest
from unittest.mock import AsyncMock

from core.common.retry import NO_RETRY, RetryPolicy, run_with_retry


class _Sleeps:
    def __init__(self):
        self.calls = []

    async def __call__(self, delay):
        self.calls.append(delay)


@pytest.mark.asyncio
async def test_retries_with_backoff_then_succeeds():
    fn = AsyncMock(side_effect=[RuntimeError("a"), RuntimeError("b"), "ok"])
    sleeps = _Sleeps()

    result = await run_with_retry(fn, RetryPolicy(), "flaky call", sleep=sleeps)

    assert result == "ok"
    assert fn.await_count == 3
    assert sleeps.calls == [1.0, 2.0]


@pytest.mark.asyncio
async def test_reraises_after_last_attempt():
    fn = AsyncMock(side_effect=RuntimeError("down"))
    sleeps = _Sleeps()

    with pytest.raises(RuntimeError, match="down"):
        await run_with_retry(fn, RetryPolicy(max_attempts=3), "always down", sleep=sleeps)

    assert fn.await_count == 3
    assert len(sleeps.calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_immediately():
    fn = AsyncMock(side_effect=KeyError("x"))
    policy = RetryPolicy(max_attempts=5, retry_on=(ValueError,))

    with pytest.raises(KeyError):
        await run_with_retry(fn, policy, "strict", sleep=_Sleeps())

    assert fn.await_count == 1


@pytest.mark.asyncio
async def test_no_retry_policy_calls_once():
    fn = AsyncMock(side_effect=RuntimeError("once"))
    with pytest.raises(RuntimeError):
        await run_with_retry(fn, NO_RETRY, "single", sleep=_Sleeps())
    assert fn.await_count == 1


def test_delay_reuses_last_backoff_value():
    policy = RetryPolicy(max_attempts=5, backoff_sec=(0.5, 1.5))
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.5, 1.5, 1.5, 1.5]
    assert RetryPolicy(backoff_sec=()).delay_for(1) == 0.0
