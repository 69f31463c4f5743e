"""
Tests for the retry executor.
asyncio.sleep is patched out; the waits are asserted instead of taken.
"""

import pytest
from unittest.mock import AsyncMock, patch

from chatrelay.errors import ErrorKind, ProviderError
from chatrelay.retry import RetryExecutor


def _flaky(failures: list[Exception], result="ok"):
    """Operation that raises each of `failures` once, then returns `result`."""
    calls = {"n": 0}

    async def op():
        calls["n"] += 1
        if calls["n"] <= len(failures):
            raise failures[calls["n"] - 1]
        return result

    return op, calls


@pytest.mark.asyncio
async def test_success_first_try():
    op, calls = _flaky([])
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        assert await RetryExecutor().execute(op) == "ok"
    assert calls["n"] == 1
    sleep.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [1, 2])
async def test_overloaded_then_success(k):
    op, calls = _flaky([ProviderError("HTTP 503: UNAVAILABLE")] * k)
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock):
        assert await RetryExecutor(max_attempts=3).execute(op) == "ok"
    assert calls["n"] == k + 1


@pytest.mark.asyncio
async def test_linear_backoff_delays():
    op, _ = _flaky([RuntimeError("model overloaded")] * 2)
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await RetryExecutor(max_attempts=3, base_delay_ms=2000).execute(op)
    assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]


@pytest.mark.asyncio
async def test_fatal_error_not_retried():
    err = ProviderError("HTTP 401: API key not valid", status_code=401)

    async def op():
        op.calls += 1
        raise err
    op.calls = 0

    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(ProviderError) as exc_info:
            await RetryExecutor().execute(op)
    assert exc_info.value is err
    assert op.calls == 1
    sleep.assert_not_called()


@pytest.mark.asyncio
async def test_exhausted_attempts_propagate_last_error():
    errors = [ProviderError(f"HTTP 503: try {i}", status_code=503, kind=ErrorKind.OVERLOADED) for i in range(3)]
    op, calls = _flaky(errors)
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        with pytest.raises(ProviderError) as exc_info:
            await RetryExecutor(max_attempts=3).execute(op)
    assert exc_info.value is errors[2]
    assert calls["n"] == 3
    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_rate_limit_hint_overrides_delay():
    op, _ = _flaky([ProviderError("HTTP 429: quota exceeded. Please retry in 2.5s.", status_code=429)])
    with patch("chatrelay.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await RetryExecutor(base_delay_ms=1000, max_delay_ms=30000).execute(op)
    sleep.assert_awaited_once_with(2.5)


def test_delay_computation():
    ex = RetryExecutor(base_delay_ms=1000, max_delay_ms=30000)
    assert ex.delay_ms(1, ErrorKind.OVERLOADED) == 1000
    assert ex.delay_ms(2, ErrorKind.OVERLOADED) == 2000
    assert ex.delay_ms(1, ErrorKind.RATE_LIMITED, "retry in 2.5") == 2500
    assert ex.delay_ms(1, ErrorKind.RATE_LIMITED, "retry in 120") == 30000
    # Hints only count for rate limiting
    assert ex.delay_ms(1, ErrorKind.OVERLOADED, "retry in 9") == 1000


def test_from_config():
    ex = RetryExecutor.from_config({"retry": {"max_retries": 5, "base_delay_ms": 100, "max_delay_ms": 900}})
    assert (ex.max_attempts, ex.base_delay_ms, ex.max_delay_ms) == (5, 100, 900)
    defaults = RetryExecutor.from_config({})
    assert (defaults.max_attempts, defaults.base_delay_ms, defaults.max_delay_ms) == (3, 2000, 30000)


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryExecutor(max_attempts=0)
