"""
Unit tests for the bounded retry executor.
"""

import asyncio
import logging
import time

import pytest

from cursor_usage.core.retry import (
    DEFAULT_DELAY_MS,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT_MS,
    UpstreamTimeoutError,
    with_retry,
)


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures, result="ok", error=None):
        self.failures = failures
        self.result = result
        self.error = error or ConnectionError("boom")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.result


def test_defaults():
    """Three total attempts, 100ms apart, 10s per attempt."""
    assert DEFAULT_RETRIES == 2
    assert DEFAULT_DELAY_MS == 100
    assert DEFAULT_TIMEOUT_MS == 10_000


def test_success_on_first_attempt():
    op = Flaky(failures=0, result=42)
    assert asyncio.run(with_retry(op, delay_ms=0)) == 42
    assert op.calls == 1


@pytest.mark.parametrize("failures", [1, 2])
def test_success_after_failures_stops_retrying(failures):
    op = Flaky(failures=failures, result="value")

    result = asyncio.run(with_retry(op, retries=2, delay_ms=0))

    assert result == "value"
    assert op.calls == failures + 1


@pytest.mark.parametrize("retries", [0, 1, 2, 4])
def test_always_failing_makes_exactly_retries_plus_one_attempts(retries):
    op = Flaky(failures=100)

    with pytest.raises(ConnectionError, match="boom"):
        asyncio.run(with_retry(op, retries=retries, delay_ms=0))

    assert op.calls == retries + 1


def test_propagates_last_error():
    errors = [ValueError("first"), KeyError("second"), RuntimeError("third")]

    async def op():
        raise errors.pop(0)

    with pytest.raises(RuntimeError, match="third"):
        asyncio.run(with_retry(op, retries=2, delay_ms=0))


def test_timeout_counts_as_failed_attempt():
    calls = []

    async def slow():
        calls.append(1)
        await asyncio.sleep(1)
        return "late"

    with pytest.raises(UpstreamTimeoutError, match="timed out after 20ms"):
        asyncio.run(with_retry(slow, retries=1, delay_ms=0, timeout_ms=20))

    assert len(calls) == 2


def test_slow_first_attempt_then_success():
    calls = []

    async def op():
        calls.append(1)
        if len(calls) == 1:
            await asyncio.sleep(1)
        return "fast"

    assert asyncio.run(with_retry(op, retries=2, delay_ms=0, timeout_ms=50)) == "fast"
    assert len(calls) == 2


def test_elapsed_time_within_bounds():
    """Total time lies between retries*delay and (retries+1)*timeout + retries*delay."""
    retries, delay_ms, timeout_ms = 2, 30, 200
    op = Flaky(failures=100)

    start = time.monotonic()
    with pytest.raises(ConnectionError):
        asyncio.run(with_retry(op, retries=retries, delay_ms=delay_ms, timeout_ms=timeout_ms))
    elapsed_ms = (time.monotonic() - start) * 1000

    assert elapsed_ms >= retries * delay_ms
    assert elapsed_ms <= (retries + 1) * timeout_ms + retries * delay_ms + 500


def test_negative_retries_rejected():
    with pytest.raises(ValueError, match="retries must be >= 0"):
        asyncio.run(with_retry(Flaky(failures=0), retries=-1))


def test_failed_attempts_are_logged(caplog):
    op = Flaky(failures=2, error=ConnectionError("reset by peer"))

    with caplog.at_level(logging.WARNING, logger="cursor_usage.core.retry"):
        asyncio.run(with_retry(op, retries=2, delay_ms=0, label="fetch_user_usage"))

    messages = [r.getMessage() for r in caplog.records]
    assert "fetch_user_usage attempt 1/3 failed: reset by peer" in messages
    assert "fetch_user_usage attempt 2/3 failed: reset by peer" in messages


class SocketReadTimeout(TimeoutError):
    """Timeout raised by the transport itself, not by the attempt timer."""


def test_operation_timeout_error_is_not_replaced(caplog):
    op = Flaky(failures=100, error=SocketReadTimeout("socket read timed out"))

    with caplog.at_level(logging.WARNING, logger="cursor_usage.core.retry"):
        with pytest.raises(SocketReadTimeout, match="socket read timed out"):
            asyncio.run(with_retry(op, retries=0, delay_ms=0, timeout_ms=5000))

    assert op.calls == 1
    assert "operation attempt 1/1 failed: socket read timed out" in caplog.text


def test_timed_out_attempt_is_cancelled():
    cancelled = []

    async def hang():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    with pytest.raises(UpstreamTimeoutError):
        asyncio.run(with_retry(hang, retries=0, delay_ms=0, timeout_ms=20))

    assert cancelled == [True]
