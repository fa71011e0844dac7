"""Tests for the retry gate.

Validates:
  - RetryPolicy: validation, backoff delays
  - retry: first success returned, N-1 failures property, predicate
    rejection, overall timeout, read-raised timeouts, cancellation
    passthrough
  - retry_until_equal: convergence and the mismatch kept on exhaustion
"""

from __future__ import annotations

import asyncio
import sys
from unittest.mock import AsyncMock

import pytest

from vizcheck.errors import (
    AssertionMismatch,
    ConfigurationError,
    RenderNotReady,
    RetryExhausted,
)
from vizcheck.harness.retry import RetryPolicy, retry, retry_until_equal


def _flaky(failures: int, value='ok'):
    """Operation that raises RenderNotReady ``failures`` times, then returns ``value``."""
    calls = {'n': 0}

    async def operation():
        calls['n'] += 1
        if calls['n'] <= failures:
            raise RenderNotReady(f'not drawn (call {calls["n"]})')
        return value

    return operation, calls


# ── RetryPolicy ────────────────────────────────────────────────────


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 10
        assert policy.interval == 0.5
        assert policy.timeout is None

    def test_zero_attempts_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_attempts=0)

    def test_negative_interval_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(interval=-1)

    def test_shrinking_backoff_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(backoff=0.5)

    def test_non_positive_timeout_rejected(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(timeout=0)

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=-3)

    def test_exponential_delay_is_capped(self):
        policy = RetryPolicy(interval=1.0, backoff=2.0, max_interval=5.0)
        assert policy.delay(0) == 1.0
        assert policy.delay(1) == 2.0
        assert policy.delay(2) == 4.0
        assert policy.delay(3) == 5.0

    def test_constant_delay_without_backoff(self):
        policy = RetryPolicy(interval=0.25)
        assert [policy.delay(n) for n in range(3)] == [0.25, 0.25, 0.25]


# ── retry ──────────────────────────────────────────────────────────


class TestRetry:

    @pytest.mark.asyncio
    async def test_first_success_is_returned_immediately(self):
        operation, calls = _flaky(0, value=[1, 2])
        result = await retry(operation, RetryPolicy(max_attempts=3, interval=0))
        assert result == [1, 2]
        assert calls['n'] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize('failures', [1, 2, 4])
    async def test_succeeds_when_budget_covers_failures(self, failures):
        operation, calls = _flaky(failures)
        policy = RetryPolicy(max_attempts=failures + 1, interval=0)
        assert await retry(operation, policy) == 'ok'
        assert calls['n'] == failures + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize('failures', [1, 2, 4])
    async def test_exhausts_when_budget_is_short(self, failures):
        operation, calls = _flaky(failures)
        policy = RetryPolicy(max_attempts=failures, interval=0)
        with pytest.raises(RetryExhausted) as exc_info:
            await retry(operation, policy)
        assert exc_info.value.attempts == failures
        assert isinstance(exc_info.value.last_error, RenderNotReady)
        assert calls['n'] == failures

    @pytest.mark.asyncio
    async def test_exhausted_message_names_last_error(self):
        operation, _ = _flaky(5)
        with pytest.raises(RetryExhausted) as exc_info:
            await retry(operation, RetryPolicy(max_attempts=2, interval=0))
        message = str(exc_info.value)
        assert 'after 2 attempt(s)' in message
        assert 'RenderNotReady' in message

    @pytest.mark.asyncio
    async def test_predicate_rejection_retries(self):
        values = iter([[], [], [37, 202]])

        async def read():
            return next(values)

        result = await retry(
            read, RetryPolicy(max_attempts=5, interval=0), predicate=bool,
        )
        assert result == [37, 202]

    @pytest.mark.asyncio
    async def test_predicate_never_accepting_keeps_last_observed(self):
        async def read():
            return ['200']

        with pytest.raises(RetryExhausted) as exc_info:
            await retry(
                read, RetryPolicy(max_attempts=3, interval=0),
                predicate=lambda v: len(v) == 3,
            )
        assert exc_info.value.last_observed == ['200']
        assert exc_info.value.last_error is None

    @pytest.mark.asyncio
    async def test_overall_timeout_stops_early(self):
        async def slow():
            await asyncio.sleep(1.0)
            return 'late'

        policy = RetryPolicy(max_attempts=50, interval=0, timeout=0.05)
        with pytest.raises(RetryExhausted) as exc_info:
            await retry(slow, policy)
        assert exc_info.value.attempts < 50
        assert 'timeout' in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_raised_by_the_read_is_retried(self):
        reads = iter([TimeoutError('locator wait elapsed'), [37]])

        async def bars():
            value = next(reads)
            if isinstance(value, Exception):
                raise value
            return value

        result = await retry(bars, RetryPolicy(max_attempts=3, interval=0))
        assert result == [37]

    @pytest.mark.asyncio
    async def test_timeout_raised_by_the_read_within_deadline_is_retried(self):
        operation = AsyncMock(side_effect=[asyncio.TimeoutError(), [37]])
        policy = RetryPolicy(max_attempts=3, interval=0, timeout=5.0)
        assert await retry(operation, policy) == [37]
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        calls = {'n': 0}

        async def cancelled():
            calls['n'] += 1
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await retry(cancelled, RetryPolicy(max_attempts=5, interval=0))
        assert calls['n'] == 1

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts_only(self, monkeypatch):
        sleeps: list[float] = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr(sys.modules['vizcheck.harness.retry'].asyncio, 'sleep', fake_sleep)
        operation, _ = _flaky(2)
        await retry(operation, RetryPolicy(max_attempts=5, interval=0.5, backoff=2.0))
        assert sleeps == [0.5, 1.0]


# ── retry_until_equal ──────────────────────────────────────────────


class TestRetryUntilEqual:

    @pytest.mark.asyncio
    async def test_converges_once_render_settles(self):
        reads = iter([RenderNotReady('drawing'), ['200'], ['200', '404', '503']])

        async def legend():
            value = next(reads)
            if isinstance(value, Exception):
                raise value
            return value

        result = await retry_until_equal(
            legend, ('200', '404', '503'),
            RetryPolicy(max_attempts=5, interval=0), label='legend',
        )
        assert result == ('200', '404', '503')

    @pytest.mark.asyncio
    async def test_exhaustion_keeps_observed_and_mismatch(self):
        async def legend():
            return ['200', '404']

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_until_equal(
                legend, ['200', '404', '503'],
                RetryPolicy(max_attempts=2, interval=0), label='legend',
            )
        exc = exc_info.value
        assert exc.attempts == 2
        assert exc.last_observed == ['200', '404']
        assert isinstance(exc.__cause__, AssertionMismatch)
        assert exc.__cause__.expected == ['200', '404', '503']

    @pytest.mark.asyncio
    async def test_non_assertion_errors_pass_through(self):
        async def broken():
            raise RenderNotReady('never drawn')

        with pytest.raises(RetryExhausted) as exc_info:
            await retry_until_equal(broken, [1], RetryPolicy(max_attempts=2, interval=0))
        assert isinstance(exc_info.value.last_error, RenderNotReady)
