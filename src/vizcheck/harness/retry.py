"""Bounded retry for read-after-render operations.

Rendering is asynchronous and there is no completion callback to wait
on, so reads are re-sampled until they satisfy a predicate or the budget
runs out. Only reads go through here; setup actions are never retried.

Usage::

    policy = RetryPolicy(max_attempts=5, interval=0.5)
    data = await retry(app.get_bar_chart_data, policy)

    await retry_until_equal(
        app.get_legend_entries, ('200', '404', '503'), policy,
        label='legend',
    )
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from ..errors import AssertionMismatch, ConfigurationError, RetryExhausted
from .assertions import assert_equal, normalize

logger = logging.getLogger(__name__)

T = TypeVar('T')

_DEFAULT_MAX_ATTEMPTS = 10
_DEFAULT_INTERVAL = 0.5  # seconds
_DEFAULT_MAX_INTERVAL = 5.0  # seconds


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry budget: attempt count, spacing and an optional overall deadline."""

    max_attempts: int = _DEFAULT_MAX_ATTEMPTS
    interval: float = _DEFAULT_INTERVAL
    backoff: float = 1.0
    max_interval: float = _DEFAULT_MAX_INTERVAL
    timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError('max_attempts must be >= 1')
        if self.interval < 0:
            raise ConfigurationError('interval must be >= 0')
        if self.backoff < 1.0:
            raise ConfigurationError('backoff must be >= 1.0')
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError('timeout must be > 0 when set')

    def delay(self, attempt: int) -> float:
        """Sleep before attempt ``attempt + 1`` (0-based ``attempt``)."""
        return min(self.interval * (self.backoff ** attempt), self.max_interval)


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    predicate: Callable[[T], bool] | None = None,
    description: str = '',
) -> T:
    """Run ``operation`` until it succeeds or the budget is spent.

    An attempt succeeds when the operation returns without raising and
    ``predicate`` (if given) accepts the result. The first success is
    returned immediately.

    Raises:
        RetryExhausted: No attempt succeeded within the policy's
            ``max_attempts`` or ``timeout``.
    """
    policy = policy or RetryPolicy()
    name = description or getattr(operation, '__name__', 'operation')
    deadline = (
        time.monotonic() + policy.timeout if policy.timeout is not None else None
    )

    last_error: BaseException | None = None
    last_observed: Any = None
    attempts = 0

    for attempt in range(policy.max_attempts):
        attempts = attempt + 1
        try:
            if deadline is None:
                result = await operation()
            else:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    attempts -= 1
                    break
                result = await asyncio.wait_for(operation(), timeout=remaining)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            last_error = exc
            last_observed = None
            # Only the policy deadline is terminal; a read that itself
            # raises TimeoutError is retried like any other failure.
            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(
                    '%s timed out on attempt %d/%d',
                    name, attempts, policy.max_attempts,
                )
                break
            logger.warning(
                '%s failed (attempt %d/%d): %s: %s',
                name, attempts, policy.max_attempts, type(exc).__name__, exc,
            )
        else:
            if predicate is None or predicate(result):
                if attempts > 1:
                    logger.debug('%s succeeded on attempt %d', name, attempts)
                return result
            last_error = None
            last_observed = result
            logger.warning(
                '%s result rejected (attempt %d/%d): %r',
                name, attempts, policy.max_attempts, result,
            )

        if attempts >= policy.max_attempts:
            break
        delay = policy.delay(attempt)
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            delay = min(delay, remaining)
        await asyncio.sleep(delay)

    reason = ''
    if deadline is not None and time.monotonic() >= deadline:
        reason = f'timeout {policy.timeout:.1f}s'
    logger.error('%s did not converge after %d attempt(s)', name, attempts)
    raise RetryExhausted(
        attempts,
        last_error=last_error,
        last_observed=last_observed,
        reason=reason,
    )


async def retry_until_equal(
    extract: Callable[[], Awaitable[Any]],
    expected: Any,
    policy: RetryPolicy | None = None,
    *,
    label: str = '',
) -> Any:
    """Re-extract until the result deep-equals ``expected``.

    On exhaustion the raised :class:`RetryExhausted` chains the last
    :class:`AssertionMismatch` so the observed-vs-expected diff is kept.
    """
    async def _attempt() -> Any:
        observed = await extract()
        assert_equal(observed, expected, label=label)
        return normalize(observed)

    try:
        return await retry(
            _attempt, policy,
            description=label or getattr(extract, '__name__', 'extract'),
        )
    except RetryExhausted as exc:
        if isinstance(exc.last_error, AssertionMismatch):
            raise RetryExhausted(
                exc.attempts,
                last_error=exc.last_error,
                last_observed=exc.last_error.observed,
            ) from exc.last_error
        raise
