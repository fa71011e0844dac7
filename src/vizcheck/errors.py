"""Harness error hierarchy.

Every failure the harness produces derives from :class:`HarnessError` so
callers can catch the whole family at once. Failures are never swallowed:
they either propagate to the test framework or are recorded on a
non-passing step result by the scenario runner.
"""

from __future__ import annotations

import difflib
import pprint
from typing import Any


class HarnessError(Exception):
    """Base exception for all harness failures."""


class ConfigurationError(HarnessError, ValueError):
    """A visualization configuration was rejected at build time."""


class ElementNotFound(HarnessError):
    """A page control could not be resolved."""

    def __init__(self, selector: str, message: str = '') -> None:
        self.selector = selector
        super().__init__(message or f'Element not found: {selector}')


class RenderNotReady(HarnessError):
    """An extraction ran before the visualization finished drawing."""


class SetupFailure(HarnessError):
    """A setup step could not complete. Never retried."""

    def __init__(self, step_name: str, cause: BaseException) -> None:
        self.step_name = step_name
        self.cause = cause
        super().__init__(
            f'Setup step {step_name!r} failed: {type(cause).__name__}: {cause}'
        )


class AssertionMismatch(HarnessError, AssertionError):
    """Observed output is not structurally equal to the expected fixture."""

    def __init__(
        self,
        observed: Any,
        expected: Any,
        *,
        label: str = '',
        detail: str = '',
    ) -> None:
        self.observed = observed
        self.expected = expected
        self.label = label
        self.detail = detail
        super().__init__(self._render())

    def _render(self) -> str:
        head = f'{self.label}: ' if self.label else ''
        lines = [
            f'{head}observed value does not match expected',
            f'  observed: {self.observed!r}',
            f'  expected: {self.expected!r}',
        ]
        if self.detail:
            lines.append(f'  {self.detail}')
        diff = render_diff(self.observed, self.expected)
        if diff:
            lines.append(diff)
        return '\n'.join(lines)


class RetryExhausted(HarnessError):
    """The retry budget ran out before the operation converged."""

    def __init__(
        self,
        attempts: int,
        *,
        last_error: BaseException | None = None,
        last_observed: Any = None,
        reason: str = '',
    ) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.last_observed = last_observed
        message = f'Retry budget exhausted after {attempts} attempt(s)'
        if reason:
            message += f' ({reason})'
        if last_error is not None:
            message += f'\nlast error: {type(last_error).__name__}: {last_error}'
        elif last_observed is not None:
            message += f'\nlast observed: {last_observed!r}'
        super().__init__(message)


class AppApiError(HarnessError):
    """The application's HTTP API returned an error response."""

    def __init__(self, status_code: int, message: str = '') -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f'App API error {status_code}: {message}')


def render_diff(observed: Any, expected: Any) -> str:
    """Return a unified diff between the pretty-printed values."""
    left = pprint.pformat(observed, width=60).splitlines()
    right = pprint.pformat(expected, width=60).splitlines()
    if left == right:
        return ''
    return '\n'.join(difflib.unified_diff(
        left, right, fromfile='observed', tofile='expected', lineterm='',
    ))
