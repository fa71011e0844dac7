"""Harness configuration settings.

HarnessSettings is the single configuration object the runner, the page
object and the CLI accept. It is a plain dataclass (not env-coupled) so
tests can build one directly without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar

from .errors import ConfigurationError
from .harness.retry import RetryPolicy

N = TypeVar('N', int, float)

_BROWSERS = ('chromium', 'firefox', 'webkit')
_TRUE = {'1', 'true', 'yes', 'on'}


@dataclass(frozen=True, slots=True)
class HarnessSettings:
    """Configuration for a harness run.

    All fields default to a local application on its standard port.
    """

    # ── Application ───────────────────────────────────────────────
    base_url: str = 'http://localhost:5601'
    """Root URL of the analytics application."""

    username: str = ''
    password: str = ''
    """Basic-auth credentials. Never log the password."""

    index_pattern: str = 'logstash-*'
    """Saved search source picked by "new search"."""

    # ── Browser ───────────────────────────────────────────────────
    browser: str = 'chromium'
    headless: bool = True
    timeout_ms: int = 15000
    viewport_width: int = 1280
    viewport_height: int = 900

    # ── Retry gate ────────────────────────────────────────────────
    retry_attempts: int = 10
    retry_interval: float = 0.5
    retry_timeout: float | None = 60.0

    # ── Run ───────────────────────────────────────────────────────
    fail_fast: bool = True
    evidence_dir: Path | None = None

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.base_url.startswith(('http://', 'https://')):
            errors.append(f'base_url must be an http(s) URL, got {self.base_url!r}')
        if self.browser not in _BROWSERS:
            errors.append(
                f'browser must be one of {", ".join(_BROWSERS)}, got {self.browser!r}'
            )
        if self.timeout_ms <= 0:
            errors.append('timeout_ms must be > 0')
        if self.retry_attempts < 1:
            errors.append('retry_attempts must be >= 1')
        if self.retry_interval < 0:
            errors.append('retry_interval must be >= 0')
        if self.retry_timeout is not None and self.retry_timeout <= 0:
            errors.append('retry_timeout must be > 0 when set')
        if bool(self.username) != bool(self.password):
            errors.append('username and password must be set together')
        return errors

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            interval=self.retry_interval,
            timeout=self.retry_timeout,
        )

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> HarnessSettings:
        """Build settings from ``VIZCHECK_*`` environment variables.

        Convenience factory for the CLI. Tests should construct
        HarnessSettings directly.

        Raises:
            ConfigurationError: A numeric variable does not parse.
        """
        if env is None:
            env = dict(os.environ)

        retry_timeout_raw = env.get('VIZCHECK_RETRY_TIMEOUT', '60')
        evidence_raw = env.get('VIZCHECK_EVIDENCE_DIR', '')

        return cls(
            base_url=env.get('VIZCHECK_BASE_URL', 'http://localhost:5601').rstrip('/'),
            username=env.get('VIZCHECK_USERNAME', ''),
            password=env.get('VIZCHECK_PASSWORD', ''),
            index_pattern=env.get('VIZCHECK_INDEX_PATTERN', 'logstash-*'),
            browser=env.get('VIZCHECK_BROWSER', 'chromium'),
            headless=env.get('VIZCHECK_HEADLESS', 'true').strip().lower() in _TRUE,
            timeout_ms=_parse(env, 'VIZCHECK_TIMEOUT_MS', '15000', int),
            retry_attempts=_parse(env, 'VIZCHECK_RETRY_ATTEMPTS', '10', int),
            retry_interval=_parse(env, 'VIZCHECK_RETRY_INTERVAL', '0.5', float),
            retry_timeout=(
                _parse(env, 'VIZCHECK_RETRY_TIMEOUT', '60', float)
                if retry_timeout_raw.strip() else None
            ),
            fail_fast=env.get('VIZCHECK_FAIL_FAST', 'true').strip().lower() in _TRUE,
            evidence_dir=Path(evidence_raw) if evidence_raw else None,
        )


def _parse(env: dict[str, str], name: str, default: str, kind: Callable[[str], N]) -> N:
    raw = env.get(name, default)
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise ConfigurationError(
            f'{name} must be {"an integer" if kind is int else "a number"}, got {raw!r}'
        ) from exc
