"""Execute scenarios step by step against one exclusively-owned app session.

A scenario is an ordered sequence of :class:`Step` (setup actions) and
:class:`Check` (extract-and-compare) items. Steps run strictly in order.
A failing setup step aborts the scenario; nothing is rolled back, the
next scenario re-establishes its own state from scratch. Checks may read
through the retry gate when given a :class:`RetryPolicy`.

Usage::

    runner = ScenarioRunner(app, RunConfig())
    result = await runner.run(scenario)
    assert result.passed

Per-scenario state machine::

    INIT -> CONFIGURING -> RENDERING -> POLLING -> ASSERTED

A setup step that follows a check re-enters CONFIGURING (or RENDERING
for a render trigger), so a scenario that re-configures the chart and
checks it again records a second CONFIGURING -> RENDERING -> POLLING
leg before ASSERTED.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Union

from ..errors import AssertionMismatch, RetryExhausted, SetupFailure
from .assertions import assert_contains, assert_equal, assert_true, normalize
from .evidence import ProofSession
from .retry import RetryPolicy, retry_until_equal

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    """Outcome of a single scenario step."""

    PASS = 'pass'
    FAIL = 'fail'
    SKIP = 'skip'
    ERROR = 'error'


class StepKind(str, Enum):
    SETUP = 'setup'
    CHECK = 'check'


class ScenarioState(str, Enum):
    INIT = 'init'
    CONFIGURING = 'configuring'
    RENDERING = 'rendering'
    POLLING = 'polling'
    ASSERTED = 'asserted'


class Matcher(str, Enum):
    """How a check compares the observed value with the expected one."""

    EQUAL = 'equal'
    CONTAINS = 'contains'
    TRUE = 'true'


@dataclass(frozen=True, slots=True)
class Step:
    """A setup action. ``renders`` marks the action that triggers a render."""

    name: str
    action: Callable[[], Awaitable[Any]]
    renders: bool = False


@dataclass(frozen=True, slots=True)
class Check:
    """Extract a value and compare it with a literal fixture.

    ``expected_from`` supplies the fixture lazily, for values that only
    exist once earlier steps ran (e.g. a series captured before a save).
    With a ``policy`` the extraction is retried until it matches;
    without one, a mismatch fails immediately.
    """

    name: str
    extract: Callable[[], Awaitable[Any]]
    expected: Any = None
    expected_from: Callable[[], Any] | None = None
    matcher: Matcher = Matcher.EQUAL
    policy: RetryPolicy | None = None

    def resolve_expected(self) -> Any:
        if self.expected_from is not None:
            return self.expected_from()
        return self.expected


ScenarioItem = Union[Step, Check]


@dataclass(frozen=True, slots=True)
class Scenario:
    scenario_id: str
    title: str
    items: tuple[ScenarioItem, ...]

    @property
    def setup_steps(self) -> tuple[Step, ...]:
        return tuple(i for i in self.items if isinstance(i, Step))

    @property
    def checks(self) -> tuple[Check, ...]:
        return tuple(i for i in self.items if isinstance(i, Check))


@dataclass(frozen=True, slots=True)
class ScenarioDefinition:
    """Catalog entry: builds a fresh :class:`Scenario` for each run."""

    scenario_id: str
    title: str
    build: Callable[[Any, RetryPolicy], tuple[ScenarioItem, ...]]

    def instantiate(self, app: Any, policy: RetryPolicy) -> Scenario:
        return Scenario(
            scenario_id=self.scenario_id,
            title=self.title,
            items=tuple(self.build(app, policy)),
        )


@dataclass(frozen=True, slots=True)
class StepResult:
    """Result of executing one scenario item."""

    step_number: int
    name: str
    kind: StepKind
    outcome: StepOutcome
    timestamp: str  # ISO-8601
    duration_ms: float
    expected: Any = None
    observed: Any = None
    error_detail: str | None = None
    attempts: int = 0  # extractions made by a check

    @property
    def passed(self) -> bool:
        return self.outcome == StepOutcome.PASS

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict with expected vs observed."""
        result: dict[str, Any] = {
            'step': self.step_number,
            'name': self.name,
            'kind': self.kind.value,
            'outcome': self.outcome.value,
            'timestamp': self.timestamp,
            'duration_ms': round(self.duration_ms, 2),
        }
        if self.kind is StepKind.CHECK:
            result['expected'] = _jsonable(self.expected)
            result['observed'] = _jsonable(self.observed)
            result['attempts'] = self.attempts
        if self.error_detail:
            result['error_detail'] = self.error_detail
        return result


@dataclass(frozen=True, slots=True)
class ScenarioResult:
    """Aggregate result of executing a full scenario."""

    scenario_id: str
    title: str
    step_results: tuple[StepResult, ...]
    started_at: str  # ISO-8601
    finished_at: str  # ISO-8601
    total_duration_ms: float
    transitions: tuple[ScenarioState, ...] = ()

    @property
    def passed(self) -> bool:
        return bool(self.step_results) and all(r.passed for r in self.step_results)

    @property
    def final_state(self) -> ScenarioState:
        return self.transitions[-1] if self.transitions else ScenarioState.INIT

    @property
    def pass_count(self) -> int:
        return sum(1 for r in self.step_results if r.passed)

    @property
    def fail_count(self) -> int:
        return sum(1 for r in self.step_results if r.outcome == StepOutcome.FAIL)

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.step_results if r.outcome == StepOutcome.ERROR)

    @property
    def skip_count(self) -> int:
        return sum(1 for r in self.step_results if r.outcome == StepOutcome.SKIP)

    @property
    def total_steps(self) -> int:
        return len(self.step_results)

    @property
    def first_failure(self) -> StepResult | None:
        for r in self.step_results:
            if r.outcome in (StepOutcome.FAIL, StepOutcome.ERROR):
                return r
        return None

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serializable summary of the result."""
        return {
            'scenario_id': self.scenario_id,
            'title': self.title,
            'passed': self.passed,
            'steps': self.total_steps,
            'pass': self.pass_count,
            'fail': self.fail_count,
            'error': self.error_count,
            'duration_ms': round(self.total_duration_ms, 1),
            'started_at': self.started_at,
            'finished_at': self.finished_at,
        }

    def to_run_log(self) -> dict[str, Any]:
        """Return a machine-readable run log with per-step evidence."""
        return {
            'scenario_id': self.scenario_id,
            'title': self.title,
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'duration_ms': round(self.total_duration_ms, 2),
            'verdict': 'pass' if self.passed else 'fail',
            'states': [s.value for s in self.transitions],
            'counts': {
                'total': self.total_steps,
                'pass': self.pass_count,
                'fail': self.fail_count,
                'error': self.error_count,
                'skip': self.skip_count,
            },
            'steps': [r.to_dict() for r in self.step_results],
        }


@dataclass(frozen=True, slots=True)
class RunConfig:
    """Configuration for a scenario run."""

    fail_fast: bool = True
    evidence_dir: Path | None = None
    screenshot_on_failure: bool = True
    policy: RetryPolicy = field(default_factory=RetryPolicy)


_UNRESOLVED = object()


async def run_setup(steps: Iterable[Step]) -> tuple[StepResult, ...]:
    """Run setup steps strictly in order.

    Raises:
        SetupFailure: The first step that raised; later steps never ran.
    """
    results: list[StepResult] = []
    for number, step in enumerate(steps, start=1):
        timestamp = _now_iso()
        start = time.monotonic()
        logger.debug('%s', step.name)
        try:
            await step.action()
        except SetupFailure:
            raise
        except Exception as exc:
            raise SetupFailure(step.name, exc) from exc
        results.append(StepResult(
            step_number=number,
            name=step.name,
            kind=StepKind.SETUP,
            outcome=StepOutcome.PASS,
            timestamp=timestamp,
            duration_ms=(time.monotonic() - start) * 1000,
        ))
    return tuple(results)


async def run_check(check: Check, expected: Any = _UNRESOLVED) -> Any:
    """Extract and compare once, or through the retry gate with a policy.

    ``expected`` overrides the check's own fixture when the caller has
    already resolved it.

    Returns the observed value. Raises AssertionMismatch (single read) or
    RetryExhausted (policy given) on failure.
    """
    if expected is _UNRESOLVED:
        expected = check.resolve_expected()
    if check.matcher is Matcher.EQUAL and check.policy is not None:
        return await retry_until_equal(
            check.extract, expected, check.policy, label=check.name,
        )

    observed = await check.extract()
    if check.matcher is Matcher.EQUAL:
        assert_equal(observed, expected, label=check.name)
    elif check.matcher is Matcher.CONTAINS:
        assert_contains(observed, expected, label=check.name)
    else:
        assert_true(observed, label=check.name)
    return normalize(observed)


class ScenarioRunner:
    """Execute scenarios and record structured outcomes.

    Args:
        app: The session every scenario drives. Exclusively owned by the
            running scenario.
        config: Run configuration (fail-fast, evidence, retry policy).
    """

    def __init__(self, app: Any, config: RunConfig | None = None) -> None:
        self._app = app
        self._config = config or RunConfig()

    @property
    def config(self) -> RunConfig:
        return self._config

    async def run_definition(self, definition: ScenarioDefinition) -> ScenarioResult:
        return await self.run(definition.instantiate(self._app, self._config.policy))

    async def run_all(
        self,
        definitions: Iterable[ScenarioDefinition],
    ) -> list[ScenarioResult]:
        """Run catalog entries one after another, each with fresh state."""
        return [await self.run_definition(d) for d in definitions]

    async def run(self, scenario: Scenario) -> ScenarioResult:
        """Execute every item of a scenario.

        Scenario failures are recorded on the result, not raised.
        """
        started_at = _now_iso()
        start_time = time.monotonic()
        transitions: list[ScenarioState] = [ScenarioState.INIT]
        session = self._proof_session(scenario)
        log_extra = {'scenario_id': scenario.scenario_id}

        logger.info('Scenario %s: %s', scenario.scenario_id, scenario.title, extra=log_extra)

        results: list[StepResult] = []
        aborted = False
        for number, item in enumerate(scenario.items, start=1):
            if aborted:
                results.append(self._skipped(number, item))
                continue

            _advance(transitions, _next_state(transitions[-1], item))
            result = await self._execute(number, item)
            results.append(result)

            if session is not None and isinstance(item, Check):
                session.record_observation(
                    step=number,
                    name=item.name,
                    observed=_jsonable(result.observed),
                    expected=_jsonable(result.expected),
                    outcome=result.outcome.value,
                )

            if not result.passed:
                logger.warning(
                    'Step %d (%s) %s: %s',
                    number, item.name, result.outcome.value, result.error_detail,
                    extra={**log_extra, 'step': number},
                )
                if session is not None and self._config.screenshot_on_failure:
                    await self._capture_failure(session, number, item)
                if isinstance(item, Step) or self._config.fail_fast:
                    aborted = True

        _advance(transitions, ScenarioState.ASSERTED)
        if session is not None:
            session.finalize()

        result = ScenarioResult(
            scenario_id=scenario.scenario_id,
            title=scenario.title,
            step_results=tuple(results),
            started_at=started_at,
            finished_at=_now_iso(),
            total_duration_ms=(time.monotonic() - start_time) * 1000,
            transitions=tuple(transitions),
        )
        logger.info(
            'Scenario %s %s (%d pass, %d fail, %d error, %d skip)',
            scenario.scenario_id,
            'passed' if result.passed else 'failed',
            result.pass_count, result.fail_count, result.error_count, result.skip_count,
            extra=log_extra,
        )
        return result

    async def _execute(self, number: int, item: ScenarioItem) -> StepResult:
        timestamp = _now_iso()
        start = time.monotonic()

        if isinstance(item, Step):
            try:
                await run_setup([item])
            except SetupFailure as exc:
                return StepResult(
                    step_number=number,
                    name=item.name,
                    kind=StepKind.SETUP,
                    outcome=StepOutcome.ERROR,
                    timestamp=timestamp,
                    duration_ms=(time.monotonic() - start) * 1000,
                    error_detail=str(exc),
                )
            return StepResult(
                step_number=number,
                name=item.name,
                kind=StepKind.SETUP,
                outcome=StepOutcome.PASS,
                timestamp=timestamp,
                duration_ms=(time.monotonic() - start) * 1000,
            )

        extractions = 0

        async def counted() -> Any:
            nonlocal extractions
            extractions += 1
            return await item.extract()

        expected = None
        observed = None
        outcome = StepOutcome.PASS
        detail = None
        try:
            expected = item.resolve_expected()
            observed = await run_check(replace(item, extract=counted), expected)
        except AssertionMismatch as exc:
            outcome, observed, detail = StepOutcome.FAIL, exc.observed, str(exc)
        except RetryExhausted as exc:
            outcome, observed, detail = StepOutcome.FAIL, exc.last_observed, str(exc)
        except Exception as exc:
            outcome, detail = StepOutcome.ERROR, f'{type(exc).__name__}: {exc}'

        return StepResult(
            step_number=number,
            name=item.name,
            kind=StepKind.CHECK,
            outcome=outcome,
            timestamp=timestamp,
            duration_ms=(time.monotonic() - start) * 1000,
            expected=normalize(expected),
            observed=normalize(observed),
            error_detail=detail,
            attempts=extractions,
        )

    def _skipped(self, number: int, item: ScenarioItem) -> StepResult:
        return StepResult(
            step_number=number,
            name=item.name,
            kind=StepKind.SETUP if isinstance(item, Step) else StepKind.CHECK,
            outcome=StepOutcome.SKIP,
            timestamp=_now_iso(),
            duration_ms=0.0,
            error_detail='Skipped due to prior failure',
        )

    def _proof_session(self, scenario: Scenario) -> ProofSession | None:
        if self._config.evidence_dir is None:
            return None
        return ProofSession(self._config.evidence_dir, scenario.scenario_id)

    async def _capture_failure(
        self,
        session: ProofSession,
        number: int,
        item: ScenarioItem,
    ) -> None:
        screenshot = getattr(self._app, 'screenshot', None)
        if screenshot is None:
            return
        try:
            await session.capture_screenshot(
                step=number,
                description=f'Failure at {item.name}',
                capture=screenshot,
            )
        except Exception as exc:
            # The page may be gone; keep the original failure as the verdict.
            session.record_log_entry(
                step=number,
                description='Screenshot capture failed',
                log_text=f'{type(exc).__name__}: {exc}',
            )


# ── Helpers ────────────────────────────────────────────────────────


def _now_iso() -> str:
    """Return current UTC timestamp in ISO-8601."""
    return datetime.now(timezone.utc).isoformat()


def _next_state(current: ScenarioState, item: ScenarioItem) -> ScenarioState:
    if isinstance(item, Check):
        return ScenarioState.POLLING
    if item.renders:
        return ScenarioState.RENDERING
    # Waits after a render trigger settle that render.
    if current is ScenarioState.RENDERING:
        return ScenarioState.RENDERING
    return ScenarioState.CONFIGURING


def _advance(transitions: list[ScenarioState], state: ScenarioState) -> None:
    if transitions[-1] != state:
        transitions.append(state)


def _jsonable(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_jsonable(v) for v in value]
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return repr(value)
