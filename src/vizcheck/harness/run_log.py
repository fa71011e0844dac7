"""Run report: what each check read, how long it took to settle, where it diverged.

One document per invocation. Each scenario entry keeps the state legs
the runner walked and its step results; each check is reported with the
number of extractions it needed, and a non-passing check adds the first
differing index and a unified diff of observed against expected. Setup
errors are listed with the step that broke, since they stop a scenario
before any chart is read.

Usage::

    report = RunLog.from_results(results, metadata={'browser': 'chromium'})
    for check in report.mismatches():
        print(check.scenario_id, check.name, check.mismatch_index)
    report.write(Path('evidence/run.json'))
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from ..errors import render_diff
from .assertions import first_difference
from .scenario_runner import ScenarioResult, StepKind, StepOutcome, StepResult


@dataclass(frozen=True, slots=True)
class CheckRecord:
    """One check as it ran inside a scenario."""

    scenario_id: str
    step: int
    name: str
    outcome: StepOutcome
    attempts: int
    expected: Any
    observed: Any
    error_detail: str | None = None

    @classmethod
    def from_step(cls, scenario_id: str, step: StepResult) -> CheckRecord:
        return cls(
            scenario_id=scenario_id,
            step=step.step_number,
            name=step.name,
            outcome=step.outcome,
            attempts=step.attempts,
            expected=step.expected,
            observed=step.observed,
            error_detail=step.error_detail,
        )

    @property
    def settled_late(self) -> bool:
        """Passed, but only after the chart was re-read."""
        return self.outcome == StepOutcome.PASS and self.attempts > 1

    @property
    def mismatch_index(self) -> int | None:
        if self.outcome != StepOutcome.FAIL:
            return None
        return first_difference(self.observed, self.expected)

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            'scenario_id': self.scenario_id,
            'step': self.step,
            'name': self.name,
            'outcome': self.outcome.value,
            'attempts': self.attempts,
        }
        if self.outcome in (StepOutcome.FAIL, StepOutcome.ERROR):
            entry['expected'] = self.expected
            entry['observed'] = self.observed
            entry['first_difference'] = self.mismatch_index
            entry['diff'] = render_diff(self.observed, self.expected).splitlines()
            if self.error_detail:
                entry['error_detail'] = self.error_detail
        return entry


@dataclass(frozen=True, slots=True)
class RunLog:
    """Every scenario result of one run plus where it was run against."""

    run_id: str
    created_at: str  # ISO-8601
    results: tuple[ScenarioResult, ...]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_results(
        cls,
        results: Iterable[ScenarioResult],
        *,
        run_id: str = '',
        metadata: dict[str, Any] | None = None,
    ) -> RunLog:
        return cls(
            run_id=run_id or f'run-{uuid.uuid4().hex[:12]}',
            created_at=datetime.now(timezone.utc).isoformat(),
            results=tuple(results),
            metadata=dict(metadata or {}),
        )

    @property
    def overall_passed(self) -> bool:
        """An empty run never passes."""
        return bool(self.results) and all(r.passed for r in self.results)

    def checks(self) -> list[CheckRecord]:
        """Checks that ran, in run order. Skipped checks are left out."""
        return [c for result in self.results for c in _checks_of(result)]

    def mismatches(self) -> list[CheckRecord]:
        return [
            c for c in self.checks()
            if c.outcome in (StepOutcome.FAIL, StepOutcome.ERROR)
        ]

    def setup_errors(self) -> list[dict[str, Any]]:
        return [
            {
                'scenario_id': result.scenario_id,
                'step': step.step_number,
                'name': step.name,
                'error_detail': step.error_detail,
            }
            for result in self.results
            for step in result.step_results
            if step.kind is StepKind.SETUP and step.outcome == StepOutcome.ERROR
        ]

    def to_dict(self) -> dict[str, Any]:
        checks = self.checks()
        scenarios = []
        for result in self.results:
            entry = result.to_run_log()
            entry['checks'] = [c.to_dict() for c in _checks_of(result)]
            scenarios.append(entry)

        return {
            'run_id': self.run_id,
            'created_at': self.created_at,
            'overall_passed': self.overall_passed,
            'summary': {
                'scenarios': len(self.results),
                'scenarios_passed': sum(1 for r in self.results if r.passed),
                'checks': len(checks),
                'checks_passed': sum(1 for c in checks if c.outcome == StepOutcome.PASS),
                'check_attempts': sum(c.attempts for c in checks),
                'settled_late': sum(1 for c in checks if c.settled_late),
                'setup_errors': len(self.setup_errors()),
            },
            'metadata': self.metadata,
            'mismatches': [c.to_dict() for c in self.mismatches()],
            'setup_errors': self.setup_errors(),
            'scenarios': scenarios,
        }

    def write(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2, default=repr), encoding='utf-8')
        return path


def _checks_of(result: ScenarioResult) -> list[CheckRecord]:
    return [
        CheckRecord.from_step(result.scenario_id, step)
        for step in result.step_results
        if step.kind is StepKind.CHECK and step.outcome != StepOutcome.SKIP
    ]
