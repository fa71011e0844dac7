"""Scenario runner, retry gate and assertion layer."""

from .assertions import assert_contains, assert_equal, assert_true, normalize
from .evidence import ArtifactType, EvidenceArtifact, ProofSession
from .retry import RetryPolicy, retry, retry_until_equal
from .run_log import CheckRecord, RunLog
from .scenario_runner import (
    Check,
    Matcher,
    RunConfig,
    Scenario,
    ScenarioDefinition,
    ScenarioResult,
    ScenarioRunner,
    ScenarioState,
    Step,
    StepKind,
    StepOutcome,
    StepResult,
    run_check,
    run_setup,
)

__all__ = [
    'ArtifactType',
    'Check',
    'CheckRecord',
    'EvidenceArtifact',
    'Matcher',
    'ProofSession',
    'RetryPolicy',
    'RunConfig',
    'RunLog',
    'Scenario',
    'ScenarioDefinition',
    'ScenarioResult',
    'ScenarioRunner',
    'ScenarioState',
    'Step',
    'StepKind',
    'StepOutcome',
    'StepResult',
    'assert_contains',
    'assert_equal',
    'assert_true',
    'normalize',
    'retry',
    'retry_until_equal',
    'run_check',
    'run_setup',
]
