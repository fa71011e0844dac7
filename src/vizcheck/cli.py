"""Command-line entry point: run the vertical bar catalog.

Usage::

    # Offline, against the in-memory app seeded with the sample data:
    vizcheck --in-memory

    # Against a running application:
    vizcheck --base-url http://localhost:5601

    # A single scenario, visible browser, JSON output:
    vizcheck --base-url http://localhost:5601 --scenario VB-003 --headed --json
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path

from .catalog.vertical_bar_chart import CATALOG, VIZ_NAME
from .errors import AppApiError, ConfigurationError, HarnessError
from .harness.run_log import RunLog
from .harness.scenario_runner import (
    RunConfig,
    ScenarioDefinition,
    ScenarioResult,
    ScenarioRunner,
    StepKind,
    StepOutcome,
)
from .settings import HarnessSettings
from .visualize.api_client import AppApiClient
from .visualize.inmemory import InMemoryVisualizeApp
from .visualize.page import browser_session
from .visualize.sample_data import canonical_documents

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vizcheck',
        description='Run the vertical bar chart scenario catalog.',
    )
    parser.add_argument(
        '--base-url',
        help='Root URL of the application (default: $VIZCHECK_BASE_URL or http://localhost:5601)',
    )
    parser.add_argument(
        '--scenario',
        action='append',
        default=[],
        help='Run only this scenario id (e.g. VB-003), repeatable',
    )
    parser.add_argument(
        '--in-memory',
        action='store_true',
        help='Run against the in-memory app seeded with the sample data',
    )
    parser.add_argument(
        '--headed',
        action='store_true',
        help='Show the browser window',
    )
    parser.add_argument(
        '--browser',
        choices=('chromium', 'firefox', 'webkit'),
        help='Browser engine (default: chromium)',
    )
    parser.add_argument(
        '--json',
        action='store_true',
        dest='json_output',
        help='Output results as JSON',
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        help='Write the structured run log to this file',
    )
    parser.add_argument(
        '--evidence-dir',
        type=Path,
        help='Collect per-scenario evidence under this directory',
    )
    parser.add_argument(
        '--no-fail-fast',
        action='store_true',
        help='Keep running checks after a failed check',
    )
    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=('DEBUG', 'INFO', 'WARNING', 'ERROR'),
        help='Logging level (default: WARNING)',
    )
    return parser


def build_settings(args: argparse.Namespace, env: dict[str, str] | None = None) -> HarnessSettings:
    """Environment settings overridden by explicit command-line flags."""
    settings = HarnessSettings.from_env(env)
    overrides: dict[str, object] = {}
    if args.base_url:
        overrides['base_url'] = args.base_url.rstrip('/')
    if args.browser:
        overrides['browser'] = args.browser
    if args.headed:
        overrides['headless'] = False
    if args.evidence_dir is not None:
        overrides['evidence_dir'] = args.evidence_dir
    if args.no_fail_fast:
        overrides['fail_fast'] = False
    return dataclasses.replace(settings, **overrides)


def select_scenarios(scenario_ids: list[str]) -> list[ScenarioDefinition]:
    """Catalog entries in catalog order; all of them when no id is given.

    Raises:
        ConfigurationError: An id is not in the catalog.
    """
    if not scenario_ids:
        return list(CATALOG)
    known = {d.scenario_id for d in CATALOG}
    unknown = [s for s in scenario_ids if s not in known]
    if unknown:
        raise ConfigurationError(
            f'Unknown scenario(s): {", ".join(unknown)}. '
            f'Available: {", ".join(sorted(known))}'
        )
    wanted = set(scenario_ids)
    return [d for d in CATALOG if d.scenario_id in wanted]


def _run_config(settings: HarnessSettings) -> RunConfig:
    return RunConfig(
        fail_fast=settings.fail_fast,
        evidence_dir=settings.evidence_dir,
        policy=settings.retry_policy(),
    )


async def run_in_memory(
    settings: HarnessSettings,
    definitions: list[ScenarioDefinition],
) -> list[ScenarioResult]:
    app = InMemoryVisualizeApp(canonical_documents())
    return await ScenarioRunner(app, _run_config(settings)).run_all(definitions)


async def run_in_browser(
    settings: HarnessSettings,
    definitions: list[ScenarioDefinition],
) -> list[ScenarioResult]:
    async with AppApiClient(settings) as api:
        await api.wait_until_available()
        removed = await api.delete_visualizations_titled(VIZ_NAME)
        if removed:
            logger.info('Removed %d leftover saved visualization(s)', removed)
    async with browser_session(settings) as page:
        return await ScenarioRunner(page, _run_config(settings)).run_all(definitions)


# ── Output ────────────────────────────────────────────────────────


def print_text_results(results: list[ScenarioResult]) -> None:
    """Print human-readable results."""
    total_pass = 0
    total_fail = 0
    total_error = 0

    for result in results:
        icon = '\u2714' if result.passed else '\u2718'
        print(f'\n{icon} {result.scenario_id}: {result.title}')
        print(f'  Steps: {result.total_steps} | '
              f'Pass: {result.pass_count} | '
              f'Fail: {result.fail_count} | '
              f'Error: {result.error_count} | '
              f'Skip: {result.skip_count} | '
              f'Duration: {result.total_duration_ms:.0f}ms')

        for step in result.step_results:
            if step.outcome == StepOutcome.PASS:
                marker = '  \u2714'
            elif step.outcome == StepOutcome.SKIP:
                marker = '  \u23E9'
            else:
                marker = '  \u2718'
            print(f'{marker} Step {step.step_number}: {step.name} [{step.outcome.value}]')

            if step.kind is StepKind.CHECK and step.outcome == StepOutcome.FAIL:
                print(f'      expected: {step.expected!r}')
                print(f'      observed: {step.observed!r}')
            elif step.error_detail and step.outcome != StepOutcome.SKIP:
                print(f'      {step.error_detail}')

        total_pass += result.pass_count
        total_fail += result.fail_count
        total_error += result.error_count

    print(f'\n{"=" * 60}')
    all_passed = bool(results) and all(r.passed for r in results)
    summary_icon = '\u2714' if all_passed else '\u2718'
    print(f'{summary_icon} Total: {total_pass} pass, '
          f'{total_fail} fail, {total_error} error '
          f'across {len(results)} scenarios')

    if not all_passed:
        failed = [r for r in results if not r.passed]
        print('\nFailed scenarios:')
        for r in failed:
            print(f'  - {r.scenario_id}: {r.title}')


def print_json_results(results: list[ScenarioResult]) -> None:
    """Print JSON results."""
    output = {
        'scenarios': [r.summary() for r in results],
        'overall_passed': bool(results) and all(r.passed for r in results),
        'total_scenarios': len(results),
        'total_pass': sum(r.pass_count for r in results),
        'total_fail': sum(r.fail_count for r in results),
        'total_error': sum(r.error_count for r in results),
    }
    print(json.dumps(output, indent=2))


async def run(args: argparse.Namespace, env: dict[str, str] | None = None) -> int:
    try:
        settings = build_settings(args, env)
    except ConfigurationError as exc:
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1
    problems = settings.validate()
    if problems:
        for problem in problems:
            print(f'ERROR: {problem}', file=sys.stderr)
        return 1

    try:
        definitions = select_scenarios(args.scenario)
    except ConfigurationError as exc:
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1

    try:
        if args.in_memory:
            results = await run_in_memory(settings, definitions)
        else:
            results = await run_in_browser(settings, definitions)
    except AppApiError as exc:
        print(f'ERROR: application API: {exc}', file=sys.stderr)
        return 1
    except HarnessError as exc:
        print(f'ERROR: {exc}', file=sys.stderr)
        return 1

    if args.json_output:
        print_json_results(results)
    else:
        print_text_results(results)

    if args.log_file is not None:
        run_log = RunLog.from_results(results, metadata={
            'base_url': 'in-memory' if args.in_memory else settings.base_url,
            'browser': settings.browser,
            'headless': settings.headless,
        })
        run_log.write(args.log_file)
        logger.info('Run log written to %s', args.log_file)

    return 0 if results and all(r.passed for r in results) else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    return asyncio.run(run(args))


if __name__ == '__main__':
    sys.exit(main())
