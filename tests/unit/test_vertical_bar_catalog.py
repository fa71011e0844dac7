"""Vertical bar catalog run end to end against the in-memory app."""

from __future__ import annotations

import json
import logging

import pytest

from vizcheck.catalog.vertical_bar_chart import (
    CATALOG,
    EXPECTED_COUNTS,
    FROM_TIME,
    TO_TIME,
    VIZ_NAME,
    get_scenario,
    init_bar_chart_steps,
    vertical_bar_config,
)
from vizcheck.harness.retry import RetryPolicy
from vizcheck.harness.scenario_runner import (
    RunConfig,
    ScenarioRunner,
    ScenarioState,
    StepKind,
    StepOutcome,
    run_setup,
)
from vizcheck.visualize.config import BucketType, ChartType, MetricAggType
from vizcheck.visualize.inmemory import InMemoryVisualizeApp

LAGGING_POLICY = RetryPolicy(max_attempts=5, interval=0)


class TestCatalogShape:

    def test_ids_in_order(self):
        assert [d.scenario_id for d in CATALOG] == [f'VB-00{n}' for n in range(1, 9)]

    def test_get_scenario(self):
        assert get_scenario('VB-005').title == 'vertical bar with split series'

    def test_get_unknown_scenario(self):
        with pytest.raises(KeyError):
            get_scenario('VB-999')

    def test_base_config(self):
        config = vertical_bar_config()
        assert config.chart_type is ChartType.VERTICAL_BAR
        assert config.metric.agg is MetricAggType.COUNT
        assert config.x_axis.field == '@timestamp'
        assert config.x_axis.interval == 'auto'
        assert (config.time_range.start, config.time_range.end) == (FROM_TIME, TO_TIME)

    def test_base_config_is_fresh_each_time(self):
        assert vertical_bar_config() is not vertical_bar_config()

    def test_init_steps_order(self, app):
        config = vertical_bar_config().with_split('response.raw').with_metric(
            MetricAggType.DERIVATIVE,
        )
        names = [s.name for s in init_bar_chart_steps(app, config)]
        assert names == [
            'new visualization',
            'new search',
            'set absolute range',
            'add bucket X-Axis: Date Histogram on @timestamp',
            'add bucket Split Series: Terms on response.raw',
            'select metric Derivative',
            'click go',
            'wait until idle',
            'wait for visualization',
        ]
        assert [s.renders for s in init_bar_chart_steps(app, config)].count(True) == 1

    def test_every_scenario_builds_fresh_items(self, app):
        for definition in CATALOG:
            first = definition.instantiate(app, LAGGING_POLICY)
            second = definition.instantiate(app, LAGGING_POLICY)
            assert first.items is not second.items
            assert first.checks, definition.scenario_id


class TestInitBarChart:

    @pytest.mark.asyncio
    async def test_setup_renders_the_count_series(self, app):
        await run_setup(init_bar_chart_steps(app, vertical_bar_config()))
        assert await app.get_bar_chart_data() == list(EXPECTED_COUNTS)
        assert app.applied_config.x_axis.bucket is BucketType.X_AXIS

    @pytest.mark.asyncio
    async def test_setup_logs_each_step_at_debug(self, app, caplog):
        caplog.set_level(logging.DEBUG, logger='vizcheck')
        await run_setup(init_bar_chart_steps(app, vertical_bar_config()))
        messages = [r.getMessage() for r in caplog.records]
        assert 'clickNewSearch' in messages
        assert f'Set absolute time range from "{FROM_TIME}" to "{TO_TIME}"' in messages


class TestCatalogRun:

    @pytest.mark.asyncio
    async def test_all_scenarios_pass(self, documents):
        app = InMemoryVisualizeApp(documents)
        results = await ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY)).run_all(CATALOG)
        failures = [(r.scenario_id, r.first_failure) for r in results if not r.passed]
        assert failures == []

    @pytest.mark.asyncio
    async def test_all_scenarios_pass_with_render_lag(self, documents):
        app = InMemoryVisualizeApp(documents, render_lag=2)
        results = await ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY)).run_all(CATALOG)
        assert all(r.passed for r in results), [r.first_failure for r in results]

    @pytest.mark.asyncio
    async def test_render_lag_beyond_budget_fails(self, documents):
        app = InMemoryVisualizeApp(documents, render_lag=3)
        runner = ScenarioRunner(app, RunConfig(policy=RetryPolicy(max_attempts=3, interval=0)))
        result = await runner.run_definition(get_scenario('VB-003'))
        failure = result.first_failure
        assert failure.kind is StepKind.CHECK
        assert failure.outcome == StepOutcome.FAIL
        assert 'RenderNotReady' in failure.error_detail

    @pytest.mark.asyncio
    async def test_save_and_load_persists(self, app):
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-001'))
        assert result.passed
        assert app.saved_names == (VIZ_NAME,)
        reloaded = result.step_results[-1]
        assert reloaded.observed == EXPECTED_COUNTS

    @pytest.mark.asyncio
    async def test_save_and_load_fails_on_a_blank_chart(self):
        app = InMemoryVisualizeApp([])
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-001'))
        assert not result.passed
        failure = result.first_failure
        assert failure.name == 'capture series'
        assert failure.outcome == StepOutcome.ERROR
        assert app.saved_names == ()

    @pytest.mark.asyncio
    async def test_save_and_load_state_legs(self, app):
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-001'))
        assert result.transitions == (
            ScenarioState.INIT,
            ScenarioState.CONFIGURING,
            ScenarioState.RENDERING,
            ScenarioState.POLLING,
            ScenarioState.CONFIGURING,
            ScenarioState.RENDERING,
            ScenarioState.POLLING,
            ScenarioState.ASSERTED,
        )

    @pytest.mark.asyncio
    async def test_disabled_split_state_legs(self, app):
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-007'))
        assert [s.value for s in result.transitions] == [
            'init', 'configuring', 'rendering', 'polling',
            'configuring', 'rendering', 'polling', 'asserted',
        ]

    @pytest.mark.asyncio
    async def test_single_render_scenario_is_linear(self, app):
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-003'))
        assert [s.value for s in result.transitions] == [
            'init', 'configuring', 'rendering', 'polling', 'asserted',
        ]

    @pytest.mark.asyncio
    async def test_disabled_split_reports_both_legends(self, app):
        runner = ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY))
        result = await runner.run_definition(get_scenario('VB-007'))
        checks = [r for r in result.step_results if r.kind is StepKind.CHECK]
        assert [len(c.observed) for c in checks] == [15, 5]

    @pytest.mark.asyncio
    async def test_wrong_data_fails_the_chart_check(self):
        app = InMemoryVisualizeApp([])
        result = await ScenarioRunner(app, RunConfig(policy=LAGGING_POLICY)).run_definition(
            get_scenario('VB-003'),
        )
        assert not result.passed
        assert result.first_failure.observed == ()

    @pytest.mark.asyncio
    async def test_failure_snapshot_is_recorded_as_json(self, tmp_path):
        app = InMemoryVisualizeApp([])
        config = RunConfig(policy=LAGGING_POLICY, evidence_dir=tmp_path)
        await ScenarioRunner(app, config).run_definition(get_scenario('VB-003'))
        manifest = json.loads((tmp_path / 'VB-003' / 'manifest.json').read_text())
        shots = [a['file'] for a in manifest['artifacts'] if a['type'] == 'screenshot']
        assert len(shots) == 1
        assert shots[0].endswith('_screenshot.json')
        assert (tmp_path / shots[0]).is_file()
