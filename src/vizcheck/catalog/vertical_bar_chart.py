"""Vertical bar chart scenarios against the logstash sample data.

Every scenario starts from a blank editor: new vertical bar chart, new
search, the fixed absolute time range, its buckets and metric, then go.
Fixtures are literal values read off the application for that range;
legend order is what the application draws and is asserted verbatim.
"""

from __future__ import annotations

import logging
from typing import Any

from ..harness.retry import RetryPolicy, retry_until_equal
from ..harness.scenario_runner import Check, Matcher, ScenarioDefinition, Step
from ..visualize.config import (
    BucketAgg,
    BucketAggType,
    BucketType,
    ChartType,
    MetricAggType,
    TimeRange,
    VisualizationConfig,
)
from ..visualize.protocols import VisualizeApp

logger = logging.getLogger(__name__)

FROM_TIME = '2015-09-19 06:31:44.000'
TO_TIME = '2015-09-23 18:31:44.000'
VIZ_NAME = 'Visualization VerticalBarChart'

EXPECTED_COUNTS: tuple[int, ...] = (
    37, 202, 740, 1437, 1371, 751, 188, 31, 42, 202, 683, 1361,
    1415, 707, 177, 27, 32, 175, 707, 1408, 1355, 726, 201, 29,
)

EXPECTED_INSPECTOR_ROWS: tuple[tuple[str, str], ...] = (
    ('2015-09-20 00:00', '37'),
    ('2015-09-20 03:00', '202'),
    ('2015-09-20 06:00', '740'),
    ('2015-09-20 09:00', '1,437'),
    ('2015-09-20 12:00', '1,371'),
    ('2015-09-20 15:00', '751'),
    ('2015-09-20 18:00', '188'),
    ('2015-09-20 21:00', '31'),
    ('2015-09-21 00:00', '42'),
    ('2015-09-21 03:00', '202'),
)

EXPECTED_RESPONSE_LEGEND: tuple[str, ...] = ('200', '404', '503')

EXPECTED_MULTI_SPLIT_LEGEND: tuple[str, ...] = (
    '200 - win 8', '200 - win xp', '200 - ios', '200 - osx', '200 - win 7',
    '404 - ios',
    '503 - ios', '503 - osx', '503 - win 7', '503 - win 8', '503 - win xp',
    '404 - osx', '404 - win 7', '404 - win 8', '404 - win xp',
)

EXPECTED_OS_LEGEND: tuple[str, ...] = ('win 8', 'win xp', 'ios', 'osx', 'win 7')

EXPECTED_DERIVATIVE_LEGEND: tuple[str, ...] = ('Derivative of Count',)

# Editor id of the first split: metric is 1, the x-axis 2.
FIRST_SPLIT_AGG_ID = 3


def vertical_bar_config() -> VisualizationConfig:
    """Count over a date histogram on ``@timestamp`` at the auto interval."""
    return VisualizationConfig(
        chart_type=ChartType.VERTICAL_BAR,
        time_range=TimeRange(FROM_TIME, TO_TIME),
        buckets=(
            BucketAgg(BucketType.X_AXIS, BucketAggType.DATE_HISTOGRAM, '@timestamp'),
        ),
    )


def _logged(message: str, action: Any) -> Any:
    async def _run() -> Any:
        logger.debug(message)
        return await action()
    return _run


def init_bar_chart_steps(app: VisualizeApp, config: VisualizationConfig) -> tuple[Step, ...]:
    """Setup steps that bring ``app`` to a rendered chart for ``config``."""
    start, end = config.time_range.start, config.time_range.end
    steps: list[Step] = [
        Step('new visualization', _logged(
            'navigateToApp visualize',
            lambda: app.new_visualization(config.chart_type),
        )),
        Step('new search', _logged('clickNewSearch', app.new_search)),
        Step('set absolute range', _logged(
            f'Set absolute time range from "{start}" to "{end}"',
            lambda: app.set_absolute_range(start, end),
        )),
    ]
    for bucket in config.buckets:
        steps.append(Step(f'add bucket {bucket.label}', _logged(
            f'Add {bucket.label}',
            lambda bucket=bucket: app.add_bucket(bucket),
        )))
    if config.metric.agg is not MetricAggType.COUNT:
        steps.append(Step(f'select metric {config.metric.agg.value}', _logged(
            f'Select {config.metric.agg.value} metric',
            lambda: app.select_metric(config.metric.agg),
        )))
    steps.extend([
        Step('click go', _logged('clickGo', app.click_go), renders=True),
        Step('wait until idle', app.wait_until_idle),
        Step('wait for visualization', app.wait_for_visualization),
    ])
    return tuple(steps)


def _rerender_steps(app: VisualizeApp) -> tuple[Step, ...]:
    return (
        Step('click go', _logged('clickGo', app.click_go), renders=True),
        Step('wait until idle', app.wait_until_idle),
        Step('wait for visualization', app.wait_for_visualization),
    )


def _legend_check(app: VisualizeApp, expected: tuple[str, ...], policy: RetryPolicy) -> Check:
    return Check('legend entries', app.get_legend_entries, expected, policy=policy)


# ── Scenarios ─────────────────────────────────────────────────────


def _save_and_load(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    captured: dict[str, Any] = {}

    async def capture_series() -> None:
        # The saved chart must be the drawn count series, not a blank one.
        captured['series'] = await retry_until_equal(
            app.get_bar_chart_data, EXPECTED_COUNTS, policy,
            label='series before save',
        )

    async def reload() -> None:
        logger.debug('loadSavedVisualization %s', VIZ_NAME)
        await app.load_saved_visualization(VIZ_NAME)
        await app.wait_for_visualization()

    return (
        *init_bar_chart_steps(app, vertical_bar_config()),
        Step('capture series', capture_series),
        Step('save visualization', _logged(
            f'Save visualization as {VIZ_NAME}',
            lambda: app.save_visualization(VIZ_NAME),
        )),
        Check(
            'breadcrumb title', app.get_breadcrumb_title, VIZ_NAME,
            matcher=Matcher.CONTAINS,
        ),
        Step('wait for toast gone', app.wait_for_toast_gone),
        Step('load saved visualization', reload, renders=True),
        Check(
            'series after load', app.get_bar_chart_data,
            expected_from=lambda: captured['series'], policy=policy,
        ),
    )


def _inspector_enabled(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    return (
        *init_bar_chart_steps(app, vertical_bar_config()),
        Check('inspector button enabled', app.is_inspector_button_enabled,
              matcher=Matcher.TRUE),
    )


def _correct_chart(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    return (
        *init_bar_chart_steps(app, vertical_bar_config()),
        Check('bar chart data', app.get_bar_chart_data, EXPECTED_COUNTS, policy=policy),
    )


def _correct_data(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    return (
        *init_bar_chart_steps(app, vertical_bar_config()),
        Step('open inspector', _logged('Open inspector', app.open_inspector)),
        Check('inspector table', app.get_inspector_table_data,
              EXPECTED_INSPECTOR_ROWS, policy=policy),
    )


def _split_series(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    config = vertical_bar_config().with_split('response.raw')
    return (
        *init_bar_chart_steps(app, config),
        _legend_check(app, EXPECTED_RESPONSE_LEGEND, policy),
    )


def _multiple_splits(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    config = vertical_bar_config().with_split('response.raw').with_split('machine.os')
    return (
        *init_bar_chart_steps(app, config),
        _legend_check(app, EXPECTED_MULTI_SPLIT_LEGEND, policy),
    )


def _first_split_disabled(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    config = vertical_bar_config().with_split('response.raw').with_split('machine.os')
    return (
        *init_bar_chart_steps(app, config),
        _legend_check(app, EXPECTED_MULTI_SPLIT_LEGEND, policy),
        Step('disable first split', _logged(
            f'Disable aggregation {FIRST_SPLIT_AGG_ID}',
            lambda: app.toggle_disabled_agg(FIRST_SPLIT_AGG_ID),
        )),
        *_rerender_steps(app),
        _legend_check(app, EXPECTED_OS_LEGEND, policy),
    )


def _derivative(app: VisualizeApp, policy: RetryPolicy) -> tuple[Any, ...]:
    config = vertical_bar_config().with_metric(MetricAggType.DERIVATIVE)
    return (
        *init_bar_chart_steps(app, config),
        _legend_check(app, EXPECTED_DERIVATIVE_LEGEND, policy),
    )


CATALOG: tuple[ScenarioDefinition, ...] = (
    ScenarioDefinition('VB-001', 'should save and load', _save_and_load),
    ScenarioDefinition('VB-002', 'should have inspector enabled', _inspector_enabled),
    ScenarioDefinition('VB-003', 'should show correct chart', _correct_chart),
    ScenarioDefinition('VB-004', 'should show correct data', _correct_data),
    ScenarioDefinition('VB-005', 'vertical bar with split series', _split_series),
    ScenarioDefinition('VB-006', 'vertical bar with multiple splits', _multiple_splits),
    ScenarioDefinition(
        'VB-007', 'vertical bar with multiple splits, first split disabled',
        _first_split_disabled,
    ),
    ScenarioDefinition('VB-008', 'vertical bar with derivative', _derivative),
)


def get_scenario(scenario_id: str) -> ScenarioDefinition:
    """Look up a catalog entry by id.

    Raises:
        KeyError: No scenario with that id.
    """
    for definition in CATALOG:
        if definition.scenario_id == scenario_id:
            return definition
    raise KeyError(scenario_id)
