"""Visualization configuration built and validated before any UI action.

Control names that the editor shows as free text ("X-Axis", "Terms",
"Derivative") are closed enums here. A configuration is immutable; the
``with_*`` helpers return a modified copy, so every scenario can build
its own and pass it around by value.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from ..errors import ConfigurationError

TIME_FORMAT = '%Y-%m-%d %H:%M:%S.%f'


class ChartType(str, Enum):
    VERTICAL_BAR = 'histogram'

    @property
    def test_subj(self) -> str:
        return f'visType-{self.value}'


class BucketType(str, Enum):
    """Where a bucket aggregation is attached in the editor."""

    X_AXIS = 'X-Axis'
    SPLIT_SERIES = 'Split Series'

    @property
    def schema(self) -> str:
        return {
            BucketType.X_AXIS: 'segment',
            BucketType.SPLIT_SERIES: 'group',
        }[self]


class BucketAggType(str, Enum):
    DATE_HISTOGRAM = 'Date Histogram'
    HISTOGRAM = 'Histogram'
    TERMS = 'Terms'


class MetricAggType(str, Enum):
    COUNT = 'Count'
    DERIVATIVE = 'Derivative'
    CUMULATIVE_SUM = 'Cumulative Sum'

    @property
    def is_parent_pipeline(self) -> bool:
        return self in (MetricAggType.DERIVATIVE, MetricAggType.CUMULATIVE_SUM)


# Only the X-axis may carry a histogram; splits partition by term.
_ALLOWED_AGGS: dict[BucketType, frozenset[BucketAggType]] = {
    BucketType.X_AXIS: frozenset(BucketAggType),
    BucketType.SPLIT_SERIES: frozenset({BucketAggType.TERMS}),
}

# Interval names accepted for date histograms, in ascending order.
INTERVALS: tuple[str, ...] = (
    'auto', '1s', '5s', '10s', '30s', '1m', '5m', '10m', '30m',
    '1h', '3h', '12h', '1d', '7d', '30d', '365d',
)


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Absolute time range shown in the time picker."""

    start: str
    end: str

    def __post_init__(self) -> None:
        start, end = self.parsed()
        if end <= start:
            raise ConfigurationError(
                f'time range end {self.end!r} must be after start {self.start!r}'
            )

    def parsed(self) -> tuple[datetime, datetime]:
        try:
            return (
                datetime.strptime(self.start, TIME_FORMAT),
                datetime.strptime(self.end, TIME_FORMAT),
            )
        except ValueError as exc:
            raise ConfigurationError(f'invalid time range: {exc}') from exc

    @property
    def span_seconds(self) -> float:
        start, end = self.parsed()
        return (end - start).total_seconds()


@dataclass(frozen=True, slots=True)
class BucketAgg:
    bucket: BucketType
    agg: BucketAggType
    field: str
    interval: str = 'auto'
    size: int = 5
    enabled: bool = True

    def __post_init__(self) -> None:
        if self.agg not in _ALLOWED_AGGS[self.bucket]:
            raise ConfigurationError(
                f'{self.agg.value} is not available for {self.bucket.value}'
            )
        if not self.field:
            raise ConfigurationError(f'{self.agg.value} requires a field')
        if self.agg is BucketAggType.DATE_HISTOGRAM and self.interval not in INTERVALS:
            raise ConfigurationError(f'unknown interval {self.interval!r}')
        if self.agg is BucketAggType.HISTOGRAM:
            try:
                if float(self.interval) <= 0:
                    raise ValueError(self.interval)
            except ValueError as exc:
                raise ConfigurationError(
                    f'histogram interval must be a positive number, got {self.interval!r}'
                ) from exc
        if self.agg is BucketAggType.TERMS and self.size < 1:
            raise ConfigurationError('terms size must be >= 1')

    @property
    def label(self) -> str:
        return f'{self.bucket.value}: {self.agg.value} on {self.field}'


@dataclass(frozen=True, slots=True)
class MetricAgg:
    agg: MetricAggType = MetricAggType.COUNT

    @property
    def legend_label(self) -> str:
        if self.agg.is_parent_pipeline:
            return f'{self.agg.value} of {MetricAggType.COUNT.value}'
        return self.agg.value


@dataclass(frozen=True, slots=True)
class VisualizationConfig:
    """A chart under test: type, time range, one metric, ordered buckets.

    Aggregation ids follow the editor's numbering: the metric is 1 and
    buckets are 2, 3, ... in the order they were added.
    """

    chart_type: ChartType
    time_range: TimeRange
    metric: MetricAgg = field(default_factory=MetricAgg)
    buckets: tuple[BucketAgg, ...] = ()

    def __post_init__(self) -> None:
        x_axes = [b for b in self.buckets if b.bucket is BucketType.X_AXIS]
        if len(x_axes) > 1:
            raise ConfigurationError('only one X-Axis bucket is allowed')
        if self.metric.agg.is_parent_pipeline:
            x_axis = self.x_axis
            if x_axis is None or x_axis.agg not in (
                BucketAggType.DATE_HISTOGRAM, BucketAggType.HISTOGRAM,
            ):
                raise ConfigurationError(
                    f'{self.metric.agg.value} needs a histogram X-Axis'
                )

    @property
    def x_axis(self) -> BucketAgg | None:
        for bucket in self.buckets:
            if bucket.bucket is BucketType.X_AXIS and bucket.enabled:
                return bucket
        return None

    @property
    def splits(self) -> tuple[BucketAgg, ...]:
        return tuple(
            b for b in self.buckets
            if b.bucket is BucketType.SPLIT_SERIES and b.enabled
        )

    def with_bucket(self, bucket: BucketAgg) -> VisualizationConfig:
        return replace(self, buckets=self.buckets + (bucket,))

    def with_split(self, field_name: str, *, size: int = 5) -> VisualizationConfig:
        return self.with_bucket(BucketAgg(
            BucketType.SPLIT_SERIES, BucketAggType.TERMS, field_name, size=size,
        ))

    def with_metric(self, agg: MetricAggType) -> VisualizationConfig:
        return replace(self, metric=MetricAgg(agg))

    def with_agg_toggled(self, agg_id: int) -> VisualizationConfig:
        """Flip the enabled flag of the bucket with editor id ``agg_id`` (2 = first bucket)."""
        index = agg_id - 2
        if not 0 <= index < len(self.buckets):
            raise ConfigurationError(f'no bucket aggregation with id {agg_id}')
        buckets = list(self.buckets)
        buckets[index] = replace(buckets[index], enabled=not buckets[index].enabled)
        return replace(self, buckets=tuple(buckets))
