"""Deterministic aggregation used by the in-memory application.

Turns a list of documents and a :class:`VisualizationConfig` into the
series, legend and inspector rows a vertical bar chart would show.
Bucketing rules:

  - date histogram buckets are aligned to the interval in UTC; empty
    buckets are dropped (min doc count 1);
  - terms are nested per parent bucket, ordered by count descending
    then key ascending, truncated to ``size``; documents without the
    field fall out of that branch;
  - a series appears in the legend the first time one of its rows is
    seen while walking x buckets in time order.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Iterator, Mapping

from .config import (
    BucketAgg,
    BucketAggType,
    MetricAggType,
    VisualizationConfig,
)

TIMESTAMP_FIELD = '@timestamp'

# Target bar count used to pick an automatic interval.
BAR_TARGET = 50

_INTERVAL_SECONDS: dict[str, int] = {
    '1s': 1,
    '5s': 5,
    '10s': 10,
    '30s': 30,
    '1m': 60,
    '5m': 300,
    '10m': 600,
    '30m': 1800,
    '1h': 3600,
    '3h': 3 * 3600,
    '12h': 12 * 3600,
    '1d': 86400,
    '7d': 7 * 86400,
    '30d': 30 * 86400,
    '365d': 365 * 86400,
}

Document = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class Row:
    """One tabified row: x bucket, split path, metric value."""

    x_key: Any
    x_label: str
    split_path: tuple[str, ...]
    count: int
    value: float | None = None


@dataclass(frozen=True, slots=True)
class Series:
    label: str
    values: tuple[float | None, ...]


@dataclass(frozen=True, slots=True)
class RenderedChart:
    series: tuple[Series, ...]
    rows: tuple[Row, ...]

    @property
    def legend(self) -> list[str]:
        return [s.label for s in self.series]

    @property
    def bar_values(self) -> list[float]:
        """Values of every drawn bar, series by series. Gaps draw nothing."""
        return [v for s in self.series for v in s.values if v is not None]

    def table(self, *, page: int = 0, page_size: int = 10) -> list[tuple[str, ...]]:
        start = page * page_size
        return [
            (row.x_label, *row.split_path, format_number(row.value))
            for row in self.rows[start:start + page_size]
        ]


def to_utc(value: Any) -> datetime:
    """Coerce an ISO string or datetime to an aware UTC datetime."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if not isinstance(value, datetime):
        raise TypeError(f'not a timestamp: {value!r}')
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def auto_interval(span_seconds: float, *, bar_target: int = BAR_TARGET) -> str:
    """Smallest named interval that keeps the bar count at or under target."""
    wanted = span_seconds / bar_target
    for name, seconds in _INTERVAL_SECONDS.items():
        if seconds >= wanted:
            return name
    return '365d'


def interval_seconds(name: str) -> int:
    return _INTERVAL_SECONDS[name]


def format_number(value: float | None) -> str:
    if value is None:
        return '-'
    if float(value).is_integer():
        return f'{int(value):,}'
    return f'{value:,.3f}'.rstrip('0').rstrip('.')


def _date_format(seconds: int) -> str:
    if seconds < 60:
        return '%Y-%m-%d %H:%M:%S'
    if seconds < 86400:
        return '%Y-%m-%d %H:%M'
    return '%Y-%m-%d'


def _in_range(docs: Iterable[Document], config: VisualizationConfig) -> list[Document]:
    start, end = config.time_range.parsed()
    start = start.replace(tzinfo=timezone.utc)
    end = end.replace(tzinfo=timezone.utc)
    return [
        d for d in docs
        if TIMESTAMP_FIELD in d and start <= to_utc(d[TIMESTAMP_FIELD]) <= end
    ]


def _x_buckets(
    docs: list[Document],
    x_axis: BucketAgg | None,
    config: VisualizationConfig,
) -> list[tuple[Any, str, list[Document]]]:
    if x_axis is None:
        return [(None, 'All docs', docs)] if docs else []

    if x_axis.agg is BucketAggType.DATE_HISTOGRAM:
        name = x_axis.interval
        if name == 'auto':
            name = auto_interval(config.time_range.span_seconds)
        seconds = interval_seconds(name)
        fmt = _date_format(seconds)
        grouped: dict[float, list[Document]] = {}
        for doc in docs:
            raw = doc.get(x_axis.field)
            if raw is None:
                continue
            epoch = to_utc(raw).timestamp()
            key = math.floor(epoch / seconds) * seconds
            grouped.setdefault(key, []).append(doc)
        return [
            (
                key,
                datetime.fromtimestamp(key, tz=timezone.utc).strftime(fmt),
                grouped[key],
            )
            for key in sorted(grouped)
        ]

    if x_axis.agg is BucketAggType.HISTOGRAM:
        step = float(x_axis.interval)
        grouped = {}
        for doc in docs:
            raw = doc.get(x_axis.field)
            if raw is None:
                continue
            key = math.floor(float(raw) / step) * step
            grouped.setdefault(key, []).append(doc)
        return [(key, format_number(key), grouped[key]) for key in sorted(grouped)]

    # Terms on the X-Axis.
    return [
        (key, key, bucket_docs)
        for key, bucket_docs in terms(docs, x_axis.field, size=x_axis.size)
    ]


def terms(
    docs: list[Document],
    field_name: str,
    *,
    size: int = 5,
) -> list[tuple[str, list[Document]]]:
    """Top ``size`` terms by count (desc), ties broken by key (asc)."""
    counts = Counter(str(d[field_name]) for d in docs if d.get(field_name) is not None)
    ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:size]
    return [
        (key, [d for d in docs if d.get(field_name) is not None and str(d[field_name]) == key])
        for key, _ in ranked
    ]


def _nested(
    docs: list[Document],
    splits: tuple[BucketAgg, ...],
    path: tuple[str, ...] = (),
) -> Iterator[tuple[tuple[str, ...], int]]:
    if not splits:
        yield path, len(docs)
        return
    head, rest = splits[0], splits[1:]
    for key, bucket_docs in terms(docs, head.field, size=head.size):
        yield from _nested(bucket_docs, rest, path + (key,))


def _apply_metric(counts: list[int], agg: MetricAggType) -> list[float | None]:
    if agg is MetricAggType.DERIVATIVE:
        return [None] + [b - a for a, b in zip(counts, counts[1:])]
    if agg is MetricAggType.CUMULATIVE_SUM:
        total = 0
        out: list[float | None] = []
        for c in counts:
            total += c
            out.append(total)
        return out
    return list(counts)


def render(docs: Iterable[Document], config: VisualizationConfig) -> RenderedChart:
    """Aggregate ``docs`` the way the configured chart would draw them."""
    in_range = _in_range(docs, config)
    splits = config.splits

    raw_rows: list[tuple[Any, str, tuple[str, ...], int]] = []
    for x_key, x_label, x_docs in _x_buckets(in_range, config.x_axis, config):
        for path, count in _nested(x_docs, splits):
            raw_rows.append((x_key, x_label, path, count))

    # Series in first-appearance order.
    order: list[tuple[str, ...]] = []
    by_path: dict[tuple[str, ...], list[int]] = {}
    for index, (_, _, path, _) in enumerate(raw_rows):
        if path not in by_path:
            order.append(path)
            by_path[path] = []
        by_path[path].append(index)

    values: list[float | None] = [None] * len(raw_rows)
    for path in order:
        indexes = by_path[path]
        metric = _apply_metric([raw_rows[i][3] for i in indexes], config.metric.agg)
        for i, v in zip(indexes, metric):
            values[i] = v

    series = tuple(
        Series(
            label=' - '.join(path) if path else config.metric.legend_label,
            values=tuple(values[i] for i in by_path[path]),
        )
        for path in order
    )
    rows = tuple(
        Row(x_key=x_key, x_label=x_label, split_path=path, count=count, value=values[i])
        for i, (x_key, x_label, path, count) in enumerate(raw_rows)
    )
    return RenderedChart(series=series, rows=rows)
