"""In-memory visualize application for offline runs and unit tests.

Satisfies :class:`VisualizeApp` over a list of documents. Editor state
is kept separately from what is drawn: changes only show up after
:meth:`click_go` (or a load). Right after a render the next
``render_lag`` extractions raise :class:`RenderNotReady`, the way reads
against a real browser race the chart drawing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Iterable

from ..errors import ConfigurationError, ElementNotFound, RenderNotReady
from .aggregation import Document, RenderedChart, render
from .config import (
    BucketAgg,
    BucketType,
    ChartType,
    MetricAgg,
    MetricAggType,
    TimeRange,
    VisualizationConfig,
)

logger = logging.getLogger(__name__)

UNSAVED_TITLE = 'Create'
INSPECTOR_PAGE_SIZE = 10


class InMemoryVisualizeApp:
    """Deterministic stand-in for the visualize editor.

    Args:
        documents: Indexed documents the charts aggregate over.
        render_lag: Extractions that fail with RenderNotReady after each render.
    """

    def __init__(self, documents: Iterable[Document], *, render_lag: int = 0) -> None:
        if render_lag < 0:
            raise ValueError('render_lag must be >= 0')
        self._documents = list(documents)
        self._render_lag = render_lag
        self._saved: dict[str, VisualizationConfig] = {}
        self.actions: list[str] = []
        self._reset()

    def _reset(self) -> None:
        self._location = ''
        self._chart_type: ChartType | None = None
        self._time_range: TimeRange | None = None
        self._metric = MetricAgg()
        self._buckets: tuple[BucketAgg, ...] = ()
        self._has_search = False
        self._applied: VisualizationConfig | None = None
        self._rendered: RenderedChart | None = None
        self._pending_reads = 0
        self._inspector_open = False
        self._toast_visible = False
        self._title = UNSAVED_TITLE

    # ── Navigation ────────────────────────────────────────────────

    async def navigate(self, app: str, path: str = '') -> None:
        self.actions.append(f'navigate {app}/{path}'.rstrip('/'))
        time_range = self._time_range
        self._reset()
        self._time_range = time_range
        self._location = f'{app}#/{path}' if path else app

    async def click_control(self, test_subj: str) -> None:
        handlers = {
            'visualizeEditorRenderButton': self.click_go,
            'openInspectorButton': self.open_inspector,
            'newItemButton': self.new_search,
        }
        handler = handlers.get(test_subj)
        if handler is None:
            raise ElementNotFound(f'[data-test-subj="{test_subj}"]')
        await handler()

    async def select_option(self, field: str, value: str) -> None:
        self.actions.append(f'select {field}={value}')
        if field != 'interval':
            raise ElementNotFound(f'[data-test-subj="{field}"]')
        x_axis = next(
            (i for i, b in enumerate(self._buckets) if b.bucket is BucketType.X_AXIS),
            None,
        )
        if x_axis is None:
            raise ElementNotFound('[data-test-subj="visEditorInterval"]')
        buckets = list(self._buckets)
        buckets[x_axis] = replace(buckets[x_axis], interval=value)
        self._buckets = tuple(buckets)

    async def set_absolute_range(self, start: str, end: str) -> None:
        self.actions.append(f'range {start} -> {end}')
        self._time_range = TimeRange(start, end)

    # ── Editor ────────────────────────────────────────────────────

    async def new_visualization(self, chart_type: ChartType) -> None:
        await self.navigate('visualize', 'create')
        self.actions.append(f'type {chart_type.value}')
        self._chart_type = chart_type

    async def new_search(self) -> None:
        self._require_editor()
        self.actions.append('new search')
        self._has_search = True

    async def add_bucket(self, bucket: BucketAgg) -> None:
        self._require_search()
        self.actions.append(f'bucket {bucket.label}')
        self._buckets = self._buckets + (bucket,)

    async def select_metric(self, agg: MetricAggType) -> None:
        self._require_search()
        self.actions.append(f'metric {agg.value}')
        self._metric = MetricAgg(agg)

    async def toggle_disabled_agg(self, agg_id: int) -> None:
        self._require_search()
        index = agg_id - 2
        if not 0 <= index < len(self._buckets):
            raise ElementNotFound(f'[data-test-subj="toggleDisableAggregationBtn {agg_id}"]')
        self.actions.append(f'toggle agg {agg_id}')
        buckets = list(self._buckets)
        buckets[index] = replace(buckets[index], enabled=not buckets[index].enabled)
        self._buckets = tuple(buckets)

    async def click_go(self) -> None:
        self._require_search()
        if self._time_range is None:
            raise ConfigurationError('no time range selected')
        self.actions.append('go')
        self._apply(VisualizationConfig(
            chart_type=self._chart_type,
            time_range=self._time_range,
            metric=self._metric,
            buckets=self._buckets,
        ))

    def _apply(self, config: VisualizationConfig) -> None:
        self._applied = config
        self._rendered = render(self._documents, config)
        self._pending_reads = self._render_lag
        logger.debug(
            'Rendered %d series over %d rows',
            len(self._rendered.series), len(self._rendered.rows),
        )

    async def wait_until_idle(self) -> None:
        return None

    async def wait_for_visualization(self) -> None:
        if self._rendered is None:
            raise ElementNotFound('[data-test-subj="visualizationLoader"]')

    # ── Extraction ────────────────────────────────────────────────

    def _drawn(self) -> RenderedChart:
        if self._rendered is None:
            raise ElementNotFound('[data-test-subj="visualizationLoader"]')
        if self._pending_reads > 0:
            self._pending_reads -= 1
            raise RenderNotReady('chart is still being drawn')
        return self._rendered

    async def get_bar_chart_data(self) -> list[float]:
        return self._drawn().bar_values

    async def get_legend_entries(self) -> list[str]:
        return self._drawn().legend

    async def open_inspector(self) -> None:
        if self._rendered is None:
            raise ElementNotFound('[data-test-subj="openInspectorButton"]')
        self.actions.append('open inspector')
        self._inspector_open = True

    async def get_inspector_table_data(self) -> list[tuple[str, ...]]:
        if not self._inspector_open:
            raise ElementNotFound('[data-test-subj="inspectorPanel"]')
        return self._drawn().table(page_size=INSPECTOR_PAGE_SIZE)

    async def is_inspector_button_enabled(self) -> bool:
        return self._rendered is not None

    extract_series = get_bar_chart_data
    extract_legend = get_legend_entries
    extract_table = get_inspector_table_data

    # ── Persistence ───────────────────────────────────────────────

    async def save_visualization(self, name: str) -> str:
        if self._applied is None:
            raise ElementNotFound('[data-test-subj="visualizeSaveButton"]')
        if not name:
            raise ValueError('name is required')
        self.actions.append(f'save {name}')
        self._saved[name] = self._applied
        self._title = name
        self._toast_visible = True
        return self._title

    async def load_saved_visualization(self, name: str) -> None:
        config = self._saved.get(name)
        if config is None:
            raise ElementNotFound(f'[data-test-subj="visListingTitleLink-{name}"]')
        await self.navigate('visualize', f'edit/{name}')
        self.actions.append(f'load {name}')
        self._chart_type = config.chart_type
        self._time_range = config.time_range
        self._metric = config.metric
        self._buckets = config.buckets
        self._has_search = True
        self._title = name
        self._apply(config)

    async def get_breadcrumb_title(self) -> str:
        return self._title

    async def wait_for_toast_gone(self) -> None:
        self._toast_visible = False

    save = save_visualization
    load = load_saved_visualization

    # ── Evidence ──────────────────────────────────────────────────

    async def screenshot(self, path: Path) -> Path:
        """Write a JSON snapshot of the drawn state in place of an image.

        The snapshot goes to ``path`` with a ``.json`` suffix; the written
        path is returned.
        """
        path = path.with_suffix('.json')
        path.parent.mkdir(parents=True, exist_ok=True)
        snapshot: dict[str, Any] = {
            'location': self._location,
            'title': self._title,
            'time_range': (
                [self._time_range.start, self._time_range.end]
                if self._time_range else None
            ),
            'legend': self._rendered.legend if self._rendered else [],
            'bars': self._rendered.bar_values if self._rendered else [],
        }
        path.write_text(json.dumps(snapshot, indent=2), encoding='utf-8')
        return path

    # ── Introspection ─────────────────────────────────────────────

    @property
    def applied_config(self) -> VisualizationConfig | None:
        return self._applied

    @property
    def saved_names(self) -> tuple[str, ...]:
        return tuple(self._saved)

    @property
    def toast_visible(self) -> bool:
        return self._toast_visible

    def _require_editor(self) -> None:
        if self._chart_type is None:
            raise ElementNotFound('[data-test-subj="visualizeEditor"]')

    def _require_search(self) -> None:
        self._require_editor()
        if not self._has_search:
            raise ElementNotFound('[data-test-subj="visEditorSidebar"]')

