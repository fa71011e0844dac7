"""Provider contracts consumed by the harness.

The scenario catalog only talks to these protocols. Concrete
implementations (Playwright for a real browser, in-memory for offline
runs and unit tests) must satisfy them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from .config import BucketAgg, ChartType, MetricAggType


@runtime_checkable
class NavigationProvider(Protocol):
    """Navigation and form interaction."""

    async def navigate(self, app: str, path: str = '') -> None: ...
    async def click_control(self, test_subj: str) -> None: ...
    async def select_option(self, field: str, value: str) -> None: ...
    async def set_absolute_range(self, start: str, end: str) -> None: ...


@runtime_checkable
class RenderProvider(Protocol):
    """Render synchronization and data extraction."""

    async def wait_until_idle(self) -> None: ...
    async def extract_series(self) -> list[float]: ...
    async def extract_legend(self) -> list[str]: ...
    async def extract_table(self) -> list[tuple[str, str]]: ...


@runtime_checkable
class PersistenceProvider(Protocol):
    """Saved-object round trips."""

    async def save(self, name: str) -> str: ...
    async def load(self, name: str) -> None: ...


@runtime_checkable
class VisualizeApp(NavigationProvider, RenderProvider, PersistenceProvider, Protocol):
    """Page-object surface of the visualize editor."""

    async def new_visualization(self, chart_type: ChartType) -> None: ...
    async def new_search(self) -> None: ...
    async def add_bucket(self, bucket: BucketAgg) -> None: ...
    async def select_metric(self, agg: MetricAggType) -> None: ...
    async def toggle_disabled_agg(self, agg_id: int) -> None: ...
    async def click_go(self) -> None: ...
    async def wait_for_visualization(self) -> None: ...
    async def get_bar_chart_data(self) -> list[float]: ...
    async def get_legend_entries(self) -> list[str]: ...
    async def open_inspector(self) -> None: ...
    async def get_inspector_table_data(self) -> list[tuple[str, str]]: ...
    async def is_inspector_button_enabled(self) -> bool: ...
    async def save_visualization(self, name: str) -> str: ...
    async def load_saved_visualization(self, name: str) -> None: ...
    async def get_breadcrumb_title(self) -> str: ...
    async def wait_for_toast_gone(self) -> None: ...
    async def screenshot(self, path: Path) -> Path: ...
