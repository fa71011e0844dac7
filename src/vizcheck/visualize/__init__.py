"""Visualize editor model, provider protocols and the in-memory app.

The Playwright page object lives in :mod:`vizcheck.visualize.page` and
the REST client in :mod:`vizcheck.visualize.api_client`.
"""

from .aggregation import RenderedChart, Row, Series, render
from .config import (
    BucketAgg,
    BucketAggType,
    BucketType,
    ChartType,
    MetricAgg,
    MetricAggType,
    TimeRange,
    VisualizationConfig,
)
from .inmemory import InMemoryVisualizeApp
from .protocols import (
    NavigationProvider,
    PersistenceProvider,
    RenderProvider,
    VisualizeApp,
)
from .sample_data import canonical_documents

__all__ = [
    'BucketAgg',
    'BucketAggType',
    'BucketType',
    'ChartType',
    'InMemoryVisualizeApp',
    'MetricAgg',
    'MetricAggType',
    'NavigationProvider',
    'PersistenceProvider',
    'RenderProvider',
    'RenderedChart',
    'Row',
    'Series',
    'TimeRange',
    'VisualizationConfig',
    'VisualizeApp',
    'canonical_documents',
    'render',
]
