"""Playwright page object for the visualize editor.

Controls are resolved through ``data-test-subj`` attributes. A control
that cannot be resolved within the configured timeout raises
:class:`ElementNotFound`; nothing here retries. Reads that race the
chart drawing are the caller's job (see :mod:`vizcheck.harness.retry`).

Usage::

    async with browser_session(settings) as page:
        await page.new_visualization(ChartType.VERTICAL_BAR)
        ...
"""

from __future__ import annotations

import logging
import math
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..errors import ElementNotFound, RenderNotReady
from ..settings import HarnessSettings
from .config import BucketAgg, BucketAggType, ChartType, MetricAggType

logger = logging.getLogger(__name__)

Y_AXIS_MAX_TICK = 'div.visAxis__splitAxes--y > div > svg > g.{axis} > g > g:last-of-type'
CHART_BACKGROUND = 'rect.background'
SERIES_BARS = 'svg > g > g.series > rect'
LEGEND_TITLES = '.visLegend__valueTitle'
INSPECTOR_ROWS = '[data-test-subj="inspectorTable"] tbody tr'
LAST_BREADCRUMB = '[data-test-subj~="breadcrumb"][data-test-subj~="last"]'


def subj_selector(name: str) -> str:
    """CSS selector for a ``data-test-subj`` value; `` > `` separates nested subjects."""
    return ' '.join(f'[data-test-subj="{part}"]' for part in name.split(' > '))


def bars_to_values(
    bar_heights: list[float],
    chart_height: float,
    y_axis_max: float,
) -> list[int]:
    """Convert bar pixel heights to data values.

    Each bar's share of the chart height is scaled by the largest y-axis
    tick and rounded half-up.
    """
    if chart_height <= 0:
        raise RenderNotReady('chart has no height yet')
    return [math.floor(h / chart_height * y_axis_max + 0.5) for h in bar_heights]


def parse_axis_label(text: str) -> float:
    """Parse a y-axis tick label such as ``1,600`` or ``1.5k``."""
    cleaned = text.strip().replace(',', '')
    match = re.fullmatch(r'(-?\d+(?:\.\d+)?)([kKmM]?)', cleaned)
    if not match:
        raise RenderNotReady(f'unreadable y-axis label {text!r}')
    value = float(match.group(1))
    suffix = match.group(2).lower()
    if suffix == 'k':
        value *= 1_000
    elif suffix == 'm':
        value *= 1_000_000
    return value


class PlaywrightVisualizePage:
    """Drives the visualize editor in a real browser.

    Args:
        page: An open Playwright page.
        settings: Harness settings (base URL, timeouts, index pattern).
    """

    def __init__(self, page: Page, settings: HarnessSettings) -> None:
        self._page = page
        self._settings = settings
        self._timeout = settings.timeout_ms

    @property
    def page(self) -> Page:
        return self._page

    # ── Low-level helpers ─────────────────────────────────────────

    def _subj(self, name: str) -> Locator:
        return self._page.locator(subj_selector(name))

    async def _click(self, locator: Locator, description: str) -> None:
        try:
            await locator.first.click(timeout=self._timeout)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(description) from exc

    async def _wait_visible(self, locator: Locator, description: str) -> None:
        try:
            await locator.first.wait_for(state='visible', timeout=self._timeout)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(description) from exc

    async def _fill(self, locator: Locator, value: str, description: str) -> None:
        try:
            await locator.first.fill(value, timeout=self._timeout)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(description) from exc

    async def _combo_select(self, combo: Locator, value: str, description: str) -> None:
        await self._click(combo, description)
        option = self._page.get_by_role('option', name=value, exact=True)
        await self._click(option, f'{description} option {value!r}')

    # ── Navigation ────────────────────────────────────────────────

    async def navigate(self, app: str, path: str = '') -> None:
        url = f'{self._settings.base_url}/app/kibana#/{app}'
        if path:
            url = f'{url}/{path}'
        logger.debug('navigate %s', url)
        try:
            await self._page.goto(url, timeout=self._timeout)
        except PlaywrightError as exc:
            raise ElementNotFound(url, f'Navigation to {url} failed: {exc}') from exc
        await self.wait_until_idle()

    async def click_control(self, test_subj_name: str) -> None:
        await self._click(self._subj(test_subj_name), subj_selector(test_subj_name))

    async def select_option(self, field: str, value: str) -> None:
        await self._combo_select(self._subj(field), value, subj_selector(field))

    async def set_absolute_range(self, start: str, end: str) -> None:
        logger.debug('Set absolute time range from "%s" to "%s"', start, end)
        await self.click_control('superDatePickerShowDatesButton')
        for side, value in (('start', start), ('end', end)):
            await self.click_control(f'superDatePicker{side}DatePopoverButton')
            await self._click(
                self._page.get_by_role('tab', name='Absolute'), 'absolute tab',
            )
            field = self._subj('superDatePickerAbsoluteDateInput')
            await self._fill(field, value, 'absolute date input')
            await field.first.press('Enter')
        await self.click_control('superDatePickerApplyTimeButton')
        await self.wait_until_idle()

    # ── Editor ────────────────────────────────────────────────────

    async def new_visualization(self, chart_type: ChartType) -> None:
        await self.navigate('visualize', 'new')
        await self.click_control(chart_type.test_subj)

    async def new_search(self) -> None:
        await self.click_control(f'savedObjectTitle{self._settings.index_pattern}')
        await self.wait_until_idle()

    async def add_bucket(self, bucket: BucketAgg) -> None:
        logger.debug('Bucket = %s', bucket.bucket.value)
        await self.click_control('visEditorAdd_buckets')
        await self.click_control(f'visEditorAdd_buckets_{bucket.bucket.value}')
        group = self._page.locator(subj_selector('buckets')).last

        logger.debug('Aggregation = %s', bucket.agg.value)
        await self._combo_select(
            group.locator(subj_selector('defaultEditorAggSelect')),
            bucket.agg.value, 'aggregation select',
        )
        logger.debug('Field = %s', bucket.field)
        await self._combo_select(
            group.locator(subj_selector('visDefaultEditorField')),
            bucket.field, 'field select',
        )
        if bucket.agg is BucketAggType.DATE_HISTOGRAM and bucket.interval != 'auto':
            await self._combo_select(
                group.locator(subj_selector('visEditorInterval')),
                bucket.interval, 'interval select',
            )
        if bucket.agg is BucketAggType.TERMS:
            await self._fill(
                group.locator(subj_selector('sizeParamEditor')).locator('input'),
                str(bucket.size), 'terms size',
            )
        await self.wait_until_idle()

    async def toggle_open_editor(self, agg_id: int) -> None:
        await self.click_control(f'visEditorAggAccordion{agg_id} > toggleEditor')

    async def select_metric(self, agg: MetricAggType) -> None:
        await self.toggle_open_editor(1)
        group = self._page.locator(subj_selector('metrics'))
        await self._combo_select(
            group.locator(subj_selector('defaultEditorAggSelect')),
            agg.value, 'metric aggregation select',
        )
        await self.wait_until_idle()

    async def toggle_disabled_agg(self, agg_id: int) -> None:
        await self.click_control(f'visEditorAggAccordion{agg_id} > toggleDisableAggregationBtn')
        await self.wait_until_idle()

    async def click_go(self) -> None:
        await self.click_control('visualizeEditorRenderButton')
        await self.wait_until_idle()

    async def wait_until_idle(self) -> None:
        try:
            await self._subj('globalLoadingIndicator-hidden').wait_for(
                state='attached', timeout=self._timeout,
            )
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(
                subj_selector('globalLoadingIndicator-hidden'),
                'Loading indicator never went idle',
            ) from exc

    async def wait_for_visualization(self) -> None:
        await self._wait_visible(
            self._subj('visualizationLoader'), subj_selector('visualizationLoader'),
        )

    # ── Extraction ────────────────────────────────────────────────

    async def get_bar_chart_data(
        self,
        *,
        data_label: str | None = None,
        axis: str = 'ValueAxis-1',
    ) -> list[float]:
        """Read bar values off the rendered SVG."""
        tick = self._page.locator(Y_AXIS_MAX_TICK.format(axis=axis))
        background = self._page.locator(CHART_BACKGROUND)
        bars_selector = SERIES_BARS
        if data_label:
            bars_selector = f'{SERIES_BARS}[data-label="{data_label}"]'
        bars = self._page.locator(bars_selector)

        if await tick.count() == 0 or await background.count() == 0:
            raise RenderNotReady('chart axes are not drawn yet')
        y_max = parse_axis_label(await tick.first.inner_text())
        chart_height = float(await background.first.get_attribute('height') or 0)

        heights: list[float] = []
        for bar in await bars.all():
            raw = await bar.get_attribute('height')
            if raw is None:
                raise RenderNotReady('bar has no height attribute yet')
            heights.append(float(raw))
        values = bars_to_values(heights, chart_height, y_max)
        logger.debug('data=%s', values)
        logger.debug('data.length=%d', len(values))
        return values

    async def get_legend_entries(self) -> list[str]:
        texts = await self._page.locator(LEGEND_TITLES).all_inner_texts()
        return [t.strip() for t in texts]

    async def open_inspector(self) -> None:
        await self.click_control('openInspectorButton')
        await self._wait_visible(self._subj('inspectorPanel'), subj_selector('inspectorPanel'))

    async def get_inspector_table_data(self) -> list[tuple[str, ...]]:
        rows: list[tuple[str, ...]] = []
        for row in await self._page.locator(INSPECTOR_ROWS).all():
            cells = await row.locator('td').all_inner_texts()
            rows.append(tuple(c.strip() for c in cells))
        return rows

    async def is_inspector_button_enabled(self) -> bool:
        button = self._subj('openInspectorButton')
        await self._wait_visible(button, subj_selector('openInspectorButton'))
        return await button.first.is_enabled()

    extract_series = get_bar_chart_data
    extract_legend = get_legend_entries
    extract_table = get_inspector_table_data

    # ── Persistence ───────────────────────────────────────────────

    async def save_visualization(self, name: str) -> str:
        await self.click_control('visualizeSaveButton')
        await self._fill(self._subj('savedObjectTitle'), name, 'saved object title')
        await self.click_control('confirmSaveSavedObjectButton')
        await self._wait_visible(
            self._subj('saveVisualizationSuccess'), 'save success toast',
        )
        await self.wait_until_idle()
        return await self.get_breadcrumb_title()

    async def load_saved_visualization(self, name: str) -> None:
        await self.navigate('visualize')
        await self._fill(self._subj('searchFilter'), name, 'listing search filter')
        await self.click_control(f'visListingTitleLink-{name.replace(" ", "-")}')
        await self.wait_until_idle()

    async def get_breadcrumb_title(self) -> str:
        crumb = self._page.locator(LAST_BREADCRUMB)
        await self._wait_visible(crumb, 'last breadcrumb')
        return (await crumb.first.inner_text()).strip()

    async def wait_for_toast_gone(self) -> None:
        toasts = self._page.locator('.euiToast')
        if await toasts.count() == 0:
            return
        await self._click(toasts.first.locator(subj_selector('toastCloseButton')), 'toast close')
        try:
            await toasts.first.wait_for(state='detached', timeout=self._timeout)
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound('.euiToast', 'Toast did not go away') from exc

    save = save_visualization
    load = load_saved_visualization

    # ── Evidence ──────────────────────────────────────────────────

    async def screenshot(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._page.screenshot(path=str(path), full_page=True)
        return path


@asynccontextmanager
async def browser_session(settings: HarnessSettings) -> AsyncIterator[PlaywrightVisualizePage]:
    """Launch a browser, open one page and yield it wrapped as a page object.

    The page is exclusively owned by the caller for the session lifetime.
    """
    async with async_playwright() as pw:
        launcher = getattr(pw, settings.browser)
        browser = await launcher.launch(headless=settings.headless)
        try:
            credentials = None
            if settings.username:
                credentials = {
                    'username': settings.username,
                    'password': settings.password,
                }
            context = await browser.new_context(
                viewport={
                    'width': settings.viewport_width,
                    'height': settings.viewport_height,
                },
                http_credentials=credentials,
            )
            page = await context.new_page()
            page.set_default_timeout(settings.timeout_ms)
            logger.info('Browser session started (%s, headless=%s)',
                        settings.browser, settings.headless)
            yield PlaywrightVisualizePage(page, settings)
        finally:
            await browser.close()
