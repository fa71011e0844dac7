"""Async HTTP client for the application's REST surface.

Used around browser scenarios: waiting for the application to come up
and removing saved visualizations left behind by earlier runs. Every
request carries the ``kbn-xsrf`` header the API requires for writes.

For tests, pass an httpx.AsyncClient built on a MockTransport::

    client = AppApiClient(settings, http_client=httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=settings.base_url,
    ))
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import AppApiError
from ..harness.retry import RetryPolicy, retry
from ..settings import HarnessSettings

logger = logging.getLogger(__name__)

_XSRF_HEADER = {'kbn-xsrf': 'vizcheck'}
_READY_STATES = frozenset({'green', 'available'})


class AppApiClient:
    """Thin wrapper around the status and saved-objects endpoints.

    Args:
        settings: Harness settings (base URL, credentials, timeout).
        http_client: Optional httpx.AsyncClient (for test injection).
    """

    def __init__(
        self,
        settings: HarnessSettings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._owns_client = http_client is None

    async def __aenter__(self) -> AppApiClient:
        if self._client is None:
            self._client = self._build_client()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _build_client(self) -> httpx.AsyncClient:
        auth = None
        if self._settings.username:
            auth = httpx.BasicAuth(self._settings.username, self._settings.password)
        return httpx.AsyncClient(
            base_url=self._settings.base_url,
            headers=_XSRF_HEADER,
            auth=auth,
            timeout=self._settings.timeout_ms / 1000,
            follow_redirects=True,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self._client is None:
            self._client = self._build_client()
        headers = {**_XSRF_HEADER, **kwargs.pop('headers', {})}
        resp = await self._client.request(method, path, headers=headers, **kwargs)
        if resp.status_code >= 400:
            message = resp.text[:200] if resp.text else f'HTTP {resp.status_code}'
            try:
                payload = resp.json()
                if isinstance(payload, dict):
                    message = payload.get('message', payload.get('error', message))
            except ValueError:
                pass
            raise AppApiError(resp.status_code, message)
        return resp

    # ── Status ───────────────────────────────────────────────────

    async def status(self) -> str:
        """Return the overall status state (``green``, ``yellow``, ...)."""
        resp = await self._request('GET', '/api/status')
        body = resp.json()
        overall = body.get('status', {}).get('overall', {})
        return str(overall.get('state') or overall.get('level') or 'unknown').lower()

    async def wait_until_available(self, policy: RetryPolicy | None = None) -> str:
        """Poll the status endpoint until the application reports ready."""
        async def _probe() -> str:
            try:
                state = await self.status()
            except httpx.TransportError as exc:
                raise AppApiError(0, f'application unreachable: {exc}') from exc
            if state not in _READY_STATES:
                raise AppApiError(503, f'application status is {state}')
            return state

        state = await retry(
            _probe, policy or self._settings.retry_policy(),
            description='application status',
        )
        logger.info('Application is available (status=%s)', state)
        return state

    # ── Saved objects ────────────────────────────────────────────

    async def find_visualizations(self, title: str) -> list[dict[str, Any]]:
        resp = await self._request(
            'GET',
            '/api/saved_objects/_find',
            params={
                'type': 'visualization',
                'search_fields': 'title',
                'search': f'"{title}"',
            },
        )
        objects = resp.json().get('saved_objects', [])
        if not isinstance(objects, list):
            raise AppApiError(0, f'expected a list of saved objects, got {type(objects).__name__}')
        return objects

    async def delete_visualization(self, object_id: str) -> None:
        await self._request('DELETE', f'/api/saved_objects/visualization/{object_id}')
        logger.info('Deleted saved visualization %s', object_id)

    async def delete_visualizations_titled(self, title: str) -> int:
        """Delete saved visualizations whose title matches exactly."""
        deleted = 0
        for obj in await self.find_visualizations(title):
            if obj.get('attributes', {}).get('title') == title:
                await self.delete_visualization(obj['id'])
                deleted += 1
        return deleted
