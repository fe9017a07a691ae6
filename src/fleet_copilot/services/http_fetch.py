"""Plain HTTP download client with a hard timeout."""

from __future__ import annotations

from typing import Optional

import httpx

from fleet_copilot.errors import MediaDownloadError
from fleet_copilot.log import get_logger
from fleet_copilot.services.base import Service

logger = get_logger(__name__)


class HttpFetchService(Service):
    """Downloads remote files (pre-signed media URLs). No automatic retries."""

    def __init__(self, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def service_name(self) -> str:
        return "http_fetch"

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def health_check(self) -> bool:
        return self._client is not None and not self._client.is_closed

    async def fetch(self, url: str) -> bytes:
        if self._client is None:
            raise RuntimeError("HTTP fetch service not started. Call start() first.")
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise MediaDownloadError(f"Failed to download media: {e}") from e
        if not response.is_success:
            raise MediaDownloadError(f"Failed to download media: HTTP {response.status_code}")
        return response.content
