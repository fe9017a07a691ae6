"""Service lifecycle manager."""

from __future__ import annotations

from typing import Optional

import httpx

from fleet_copilot.config import MediaConfig, TelematicsConfig
from fleet_copilot.log import get_logger
from fleet_copilot.services.http_fetch import HttpFetchService
from fleet_copilot.services.telematics import TelematicsService

logger = get_logger(__name__)


class ServiceManager:
    """Manages startup and shutdown of all services."""

    def __init__(
        self,
        telematics: TelematicsConfig,
        media: MediaConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._telematics = TelematicsService(telematics, transport=transport)
        self._http_fetch = HttpFetchService(timeout=media.download_timeout, transport=transport)

    def get_telematics(self) -> TelematicsService:
        return self._telematics

    def get_http_fetch(self) -> HttpFetchService:
        return self._http_fetch

    async def start_all(self) -> None:
        await self._telematics.start()
        await self._http_fetch.start()
        logger.info("all_services_started")

    async def stop_all(self) -> None:
        """Stop all services gracefully."""
        await self._http_fetch.stop()
        await self._telematics.stop()
        logger.info("all_services_stopped")

    async def health_check_all(self) -> dict[str, bool]:
        """Check health of all services."""
        return {
            "telematics": await self._telematics.health_check(),
            "http_fetch": await self._http_fetch.health_check(),
        }
