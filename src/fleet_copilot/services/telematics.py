"""Telematics REST API client (Samsara-compatible endpoints)."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

import httpx

from fleet_copilot.config import TelematicsConfig
from fleet_copilot.core.clock import isoformat_z
from fleet_copilot.errors import TelematicsError
from fleet_copilot.log import get_logger
from fleet_copilot.services.base import Service

logger = get_logger(__name__)

MAX_PAGES = 20


class TelematicsService(Service):
    """Thin async wrapper over the fleet API.

    Every method performs plain GETs and raises :class:`TelematicsError` for
    transport failures and non-2xx responses. Nothing is retried here; the
    only retrying in the system is the time-window stepping done by callers.
    """

    def __init__(self, config: TelematicsConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def service_name(self) -> str:
        return "telematics"

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers={
                "Authorization": f"Bearer {self._config.api_token}",
                "Accept": "application/json",
            },
            timeout=self._config.timeout,
            transport=self._transport,
        )
        logger.info("telematics_client_started", base_url=self._config.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("telematics_client_stopped")

    async def health_check(self) -> bool:
        return self._client is not None and not self._client.is_closed

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Telematics service not started. Call start() first.")
        return self._client

    async def get_vehicle_stats(self, vehicle_ids: Sequence[str], types: Sequence[str]) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"types": ",".join(types)}
        if vehicle_ids:
            params["vehicleIds"] = ",".join(vehicle_ids)
        return await self._get_paginated("/fleet/vehicles/stats", params)

    async def get_dashcam_media(
        self,
        vehicle_ids: Sequence[str],
        inputs: Sequence[str],
        start: datetime,
        end: datetime,
    ) -> list[dict[str, Any]]:
        params = {
            "vehicleIds": ",".join(vehicle_ids),
            "inputs": ",".join(inputs),
            "startTime": isoformat_z(start),
            "endTime": isoformat_z(end),
        }
        payload = await self._get("/cameras/media", params)
        data = payload.get("data") or {}
        # The media endpoint nests the list one level deeper than the others
        if isinstance(data, dict):
            return list(data.get("media") or [])
        return list(data)

    async def get_safety_events(
        self,
        vehicle_ids: Sequence[str],
        start: datetime,
        end: datetime,
        event_states: Sequence[str] = (),
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {
            "startTime": isoformat_z(start),
            "endTime": isoformat_z(end),
        }
        if vehicle_ids:
            params["vehicleIds"] = ",".join(vehicle_ids)
        if event_states:
            params["eventStates"] = ",".join(event_states)
        events = await self._get_paginated("/safety-events/stream", params)
        # Stream endpoint returns oldest first
        events.sort(key=lambda e: e.get("createdAtTime") or "", reverse=True)
        return events

    async def get_trips(
        self,
        vehicle_ids: Sequence[str],
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[dict[str, Any]]:
        params = {
            "vehicleIds": ",".join(vehicle_ids),
            "startTime": isoformat_z(start),
            "endTime": isoformat_z(end),
            "limit": limit,
        }
        payload = await self._get("/fleet/trips", params)
        return list(payload.get("data") or [])

    async def get_tags(self) -> list[dict[str, Any]]:
        return await self._get_paginated("/tags", {})

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self.client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.warning("telematics_transport_error", path=path, error=str(e))
            raise TelematicsError(f"Telematics API unreachable: {e}") from e

        if response.status_code >= 400:
            logger.warning("telematics_http_error", path=path, status=response.status_code)
            raise TelematicsError(
                f"Telematics API returned HTTP {response.status_code} for {path}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise TelematicsError(f"Telematics API returned invalid JSON for {path}") from e

    async def _get_paginated(self, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        cursor: Optional[str] = None
        for _ in range(MAX_PAGES):
            page_params = dict(params)
            if cursor:
                page_params["after"] = cursor
            payload = await self._get(path, page_params)
            items.extend(payload.get("data") or [])
            pagination = payload.get("pagination") or {}
            cursor = pagination.get("endCursor")
            if not pagination.get("hasNextPage") or not cursor:
                break
        else:
            logger.warning("telematics_pagination_truncated", path=path, pages=MAX_PAGES)
        return items
