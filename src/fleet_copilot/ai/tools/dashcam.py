"""Dashcam media tool: finds the latest images and keeps a local copy."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fleet_copilot.ai.tools.base import VEHICLE_IDS_PROPERTY, VEHICLE_NAMES_PROPERTY, VehicleTool, error_result
from fleet_copilot.ai.tools.cards import DashcamMediaCard
from fleet_copilot.fleet.media_store import MEDIA_TYPE_DESCRIPTIONS, MediaItem, MediaPersistenceStore, PersistedMedia
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.fleet.retry_window import (
    MEDIA_INCREMENT_MINUTES,
    MEDIA_MAX_RANGE_MINUTES,
    MEDIA_MAX_STEPS,
    RetryWindowFetcher,
)
from fleet_copilot.services.telematics import TelematicsService
from fleet_copilot.storage.vehicle_repo import VehicleRepository

DEFAULT_MEDIA_TYPES = ("dashcamRoadFacing", "dashcamDriverFacing")
DEFAULT_SEARCH_MINUTES = 60


def _parse_media_types(raw: str | None) -> list[str]:
    if not raw:
        return list(DEFAULT_MEDIA_TYPES)
    types = [t.strip() for t in raw.split(",") if t.strip() in MEDIA_TYPE_DESCRIPTIONS]
    return types or list(DEFAULT_MEDIA_TYPES)


def _sort_key(media: PersistedMedia) -> float:
    if not media.timestamp:
        return 0.0
    try:
        return datetime.fromisoformat(media.timestamp).timestamp()
    except ValueError:
        return 0.0


class GetDashcamMediaTool(VehicleTool):
    def __init__(
        self,
        resolver: EntityResolver,
        vehicles: VehicleRepository,
        telematics: TelematicsService,
        fetcher: RetryWindowFetcher,
        media_store: MediaPersistenceStore,
    ):
        super().__init__(resolver)
        self._vehicles = vehicles
        self._telematics = telematics
        self._fetcher = fetcher
        self._media_store = media_store

    @property
    def name(self) -> str:
        return "GetDashcamMedia"

    @property
    def description(self) -> str:
        return (
            "Get the most recent dashcam images and videos of one or more vehicles, from the "
            "road-facing (dashcamRoadFacing) and driver-facing (dashcamDriverFacing) cameras. "
            "Automatically searches further back in time until media is found."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "vehicle_ids": VEHICLE_IDS_PROPERTY,
                "vehicle_names": VEHICLE_NAMES_PROPERTY,
                "media_types": {
                    "type": "string",
                    "description": (
                        "Comma-separated media types: dashcamRoadFacing, dashcamDriverFacing, "
                        "photo, video. Defaults to both dashcam cameras."
                    ),
                },
                "max_search_minutes": {
                    "type": "integer",
                    "description": (
                        f"How far back to search, in minutes (default: {DEFAULT_SEARCH_MINUTES}, "
                        f"max: {MEDIA_MAX_RANGE_MINUTES})"
                    ),
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        resolution, early = await self.resolve_vehicles(kwargs.get("vehicle_names"), kwargs.get("vehicle_ids"))
        if early is not None:
            return early
        if not resolution.vehicle_ids:
            return error_result("Specify at least one vehicle by name or ID.")

        types = _parse_media_types(kwargs.get("media_types"))
        max_minutes = int(kwargs.get("max_search_minutes") or DEFAULT_SEARCH_MINUTES)
        max_minutes = max(1, min(max_minutes, MEDIA_MAX_RANGE_MINUTES))
        vehicle_ids = resolution.vehicle_ids

        async def fetch_window(start: datetime, end: datetime) -> list[dict[str, Any]]:
            return await self._telematics.get_dashcam_media(vehicle_ids, types, start, end)

        window = await self._fetcher.fetch(
            fetch_window,
            increment_minutes=MEDIA_INCREMENT_MINUTES,
            max_range_minutes=max_minutes,
            ceiling=MEDIA_MAX_STEPS,
        )
        meta = window.meta()

        result: dict[str, Any] = {
            "found": window.found,
            "search_info": {
                "attempts": meta["attempts"],
                "range_minutes": meta["searchRangeMinutes"],
                "start_time": meta["startTime"],
                "end_time": meta["endTime"],
            },
            "total_media": len(window.data),
            "media": [],
        }
        if not window.data:
            result["message"] = (
                "No dashcam images or videos were found in the searched time range. The cameras "
                "may not have captured media recently or the vehicles may have no dashcam installed."
            )
            return self.attach_unresolved(result, resolution)

        items = [item for item in (MediaItem.from_api(raw) for raw in window.data) if item is not None]
        persisted = await self._media_store.persist_many(items)

        grouped: dict[str, list[PersistedMedia]] = {}
        for item, media in zip(items, persisted):
            grouped.setdefault(item.vehicle_id, []).append(media)

        for vehicle_id, media_list in grouped.items():
            media_list.sort(key=_sort_key, reverse=True)
            vehicle_name = resolution.names.get(vehicle_id)
            if not vehicle_name:
                vehicle = await self._vehicles.get_by_id(vehicle_id)
                vehicle_name = vehicle.name if vehicle else "Unknown vehicle"

            by_type: dict[str, list[dict[str, Any]]] = {}
            for media in media_list:
                by_type.setdefault(media.type, []).append(media.to_dict())

            card = DashcamMediaCard(
                vehicle_id=vehicle_id,
                vehicle_name=vehicle_name,
                images=[
                    {
                        "id": media.id,
                        "type": media.type,
                        "typeDescription": media.type_description,
                        "timestamp": media.timestamp,
                        "url": media.url,
                        "isPersisted": media.is_persisted,
                    }
                    for media in media_list
                ],
            )
            result["media"].append(
                {
                    "vehicleId": vehicle_id,
                    "vehicleName": vehicle_name,
                    "totalItems": len(media_list),
                    "byType": by_type,
                    "_cardData": card.to_payload(),
                }
            )

        result["_hint"] = "To show the dashcam images, use a :::dashcamMedia block with the _cardData."
        return self.attach_unresolved(result, resolution)
