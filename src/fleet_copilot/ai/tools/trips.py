"""Recent trips tool."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Optional

from fleet_copilot.ai.tools.base import VEHICLE_IDS_PROPERTY, VEHICLE_NAMES_PROPERTY, VehicleTool, error_result
from fleet_copilot.ai.tools.cards import TripsCard, format_location
from fleet_copilot.core.clock import Clock, SystemClock, isoformat_z
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.services.telematics import TelematicsService
from fleet_copilot.storage.vehicle_repo import VehicleRepository

MAX_VEHICLES = 5
MAX_TRIPS_PER_VEHICLE = 5
DEFAULT_HOURS_BACK = 24
MAX_HOURS_BACK = 72
MAX_LIMIT = 10

COMPLETION_STATUS_DESCRIPTIONS = {
    "completed": "Completed",
    "inProgress": "In progress",
    "unknown": "Unknown",
}

ASSET_TYPE_DESCRIPTIONS = {
    "vehicle": "Vehicle",
    "trailer": "Trailer",
    "equipment": "Equipment",
}


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours} h"
    return f"{hours} h {remainder} min"


def _format_trip(trip: dict[str, Any]) -> dict[str, Any]:
    status = trip.get("completionStatus") or "unknown"
    formatted: dict[str, Any] = {
        "status_description": COMPLETION_STATUS_DESCRIPTIONS.get(status, status),
        "trip_start_time": trip.get("tripStartTime"),
        "trip_end_time": trip.get("tripEndTime"),
        "start_location": None,
        "end_location": None,
    }
    if trip.get("tripStartTime") and trip.get("tripEndTime"):
        try:
            start = datetime.fromisoformat(trip["tripStartTime"])
            end = datetime.fromisoformat(trip["tripEndTime"])
        except ValueError:
            pass
        else:
            formatted["duration_formatted"] = format_duration(int((end - start).total_seconds() // 60))
    if isinstance(trip.get("startLocation"), dict):
        formatted["start_location"] = format_location(trip["startLocation"])
    if isinstance(trip.get("endLocation"), dict):
        formatted["end_location"] = format_location(trip["endLocation"])
    return formatted


class GetTripsTool(VehicleTool):
    def __init__(
        self,
        resolver: EntityResolver,
        vehicles: VehicleRepository,
        telematics: TelematicsService,
        clock: Optional[Clock] = None,
    ):
        super().__init__(resolver)
        self._vehicles = vehicles
        self._telematics = telematics
        self._clock = clock or SystemClock()

    @property
    def name(self) -> str:
        return "GetTrips"

    @property
    def description(self) -> str:
        return (
            "Get the recent trips of fleet vehicles: start and end location, trip times, "
            "duration and completion status. Useful for activity reports and routes driven. "
            "Without vehicles, the first 5 vehicles of the fleet are used."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "vehicle_ids": {**VEHICLE_IDS_PROPERTY, "description": "Comma-separated vehicle IDs (max 5)"},
                "vehicle_names": {**VEHICLE_NAMES_PROPERTY, "description": "Comma-separated vehicle names (max 5)"},
                "hours_back": {
                    "type": "integer",
                    "description": f"Hours back from now (default: {DEFAULT_HOURS_BACK}, max: {MAX_HOURS_BACK})",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of trips (default: 5, max: {MAX_LIMIT})",
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        resolution, early = await self.resolve_vehicles(kwargs.get("vehicle_names"), kwargs.get("vehicle_ids"))
        if early is not None:
            return early

        if not resolution.vehicle_ids:
            for vehicle in await self._vehicles.list_vehicles(limit=MAX_VEHICLES):
                resolution.add(vehicle.id, vehicle.name)
            if not resolution.vehicle_ids:
                return error_result("There are no vehicles registered in the system.")

        vehicle_ids = resolution.vehicle_ids[:MAX_VEHICLES]
        hours_back = max(1, min(MAX_HOURS_BACK, int(kwargs.get("hours_back") or DEFAULT_HOURS_BACK)))
        limit = max(1, min(MAX_LIMIT, int(kwargs.get("limit") or 5)))

        end = self._clock.now()
        start = end - timedelta(hours=hours_back)
        trips = await self._telematics.get_trips(vehicle_ids, start, end, limit)

        result: dict[str, Any] = {
            "total_trips": len(trips),
            "search_range_hours": hours_back,
            "period": {"start": isoformat_z(start), "end": isoformat_z(end)},
            "trips": [],
        }
        if not trips:
            result["message"] = "No trips were found in the requested period."
            return self.attach_unresolved(result, resolution)

        by_vehicle: dict[str, dict[str, Any]] = {}
        for trip in trips:
            asset = trip.get("asset") or {}
            vehicle_id = str(asset.get("id") or "unknown")
            asset_type = asset.get("type") or "vehicle"
            group = by_vehicle.setdefault(
                vehicle_id,
                {
                    "vehicle_id": vehicle_id,
                    "vehicle_name": asset.get("name") or resolution.names.get(vehicle_id) or "Unnamed",
                    "vehicle_type_description": ASSET_TYPE_DESCRIPTIONS.get(asset_type, asset_type),
                    "trips": [],
                },
            )
            if len(group["trips"]) < MAX_TRIPS_PER_VEHICLE:
                group["trips"].append(_format_trip(trip))

        for group in by_vehicle.values():
            group["trip_count"] = len(group["trips"])

        result["trips"] = list(by_vehicle.values())
        result["summary_by_status"] = dict(
            Counter(
                COMPLETION_STATUS_DESCRIPTIONS.get(t.get("completionStatus") or "unknown", t.get("completionStatus"))
                for t in trips
            )
        )
        result["summary_by_vehicle"] = {g["vehicle_name"]: g["trip_count"] for g in by_vehicle.values()}
        result["_cardData"] = TripsCard(
            total_trips=result["total_trips"],
            search_range_hours=hours_back,
            period_start=result["period"]["start"],
            period_end=result["period"]["end"],
            summary_by_status=result["summary_by_status"],
            summary_by_vehicle=result["summary_by_vehicle"],
            trips=result["trips"],
        ).to_payload()
        return self.attach_unresolved(result, resolution)
