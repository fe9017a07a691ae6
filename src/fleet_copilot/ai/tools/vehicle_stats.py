"""Live vehicle statistics tool (location, engine state, fuel)."""

from __future__ import annotations

from typing import Any

from fleet_copilot.ai.tools.base import VEHICLE_IDS_PROPERTY, VEHICLE_NAMES_PROPERTY, VehicleTool, error_result
from fleet_copilot.ai.tools.cards import LocationCard, VehicleStatsCard, maps_link
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.services.telematics import TelematicsService

DEFAULT_STAT_TYPES = ("gps", "engineStates", "fuelPercents")


def _stat_value(entry: dict[str, Any], key: str) -> dict[str, Any]:
    value = entry.get(key)
    # The stats endpoint returns either the latest reading or a one-element history
    if isinstance(value, list):
        return value[-1] if value else {}
    return value or {}


class GetVehicleStatsTool(VehicleTool):
    def __init__(self, resolver: EntityResolver, telematics: TelematicsService):
        super().__init__(resolver)
        self._telematics = telematics

    @property
    def name(self) -> str:
        return "GetVehicleStats"

    @property
    def description(self) -> str:
        return (
            "Get the latest statistics of one or more vehicles: GPS location with address "
            "and speed, engine state (On/Off/Idle) and fuel level. Ask only for 'gps' when "
            "the user wants to know where a vehicle is."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "vehicle_ids": VEHICLE_IDS_PROPERTY,
                "vehicle_names": VEHICLE_NAMES_PROPERTY,
                "stat_types": {
                    "type": "string",
                    "description": (
                        "Comma-separated stat types: gps, engineStates, fuelPercents "
                        "(default: all three)"
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

        raw_types = kwargs.get("stat_types") or ",".join(DEFAULT_STAT_TYPES)
        types = [t.strip() for t in raw_types.split(",") if t.strip()] or list(DEFAULT_STAT_TYPES)
        location_only = types == ["gps"]

        entries = await self._telematics.get_vehicle_stats(resolution.vehicle_ids, types)

        vehicles: list[dict[str, Any]] = []
        for entry in entries:
            vehicle_id = str(entry.get("id") or "unknown")
            vehicle_name = entry.get("name") or resolution.names.get(vehicle_id) or "Unknown vehicle"
            stats: dict[str, Any] = {}

            gps = _stat_value(entry, "gps")
            if gps:
                address = (gps.get("reverseGeo") or {}).get("formattedLocation")
                stats["location"] = {
                    "latitude": gps.get("latitude"),
                    "longitude": gps.get("longitude"),
                    "address": address,
                    "speed_mph": gps.get("speedMilesPerHour"),
                    "heading": gps.get("headingDegrees"),
                    "time": gps.get("time"),
                    "maps_link": maps_link(gps.get("latitude"), gps.get("longitude")),
                }
            engine = _stat_value(entry, "engineState")
            if engine:
                stats["engine_state"] = {"value": engine.get("value"), "time": engine.get("time")}
            fuel = _stat_value(entry, "fuelPercent")
            if fuel:
                stats["fuel_percent"] = {"value": fuel.get("value"), "time": fuel.get("time")}

            if location_only and gps:
                card = LocationCard(
                    vehicle_id=vehicle_id,
                    vehicle_name=vehicle_name,
                    latitude=gps.get("latitude"),
                    longitude=gps.get("longitude"),
                    address=stats["location"]["address"],
                    speed_mph=gps.get("speedMilesPerHour"),
                    heading=gps.get("headingDegrees"),
                    timestamp=gps.get("time"),
                )
            else:
                card = VehicleStatsCard(
                    vehicle_id=vehicle_id,
                    vehicle_name=vehicle_name,
                    stats={
                        "location": stats.get("location"),
                        "engineState": (stats.get("engine_state") or {}).get("value"),
                        "fuelPercent": (stats.get("fuel_percent") or {}).get("value"),
                    },
                )

            vehicles.append(
                {
                    "vehicle_id": vehicle_id,
                    "vehicle_name": vehicle_name,
                    **stats,
                    "_cardData": card.to_payload(),
                }
            )

        result: dict[str, Any] = {
            "total_vehicles": len(vehicles),
            "stat_types": types,
            "vehicles": vehicles,
        }
        if not vehicles:
            result["message"] = "The telematics API returned no statistics for the requested vehicles."
        else:
            card_kind = "location" if location_only else "vehicleStats"
            result["_hint"] = f"To show a vehicle, use a :::{card_kind} block with its _cardData."
        return self.attach_unresolved(result, resolution)
