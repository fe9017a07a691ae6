"""Vehicle directory listing tool."""

from __future__ import annotations

from typing import Any, Optional

from fleet_copilot.ai.tools.base import Tool, error_result
from fleet_copilot.storage.tag_repo import TagRepository
from fleet_copilot.storage.vehicle_repo import VehicleRepository

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


class GetVehiclesTool(Tool):
    """Lists vehicles from the local directory, optionally scoped to tags."""

    def __init__(self, vehicles: VehicleRepository, tags: TagRepository):
        self._vehicles = vehicles
        self._tags = tags

    @property
    def name(self) -> str:
        return "GetVehicles"

    @property
    def description(self) -> str:
        return (
            "List the vehicles registered in the fleet, with make, model, year, license "
            "plate and VIN. Filter by a name or plate search, or by tag (group). "
            "Use summary_only for counts when the user only asks how many vehicles exist."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "search": {
                    "type": "string",
                    "description": "Text to look for in the vehicle name or license plate",
                },
                "tag_name": {
                    "type": "string",
                    "description": "Only vehicles belonging to tags with this name",
                },
                "tag_ids": {
                    "type": "string",
                    "description": "Comma-separated tag IDs; only vehicles in these tags",
                },
                "summary_only": {
                    "type": "boolean",
                    "description": "Return only counts, no vehicle list (default: false)",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Maximum vehicles to list (default: {DEFAULT_LIMIT}, max: {MAX_LIMIT})",
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        search: Optional[str] = kwargs.get("search") or None
        tag_name: Optional[str] = kwargs.get("tag_name") or None
        tag_ids: Optional[str] = kwargs.get("tag_ids") or None
        summary_only = bool(kwargs.get("summary_only", False))
        limit = max(1, min(MAX_LIMIT, int(kwargs.get("limit") or DEFAULT_LIMIT)))

        ids: Optional[list[str]] = None
        tag_names: list[str] = []
        if tag_name or tag_ids:
            tags = []
            if tag_name:
                tags.extend(await self._tags.find_by_name(tag_name))
            if tag_ids:
                for tag_id in (part.strip() for part in tag_ids.split(",")):
                    tag = await self._tags.get(tag_id) if tag_id else None
                    if tag is not None:
                        tags.append(tag)
            if not tags:
                return error_result(f"No tags found matching: {tag_name or tag_ids}")
            ids = []
            for tag in tags:
                tag_names.append(tag.name)
                for vehicle in tag.vehicles:
                    vehicle_id = str(vehicle.get("id") or "")
                    if vehicle_id and vehicle_id not in ids:
                        ids.append(vehicle_id)

        total = await self._vehicles.count(search=search, ids=ids)
        result: dict[str, Any] = {"total_vehicles": total}
        if tag_names:
            result["tags"] = tag_names
        if summary_only:
            return result

        vehicles = await self._vehicles.list_vehicles(search=search, ids=ids, limit=limit)
        result["showing"] = len(vehicles)
        result["vehicles"] = [
            {
                "id": v.id,
                "name": v.name,
                "make": v.make,
                "model": v.model,
                "year": v.year,
                "license_plate": v.license_plate,
                "vin": v.vin,
            }
            for v in vehicles
        ]
        if total > len(vehicles):
            result["note"] = f"Showing {len(vehicles)} of {total} vehicles. Use 'search' or 'limit' to narrow down."
        return result
