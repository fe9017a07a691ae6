"""Tag (vehicle group) directory tool."""

from __future__ import annotations

from typing import Any

from fleet_copilot.ai.tools.base import Tool
from fleet_copilot.fleet.tag_sync import TagSyncCache

DEFAULT_LIMIT = 50
VEHICLE_PREVIEW = 10


class GetTagsTool(Tool):
    def __init__(self, tag_sync: TagSyncCache):
        self._tag_sync = tag_sync
        self._tags = tag_sync.repository

    @property
    def name(self) -> str:
        return "GetTags"

    @property
    def description(self) -> str:
        return (
            "Get the organization's tags. Tags group vehicles, drivers and other resources. "
            "Returns each tag's name, parent tag (tags can be nested) and associated "
            "resources. Data is synchronized with the telematics API automatically."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "force_sync": {
                    "type": "boolean",
                    "description": "Synchronize with the telematics API even if the local copy is fresh",
                },
                "search": {
                    "type": "string",
                    "description": "Only tags whose name contains this text",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of tags to list (default: {DEFAULT_LIMIT})",
                },
                "include_hierarchy": {
                    "type": "boolean",
                    "description": "Include parent, children and the full hierarchy path of each tag",
                },
                "with_vehicles": {
                    "type": "boolean",
                    "description": "Only tags that have vehicles associated",
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        force_sync = bool(kwargs.get("force_sync", False))
        search = kwargs.get("search") or None
        limit = max(1, int(kwargs.get("limit") or DEFAULT_LIMIT))
        include_hierarchy = bool(kwargs.get("include_hierarchy", False))
        with_vehicles = bool(kwargs.get("with_vehicles", False))

        synced = await self._tag_sync.sync_if_due(force=force_sync)
        if synced is not None:
            sync_status = synced.describe()
        else:
            sync_status = f"Data from local cache (last sync: {await self._tag_sync.last_sync_description()})"

        total = await self._tags.count(search=search, with_vehicles=with_vehicles)
        tags = await self._tags.search(search=search, with_vehicles=with_vehicles, limit=limit)

        listed: list[dict[str, Any]] = []
        for tag in tags:
            entry: dict[str, Any] = {
                "id": tag.external_id,
                "name": tag.name,
                "parent_tag_id": tag.parent_external_id,
                "vehicle_count": tag.vehicle_count,
                "driver_count": tag.driver_count,
                "asset_count": tag.asset_count,
            }
            if tag.vehicles:
                entry["vehicles"] = [
                    {"id": v.get("id"), "name": v.get("name")} for v in tag.vehicles[:VEHICLE_PREVIEW]
                ]
                if tag.vehicle_count > VEHICLE_PREVIEW:
                    entry["vehicles_note"] = f"Showing {VEHICLE_PREVIEW} of {tag.vehicle_count} vehicles"

            if include_hierarchy:
                if tag.parent_external_id:
                    parent = await self._tags.get(tag.parent_external_id)
                    if parent is not None:
                        entry["parent"] = {"id": parent.external_id, "name": parent.name}
                children = await self._tags.children(tag.external_id)
                if children:
                    entry["children"] = [{"id": c.external_id, "name": c.name} for c in children]
                entry["hierarchy_path"] = await self._tag_sync.hierarchy_path(tag)

            listed.append(entry)

        result: dict[str, Any] = {
            "total_tags": total,
            "sync_status": sync_status,
            "showing": len(listed),
            "limit": limit,
            "tags": listed,
        }
        if total > limit:
            result["note"] = (
                f"Showing {limit} of {total} tags. Use 'limit' to see more or 'search' to filter."
            )
        result["summary"] = await self._tags.summary()
        return result
