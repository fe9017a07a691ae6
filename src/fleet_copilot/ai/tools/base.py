"""Abstract tool interface for Claude tool use."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, Optional

from fleet_copilot.errors import FleetCopilotError, VehicleNotFoundError
from fleet_copilot.fleet.resolver import EntityResolver, Resolution
from fleet_copilot.log import get_logger

logger = get_logger(__name__)

CLARIFICATION_MESSAGE = "Several vehicles match your search. Please specify which one you mean:"

VEHICLE_IDS_PROPERTY = {
    "type": "string",
    "description": 'Comma-separated vehicle IDs. Example: "123456789,987654321"',
}
VEHICLE_NAMES_PROPERTY = {
    "type": "string",
    "description": (
        "Comma-separated vehicle names as the user wrote them. They are looked up in the "
        'local vehicle directory, partial names and unit numbers work. Example: "Truck 1, T-606"'
    ),
}


def clarification(suggestions: dict[str, list[dict[str, str]]]) -> dict[str, Any]:
    return {
        "error": False,
        "needs_clarification": True,
        "message": CLARIFICATION_MESSAGE,
        "suggestions": suggestions,
    }


def error_result(message: str) -> dict[str, Any]:
    return {"error": True, "message": message}


class Tool(ABC):
    """Base class for all Claude-callable tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the Anthropic API."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description for Claude."""
        ...

    @property
    @abstractmethod
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        ...

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        """Run the tool and return a JSON-serializable result for Claude."""
        ...

    async def invoke(self, arguments: dict[str, Any]) -> str:
        """Run the tool and serialize its result; never raises."""
        try:
            result = await self.execute(**arguments)
        except FleetCopilotError as e:
            logger.warning("tool_failed", tool=self.name, error=str(e))
            result = error_result(f"{self.name} failed: {e}")
        except Exception as e:
            logger.exception("tool_execution_error", tool=self.name)
            result = error_result(f"{self.name} failed: {e}")
        return json.dumps(result, ensure_ascii=False, default=str)

    def to_api_dict(self) -> dict[str, Any]:
        """Serialize to the Anthropic API tool definition format."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }


class VehicleTool(Tool):
    """Tool that accepts ``vehicle_names`` / ``vehicle_ids`` and resolves them."""

    def __init__(self, resolver: EntityResolver):
        self._resolver = resolver

    async def resolve_vehicles(
        self,
        vehicle_names: Optional[str],
        vehicle_ids: Optional[str],
    ) -> tuple[Resolution, Optional[dict[str, Any]]]:
        """Resolve the vehicle arguments.

        The second element is a ready-made tool result (clarification or
        not-found) when no vehicle could be selected confidently.
        """
        resolution = await self._resolver.resolve(vehicle_names, vehicle_ids)
        if vehicle_names and not resolution.vehicle_ids:
            if resolution.suggestions:
                return resolution, clarification(resolution.suggestions)
            return resolution, error_result(str(VehicleNotFoundError(vehicle_names)))
        return resolution, None

    @staticmethod
    def attach_unresolved(result: dict[str, Any], resolution: Resolution) -> dict[str, Any]:
        if resolution.suggestions:
            result["unresolved_suggestions"] = resolution.suggestions
        return result
