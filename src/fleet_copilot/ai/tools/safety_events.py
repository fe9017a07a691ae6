"""Safety events tool (harsh braking, speeding, distraction, ...)."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any

from fleet_copilot.ai.tools.base import VEHICLE_IDS_PROPERTY, VEHICLE_NAMES_PROPERTY, VehicleTool
from fleet_copilot.ai.tools.cards import SafetyEventsCard, format_location
from fleet_copilot.fleet.resolver import EntityResolver
from fleet_copilot.fleet.retry_window import RetryWindowFetcher
from fleet_copilot.services.telematics import TelematicsService

MAX_VEHICLES = 5
MAX_EVENTS_PER_VEHICLE = 5
MAX_HOURS_BACK = 12
MAX_LIMIT = 10
INCREMENT_MINUTES = 60

EVENT_TYPE_DESCRIPTIONS = {
    "harshAcceleration": "Harsh acceleration",
    "harshBraking": "Harsh braking",
    "harshTurn": "Harsh turn",
    "crash": "Crash",
    "speeding": "Speeding",
    "distraction": "Driver distraction",
    "genericDistraction": "Driver distraction",
    "drowsiness": "Drowsiness",
    "obstructedCamera": "Obstructed camera",
    "nearCollision": "Near collision",
    "followingDistance": "Unsafe following distance",
    "laneViolation": "Lane violation",
    "rollingStop": "Rolling stop",
    "cellPhoneUsage": "Cell phone usage",
    "seatbeltViolation": "No seatbelt",
    "smoking": "Smoking",
    "foodDrink": "Eating or drinking",
    "Acceleration": "Harsh acceleration",
    "Inattentive Driving": "Inattentive driving",
}

EVENT_STATE_DESCRIPTIONS = {
    "needsReview": "Needs review",
    "needsCoaching": "Needs coaching",
    "dismissed": "Dismissed",
    "coached": "Coached",
}


def event_type(event: dict[str, Any]) -> str:
    labels = event.get("behaviorLabels")
    if isinstance(labels, list) and labels:
        return labels[0].get("label") or labels[0].get("name") or "unknown"
    label = event.get("behaviorLabel")
    if isinstance(label, dict):
        return label.get("label") or label.get("name") or "unknown"
    return event.get("type") or "unknown"


def describe_type(kind: str) -> str:
    return EVENT_TYPE_DESCRIPTIONS.get(kind, kind)


def describe_state(state: str) -> str:
    return EVENT_STATE_DESCRIPTIONS.get(state, state)


def _format_event(event: dict[str, Any]) -> dict[str, Any]:
    state = event.get("eventState")
    formatted: dict[str, Any] = {
        "type_description": describe_type(event_type(event)),
        "event_state_description": describe_state(state) if state else None,
        "timestamp": event.get("createdAtTime"),
    }
    if isinstance(event.get("location"), dict):
        location = format_location(event["location"])
        location.pop("point_of_interest", None)
        formatted["location"] = location
    driver_name = (event.get("driver") or {}).get("name")
    if driver_name:
        formatted["driver"] = {"name": driver_name}
    media = event.get("media") or []
    if media and media[0].get("url"):
        formatted["video_url"] = media[0]["url"]
    return formatted


class GetSafetyEventsTool(VehicleTool):
    def __init__(self, resolver: EntityResolver, telematics: TelematicsService, fetcher: RetryWindowFetcher):
        super().__init__(resolver)
        self._telematics = telematics
        self._fetcher = fetcher

    @property
    def name(self) -> str:
        return "GetSafetyEvents"

    @property
    def description(self) -> str:
        return (
            "Get the latest safety events of the fleet: harsh braking, harsh acceleration, "
            "speeding, driver distraction, crashes, cell phone usage and more. Includes the "
            "vehicle, driver, location with address, camera video link and review state."
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
                    "description": f"Hours back from now to search (default: 1, max: {MAX_HOURS_BACK})",
                },
                "limit": {
                    "type": "integer",
                    "description": f"Maximum number of events (default: 5, max: {MAX_LIMIT})",
                },
                "event_state": {
                    "type": "string",
                    "description": "Filter by state: needsReview, needsCoaching, dismissed, coached",
                },
            },
        }

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        resolution, early = await self.resolve_vehicles(kwargs.get("vehicle_names"), kwargs.get("vehicle_ids"))
        if early is not None:
            return early

        vehicle_ids = resolution.vehicle_ids[:MAX_VEHICLES]
        hours_back = max(1, min(MAX_HOURS_BACK, int(kwargs.get("hours_back") or 1)))
        limit = max(1, min(MAX_LIMIT, int(kwargs.get("limit") or 5)))
        raw_state = kwargs.get("event_state") or ""
        states = [s.strip() for s in raw_state.split(",") if s.strip()]

        async def fetch_window(start: datetime, end: datetime) -> list[dict[str, Any]]:
            return await self._telematics.get_safety_events(vehicle_ids, start, end, states)

        window = await self._fetcher.fetch(
            fetch_window,
            increment_minutes=INCREMENT_MINUTES,
            max_range_minutes=hours_back * 60,
            ceiling=MAX_HOURS_BACK,
        )
        meta = window.meta()
        events = window.data[:limit]

        result: dict[str, Any] = {
            "total_events": len(events),
            "search_range_hours": round(window.range_minutes / 60, 1),
            "period": {"start": meta["startTime"], "end": meta["endTime"]},
            "events": [],
        }
        if not events:
            result["message"] = "No safety events were found in the requested period."
            return self.attach_unresolved(result, resolution)

        by_vehicle: dict[str, dict[str, Any]] = {}
        for event in events:
            asset = event.get("asset") or event.get("vehicle") or {}
            vehicle_id = str(asset.get("id") or "unknown")
            group = by_vehicle.setdefault(
                vehicle_id,
                {
                    "vehicle_id": vehicle_id,
                    "vehicle_name": asset.get("name") or resolution.names.get(vehicle_id) or "Unnamed",
                    "events": [],
                },
            )
            if len(group["events"]) < MAX_EVENTS_PER_VEHICLE:
                group["events"].append(_format_event(event))

        result["events"] = list(by_vehicle.values())
        result["summary_by_type"] = dict(Counter(describe_type(event_type(e)) for e in events))
        result["summary_by_state"] = dict(Counter(describe_state(e.get("eventState") or "unknown") for e in events))
        result["_cardData"] = SafetyEventsCard(
            total_events=result["total_events"],
            search_range_hours=result["search_range_hours"],
            period_start=meta["startTime"],
            period_end=meta["endTime"],
            summary_by_type=result["summary_by_type"],
            summary_by_state=result["summary_by_state"],
            events=result["events"],
        ).to_payload()
        return self.attach_unresolved(result, resolution)
