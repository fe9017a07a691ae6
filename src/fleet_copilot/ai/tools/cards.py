"""Structured card payloads rendered by the chat frontend.

Each card serializes to ``{kind: {...}}`` and travels inside a tool result
under ``_cardData``; the model copies it into a ``:::kind`` block.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional


@dataclass
class Card(ABC):
    kind: ClassVar[str] = ""

    @abstractmethod
    def body(self) -> dict[str, Any]:
        ...

    def to_payload(self) -> dict[str, Any]:
        return {self.kind: self.body()}


@dataclass
class LocationCard(Card):
    kind: ClassVar[str] = "location"

    vehicle_id: str
    vehicle_name: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    speed_mph: Optional[float] = None
    heading: Optional[float] = None
    timestamp: Optional[str] = None

    def body(self) -> dict[str, Any]:
        return {
            "vehicleId": self.vehicle_id,
            "vehicleName": self.vehicle_name,
            "lat": self.latitude,
            "lng": self.longitude,
            "locationName": self.address,
            "speedMph": self.speed_mph,
            "heading": self.heading,
            "timestamp": self.timestamp,
            "mapsLink": maps_link(self.latitude, self.longitude),
        }


@dataclass
class VehicleStatsCard(Card):
    kind: ClassVar[str] = "vehicleStats"

    vehicle_id: str
    vehicle_name: str
    stats: dict[str, Any] = field(default_factory=dict)

    def body(self) -> dict[str, Any]:
        return {"vehicleId": self.vehicle_id, "vehicleName": self.vehicle_name, **self.stats}


@dataclass
class DashcamMediaCard(Card):
    kind: ClassVar[str] = "dashcamMedia"

    vehicle_id: str
    vehicle_name: str
    images: list[dict[str, Any]] = field(default_factory=list)

    def body(self) -> dict[str, Any]:
        return {
            "vehicleId": self.vehicle_id,
            "vehicleName": self.vehicle_name,
            "totalImages": len(self.images),
            "images": self.images,
        }


@dataclass
class SafetyEventsCard(Card):
    kind: ClassVar[str] = "safetyEvents"

    total_events: int
    search_range_hours: float
    period_start: Optional[str]
    period_end: Optional[str]
    summary_by_type: dict[str, int] = field(default_factory=dict)
    summary_by_state: dict[str, int] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)

    def body(self) -> dict[str, Any]:
        return {
            "totalEvents": self.total_events,
            "searchRangeHours": self.search_range_hours,
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "summaryByType": self.summary_by_type,
            "summaryByState": self.summary_by_state,
            "events": self.events,
        }


@dataclass
class TripsCard(Card):
    kind: ClassVar[str] = "trips"

    total_trips: int
    search_range_hours: int
    period_start: Optional[str]
    period_end: Optional[str]
    summary_by_status: dict[str, int] = field(default_factory=dict)
    summary_by_vehicle: dict[str, int] = field(default_factory=dict)
    trips: list[dict[str, Any]] = field(default_factory=list)

    def body(self) -> dict[str, Any]:
        return {
            "totalTrips": self.total_trips,
            "searchRangeHours": self.search_range_hours,
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "summaryByStatus": self.summary_by_status,
            "summaryByVehicle": self.summary_by_vehicle,
            "trips": self.trips,
        }


def maps_link(latitude: Optional[float], longitude: Optional[float]) -> Optional[str]:
    if latitude is None or longitude is None:
        return None
    return f"https://www.google.com/maps?q={latitude},{longitude}"


def format_location(location: dict[str, Any]) -> dict[str, Any]:
    """Short address plus maps link for a telematics location object."""
    address = location.get("address") or {}
    parts = [address[key] for key in ("street", "city", "state") if address.get(key)]
    result: dict[str, Any] = {"address": ", ".join(parts) if parts else None}
    if address.get("pointOfInterest"):
        result["point_of_interest"] = address["pointOfInterest"]
    link = maps_link(location.get("latitude"), location.get("longitude"))
    if link:
        result["maps_link"] = link
    return result
