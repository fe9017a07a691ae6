"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


@dataclass
class ThreadRecord:
    thread_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_tokens: int = 0


@dataclass
class MessageRecord:
    thread_id: str
    role: str  # "user" | "assistant" | "tool_call" | "tool_call_result"
    content: str
    created_at: datetime = field(default_factory=datetime.utcnow)
    id: Optional[int] = None


@dataclass
class TokenUsageRecord:
    thread_id: Optional[str]
    model: str
    input_tokens: int
    output_tokens: int
    request_type: str = "chat"

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class VehicleRecord:
    id: str
    name: str
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    license_plate: Optional[str] = None
    vin: Optional[str] = None

    def as_reference(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass
class TagRecord:
    external_id: str
    name: str
    data_hash: str
    parent_external_id: Optional[str] = None
    vehicles: list[dict[str, Any]] = field(default_factory=list)
    drivers: list[dict[str, Any]] = field(default_factory=list)
    assets: list[dict[str, Any]] = field(default_factory=list)
    addresses: list[dict[str, Any]] = field(default_factory=list)
    machines: list[dict[str, Any]] = field(default_factory=list)
    sensors: list[dict[str, Any]] = field(default_factory=list)
    external_ids: dict[str, Any] = field(default_factory=dict)

    @property
    def vehicle_count(self) -> int:
        return len(self.vehicles)

    @property
    def driver_count(self) -> int:
        return len(self.drivers)

    @property
    def asset_count(self) -> int:
        return len(self.assets)

    @classmethod
    def from_api(cls, data: dict[str, Any], data_hash: str) -> TagRecord:
        """Map a telematics API tag payload onto a record."""
        return cls(
            external_id=str(data["id"]),
            name=data.get("name") or "",
            data_hash=data_hash,
            parent_external_id=data.get("parentTagId") or None,
            vehicles=data.get("vehicles") or [],
            drivers=data.get("drivers") or [],
            assets=data.get("assets") or [],
            addresses=data.get("addresses") or [],
            machines=data.get("machines") or [],
            sensors=data.get("sensors") or [],
            external_ids=data.get("externalIds") or {},
        )
