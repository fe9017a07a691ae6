"""Shared fakes for the test suite."""

from __future__ import annotations

import json
from typing import Any, Callable, Iterable

import httpx

from fleet_copilot.ai.agent import TextChunk, ToolCallRequest, ToolCallResults
from fleet_copilot.ai.client import AIResponse, ToolCall
from fleet_copilot.config import TelematicsConfig
from fleet_copilot.services.telematics import TelematicsService
from fleet_copilot.storage.models import TokenUsageRecord, VehicleRecord
from fleet_copilot.storage.vehicle_repo import VehicleRepository

TELEMATICS_URL = "https://telematics.test"


def make_telematics(handler: Callable[[httpx.Request], httpx.Response]) -> TelematicsService:
    config = TelematicsConfig(base_url=TELEMATICS_URL, api_token="test-token")
    return TelematicsService(config, transport=httpx.MockTransport(handler))


async def seed_vehicles(repo: VehicleRepository, names: Iterable[str]) -> list[VehicleRecord]:
    vehicles = [VehicleRecord(id=f"v{i}", name=name) for i, name in enumerate(names, start=1)]
    await repo.upsert_many(vehicles)
    return vehicles


def parse_sse(body: str) -> list[dict[str, Any]]:
    events = []
    for block in body.split("\n\n"):
        if block.startswith("data: "):
            events.append(json.loads(block[len("data: "):]))
    return events


class FakeAgent:
    """Replays a fixed item script and reports one usage record per run."""

    def __init__(self, items: list[Any], usage: tuple[int, int] = (10, 5), fail_with: Exception | None = None):
        self.items = items
        self.usage = usage
        self.fail_with = fail_with
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def run(self, thread_id: str, message: str, observers=()):
        self.calls.append((thread_id, message))
        try:
            for observer in observers:
                await observer.on_usage(
                    TokenUsageRecord(
                        thread_id=thread_id,
                        model="fake-model",
                        input_tokens=self.usage[0],
                        output_tokens=self.usage[1],
                    )
                )
            for item in self.items:
                yield item
            if self.fail_with is not None:
                raise self.fail_with
        finally:
            self.closed = True


def scripted_turn() -> list[Any]:
    return [
        TextChunk("A"),
        ToolCallRequest([ToolCall(id="call_1", name="GetVehicles", input={})]),
        ToolCallResults([("call_1", '{"total_vehicles": 0}')]),
        TextChunk("B"),
    ]


class FakeAIClient:
    """Streams pre-scripted responses; each response is (text chunks, final AIResponse)."""

    def __init__(self, responses: list[tuple[list[str], AIResponse]]):
        self._responses = list(responses)
        self.requests: list[list[dict[str, Any]]] = []

    async def stream(self, system, messages, tools=None):
        self.requests.append([dict(m) for m in messages])
        chunks, final = self._responses.pop(0)
        for chunk in chunks:
            yield chunk
        yield final
