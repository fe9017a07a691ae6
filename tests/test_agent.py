import json
from typing import Any

import pytest

from fleet_copilot.ai.agent import (
    MAX_TOOL_ROUNDS,
    TOOL_LIMIT_MESSAGE,
    FleetAgent,
    TextChunk,
    ToolCallRequest,
    ToolCallResults,
)
from fleet_copilot.ai.client import AIResponse, ToolCall
from fleet_copilot.ai.tools.base import Tool
from fleet_copilot.ai.tools.registry import ToolRegistry
from fleet_copilot.ai.usage import TokenUsageObserver
from fleet_copilot.core.clock import FrozenClock
from fleet_copilot.errors import TelematicsError
from helpers import FakeAIClient


class EchoTool(Tool):
    name = "Echo"
    description = "Echo the input back."
    input_schema = {"type": "object", "properties": {"text": {"type": "string"}}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        return {"echo": kwargs.get("text")}


class BrokenTool(Tool):
    name = "Broken"
    description = "Always fails."
    input_schema = {"type": "object", "properties": {}}

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        raise TelematicsError("Telematics API returned HTTP 503 for /fleet/trips", status_code=503)


def _tool_response(*calls: ToolCall, text: str = "") -> AIResponse:
    return AIResponse(text=text, tool_calls=list(calls), stop_reason="tool_use", model="m", input_tokens=100, output_tokens=20)


def _final(text: str) -> AIResponse:
    return AIResponse(text=text, stop_reason="end_turn", model="m", input_tokens=150, output_tokens=30)


@pytest.fixture
async def thread_id(threads):
    return (await threads.create_thread(title="test")).thread_id


def _agent(client, threads) -> FleetAgent:
    return FleetAgent(client, ToolRegistry([EchoTool(), BrokenTool()]), threads, clock=FrozenClock())


async def _collect(agent, thread_id, message, observers=()):
    return [item async for item in agent.run(thread_id, message, observers)]


@pytest.mark.asyncio
async def test_plain_answer_is_streamed_and_saved(threads, thread_id):
    client = FakeAIClient([(["Hel", "lo"], _final("Hello"))])
    observer = TokenUsageObserver(threads)

    items = await _collect(_agent(client, threads), thread_id, "hi", [observer])

    assert items == [TextChunk("Hel"), TextChunk("lo")]
    history = await threads.get_history(thread_id)
    assert [(m.role, m.content) for m in history] == [("user", "hi"), ("assistant", "Hello")]
    assert observer.totals() == {"input": 150, "output": 30, "total": 180}
    assert [u.request_type for u in await threads.usage_for_thread(thread_id)] == ["chat"]


@pytest.mark.asyncio
async def test_tool_round_trip(threads, thread_id):
    client = FakeAIClient(
        [
            (["Checking."], _tool_response(ToolCall("tu_1", "Echo", {"text": "ping"}), text="Checking.")),
            (["Done."], _final("Done.")),
        ]
    )
    observer = TokenUsageObserver(threads)

    items = await _collect(_agent(client, threads), thread_id, "echo ping", [observer])

    assert items[0] == TextChunk("Checking.")
    assert isinstance(items[1], ToolCallRequest) and items[1].calls[0].name == "Echo"
    assert isinstance(items[2], ToolCallResults)
    assert json.loads(items[2].results[0][1]) == {"echo": "ping"}
    assert items[3] == TextChunk("Done.")

    roles = [m.role for m in await threads.get_history(thread_id)]
    assert roles == ["user", "tool_call", "tool_call_result", "assistant"]

    second_request = client.requests[1]
    assert second_request[-1]["content"][0]["type"] == "tool_result"
    assert observer.totals()["total"] == 300
    assert [u.request_type for u in await threads.usage_for_thread(thread_id)] == ["tool_call", "chat"]


@pytest.mark.asyncio
async def test_tool_failure_is_reported_to_model(threads, thread_id):
    client = FakeAIClient(
        [
            ([], _tool_response(ToolCall("tu_1", "Broken", {}), ToolCall("tu_2", "Missing", {}))),
            (["Sorry."], _final("Sorry.")),
        ]
    )

    items = await _collect(_agent(client, threads), thread_id, "trips?")

    results = dict(items[1].results)
    assert json.loads(results["tu_1"]) == {
        "error": True,
        "message": "Broken failed: Telematics API returned HTTP 503 for /fleet/trips",
    }
    assert json.loads(results["tu_2"]) == {"error": True, "message": "Unknown tool: Missing"}


@pytest.mark.asyncio
async def test_tool_round_limit(threads, thread_id):
    responses = [([], _tool_response(ToolCall(f"tu_{n}", "Echo", {"text": "x"}))) for n in range(MAX_TOOL_ROUNDS + 1)]
    client = FakeAIClient(responses)

    items = await _collect(_agent(client, threads), thread_id, "loop")

    assert items[-1] == TextChunk(TOOL_LIMIT_MESSAGE)
    assert sum(isinstance(i, ToolCallRequest) for i in items) == MAX_TOOL_ROUNDS
    history = await threads.get_history(thread_id)
    assert history[-1].role == "assistant"
    assert history[-1].content == TOOL_LIMIT_MESSAGE


@pytest.mark.asyncio
async def test_history_is_replayed_on_next_turn(threads, thread_id):
    client = FakeAIClient([(["One."], _final("One.")), (["Two."], _final("Two."))])
    agent = _agent(client, threads)

    await _collect(agent, thread_id, "first")
    await _collect(agent, thread_id, "second")

    assert client.requests[1] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "One."},
        {"role": "user", "content": "second"},
    ]
