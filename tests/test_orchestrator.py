import pytest

from fleet_copilot.ai.agent import ToolCallRequest
from fleet_copilot.ai.client import ToolCall
from fleet_copilot.ai.orchestrator import StreamingOrchestrator, encode_sse, make_title, tool_display
from fleet_copilot.errors import TelematicsError, ThreadNotFoundError
from helpers import FakeAgent, parse_sse, scripted_turn


async def _events(orchestrator, turn, is_disconnected=None):
    body = "".join([chunk async for chunk in orchestrator.stream_turn(turn, is_disconnected)])
    return parse_sse(body)


class TestHelpers:
    def test_encode_sse(self):
        assert encode_sse({"type": "chunk", "content": "ñ"}) == 'data: {"type": "chunk", "content": "ñ"}\n\n'

    def test_make_title(self):
        assert make_title("  where is\n T-606?  ") == "where is T-606?"
        assert make_title("   ") == "New conversation"
        long_title = make_title("x" * 80)
        assert len(long_title) == 50
        assert long_title.endswith("…")

    def test_tool_display(self):
        assert tool_display("GetDashcamMedia")["icon"] == "camera"
        assert tool_display("Nope") == {"label": "Processing...", "icon": "loader"}


class TestStreamTurn:
    @pytest.mark.asyncio
    async def test_event_order_for_new_thread(self, threads):
        agent = FakeAgent(scripted_turn(), usage=(10, 5))
        orchestrator = StreamingOrchestrator(agent, threads)

        turn = await orchestrator.prepare_turn("hello")
        events = await _events(orchestrator, turn)

        assert [e["type"] for e in events] == ["start", "chunk", "tool_start", "tool_end", "chunk", "done"]
        assert events[0] == {"type": "start", "thread_id": turn.thread_id, "is_new_conversation": True}
        assert events[2] == {
            "type": "tool_start",
            "tool": "GetVehicles",
            "label": "Looking up fleet vehicles...",
            "icon": "truck",
        }
        assert events[-1] == {
            "type": "done",
            "thread_id": turn.thread_id,
            "tokens": {"input": 10, "output": 5, "total": 15},
        }
        assert all("tokens" not in e for e in events[:-1])

        thread = await threads.get_thread(turn.thread_id)
        assert thread.title == "hello"
        assert thread.total_tokens == 15

    @pytest.mark.asyncio
    async def test_existing_thread_is_reused(self, threads):
        existing = await threads.create_thread(title="old")
        agent = FakeAgent([])
        orchestrator = StreamingOrchestrator(agent, threads)

        turn = await orchestrator.prepare_turn("again", existing.thread_id)
        events = await _events(orchestrator, turn)

        assert events[0]["is_new_conversation"] is False
        assert agent.calls == [(existing.thread_id, "again")]
        assert (await threads.get_thread(existing.thread_id)).title == "old"

    @pytest.mark.asyncio
    async def test_unknown_thread_is_rejected_before_streaming(self, threads):
        orchestrator = StreamingOrchestrator(FakeAgent([]), threads)

        with pytest.raises(ThreadNotFoundError):
            await orchestrator.prepare_turn("hi", "missing-thread")

    @pytest.mark.asyncio
    async def test_unknown_tool_gets_default_label(self, threads):
        agent = FakeAgent([ToolCallRequest([ToolCall("1", "X", {})])])
        orchestrator = StreamingOrchestrator(agent, threads)

        events = await _events(orchestrator, await orchestrator.prepare_turn("hi"))

        assert events[1]["label"] == "Processing..."
        assert events[1]["icon"] == "loader"

    @pytest.mark.asyncio
    async def test_failure_ends_with_error_event(self, threads):
        agent = FakeAgent(scripted_turn()[:1], fail_with=TelematicsError("Telematics API unreachable"))
        orchestrator = StreamingOrchestrator(agent, threads)

        events = await _events(orchestrator, await orchestrator.prepare_turn("hi"))

        assert [e["type"] for e in events] == ["start", "chunk", "error"]
        assert events[-1]["message"] == "Telematics API unreachable"

    @pytest.mark.asyncio
    async def test_disconnect_stops_the_agent(self, threads):
        agent = FakeAgent(scripted_turn())
        orchestrator = StreamingOrchestrator(agent, threads)

        async def disconnected() -> bool:
            return True

        events = await _events(orchestrator, await orchestrator.prepare_turn("hi"), disconnected)

        assert [e["type"] for e in events] == ["start"]
        assert agent.closed is True
