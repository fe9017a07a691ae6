"""Turns an agent run into a server-sent event stream."""

from __future__ import annotations

import json
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fleet_copilot.ai.agent import Agent, TextChunk, ToolCallRequest, ToolCallResults
from fleet_copilot.ai.usage import TokenUsageObserver
from fleet_copilot.errors import ThreadNotFoundError
from fleet_copilot.log import bind_thread, get_logger, unbind_thread
from fleet_copilot.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)

MAX_TITLE_LENGTH = 50
DEFAULT_TITLE = "New conversation"

TOOL_DISPLAY_INFO: dict[str, dict[str, str]] = {
    "GetVehicles": {"label": "Looking up fleet vehicles...", "icon": "truck"},
    "GetVehicleStats": {"label": "Getting real-time statistics...", "icon": "activity"},
    "GetDashcamMedia": {"label": "Fetching dashcam images...", "icon": "camera"},
    "GetSafetyEvents": {"label": "Reviewing safety events...", "icon": "shield-alert"},
    "GetTrips": {"label": "Looking up recent trips...", "icon": "route"},
    "GetTags": {"label": "Loading fleet tags...", "icon": "tag"},
}
DEFAULT_TOOL_DISPLAY = {"label": "Processing...", "icon": "loader"}

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

DisconnectCheck = Callable[[], Awaitable[bool]]


def encode_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def tool_display(tool_name: str) -> dict[str, str]:
    return TOOL_DISPLAY_INFO.get(tool_name, DEFAULT_TOOL_DISPLAY)


def make_title(message: str) -> str:
    cleaned = " ".join(message.split())
    if len(cleaned) <= MAX_TITLE_LENGTH:
        return cleaned or DEFAULT_TITLE
    return f"{cleaned[: MAX_TITLE_LENGTH - 1].rstrip()}…"


@dataclass
class Turn:
    thread_id: str
    message: str
    is_new_conversation: bool


class StreamingOrchestrator:
    """Drives one turn: ``start``, then chunks and tool events, then ``done``.

    Token totals are only known once the agent is exhausted, so they travel
    on the ``done`` event alone. An unexpected failure ends the stream with
    a single ``error`` event instead.
    """

    def __init__(self, agent: Agent, threads: ThreadRepository):
        self._agent = agent
        self._threads = threads

    async def prepare_turn(self, message: str, thread_id: Optional[str] = None) -> Turn:
        """Resolve or create the thread before any byte is streamed."""
        if thread_id:
            if await self._threads.get_thread(thread_id) is None:
                raise ThreadNotFoundError(thread_id)
            await self._threads.touch_thread(thread_id)
            return Turn(thread_id=thread_id, message=message, is_new_conversation=False)

        thread = await self._threads.create_thread(title=make_title(message))
        return Turn(thread_id=thread.thread_id, message=message, is_new_conversation=True)

    async def stream_turn(
        self,
        turn: Turn,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[str]:
        bind_thread(turn.thread_id)
        try:
            yield encode_sse(
                {
                    "type": "start",
                    "thread_id": turn.thread_id,
                    "is_new_conversation": turn.is_new_conversation,
                }
            )

            observer = TokenUsageObserver(self._threads)
            try:
                async with aclosing(self._agent.run(turn.thread_id, turn.message, [observer])) as items:
                    async for item in items:
                        if is_disconnected is not None and await is_disconnected():
                            logger.info("client_disconnected")
                            return
                        for event in self._events_for(item):
                            yield encode_sse(event)
            except Exception as e:
                logger.exception("turn_failed", error=str(e))
                yield encode_sse({"type": "error", "message": str(e) or type(e).__name__})
                return

            yield encode_sse({"type": "done", "thread_id": turn.thread_id, "tokens": observer.totals()})
            logger.info("turn_completed", **observer.totals())
        finally:
            unbind_thread()

    @staticmethod
    def _events_for(item: object) -> list[dict[str, Any]]:
        match item:
            case TextChunk(content=content):
                return [{"type": "chunk", "content": content}]
            case ToolCallRequest(calls=calls):
                return [{"type": "tool_start", "tool": call.name, **tool_display(call.name)} for call in calls]
            case ToolCallResults():
                return [{"type": "tool_end"}]
            case _:
                return []
