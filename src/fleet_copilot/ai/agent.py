"""Tool-use loop around the streaming model API."""

from __future__ import annotations

from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable, Optional, Protocol, Union

from fleet_copilot.ai.client import AIClient, AIResponse, ToolCall
from fleet_copilot.ai.conversation import build_messages, encode_tool_calls, encode_tool_results
from fleet_copilot.ai.prompts import build_system_prompt
from fleet_copilot.ai.tools.registry import ToolRegistry
from fleet_copilot.ai.usage import UsageObserver
from fleet_copilot.core.clock import Clock, SystemClock
from fleet_copilot.core.types import MessageRole, UsageKind
from fleet_copilot.log import get_logger
from fleet_copilot.storage.models import MessageRecord, TokenUsageRecord
from fleet_copilot.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)

MAX_TOOL_ROUNDS = 10
TOOL_LIMIT_MESSAGE = "[Tool execution limit reached]"


@dataclass
class TextChunk:
    content: str


@dataclass
class ToolCallRequest:
    calls: list[ToolCall] = field(default_factory=list)


@dataclass
class ToolCallResults:
    results: list[tuple[str, str]] = field(default_factory=list)


AgentItem = Union[TextChunk, ToolCallRequest, ToolCallResults]


class Agent(Protocol):
    def run(
        self,
        thread_id: str,
        message: str,
        observers: Iterable[UsageObserver] = (),
    ) -> AsyncIterator[Any]: ...


class FleetAgent:
    """Runs one conversational turn and yields what happens as it happens.

    The user message, every tool call set, every tool result set and the
    final assistant text are appended to the thread as they occur, so a
    turn cut short still leaves a consistent history behind.
    """

    def __init__(
        self,
        ai_client: AIClient,
        registry: ToolRegistry,
        threads: ThreadRepository,
        history_limit: int = 100,
        clock: Optional[Clock] = None,
    ):
        self._ai_client = ai_client
        self._registry = registry
        self._threads = threads
        self._history_limit = history_limit
        self._clock = clock or SystemClock()

    async def run(
        self,
        thread_id: str,
        message: str,
        observers: Iterable[UsageObserver] = (),
    ) -> AsyncIterator[AgentItem]:
        observers = list(observers)
        await self._save(thread_id, MessageRole.USER, message)

        history = await self._threads.get_history(thread_id, limit=self._history_limit)
        messages = build_messages(history)
        system = build_system_prompt(self._clock.now())
        tool_defs = self._registry.api_definitions()

        rounds = 0
        while True:
            response: AIResponse | None = None
            async with aclosing(self._ai_client.stream(system, messages, tool_defs or None)) as stream:
                async for item in stream:
                    if isinstance(item, AIResponse):
                        response = item
                    elif item:
                        yield TextChunk(item)
            if response is None:
                raise RuntimeError("Model stream ended without a final response")

            await self._notify(observers, thread_id, response)

            if not response.wants_tools:
                await self._save(thread_id, MessageRole.ASSISTANT, response.text)
                return

            if rounds >= MAX_TOOL_ROUNDS:
                logger.warning("tool_round_limit_reached", thread_id=thread_id, rounds=rounds)
                text = f"{response.text}\n\n{TOOL_LIMIT_MESSAGE}" if response.text else TOOL_LIMIT_MESSAGE
                yield TextChunk(TOOL_LIMIT_MESSAGE)
                await self._save(thread_id, MessageRole.ASSISTANT, text)
                return

            await self._save(thread_id, MessageRole.TOOL_CALL, encode_tool_calls(response.text, response.tool_calls))
            yield ToolCallRequest(list(response.tool_calls))

            results: list[tuple[str, str]] = []
            for call in response.tool_calls:
                logger.info("tool_call", thread_id=thread_id, tool=call.name, round=rounds)
                results.append((call.id, await self._registry.invoke(call.name, call.input)))

            await self._save(thread_id, MessageRole.TOOL_CALL_RESULT, encode_tool_results(results))
            yield ToolCallResults(results)

            assistant_blocks: list[dict[str, Any]] = []
            if response.text:
                assistant_blocks.append({"type": "text", "text": response.text})
            assistant_blocks.extend(
                {"type": "tool_use", "id": c.id, "name": c.name, "input": c.input} for c in response.tool_calls
            )
            messages.append({"role": "assistant", "content": assistant_blocks})
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {"type": "tool_result", "tool_use_id": tool_use_id, "content": output}
                        for tool_use_id, output in results
                    ],
                }
            )
            rounds += 1

    async def _save(self, thread_id: str, role: MessageRole, content: str) -> None:
        await self._threads.append_message(MessageRecord(thread_id=thread_id, role=role.value, content=content))

    @staticmethod
    async def _notify(observers: list[UsageObserver], thread_id: str, response: AIResponse) -> None:
        usage = TokenUsageRecord(
            thread_id=thread_id,
            model=response.model,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            request_type=UsageKind.TOOL_CALL.value if response.wants_tools else UsageKind.CHAT.value,
        )
        for observer in observers:
            await observer.on_usage(usage)
