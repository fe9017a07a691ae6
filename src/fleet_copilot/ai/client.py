"""Streaming AI client abstraction over the Anthropic Messages API."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Union

import anthropic

from fleet_copilot.config import AnthropicConfig
from fleet_copilot.log import get_logger

logger = get_logger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "input": self.input}


@dataclass
class AIResponse:
    """Final state of one model response, emitted after its text deltas."""

    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None
    model: str = ""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason == "tool_use" and bool(self.tool_calls)


StreamItem = Union[str, AIResponse]


class AIClient(ABC):
    """Abstract base class for AI backends."""

    @abstractmethod
    def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamItem]:
        """Yield text deltas as ``str`` and finish with exactly one :class:`AIResponse`."""
        ...


class AnthropicClient(AIClient):
    """Anthropic API backend using the official SDK."""

    def __init__(self, config: AnthropicConfig):
        self._client = anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._model = config.model
        self._max_tokens = config.max_tokens
        self._temperature = config.temperature

    @property
    def model(self) -> str:
        return self._model

    async def stream(
        self,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamItem]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": system,
            "messages": messages,
            "temperature": self._temperature,
        }
        if tools:
            kwargs["tools"] = tools

        logger.debug("api_request", model=self._model, message_count=len(messages))
        async with self._client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text
            final = await stream.get_final_message()

        logger.debug(
            "api_response",
            model=self._model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
            stop_reason=final.stop_reason,
        )
        yield AIResponse(
            text="".join(b.text for b in final.content if b.type == "text"),
            tool_calls=[
                ToolCall(id=b.id, name=b.name, input=dict(b.input or {}))
                for b in final.content
                if b.type == "tool_use"
            ],
            stop_reason=final.stop_reason,
            model=final.model or self._model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
        )
