"""Token usage observers attached to an agent for one turn."""

from __future__ import annotations

from typing import Protocol

from fleet_copilot.log import get_logger
from fleet_copilot.storage.models import TokenUsageRecord
from fleet_copilot.storage.thread_repo import ThreadRepository

logger = get_logger(__name__)


class UsageObserver(Protocol):
    async def on_usage(self, usage: TokenUsageRecord) -> None: ...


class TokenUsageObserver:
    """Accumulates the token counts of one turn and persists each event."""

    def __init__(self, repo: ThreadRepository | None = None):
        self._repo = repo
        self.input_tokens = 0
        self.output_tokens = 0
        self.requests = 0

    async def on_usage(self, usage: TokenUsageRecord) -> None:
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens
        self.requests += 1
        if self._repo is not None and usage.thread_id:
            await self._repo.record_usage(usage)
        logger.debug(
            "token_usage",
            thread_id=usage.thread_id,
            request_type=usage.request_type,
            input_tokens=usage.input_tokens,
            output_tokens=usage.output_tokens,
        )

    def totals(self) -> dict[str, int]:
        return {
            "input": self.input_tokens,
            "output": self.output_tokens,
            "total": self.input_tokens + self.output_tokens,
        }
