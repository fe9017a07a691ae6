"""Tool registry for discovering and managing available tools."""

from __future__ import annotations

import json
from typing import Iterable

from fleet_copilot.ai.tools.base import Tool, error_result
from fleet_copilot.log import get_logger

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self, tools: Iterable[Tool] = ()):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def api_definitions(self) -> list[dict]:
        return [tool.to_api_dict() for tool in self._tools.values()]

    async def invoke(self, name: str, arguments: dict) -> str:
        """Run a tool by name; unknown tools produce an error result, not an exception."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("unknown_tool_requested", tool=name)
            return json.dumps(error_result(f"Unknown tool: {name}"))
        return await tool.invoke(arguments)

    def __len__(self) -> int:
        return len(self._tools)
