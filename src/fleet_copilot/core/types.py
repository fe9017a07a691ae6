"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_CALL = "tool_call"
    TOOL_CALL_RESULT = "tool_call_result"


HIDDEN_ROLES = frozenset({MessageRole.TOOL_CALL, MessageRole.TOOL_CALL_RESULT})


class UsageKind(StrEnum):
    CHAT = "chat"
    TOOL_CALL = "tool_call"
