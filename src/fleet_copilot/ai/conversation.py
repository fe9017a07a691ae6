"""Convert thread history to Anthropic API message format."""

from __future__ import annotations

import json
from typing import Any

from fleet_copilot.ai.client import ToolCall
from fleet_copilot.core.types import MessageRole
from fleet_copilot.storage.models import MessageRecord


def encode_tool_calls(text: str, calls: list[ToolCall]) -> str:
    """Content stored for a ``tool_call`` message."""
    return json.dumps({"text": text, "calls": [c.to_dict() for c in calls]}, ensure_ascii=False)


def encode_tool_results(results: list[tuple[str, str]]) -> str:
    """Content stored for a ``tool_call_result`` message: ``(tool_use_id, output)`` pairs."""
    return json.dumps(
        [{"tool_use_id": tool_use_id, "content": output} for tool_use_id, output in results],
        ensure_ascii=False,
    )


def _as_blocks(content: str | list[dict[str, Any]]) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return content


def _append(messages: list[dict[str, Any]], role: str, content: str | list[dict[str, Any]]) -> None:
    """Append a message, merging it into the previous one when the role repeats."""
    if messages and messages[-1]["role"] == role:
        previous = messages[-1]["content"]
        if isinstance(previous, str) and isinstance(content, str):
            messages[-1]["content"] = f"{previous}\n\n{content}"
        else:
            messages[-1]["content"] = _as_blocks(previous) + _as_blocks(content)
        return
    messages.append({"role": role, "content": content})


def _drop_unanswered(messages: list[dict[str, Any]], pending: set[str]) -> None:
    """Strip tool_use blocks of an interrupted turn that never got results."""
    if not pending or not messages or messages[-1]["role"] != "assistant":
        return
    content = messages[-1]["content"]
    if isinstance(content, list):
        kept = [b for b in content if not (b.get("type") == "tool_use" and b.get("id") in pending)]
        if kept:
            messages[-1]["content"] = kept
        else:
            messages.pop()
    pending.clear()


def build_messages(history: list[MessageRecord]) -> list[dict[str, Any]]:
    """Convert stored thread records into Anthropic API messages.

    ``tool_call`` records become assistant ``tool_use`` blocks and
    ``tool_call_result`` records become user ``tool_result`` blocks. Records
    before the first user message are dropped, as is a trailing tool call
    whose results were never stored.
    """
    start = next((i for i, r in enumerate(history) if r.role == MessageRole.USER), len(history))
    records = history[start:]
    messages: list[dict[str, Any]] = []
    pending_tool_ids: set[str] = set()

    for record in records:
        match record.role:
            case MessageRole.USER:
                _drop_unanswered(messages, pending_tool_ids)
                _append(messages, "user", record.content)
            case MessageRole.ASSISTANT:
                if record.content:
                    _append(messages, "assistant", record.content)
            case MessageRole.TOOL_CALL:
                payload = json.loads(record.content)
                blocks = _as_blocks(payload.get("text") or "")
                for call in payload.get("calls", []):
                    blocks.append(
                        {"type": "tool_use", "id": call["id"], "name": call["name"], "input": call.get("input") or {}}
                    )
                    pending_tool_ids.add(call["id"])
                _append(messages, "assistant", blocks)
            case MessageRole.TOOL_CALL_RESULT:
                results = json.loads(record.content)
                blocks = [
                    {"type": "tool_result", "tool_use_id": r["tool_use_id"], "content": r["content"]}
                    for r in results
                    if r["tool_use_id"] in pending_tool_ids
                ]
                pending_tool_ids.difference_update(r["tool_use_id"] for r in results)
                if blocks:
                    _append(messages, "user", blocks)

    _drop_unanswered(messages, pending_tool_ids)
    return messages
