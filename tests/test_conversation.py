from fleet_copilot.ai.client import ToolCall
from fleet_copilot.ai.conversation import build_messages, encode_tool_calls, encode_tool_results
from fleet_copilot.storage.models import MessageRecord


def _rec(role: str, content: str) -> MessageRecord:
    return MessageRecord(thread_id="t1", role=role, content=content)


def test_plain_exchange():
    history = [_rec("user", "hi"), _rec("assistant", "hello")]

    assert build_messages(history) == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
    ]


def test_tool_round_becomes_tool_use_and_tool_result_blocks():
    history = [
        _rec("user", "where is T-606?"),
        _rec("tool_call", encode_tool_calls("Let me check.", [ToolCall("tu_1", "GetVehicleStats", {"vehicle_names": "T-606"})])),
        _rec("tool_call_result", encode_tool_results([("tu_1", '{"vehicles": []}')])),
        _rec("assistant", "It is parked."),
    ]

    messages = build_messages(history)

    assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
    assert messages[1]["content"] == [
        {"type": "text", "text": "Let me check."},
        {"type": "tool_use", "id": "tu_1", "name": "GetVehicleStats", "input": {"vehicle_names": "T-606"}},
    ]
    assert messages[2]["content"] == [{"type": "tool_result", "tool_use_id": "tu_1", "content": '{"vehicles": []}'}]


def test_records_before_first_user_are_dropped():
    history = [_rec("assistant", "orphan"), _rec("user", "hi")]

    assert build_messages(history) == [{"role": "user", "content": "hi"}]


def test_unanswered_tool_call_is_dropped():
    history = [
        _rec("user", "first"),
        _rec("tool_call", encode_tool_calls("", [ToolCall("tu_1", "GetTags", {})])),
        _rec("user", "second"),
    ]

    assert build_messages(history) == [{"role": "user", "content": "first\n\nsecond"}]


def test_empty_assistant_text_is_skipped():
    history = [_rec("user", "hi"), _rec("assistant", ""), _rec("user", "again")]

    assert build_messages(history) == [{"role": "user", "content": "hi\n\nagain"}]
