import pytest

from baton.domain.messages import Message, ToolCallRequest, ToolCallResult
from baton.engine.input_filters import (
    compose,
    keep_conversation_only,
    keep_last_message,
    keep_last_messages,
    remove_all_tools,
)


def _history():
    request = ToolCallRequest(call_id="c1", tool_name="lookup", arguments={"q": "x"})
    return [
        Message.system("You are helpful."),
        Message.user("find x"),
        Message.assistant("Let me look.", [request]),
        ToolCallResult.success(request, {"x": 1}).to_message(),
        Message.assistant(None, [ToolCallRequest(call_id="c2", tool_name="transfer_to_b")]),
        Message.assistant("x is 1"),
    ]


def test_remove_all_tools() -> None:
    """Tool results and tool-only turns are dropped; text is kept."""
    filtered = remove_all_tools(_history())

    assert [m.text for m in filtered] == ["You are helpful.", "find x", "Let me look.", "x is 1"]
    assert all(not m.tool_calls for m in filtered)


def test_keep_conversation_only_drops_system() -> None:
    filtered = keep_conversation_only(_history())

    assert [m.text for m in filtered] == ["find x", "Let me look.", "x is 1"]


def test_keep_last_messages() -> None:
    """The window counts every message, tool traffic included."""
    request = ToolCallRequest(call_id="c9", tool_name="lookup")
    history = [
        Message.user("q1"),
        Message.assistant("a1"),
        Message.user("q2"),
        Message.assistant(None, [request]),
        ToolCallResult.success(request, "r").to_message(),
    ]

    last_two = keep_last_messages(2)(history)

    assert [m.role.value for m in last_two] == ["assistant", "tool"]
    assert last_two[0].tool_calls == [request]
    assert [m.text for m in keep_last_message()(_history())] == ["x is 1"]
    assert keep_last_messages(0)(_history()) == []


def test_keep_last_messages_drops_orphaned_tool_results() -> None:
    """A window may not open on a tool result whose request was cut off."""
    window = keep_last_messages(3)(_history())

    assert [m.role.value for m in window] == ["assistant", "assistant"]
    assert [m.text for m in window] == ["", "x is 1"]


def test_keep_last_messages_rejects_negative() -> None:
    with pytest.raises(ValueError):
        keep_last_messages(-1)


def test_compose_applies_left_to_right() -> None:
    history = _history()
    combined = compose(keep_conversation_only, keep_last_messages(1))

    assert [m.text for m in combined(history)] == ["x is 1"]
    assert len(history) == 6
