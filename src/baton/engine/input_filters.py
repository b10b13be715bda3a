"""History filters applied when control passes to another agent.

A filter receives the full history, including the transferring turn and its
tool results, and returns the history the target agent starts from.
"""

from typing import List, Sequence

from baton.domain.agent import InputFilter
from baton.domain.messages import Message, Role


def remove_all_tools(messages: Sequence[Message]) -> List[Message]:
    """Drop tool results and tool-call requests; keep the conversation text."""

    filtered: List[Message] = []
    for message in messages:
        if message.role == Role.TOOL:
            continue
        if message.role == Role.ASSISTANT and message.tool_calls:
            if not message.text:
                continue
            message = message.model_copy(update={"tool_calls": []})
        filtered.append(message)
    return filtered


def keep_conversation_only(messages: Sequence[Message]) -> List[Message]:
    """Like ``remove_all_tools`` but also drops system messages."""

    return [message for message in remove_all_tools(messages) if message.role != Role.SYSTEM]


def keep_last_messages(count: int) -> InputFilter:
    """
    Builds a filter keeping the newest messages.

    A window that would open on tool results whose request fell outside it
    drops those leading results.

    Args:
        count: Number of messages to keep.
    """
    if count < 0:
        raise ValueError("count must be non-negative")

    def _filter(messages: Sequence[Message]) -> List[Message]:
        if count == 0:
            return []
        window = list(messages)[-count:]
        while window and window[0].role == Role.TOOL:
            window = window[1:]
        return window

    return _filter


def keep_last_message() -> InputFilter:
    return keep_last_messages(1)


def compose(*filters: InputFilter) -> InputFilter:
    """Apply filters left to right."""

    def _filter(messages: Sequence[Message]) -> List[Message]:
        result = list(messages)
        for item in filters:
            result = list(item(result))
        return result

    return _filter
