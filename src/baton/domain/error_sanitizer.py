"""Redaction helpers for error payloads that flow back into model context."""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping

REDACTED_VALUE = "<redacted>"
DEFAULT_MAX_STRING_LENGTH = 512
DEFAULT_MAX_ITEMS = 25
DEFAULT_MAX_DEPTH = 3

_SENSITIVE_KEY_FRAGMENTS = (
    "api_key",
    "apikey",
    "authorization",
    "token",
    "secret",
    "password",
    "credential",
)

_TOKEN_PATTERNS = (
    re.compile(r"sk-[A-Za-z0-9_-]{10,}"),
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._-]{10,}"),
)


def redact_text(value: str, max_length: int = DEFAULT_MAX_STRING_LENGTH) -> str:
    """Redact token-shaped secrets and cap the length of a string.

    Args:
        value: Input text.
        max_length: Maximum length of the returned string.

    Returns:
        The redacted, length-capped text.
    """

    redacted = value
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(REDACTED_VALUE, redacted)
    if len(redacted) <= max_length:
        return redacted
    return f"{redacted[:max_length]}...[truncated]"


def describe_exception(
    error: BaseException,
    max_string_length: int = DEFAULT_MAX_STRING_LENGTH,
) -> Dict[str, Any]:
    """Summarize an exception as a small, redacted mapping.

    The mapping is safe to place in a tool result that the model will read.

    Args:
        error: Exception to summarize.
        max_string_length: Maximum length for message fields.

    Returns:
        Mapping with ``error_class`` and, when present, ``message`` and the
        class/message of the direct cause.
    """

    details: Dict[str, Any] = {"error_class": error.__class__.__name__}
    message = str(error)
    if message:
        details["message"] = redact_text(message, max_length=max_string_length)
    cause = error.__cause__
    if isinstance(cause, BaseException):
        details["cause_class"] = cause.__class__.__name__
        cause_message = str(cause)
        if cause_message:
            details["cause_message"] = redact_text(
                cause_message, max_length=max_string_length
            )
    return details


def sanitize_details(
    details: Mapping[str, Any],
    max_depth: int = DEFAULT_MAX_DEPTH,
    max_items: int = DEFAULT_MAX_ITEMS,
) -> Dict[str, Any]:
    """Redact sensitive keys and cap nested collections in a mapping.

    Args:
        details: Mapping to sanitize.
        max_depth: Maximum nesting depth kept.
        max_items: Maximum items kept per collection.

    Returns:
        A sanitized copy of the mapping.
    """

    return _sanitize(details, max_depth, max_items)


def _sanitize(value: Any, depth: int, max_items: int) -> Any:
    if depth <= 0:
        return REDACTED_VALUE
    if isinstance(value, str):
        return redact_text(value)
    if value is None or isinstance(value, (int, float, bool)):
        return value
    if isinstance(value, Mapping):
        sanitized: Dict[str, Any] = {}
        for index, (key, item) in enumerate(value.items()):
            if index >= max_items:
                sanitized["_truncated"] = True
                break
            key_text = str(key)
            lowered = key_text.lower()
            if any(fragment in lowered for fragment in _SENSITIVE_KEY_FRAGMENTS):
                sanitized[key_text] = REDACTED_VALUE
            else:
                sanitized[key_text] = _sanitize(item, depth - 1, max_items)
        return sanitized
    if isinstance(value, (list, tuple, set)):
        items = list(value)
        capped = [_sanitize(item, depth - 1, max_items) for item in items[:max_items]]
        if len(items) > max_items:
            capped.append(REDACTED_VALUE)
        return capped
    return redact_text(str(value))
