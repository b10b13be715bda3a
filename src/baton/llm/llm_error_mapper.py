from dataclasses import dataclass
from typing import Any, Dict

import httpx
from pydantic import ValidationError
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from baton.domain.error_sanitizer import describe_exception, sanitize_details
from baton.domain.exceptions import (
    ApiKeyError,
    ContextLengthError,
    RateLimitError,
    SchemaError,
)


@dataclass(frozen=True)
class LLMErrorMapping:
    """Normalized error mapping for provider failures."""

    reason: str
    error_type: type
    details: Dict[str, Any]
    retryable: bool = False


def map_llm_error(error: Exception) -> LLMErrorMapping:
    """Map an exception into a normalized provider error mapping.

    Args:
        error: Exception raised while invoking the model.

    Returns:
        LLMErrorMapping describing the failure.
    """

    details: Dict[str, Any] = describe_exception(error)
    cause = getattr(error, "__cause__", None)

    if isinstance(error, ValidationError) or isinstance(error, SchemaError):
        return LLMErrorMapping("schema_error", SchemaError, details)
    if isinstance(error, UnexpectedModelBehavior) and isinstance(cause, ValidationError):
        return LLMErrorMapping("schema_error", SchemaError, details)

    status_code = _status_code(error)
    if status_code is not None:
        details["status_code"] = status_code
        if status_code == 429:
            return LLMErrorMapping("rate_limit_error", RateLimitError, details, retryable=True)
        if status_code in (401, 403):
            return LLMErrorMapping("api_key_error", ApiKeyError, details)
        if _is_context_length_payload(_error_payload(error)):
            return LLMErrorMapping("context_length_error", ContextLengthError, details)
        if status_code >= 500:
            return LLMErrorMapping("provider_unavailable", type(error), details, retryable=True)

    if isinstance(error, httpx.TransportError):
        return LLMErrorMapping("transport_error", type(error), details, retryable=True)
    if isinstance(error, RateLimitError):
        return LLMErrorMapping("rate_limit_error", RateLimitError, details, retryable=True)
    if isinstance(error, ApiKeyError):
        return LLMErrorMapping("api_key_error", ApiKeyError, details)
    if isinstance(error, ContextLengthError):
        return LLMErrorMapping("context_length_error", ContextLengthError, details)

    details = sanitize_details(details)
    error_name = error.__class__.__name__.lower()
    error_message = str(error).lower()

    if isinstance(error, UnexpectedModelBehavior) and any(
        marker in error_message for marker in ("validation", "schema", "json", "output")
    ):
        return LLMErrorMapping("schema_error", SchemaError, details)
    if "ratelimit" in error_name or "rate limit" in error_message or "429" in error_message:
        return LLMErrorMapping("rate_limit_error", RateLimitError, details, retryable=True)
    if (
        "authentication" in error_name
        or "auth" in error_name
        or "api key" in error_message
        or "apikey" in error_message
    ):
        return LLMErrorMapping("api_key_error", ApiKeyError, details)
    if "context length" in error_message or "context_length" in error_message:
        return LLMErrorMapping("context_length_error", ContextLengthError, details)
    if "connection" in error_name or "timeout" in error_name:
        return LLMErrorMapping("transport_error", type(error), details, retryable=True)
    return LLMErrorMapping("llm_execution_failed", type(error), details)


def is_transient_llm_error(error: BaseException) -> bool:
    """Return True for failures worth retrying at the transport level."""

    if not isinstance(error, Exception):
        return False
    return map_llm_error(error).retryable


def _status_code(error: Exception) -> Any:
    if isinstance(error, ModelHTTPError):
        return error.status_code
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    return None


def _error_payload(error: Exception) -> Dict[str, Any]:
    """Extract the provider error body from an HTTP failure."""

    if isinstance(error, ModelHTTPError):
        body = error.body
        return body if isinstance(body, dict) else {}
    if isinstance(error, httpx.HTTPStatusError):
        try:
            payload = error.response.json()
        except ValueError:
            return {}
        return payload if isinstance(payload, dict) else {}
    return {}


def _is_context_length_payload(payload: Dict[str, Any]) -> bool:
    """Return True when payload indicates a context-length error."""

    error_info = payload.get("error", payload)
    if not isinstance(error_info, dict):
        return False
    code = error_info.get("code") or error_info.get("type")
    if isinstance(code, str):
        normalized = code.strip().lower()
        if normalized in {
            "context_length_exceeded",
            "context_window_exceeded",
            "context_length",
            "context_window",
        }:
            return True
    message = error_info.get("message")
    if isinstance(message, str):
        normalized = message.strip().lower()
        if "maximum context length" in normalized:
            return True
        if "context length exceeded" in normalized:
            return True
    return False
