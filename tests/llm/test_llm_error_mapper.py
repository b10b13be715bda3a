"""Tests for LLM error mapping helpers."""

from __future__ import annotations

import httpx
import pytest
from pydantic import BaseModel, ValidationError
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior

from baton.domain.exceptions import ApiKeyError, ContextLengthError, RateLimitError, SchemaError
from baton.llm.llm_error_mapper import (
    _error_payload,
    _is_context_length_payload,
    is_transient_llm_error,
    map_llm_error,
)


class _SchemaModel(BaseModel):
    value: int


def _status_error(status: int, **kwargs) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://example.com")
    response = httpx.Response(status, request=request, **kwargs)
    return httpx.HTTPStatusError("failed", request=request, response=response)


def test_map_llm_error_validation_error() -> None:
    """Validation errors map to schema_error."""
    with pytest.raises(ValidationError) as exc_info:
        _SchemaModel.model_validate({"value": "nope"})

    mapping = map_llm_error(exc_info.value)

    assert mapping.reason == "schema_error"
    assert mapping.error_type == SchemaError
    assert mapping.retryable is False


def test_map_llm_error_http_status_api_key() -> None:
    """HTTP 401/403 map to API key errors."""
    mapping = map_llm_error(_status_error(401))

    assert mapping.reason == "api_key_error"
    assert mapping.error_type == ApiKeyError
    assert mapping.details["status_code"] == 401


def test_map_llm_error_http_status_rate_limit() -> None:
    """HTTP 429 maps to a retryable rate limit error."""
    mapping = map_llm_error(_status_error(429))

    assert mapping.reason == "rate_limit_error"
    assert mapping.error_type == RateLimitError
    assert mapping.retryable is True


def test_map_llm_error_http_status_context_payload() -> None:
    """Context-length payloads map to context errors."""
    error = _status_error(400, json={"error": {"code": "context_length_exceeded"}})

    mapping = map_llm_error(error)

    assert mapping.reason == "context_length_error"
    assert mapping.error_type == ContextLengthError


def test_map_model_http_error() -> None:
    """pydantic-ai HTTP errors are classified by status code and body."""
    unavailable = map_llm_error(ModelHTTPError(503, "gpt-4o"))
    too_long = map_llm_error(
        ModelHTTPError(400, "gpt-4o", body={"error": {"message": "maximum context length is 8k"}})
    )

    assert unavailable.reason == "provider_unavailable"
    assert unavailable.retryable is True
    assert too_long.reason == "context_length_error"


def test_map_transport_error() -> None:
    request = httpx.Request("POST", "https://example.com")
    mapping = map_llm_error(httpx.ConnectError("refused", request=request))

    assert mapping.reason == "transport_error"
    assert is_transient_llm_error(httpx.ConnectError("refused", request=request)) is True


def test_map_unexpected_model_behavior() -> None:
    mapping = map_llm_error(UnexpectedModelBehavior("Invalid JSON in tool arguments"))

    assert mapping.reason == "schema_error"


def test_map_llm_error_specific_exceptions() -> None:
    """Explicit error types map to stable reasons."""
    assert map_llm_error(ApiKeyError("bad key")).reason == "api_key_error"
    assert map_llm_error(RateLimitError("slow down")).reason == "rate_limit_error"
    assert map_llm_error(ContextLengthError("too long")).reason == "context_length_error"


def test_map_llm_error_text_fallbacks() -> None:
    """Text-only errors still map to stable categories."""
    assert map_llm_error(Exception("rate limit hit")).reason == "rate_limit_error"
    assert map_llm_error(Exception("API key invalid")).reason == "api_key_error"
    assert map_llm_error(Exception("something else")).reason == "llm_execution_failed"
    assert is_transient_llm_error(Exception("something else")) is False


def test_error_payload_invalid_json() -> None:
    """Invalid JSON payloads return empty dicts."""
    assert _error_payload(_status_error(400, content=b"not json")) == {}


def test_is_context_length_payload_message() -> None:
    """Message-based context detection returns True."""
    payload = {"error": {"message": "Maximum context length exceeded"}}

    assert _is_context_length_payload(payload) is True
    assert _is_context_length_payload({"error": "plain"}) is False
