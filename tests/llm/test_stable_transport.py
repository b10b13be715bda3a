import asyncio

import httpx
import pytest
from tenacity import retry_if_exception_type, wait_none

from baton.domain.exceptions import RateLimitError
from baton.llm.stable_transport import StableTransport


class TransientError(Exception):
    pass


def test_stable_transport_retries_until_success() -> None:
    """Ensure StableTransport retries eligible exceptions."""
    calls = {"count": 0}

    async def flaky():
        calls["count"] += 1
        if calls["count"] < 3:
            raise TransientError("temporary")
        return "ok"

    transport = StableTransport(
        max_attempts=3,
        retry_condition=retry_if_exception_type(TransientError),
        wait_strategy=wait_none(),
    )

    assert asyncio.run(transport.call(flaky)) == "ok"
    assert calls["count"] == 3


def test_stable_transport_reraises_after_retries() -> None:
    """The original exception surfaces once attempts are exhausted."""
    calls = {"count": 0}

    async def failing():
        calls["count"] += 1
        raise RateLimitError("429")

    transport = StableTransport(max_attempts=2, wait_strategy=wait_none())

    with pytest.raises(RateLimitError):
        asyncio.run(transport.call(failing))
    assert calls["count"] == 2


def test_stable_transport_skips_non_transient_errors() -> None:
    calls = {"count": 0}

    async def failing():
        calls["count"] += 1
        raise ValueError("bad request shape")

    transport = StableTransport(max_attempts=3, wait_strategy=wait_none())

    with pytest.raises(ValueError):
        asyncio.run(transport.call(failing))
    assert calls["count"] == 1


def test_stable_transport_single_attempt_passes_through() -> None:
    """Ensure StableTransport does not retry by default."""
    request = httpx.Request("POST", "https://example.com")

    async def failing():
        raise httpx.ConnectError("refused", request=request)

    transport = StableTransport()

    assert transport.max_attempts == 1
    with pytest.raises(httpx.ConnectError):
        asyncio.run(transport.call(failing))
