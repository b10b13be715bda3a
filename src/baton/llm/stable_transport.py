import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt

from baton.llm.llm_retry_policy import default_retry_condition, default_wait_strategy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StableTransport:
    """Retry-capable wrapper around a single async model call.

    The last exception is re-raised unchanged once attempts are exhausted so
    callers can still classify it.
    """

    def __init__(
        self,
        max_attempts: int = 1,
        retry_condition: Optional[Any] = None,
        wait_strategy: Optional[Any] = None,
    ) -> None:
        """Initialize the transport wrapper.

        Args:
            max_attempts: Maximum attempts including the initial call.
            retry_condition: Tenacity retry condition; transient provider
                failures by default.
            wait_strategy: Tenacity wait strategy for backoff.
        """

        self._max_attempts = max(1, int(max_attempts))
        self._retry_condition = retry_condition or default_retry_condition()
        self._wait_strategy = wait_strategy or default_wait_strategy()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run the operation, retrying transient failures.

        Args:
            operation: Zero-argument coroutine factory performing the call.

        Returns:
            The operation's result.
        """

        if self._max_attempts == 1:
            return await operation()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=self._retry_condition,
            wait=self._wait_strategy,
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(operation)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    error = outcome.exception() if outcome is not None else None
    logger.warning(
        "Retrying model call after transient failure",
        extra={
            "attempt": retry_state.attempt_number,
            "error_class": type(error).__name__ if error is not None else None,
        },
    )
