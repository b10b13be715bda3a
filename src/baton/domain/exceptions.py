from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from baton.domain.result import RunResult


class BatonError(Exception):
    """Base exception for the Baton library."""

    pass


class LLMError(BatonError):
    """Base exception for model provider failures."""

    pass


class SchemaError(LLMError):
    """Provider output could not be parsed into the required shape."""

    pass


class RateLimitError(LLMError):
    """Provider returned 429 Rate Limit Exceeded."""

    pass


class ApiKeyError(LLMError):
    """Provider returned 401/403 Authentication Error."""

    pass


class ContextLengthError(LLMError):
    """Prompt exceeded model context limits."""

    pass


class RunError(BatonError):
    """Fatal error that ends a run in the FAILED state.

    The run loop attaches the partial transcript, steps, transfers and usage
    accumulated before the failure as ``partial``.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.partial: Optional["RunResult"] = None


class ModelInvocationError(RunError):
    """The model-calling primitive failed.

    ``error_type`` is the normalized provider error class. When it is an
    LLMError subclass, ``__cause__`` is an instance of it that wraps the
    provider exception.
    """

    def __init__(
        self,
        message: str,
        reason: str = "llm_execution_failed",
        details: Optional[Dict[str, Any]] = None,
        error_type: Optional[type] = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.error_type = error_type
        self.details = details or {}


class GuardrailTripwireError(RunError):
    """A guardrail failed with a blocking policy or exhausted its retries."""

    def __init__(self, guardrail_name: str, kind: str, message: Optional[str]) -> None:
        super().__init__(
            f"{kind.capitalize()} guardrail '{guardrail_name}' failed: "
            f"{message or 'no message'}"
        )
        self.guardrail_name = guardrail_name
        self.kind = kind
        self.guardrail_message = message


class MaxTurnsExceededError(RunError):
    """The turn bound was reached without a final answer."""

    def __init__(self, max_turns: int) -> None:
        super().__init__(f"Max turns ({max_turns}) exceeded")
        self.max_turns = max_turns


class UnknownTransferTargetError(RunError):
    """A transfer request named an agent the active agent cannot reach."""

    def __init__(self, source: str, target: str) -> None:
        super().__init__(
            f"Agent '{source}' requested a transfer to unknown target '{target}'"
        )
        self.source = source
        self.target = target


class RunTimeoutError(RunError):
    """The run-level wall-clock bound elapsed."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Run timed out after {timeout} seconds")
        self.timeout = timeout


class ToolExecutionError(BatonError):
    """A tool body raised or its arguments failed validation.

    Never escapes the dispatcher; converted to an error-tagged result.
    """

    pass


class ApprovalRejectedError(BatonError):
    """A gated tool call was rejected by the approver.

    Never escapes the dispatcher; converted to an error-tagged result.
    """

    pass


class LifecycleHookError(RunError):
    """A run or agent lifecycle callback raised."""

    def __init__(self, hook: str, cause: Exception) -> None:
        super().__init__(f"Lifecycle hook '{hook}' failed: {cause}")
        self.hook = hook


class RaceError(BatonError):
    """Every agent of a race failed."""

    def __init__(self, errors: List[BaseException]) -> None:
        summary = "; ".join(f"{type(error).__name__}: {error}" for error in errors)
        super().__init__(f"All {len(errors)} racing agents failed: {summary}")
        self.errors = list(errors)
