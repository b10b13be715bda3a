"""Deterministic model provider used by run loop tests."""

from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from baton.domain.messages import ToolCallRequest
from baton.llm.model_provider import ModelRequest, ModelResponse

ScriptStep = Union[ModelResponse, Exception, Callable[[ModelRequest], ModelResponse]]


def reply(text: str, input_tokens: int = 10, output_tokens: int = 5) -> ModelResponse:
    """Build a final-answer response."""
    return ModelResponse(text=text, input_tokens=input_tokens, output_tokens=output_tokens)


def call(
    tool_name: str,
    arguments: Optional[Dict[str, Any]] = None,
    call_id: str = "",
) -> ToolCallRequest:
    return ToolCallRequest(call_id=call_id, tool_name=tool_name, arguments=arguments or {})


def calls(*requests: ToolCallRequest, text: Optional[str] = None) -> ModelResponse:
    """Build a tool-call response."""
    return ModelResponse(text=text, tool_calls=list(requests), input_tokens=10, output_tokens=5)


class ScriptedProvider:
    """
    Replays scripted model responses.

    Each ``complete`` call consumes the next step. A step may be a response,
    an exception to raise, or a callable of the request.

    Args:
        steps: Scripted steps in invocation order.
    """

    def __init__(self, steps: Sequence[ScriptStep]) -> None:
        self._steps = list(steps)
        self.requests: List[ModelRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        if not self._steps:
            raise AssertionError("ScriptedProvider ran out of scripted responses")
        step = self._steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(request)
        return step
