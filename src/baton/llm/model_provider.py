from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from baton.domain.messages import Message, ToolCallRequest
from baton.domain.tool import ToolSpec


class ModelRequest(BaseModel):
    """Everything a provider needs for one model invocation."""

    agent_name: str = Field(description="Active agent; used for logging and usage.")
    model: str = Field(description="Resolved model name.")
    instructions: str = Field(default="", description="System instructions for the turn.")
    messages: List[Message] = Field(default_factory=list, description="Conversation history.")
    tools: List[ToolSpec] = Field(
        default_factory=list, description="Regular tools followed by transfer pseudo-tools."
    )
    settings: Dict[str, Any] = Field(default_factory=dict, description="Sampling settings.")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="run_id, step, ...")


class ModelResponse(BaseModel):
    """Provider output normalized to text plus tool call requests."""

    text: Optional[str] = Field(default=None)
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    input_tokens: Optional[int] = Field(default=None)
    output_tokens: Optional[int] = Field(default=None)
    total_tokens: Optional[int] = Field(default=None)
    finish_reason: Optional[str] = Field(default=None)
    model_name: Optional[str] = Field(default=None)


@runtime_checkable
class ModelProvider(Protocol):
    """The model-calling primitive used by the turn driver."""

    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Invoke the model once.

        Args:
            request: Instructions, history, tool specs and settings.

        Returns:
            The model's text and/or tool call requests with token usage.
        """
        ...
