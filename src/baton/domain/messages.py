import json
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from baton.infra import toon


class Role(str, Enum):
    """Conversation roles understood by the run loop."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A single tool invocation requested by the model."""

    call_id: str = Field(description="Provider call id; round-trips to the result.")
    tool_name: str = Field(description="Name of the requested tool.")
    arguments: Union[Dict[str, Any], str] = Field(
        default_factory=dict,
        description="Parsed arguments, or the raw JSON text as emitted.",
    )

    model_config = ConfigDict(frozen=True)


class ToolCallResult(BaseModel):
    """Outcome of one tool invocation, matched to its request by call id."""

    call_id: str = Field(description="Call id of the originating request.")
    tool_name: str = Field(description="Name of the tool that was requested.")
    is_error: bool = Field(default=False, description="Whether the call failed.")
    payload: Any = Field(
        default=None, description="Tool output, or the error text shown to the model."
    )
    error: Optional[Dict[str, Any]] = Field(
        default=None, description="Structured error details for failed calls."
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def success(cls, request: ToolCallRequest, payload: Any) -> "ToolCallResult":
        """Build a successful result for a request."""

        return cls(call_id=request.call_id, tool_name=request.tool_name, payload=payload)

    @classmethod
    def failure(
        cls,
        request: ToolCallRequest,
        message: str,
        error: Optional[Dict[str, Any]] = None,
    ) -> "ToolCallResult":
        """Build an error-tagged result for a request.

        Args:
            request: The originating request.
            message: Text the model will read in place of the tool output.
            error: Optional structured error details.

        Returns:
            An error-tagged ToolCallResult.
        """

        return cls(
            call_id=request.call_id,
            tool_name=request.tool_name,
            is_error=True,
            payload=message,
            error=error or {"message": message},
        )

    def render(self, encode_toon: bool = False, toon_min_chars: int = 256) -> str:
        """Render the payload as the text the model reads.

        Strings pass through unchanged. Structured payloads become JSON, or
        TOON when enabled and the JSON form is at least ``toon_min_chars``
        long.
        """

        payload = self.payload
        if isinstance(payload, str):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json")
        text = json.dumps(payload, default=str, ensure_ascii=False)
        if encode_toon and isinstance(payload, (dict, list)) and len(text) >= toon_min_chars:
            return toon.encode(json.loads(text))
        return text

    def to_message(self, encode_toon: bool = False, toon_min_chars: int = 256) -> "Message":
        return Message.tool_result(self, self.render(encode_toon, toon_min_chars))


class Message(BaseModel):
    """One entry of the conversation history."""

    role: Role
    content: Any = Field(default="", description="Text or structured payload.")
    tool_call_id: Optional[str] = Field(
        default=None, description="Originating call id for tool messages."
    )
    name: Optional[str] = Field(
        default=None, description="Tool name for tool messages."
    )
    tool_calls: List[ToolCallRequest] = Field(
        default_factory=list, description="Tool calls requested by an assistant turn."
    )
    is_error: bool = Field(
        default=False, description="Whether a tool message carries an error."
    )

    model_config = ConfigDict(frozen=True)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def assistant(
        cls, content: Optional[str] = None, tool_calls: Optional[List[ToolCallRequest]] = None
    ) -> "Message":
        return cls(
            role=Role.ASSISTANT, content=content or "", tool_calls=list(tool_calls or [])
        )

    @classmethod
    def tool_result(cls, result: ToolCallResult, content: str) -> "Message":
        """Build the tool message that carries a result back to the model.

        Args:
            result: The tool call result.
            content: Rendered text content for the model.

        Returns:
            A tool-role message tagged with the originating call id.
        """

        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=result.call_id,
            name=result.tool_name,
            is_error=result.is_error,
        )

    @property
    def text(self) -> str:
        """Content as text; structured payloads are stringified."""

        if isinstance(self.content, str):
            return self.content
        if self.content is None:
            return ""
        return str(self.content)
