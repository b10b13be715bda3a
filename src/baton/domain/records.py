from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from baton.domain.messages import ToolCallRequest, ToolCallResult


class RunStatus(str, Enum):
    """Lifecycle states of a run."""

    RUNNING = "running"
    AWAITING_APPROVAL = "awaiting_approval"
    COMPLETED = "completed"
    FAILED = "failed"


class TransferRecord(BaseModel):
    """One link of the handoff chain."""

    source: str = Field(description="Agent that gave up control.")
    target: str = Field(description="Agent that received control.")
    turn: int = Field(description="Step number of the transfer request.")
    reason: Optional[str] = Field(default=None, description="Reason given by the model.")


class StepRecord(BaseModel):
    """One model invocation plus its resulting tool calls and results."""

    step: int = Field(description="1-based step number.")
    agent: str = Field(description="Agent that was active for the step.")
    text: Optional[str] = Field(default=None, description="Text the model produced.")
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)
    tool_results: List[ToolCallResult] = Field(default_factory=list)
    transfer: Optional[TransferRecord] = Field(default=None)
    guardrail_feedback: Optional[str] = Field(
        default=None, description="Feedback injected after a failed output guardrail."
    )
