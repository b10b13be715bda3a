from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from baton.domain.messages import Message, ToolCallRequest, ToolCallResult
from baton.domain.records import TransferRecord
from baton.domain.result import RunResult
from baton.domain.run_state import PendingApproval


class RunEventType(str, Enum):
    """Kinds of events yielded by a streamed run."""

    AGENT_START = "agent_start"
    MODEL_RESPONSE = "model_response"
    TOOL_START = "tool_start"
    TOOL_END = "tool_end"
    TRANSFER = "transfer"
    GUARDRAIL_RETRY = "guardrail_retry"
    APPROVAL_REQUIRED = "approval_required"
    AGENT_END = "agent_end"
    RUN_END = "run_end"


class RunEvent(BaseModel):
    """
    One step of progress in a run.

    Only the field matching ``type`` is set: ``message`` for model
    responses, ``tool_call`` / ``tool_result`` for tool events, ``transfer``
    for transfers, ``feedback`` for guardrail retries, ``approvals`` for
    suspensions, ``output`` for agent end and ``result`` for run end.
    """

    type: RunEventType
    run_id: str
    agent: str = Field(description="Agent active when the event happened.")
    step: int
    message: Optional[Message] = None
    tool_call: Optional[ToolCallRequest] = None
    tool_result: Optional[ToolCallResult] = None
    transfer: Optional[TransferRecord] = None
    feedback: Optional[str] = None
    approvals: List[PendingApproval] = Field(default_factory=list)
    output: Any = None
    result: Optional[RunResult] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)
