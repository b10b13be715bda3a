from baton.domain.agent import Agent, AgentRegistry, ModelSettings, Transfer
from baton.domain.approvals import ApprovalPolicies
from baton.domain.context import RunContext
from baton.domain.events import RunEvent, RunEventType
from baton.domain.guardrail import Guardrail, GuardrailKind, GuardrailPolicy, GuardrailResult
from baton.domain.hooks import AgentHooks, RunHooks
from baton.domain.messages import Message, Role, ToolCallRequest, ToolCallResult
from baton.domain.records import RunStatus, StepRecord, TransferRecord
from baton.domain.result import RunResult
from baton.domain.run_state import ApprovalDecision, PendingApproval, RunState
from baton.domain.tool import Tool, ToolSpec, function_tool
from baton.domain.usage import AgentUsage, Usage

__all__ = [
    "Agent",
    "AgentHooks",
    "AgentRegistry",
    "AgentUsage",
    "ApprovalDecision",
    "ApprovalPolicies",
    "Guardrail",
    "GuardrailKind",
    "GuardrailPolicy",
    "GuardrailResult",
    "Message",
    "ModelSettings",
    "PendingApproval",
    "Role",
    "RunContext",
    "RunEvent",
    "RunEventType",
    "RunHooks",
    "RunResult",
    "RunState",
    "RunStatus",
    "StepRecord",
    "Tool",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolSpec",
    "Transfer",
    "TransferRecord",
    "Usage",
    "function_tool",
]
