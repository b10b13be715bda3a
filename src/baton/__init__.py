"""Multi-agent orchestration: tools, transfers, guardrails and approvals."""

from baton.domain import (
    Agent,
    AgentHooks,
    ApprovalDecision,
    ApprovalPolicies,
    Guardrail,
    GuardrailKind,
    GuardrailPolicy,
    GuardrailResult,
    Message,
    ModelSettings,
    RunContext,
    RunEvent,
    RunEventType,
    RunHooks,
    RunResult,
    RunState,
    RunStatus,
    Tool,
    Transfer,
    function_tool,
)
from baton.domain.exceptions import (
    BatonError,
    GuardrailTripwireError,
    LifecycleHookError,
    MaxTurnsExceededError,
    ModelInvocationError,
    RaceError,
    RunError,
    RunTimeoutError,
    UnknownTransferTargetError,
)
from baton.engine import input_filters
from baton.engine.run_loop import (
    RunOptions,
    Runner,
    race_agents,
    resume,
    resume_stream,
    resume_sync,
    run,
    run_stream,
    run_sync,
)
from baton.infra.session import InMemorySession, JsonFileSession, Session

__all__ = [
    "Agent",
    "AgentHooks",
    "ApprovalDecision",
    "ApprovalPolicies",
    "BatonError",
    "Guardrail",
    "GuardrailKind",
    "GuardrailPolicy",
    "GuardrailResult",
    "GuardrailTripwireError",
    "InMemorySession",
    "JsonFileSession",
    "LifecycleHookError",
    "MaxTurnsExceededError",
    "Message",
    "ModelInvocationError",
    "ModelSettings",
    "RaceError",
    "RunContext",
    "RunError",
    "RunEvent",
    "RunEventType",
    "RunHooks",
    "RunOptions",
    "RunResult",
    "RunState",
    "RunStatus",
    "RunTimeoutError",
    "Runner",
    "Session",
    "Tool",
    "Transfer",
    "UnknownTransferTargetError",
    "function_tool",
    "input_filters",
    "race_agents",
    "resume",
    "resume_stream",
    "resume_sync",
    "run",
    "run_stream",
    "run_sync",
]
