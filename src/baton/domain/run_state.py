import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from baton.domain.agent import Agent, AgentRegistry
from baton.domain.messages import Message, ToolCallRequest
from baton.domain.records import RunStatus, StepRecord, TransferRecord
from baton.domain.usage import Usage


class TurnPhase(str, Enum):
    """Where the run loop re-enters on the next advance."""

    MODEL = "model"
    DISPATCH = "dispatch"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApprovalDecision(BaseModel):
    """A decision for one gated tool call."""

    approved: bool
    reason: Optional[str] = Field(default=None, description="Shown to the model on rejection.")
    approver: Optional[str] = Field(default=None)


class PendingApproval(BaseModel):
    """A gated tool call waiting for a decision."""

    call_id: str
    tool_name: str
    arguments: Any = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    metadata: Dict[str, Any] = Field(default_factory=dict)


class RunState(BaseModel):
    """
    Serializable snapshot of a run.

    Agents are referenced by name; the registry needed to turn names back
    into Agent objects is bound in-process and re-bound by ``from_json``.
    """

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    status: RunStatus = RunStatus.RUNNING
    phase: TurnPhase = TurnPhase.MODEL
    start_agent: str
    current_agent: str
    original_input: Union[str, List[Message]] = ""
    messages: List[Message] = Field(default_factory=list)
    transcript: List[Message] = Field(
        default_factory=list,
        description="Messages added by this run, unaffected by transfer filters.",
    )
    context: Any = None
    step: int = 0
    max_turns: int = 50
    pending_calls: List[ToolCallRequest] = Field(
        default_factory=list, description="Regular tool calls awaiting dispatch."
    )
    pending_transfers: List[ToolCallRequest] = Field(
        default_factory=list, description="Transfer calls awaiting resolution."
    )
    pending_approvals: List[PendingApproval] = Field(default_factory=list)
    approvals: Dict[str, ApprovalDecision] = Field(default_factory=dict)
    steps: List[StepRecord] = Field(default_factory=list)
    transfers: List[TransferRecord] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    guardrail_retries: int = 0
    started_at: float = Field(default_factory=time.time)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _registry: Optional[AgentRegistry] = PrivateAttr(default=None)

    def bind(self, registry: AgentRegistry) -> "RunState":
        """
        Attaches the agent registry used to resolve agent names.

        Raises:
            ValueError: When the registry lacks the agents the state names.
        """
        for name in (self.start_agent, self.current_agent):
            if name not in registry:
                raise ValueError(f"Agent '{name}' is not part of the agent graph")
        self._registry = registry
        return self

    @property
    def registry(self) -> AgentRegistry:
        if self._registry is None:
            raise ValueError("RunState is not bound to an agent graph")
        return self._registry

    @property
    def agent(self) -> Agent:
        """The active agent."""

        return self.registry.get(self.current_agent)

    @property
    def is_suspended(self) -> bool:
        return self.status == RunStatus.AWAITING_APPROVAL

    def append_message(self, message: Message) -> None:
        """Add a message to the model-visible history and the transcript."""

        self.messages.append(message)
        self.transcript.append(message)

    def elapsed_ms(self) -> float:
        return (time.time() - self.started_at) * 1000

    def to_json(self) -> str:
        """Serialize the snapshot; the context must be JSON-compatible."""

        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: Union[str, bytes], agent: Agent) -> "RunState":
        """
        Restores a snapshot and binds it to an agent graph.

        Args:
            data: JSON produced by ``to_json``.
            agent: Any agent from which the whole graph is reachable,
                normally the run's starting agent.

        Returns:
            A bound RunState ready for resume.
        """
        state = cls.model_validate_json(data)
        return state.bind(AgentRegistry.from_root(agent))
