from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from baton.domain.messages import Message
from baton.domain.records import RunStatus, StepRecord, TransferRecord
from baton.domain.run_state import PendingApproval, RunState
from baton.domain.usage import Usage


class RunResult(BaseModel):
    """
    Outcome of a run, or a suspension point when approvals are pending.

    ``state`` is present exactly when the run is awaiting approval; pass it
    back to ``resume`` after recording decisions.
    """

    status: RunStatus
    final_output: Any = Field(default=None, description="Text or parsed structured output.")
    messages: List[Message] = Field(
        default_factory=list, description="History visible to the last agent."
    )
    transcript: List[Message] = Field(
        default_factory=list,
        description="Messages added by this run, before any transfer filtering.",
    )
    steps: List[StepRecord] = Field(default_factory=list)
    transfers: List[TransferRecord] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    start_agent: str
    last_agent: str
    duration_ms: float = 0.0
    error: Optional[str] = Field(default=None, description="Failure message for FAILED runs.")
    state: Optional[RunState] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def _state_only_when_suspended(self) -> "RunResult":
        suspended = self.status == RunStatus.AWAITING_APPROVAL
        if suspended and self.state is None:
            raise ValueError("A suspended result must carry its run state")
        if not suspended and self.state is not None:
            raise ValueError("Only suspended results carry run state")
        return self

    @property
    def transfer_chain(self) -> List[str]:
        """Agent names in control order, starting with the start agent."""

        return [self.start_agent] + [record.target for record in self.transfers]

    @property
    def interruptions(self) -> List[PendingApproval]:
        """Approval requests the caller must decide before resuming."""

        if self.state is None:
            return []
        return list(self.state.pending_approvals)

    @property
    def tool_call_count(self) -> int:
        return sum(len(step.tool_calls) for step in self.steps)

    @classmethod
    def from_state(
        cls,
        state: RunState,
        final_output: Any = None,
        error: Optional[str] = None,
    ) -> "RunResult":
        """Build a result snapshot from a run state."""

        return cls(
            status=state.status,
            final_output=final_output,
            messages=list(state.messages),
            transcript=list(state.transcript),
            steps=list(state.steps),
            transfers=list(state.transfers),
            usage=state.usage.model_copy(deep=True),
            start_agent=state.start_agent,
            last_agent=state.current_agent,
            duration_ms=state.elapsed_ms(),
            error=error,
            state=state if state.status == RunStatus.AWAITING_APPROVAL else None,
        )
