from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from baton.domain.messages import Message
from baton.domain.usage import Usage


@dataclass
class RunContext:
    """
    Execution context handed to tools, guardrails and approval predicates.

    Args:
        context: Caller-supplied context object. Shared, read-write and
            unlocked across every tool running in a batch.
        agent: Name of the active agent.
        messages: Snapshot of the history at the time of the call.
        usage: Run usage so far.
        step: Current step number.
        call_id: Call id when the context is bound to a single tool call.
    """

    context: Any = None
    agent: str = ""
    messages: Tuple[Message, ...] = field(default_factory=tuple)
    usage: Usage = field(default_factory=Usage)
    step: int = 0
    call_id: Optional[str] = None

    def for_call(self, call_id: str) -> "RunContext":
        """Return a copy bound to one tool call, sharing the context object."""

        return RunContext(
            context=self.context,
            agent=self.agent,
            messages=self.messages,
            usage=self.usage,
            step=self.step,
            call_id=call_id,
        )
