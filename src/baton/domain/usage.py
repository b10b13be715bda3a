from typing import Dict, Optional

from pydantic import BaseModel, Field


class AgentUsage(BaseModel):
    """Usage counters attributed to a single agent."""

    turns: int = Field(default=0, description="Model invocations made by the agent.")
    input_tokens: int = Field(default=0, description="Input tokens consumed.")
    output_tokens: int = Field(default=0, description="Output tokens generated.")
    total_tokens: int = Field(default=0, description="Input plus output tokens.")
    tool_calls: int = Field(default=0, description="Tool calls requested.")


class Usage(BaseModel):
    """Cumulative token and turn accounting for a run.

    Only the run loop mutates a Usage; consumers should treat it as read-only.
    """

    requests: int = Field(default=0, description="Total model invocations.")
    input_tokens: int = Field(default=0, description="Total input tokens.")
    output_tokens: int = Field(default=0, description="Total output tokens.")
    total_tokens: int = Field(default=0, description="Total tokens.")
    per_agent: Dict[str, AgentUsage] = Field(
        default_factory=dict, description="Counters keyed by agent name."
    )

    def add(
        self,
        agent_name: str,
        input_tokens: Optional[int] = None,
        output_tokens: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Record one model invocation for an agent.

        Args:
            agent_name: Name of the agent that was active.
            input_tokens: Reported input tokens, if any.
            output_tokens: Reported output tokens, if any.
            total_tokens: Reported total; derived from input + output when omitted.
        """

        input_count = max(0, int(input_tokens or 0))
        output_count = max(0, int(output_tokens or 0))
        total_count = (
            max(0, int(total_tokens))
            if total_tokens is not None
            else input_count + output_count
        )
        self.requests += 1
        self.input_tokens += input_count
        self.output_tokens += output_count
        self.total_tokens += total_count

        agent_usage = self.per_agent.setdefault(agent_name, AgentUsage())
        agent_usage.turns += 1
        agent_usage.input_tokens += input_count
        agent_usage.output_tokens += output_count
        agent_usage.total_tokens += total_count

    def record_tool_calls(self, agent_name: str, count: int) -> None:
        """Attribute requested tool calls to an agent."""

        if count <= 0:
            return
        self.per_agent.setdefault(agent_name, AgentUsage()).tool_calls += count

    def turns_for(self, agent_name: str) -> int:
        """Return how many model invocations an agent made."""

        agent_usage = self.per_agent.get(agent_name)
        return agent_usage.turns if agent_usage else 0
