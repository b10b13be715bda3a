"""Lifecycle callbacks for runs and agents.

Subclass and override the callbacks you need; the defaults do nothing.
Overrides may be plain or ``async`` methods. An exception raised by a
callback fails the run with ``LifecycleHookError``.
"""

from typing import TYPE_CHECKING, Any

from baton.domain.context import RunContext
from baton.domain.messages import ToolCallRequest, ToolCallResult

if TYPE_CHECKING:
    from baton.domain.agent import Agent


class RunHooks:
    """Callbacks for every agent taking part in a run (``RunOptions.hooks``)."""

    async def on_agent_start(self, ctx: RunContext, agent: "Agent") -> None:
        """Called when an agent takes control, at run start or after a transfer."""

    async def on_agent_end(self, ctx: RunContext, agent: "Agent", output: Any) -> None:
        """Called when an agent produces the final output of the run."""

    async def on_transfer(self, ctx: RunContext, source: "Agent", target: "Agent") -> None:
        """Called when control passes from ``source`` to ``target``."""

    async def on_tool_start(self, ctx: RunContext, agent: "Agent", call: ToolCallRequest) -> None:
        """Called before a tool body runs."""

    async def on_tool_end(
        self, ctx: RunContext, agent: "Agent", result: ToolCallResult
    ) -> None:
        """Called after a tool body returns or fails."""


class AgentHooks:
    """Callbacks scoped to one agent (``Agent.hooks``)."""

    async def on_start(self, ctx: RunContext, agent: "Agent") -> None:
        pass

    async def on_end(self, ctx: RunContext, agent: "Agent", output: Any) -> None:
        pass

    async def on_transfer(self, ctx: RunContext, agent: "Agent", target: "Agent") -> None:
        """Called on the agent giving up control."""

    async def on_tool_start(self, ctx: RunContext, agent: "Agent", call: ToolCallRequest) -> None:
        pass

    async def on_tool_end(
        self, ctx: RunContext, agent: "Agent", result: ToolCallResult
    ) -> None:
        pass
