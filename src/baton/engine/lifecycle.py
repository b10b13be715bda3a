"""Fan-out of run progress to lifecycle hooks and event streams."""

import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from baton.domain.agent import Agent
from baton.domain.context import RunContext
from baton.domain.events import RunEvent, RunEventType
from baton.domain.exceptions import LifecycleHookError
from baton.domain.hooks import RunHooks
from baton.domain.messages import Message, ToolCallRequest, ToolCallResult
from baton.domain.records import TransferRecord
from baton.domain.result import RunResult
from baton.domain.run_state import PendingApproval, RunState

logger = logging.getLogger(__name__)

EventSink = Callable[[RunEvent], Awaitable[None]]


class LifecycleEmitter:
    """
    Reports run progress for one run call.

    Each notification becomes a RunEvent for the optional sink and a call on
    the run hooks and the active agent's hooks, in that order.

    Args:
        state: Run being reported on.
        hooks: Run-wide hooks from RunOptions.
        sink: Async consumer of RunEvents, used by streamed runs.
    """

    def __init__(
        self,
        state: RunState,
        hooks: Optional[RunHooks] = None,
        sink: Optional[EventSink] = None,
    ) -> None:
        self._state = state
        self._hooks = hooks
        self._sink = sink

    async def agent_start(self, ctx: RunContext, agent: Agent) -> None:
        await self._publish(RunEventType.AGENT_START, agent)
        await self._call_run_hook("on_agent_start", ctx, agent)
        await self._call_agent_hook(agent, "on_start", ctx, agent)

    async def model_response(self, agent: Agent, message: Message) -> None:
        await self._publish(RunEventType.MODEL_RESPONSE, agent, message=message)

    async def tool_start(self, ctx: RunContext, agent: Agent, call: ToolCallRequest) -> None:
        await self._publish(RunEventType.TOOL_START, agent, tool_call=call)
        await self._call_run_hook("on_tool_start", ctx, agent, call)
        await self._call_agent_hook(agent, "on_tool_start", ctx, agent, call)

    async def tool_end(self, ctx: RunContext, agent: Agent, result: ToolCallResult) -> None:
        await self._publish(RunEventType.TOOL_END, agent, tool_result=result)
        await self._call_run_hook("on_tool_end", ctx, agent, result)
        await self._call_agent_hook(agent, "on_tool_end", ctx, agent, result)

    async def transfer(
        self, ctx: RunContext, source: Agent, target: Agent, record: TransferRecord
    ) -> None:
        await self._publish(RunEventType.TRANSFER, source, transfer=record)
        await self._call_run_hook("on_transfer", ctx, source, target)
        await self._call_agent_hook(source, "on_transfer", ctx, source, target)

    async def guardrail_retry(self, agent: Agent, feedback: str) -> None:
        await self._publish(RunEventType.GUARDRAIL_RETRY, agent, feedback=feedback)

    async def approval_required(self, agent: Agent, approvals: List[PendingApproval]) -> None:
        await self._publish(RunEventType.APPROVAL_REQUIRED, agent, approvals=list(approvals))

    async def agent_end(self, ctx: RunContext, agent: Agent, output: Any) -> None:
        await self._publish(RunEventType.AGENT_END, agent, output=output)
        await self._call_run_hook("on_agent_end", ctx, agent, output)
        await self._call_agent_hook(agent, "on_end", ctx, agent, output)

    async def run_end(self, result: RunResult) -> None:
        if self._sink is None:
            return
        await self._sink(
            RunEvent(
                type=RunEventType.RUN_END,
                run_id=self._state.run_id,
                agent=result.last_agent,
                step=self._state.step,
                result=result,
            )
        )

    async def _publish(self, kind: RunEventType, agent: Agent, **fields: Any) -> None:
        if self._sink is None:
            return
        await self._sink(
            RunEvent(
                type=kind,
                run_id=self._state.run_id,
                agent=agent.name,
                step=self._state.step,
                **fields,
            )
        )

    async def _call_run_hook(self, name: str, *args: Any) -> None:
        if self._hooks is not None:
            await self._invoke(f"RunHooks.{name}", getattr(self._hooks, name), *args)

    async def _call_agent_hook(self, agent: Agent, name: str, *args: Any) -> None:
        if agent.hooks is not None:
            await self._invoke(f"AgentHooks.{name}", getattr(agent.hooks, name), *args)

    async def _invoke(self, label: str, callback: Callable[..., Any], *args: Any) -> None:
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.warning(
                "Lifecycle hook failed",
                extra={
                    "run_id": self._state.run_id,
                    "hook": label,
                    "error_class": type(exc).__name__,
                },
            )
            raise LifecycleHookError(label, exc) from exc
