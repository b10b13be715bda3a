"""Concurrent tool execution with approval gating."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from baton.domain.agent import Agent
from baton.domain.context import RunContext
from baton.domain.error_sanitizer import describe_exception
from baton.domain.exceptions import ApprovalRejectedError, ToolExecutionError
from baton.domain.messages import ToolCallRequest, ToolCallResult
from baton.domain.run_state import ApprovalDecision, PendingApproval
from baton.domain.tool import Tool
from baton.engine.lifecycle import LifecycleEmitter

logger = logging.getLogger(__name__)

ApprovalHandler = Callable[
    [str, Dict[str, Any], Any],
    Union[bool, ApprovalDecision, Awaitable[Union[bool, ApprovalDecision]]],
]


def coerce_decision(value: Union[bool, ApprovalDecision, Mapping[str, Any]]) -> ApprovalDecision:
    """Normalize a caller-supplied approval decision."""

    if isinstance(value, ApprovalDecision):
        return value
    if isinstance(value, Mapping):
        return ApprovalDecision.model_validate(value)
    return ApprovalDecision(approved=bool(value))


@dataclass
class _PlannedCall:
    request: ToolCallRequest
    tool: Optional[Tool] = None
    args: Optional[BaseModel] = None
    result: Optional[ToolCallResult] = None
    gated: bool = False
    decision: Optional[ApprovalDecision] = None

    @property
    def arguments(self) -> Dict[str, Any]:
        if self.args is not None:
            return self.args.model_dump(mode="json")
        if isinstance(self.request.arguments, dict):
            return dict(self.request.arguments)
        return {}


@dataclass
class DispatchOutcome:
    """Results of a batch, or the approvals that suspended it."""

    results: List[ToolCallResult] = field(default_factory=list)
    pending: List[PendingApproval] = field(default_factory=list)
    decisions: Dict[str, ApprovalDecision] = field(default_factory=dict)

    @property
    def suspended(self) -> bool:
        return bool(self.pending)


class ToolDispatcher:
    """
    Executes one turn's regular tool calls.

    Approval is resolved for the whole batch before anything runs: if any
    gated call is still undecided, nothing executes and the batch suspends.
    """

    async def dispatch(
        self,
        agent: Agent,
        calls: Sequence[ToolCallRequest],
        ctx: RunContext,
        decisions: Optional[Mapping[str, ApprovalDecision]] = None,
        approval_handler: Optional[ApprovalHandler] = None,
        emitter: Optional[LifecycleEmitter] = None,
    ) -> DispatchOutcome:
        """
        Dispatches a batch of tool calls.

        Args:
            agent: Active agent whose tools are looked up by name.
            calls: Regular (non-transfer) tool calls in request order.
            ctx: Run context shared by every call in the batch.
            decisions: Approval decisions keyed by call id.
            approval_handler: Optional ``(tool_name, args, context)`` callback
                asked for gated calls without a decision.
            emitter: Receives tool start and end notifications.

        Returns:
            Results in request order, or pending approvals when suspended.
        """
        decisions = dict(decisions or {})
        registry = agent.tool_registry
        planned = [self._plan(registry.get_tool(call.tool_name), call) for call in calls]

        new_decisions: Dict[str, ApprovalDecision] = {}
        for item in planned:
            if item.result is not None:
                continue
            item.gated = await self._requires_approval(item, ctx)
            if not item.gated:
                continue
            item.decision = decisions.get(item.request.call_id)
            if item.decision is None and approval_handler is not None:
                item.decision = await self._ask_handler(approval_handler, item, ctx)
                new_decisions[item.request.call_id] = item.decision

        undecided = [item for item in planned if item.gated and item.decision is None]
        if undecided:
            logger.info(
                "Tool batch suspended for approval",
                extra={
                    "agent": ctx.agent,
                    "step": ctx.step,
                    "pending": [item.request.call_id for item in undecided],
                },
            )
            return DispatchOutcome(
                pending=[
                    PendingApproval(
                        call_id=item.request.call_id,
                        tool_name=item.request.tool_name,
                        arguments=item.arguments,
                        metadata=dict(item.tool.approval_metadata),
                    )
                    for item in undecided
                ],
                decisions=new_decisions,
            )

        results = await asyncio.gather(
            *(self._settle(agent, item, ctx, emitter) for item in planned)
        )
        return DispatchOutcome(results=list(results), decisions=new_decisions)

    @staticmethod
    def _plan(tool: Optional[Tool], call: ToolCallRequest) -> _PlannedCall:
        if tool is None:
            return _PlannedCall(
                request=call,
                result=ToolCallResult.failure(
                    call, f"Error: Tool {call.tool_name} not found or access denied."
                ),
            )
        try:
            args = tool.validate(call.arguments)
        except ToolExecutionError as exc:
            return _PlannedCall(
                request=call,
                tool=tool,
                result=ToolCallResult.failure(call, str(exc), describe_exception(exc)),
            )
        return _PlannedCall(request=call, tool=tool, args=args)

    @staticmethod
    async def _requires_approval(item: _PlannedCall, ctx: RunContext) -> bool:
        try:
            return await item.tool.requires_approval(
                ctx.for_call(item.request.call_id), item.arguments
            )
        except Exception as exc:
            logger.warning(
                "Approval predicate failed; requiring approval",
                extra={
                    "tool_name": item.request.tool_name,
                    "call_id": item.request.call_id,
                    "error_class": type(exc).__name__,
                },
            )
            return True

    @staticmethod
    async def _ask_handler(
        handler: ApprovalHandler, item: _PlannedCall, ctx: RunContext
    ) -> ApprovalDecision:
        try:
            answer = handler(item.request.tool_name, item.arguments, ctx.context)
            if inspect.isawaitable(answer):
                answer = await answer
            return coerce_decision(answer)
        except Exception as exc:
            logger.warning(
                "Approval handler failed; rejecting call",
                extra={
                    "tool_name": item.request.tool_name,
                    "call_id": item.request.call_id,
                    "error_class": type(exc).__name__,
                },
            )
            return ApprovalDecision(approved=False, reason=f"Approval handler failed: {exc}")

    async def _settle(
        self,
        agent: Agent,
        item: _PlannedCall,
        ctx: RunContext,
        emitter: Optional[LifecycleEmitter],
    ) -> ToolCallResult:
        if item.result is not None:
            return item.result
        if item.decision is not None and not item.decision.approved:
            reason = item.decision.reason or "Tool call was rejected by the approver"
            error = ApprovalRejectedError(f"Tool call rejected: {reason}")
            logger.info(
                "Tool call rejected",
                extra={"tool_name": item.request.tool_name, "call_id": item.request.call_id},
            )
            return ToolCallResult.failure(item.request, str(error), describe_exception(error))
        call_ctx = ctx.for_call(item.request.call_id)
        if emitter is not None:
            await emitter.tool_start(call_ctx, agent, item.request)
        result = await self._execute(item, call_ctx)
        if emitter is not None:
            await emitter.tool_end(call_ctx, agent, result)
        return result

    @staticmethod
    async def _execute(item: _PlannedCall, ctx: RunContext) -> ToolCallResult:
        tool = item.tool
        request = item.request
        try:
            if tool.timeout is not None:
                payload = await asyncio.wait_for(tool.execute(item.args, ctx), tool.timeout)
            else:
                payload = await tool.execute(item.args, ctx)
        except asyncio.TimeoutError as exc:
            message = f"Error executing {request.tool_name}: timed out after {tool.timeout}s"
            logger.warning(
                "Tool timed out",
                extra={"tool_name": request.tool_name, "call_id": request.call_id},
            )
            return ToolCallResult.failure(request, message, describe_exception(exc))
        except Exception as exc:
            error = ToolExecutionError(f"Error executing {request.tool_name}: {exc}")
            error.__cause__ = exc
            logger.warning(
                "Tool execution failed",
                extra={
                    "tool_name": request.tool_name,
                    "call_id": request.call_id,
                    "error_class": type(exc).__name__,
                },
            )
            return ToolCallResult.failure(request, str(error), describe_exception(error))
        return ToolCallResult.success(request, to_jsonable_python(payload, fallback=str))
