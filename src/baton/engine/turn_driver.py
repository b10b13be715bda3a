import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from baton.domain.agent import Agent
from baton.domain.context import RunContext
from baton.domain.error_sanitizer import sanitize_details
from baton.domain.exceptions import LLMError, ModelInvocationError
from baton.domain.messages import Message, ToolCallRequest
from baton.engine.transfer_resolver import transfer_prompt
from baton.llm.llm_error_mapper import map_llm_error
from baton.llm.model_provider import ModelProvider, ModelRequest, ModelResponse

logger = logging.getLogger(__name__)


class TurnKind(str, Enum):
    FINAL_ANSWER = "final_answer"
    TOOL_CALLS = "tool_calls"


@dataclass
class TurnOutcome:
    """Classified result of one model invocation."""

    kind: TurnKind
    response: ModelResponse
    text: Optional[str] = None
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    regular_calls: List[ToolCallRequest] = field(default_factory=list)
    transfer_calls: List[ToolCallRequest] = field(default_factory=list)

    def assistant_message(self) -> Message:
        return Message.assistant(self.text, self.tool_calls)


def _new_call_id() -> str:
    return f"call_{uuid4().hex[:16]}"


def normalize_call_ids(calls: Sequence[ToolCallRequest]) -> List[ToolCallRequest]:
    """Replace missing or repeated call ids so each id is unique in the batch."""

    seen = set()
    normalized: List[ToolCallRequest] = []
    for call in calls:
        if not call.call_id or call.call_id in seen:
            call = call.model_copy(update={"call_id": _new_call_id()})
        seen.add(call.call_id)
        normalized.append(call)
    return normalized


class TurnDriver:
    """
    Issues exactly one model invocation for the active agent.

    Provider failures are not retried here; they surface as
    ModelInvocationError.
    """

    def __init__(self, provider: ModelProvider) -> None:
        self._provider = provider

    async def resolve_instructions(self, agent: Agent, ctx: RunContext) -> str:
        """
        Resolves static or dynamic instructions and appends the transfer prompt.

        Args:
            agent: Active agent.
            ctx: Run context passed to callable instructions.

        Returns:
            The system instructions for the turn.
        """
        instructions = agent.instructions
        if callable(instructions):
            instructions = instructions(ctx)
            if inspect.isawaitable(instructions):
                instructions = await instructions
        parts = [str(instructions or "").strip(), transfer_prompt(agent)]
        return "\n\n".join(part for part in parts if part)

    async def build_request(
        self,
        agent: Agent,
        messages: Sequence[Message],
        ctx: RunContext,
        default_model: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ModelRequest:
        return ModelRequest(
            agent_name=agent.name,
            model=agent.model or default_model,
            instructions=await self.resolve_instructions(agent, ctx),
            messages=list(messages),
            tools=agent.tool_specs(),
            settings=agent.model_settings.as_dict(),
            metadata=dict(metadata or {}),
        )

    async def take_turn(
        self,
        agent: Agent,
        messages: Sequence[Message],
        ctx: RunContext,
        default_model: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> TurnOutcome:
        """
        Invokes the model once and classifies the response.

        Args:
            agent: Active agent.
            messages: History visible to the agent.
            ctx: Run context.
            default_model: Model used when the agent does not name one.
            metadata: Request metadata such as run id and step.

        Returns:
            A final answer or a tool-call batch split into regular and
            transfer calls.

        Raises:
            ModelInvocationError: When the provider call fails.
        """
        request = await self.build_request(agent, messages, ctx, default_model, metadata)
        try:
            response = await self._provider.complete(request)
        except Exception as exc:
            mapping = map_llm_error(exc)
            log_extra = {
                "agent": agent.name,
                "model": request.model,
                "reason": mapping.reason,
                "step": ctx.step,
            }
            if mapping.reason == "llm_execution_failed":
                logger.exception("Unexpected model invocation error", extra=log_extra)
            else:
                logger.warning("Model invocation failed", extra=log_extra)
            cause: Exception = exc
            if issubclass(mapping.error_type, LLMError) and not isinstance(exc, LLMError):
                cause = mapping.error_type(str(exc))
                cause.__cause__ = exc
            raise ModelInvocationError(
                f"Model invocation failed for agent '{agent.name}': {exc}",
                reason=mapping.reason,
                details=sanitize_details(mapping.details),
                error_type=mapping.error_type,
            ) from cause

        calls = normalize_call_ids(response.tool_calls)
        if not calls:
            return TurnOutcome(kind=TurnKind.FINAL_ANSWER, response=response, text=response.text or "")

        regular: List[ToolCallRequest] = []
        transfers: List[ToolCallRequest] = []
        for call in calls:
            (transfers if agent.is_transfer_call(call.tool_name) else regular).append(call)
        return TurnOutcome(
            kind=TurnKind.TOOL_CALLS,
            response=response,
            text=response.text,
            tool_calls=calls,
            regular_calls=regular,
            transfer_calls=transfers,
        )
