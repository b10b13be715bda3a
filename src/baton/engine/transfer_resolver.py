import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import ValidationError

from baton.domain.agent import TRANSFER_TOOL_PREFIX, Agent, InputFilter, Transfer, TransferArgs
from baton.domain.exceptions import UnknownTransferTargetError
from baton.domain.messages import Message, ToolCallRequest, ToolCallResult
from baton.domain.records import TransferRecord

logger = logging.getLogger(__name__)


def transfer_prompt(agent: Agent) -> str:
    """Describe an agent's transfer targets for its instructions."""

    targets = agent.transfer_targets()
    if not targets:
        return ""
    lines = ["Available specialists to transfer to:"]
    for target in targets:
        description = (
            target.description or target.agent.transfer_description or "No description available"
        )
        lines.append(f"- {target.agent.name} ({target.resolved_tool_name}): {description}")
    return "\n".join(lines)


@dataclass
class TransferDecision:
    """The winning transfer of a batch plus one result per transfer call."""

    transfer: Transfer
    record: TransferRecord
    results: List[ToolCallResult] = field(default_factory=list)

    @property
    def target(self) -> Agent:
        return self.transfer.agent


class TransferResolver:
    """Selects the transfer target of a batch and rewrites history for it."""

    def resolve(
        self, agent: Agent, calls: Sequence[ToolCallRequest], step: int
    ) -> Optional[TransferDecision]:
        """
        Resolves the transfer requests of one turn.

        The first transfer call wins; later ones receive error results.

        Args:
            agent: Active agent that issued the calls.
            calls: Transfer calls in request order.
            step: Step number of the requesting turn.

        Returns:
            The decision, or None when there are no transfer calls.

        Raises:
            UnknownTransferTargetError: When the winning call names no target
                of the active agent.
        """
        if not calls:
            return None
        winner = calls[0]
        transfer = agent.find_transfer(winner.tool_name)
        if transfer is None:
            target_name = winner.tool_name
            if target_name.startswith(TRANSFER_TOOL_PREFIX):
                target_name = target_name[len(TRANSFER_TOOL_PREFIX) :]
            raise UnknownTransferTargetError(agent.name, target_name)

        record = TransferRecord(
            source=agent.name,
            target=transfer.agent.name,
            turn=step,
            reason=self._reason(winner),
        )
        results = [ToolCallResult.success(winner, f"Transferred to {transfer.agent.name}.")]
        for extra in calls[1:]:
            results.append(
                ToolCallResult.failure(
                    extra,
                    f"Error: transfer to {transfer.agent.name} already requested; "
                    "only one transfer per turn is allowed.",
                )
            )
        return TransferDecision(transfer=transfer, record=record, results=results)

    @staticmethod
    def filter_history(
        transfer: Transfer,
        messages: Sequence[Message],
        default_filter: Optional[InputFilter] = None,
    ) -> List[Message]:
        """
        Applies the transfer's input filter, else the run default, else none.

        Returns:
            A new list; the input sequence is never mutated.
        """
        input_filter = transfer.input_filter or default_filter
        if input_filter is None:
            return list(messages)
        return list(input_filter(list(messages)))

    @staticmethod
    def _reason(call: ToolCallRequest) -> Optional[str]:
        arguments = call.arguments
        try:
            if isinstance(arguments, str):
                arguments = json.loads(arguments) if arguments.strip() else {}
            return TransferArgs.model_validate(arguments or {}).reason
        except (json.JSONDecodeError, ValidationError):
            logger.warning(
                "Ignoring malformed transfer arguments",
                extra={"tool_name": call.tool_name, "call_id": call.call_id},
            )
            return None
