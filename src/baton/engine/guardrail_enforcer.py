import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from baton.domain.context import RunContext
from baton.domain.error_sanitizer import describe_exception
from baton.domain.exceptions import GuardrailTripwireError
from baton.domain.guardrail import Guardrail, GuardrailPolicy, GuardrailResult

logger = logging.getLogger(__name__)

FEEDBACK_PREFIX = "[Guardrail feedback]"


@dataclass
class GuardrailFailure:
    guardrail: Guardrail
    result: GuardrailResult

    @property
    def message(self) -> str:
        return self.result.message or f"Guardrail '{self.guardrail.name}' failed"


@dataclass
class GuardrailOutcome:
    """Failures from one evaluation of a guardrail list."""

    failures: List[GuardrailFailure] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.failures

    def first_blocking(self) -> Optional[GuardrailFailure]:
        for failure in self.failures:
            if failure.guardrail.policy == GuardrailPolicy.BLOCK:
                return failure
        return None

    def feedback(self) -> str:
        """Corrective message injected before the model is asked again."""

        lines = [f"{FEEDBACK_PREFIX} Your previous answer was rejected."]
        for failure in self.failures:
            lines.append(f"- {failure.guardrail.name}: {failure.message}")
        lines.append("Please provide a new answer that addresses these issues.")
        return "\n".join(lines)


class GuardrailEnforcer:
    """Runs guardrails of one kind against a piece of text.

    All guardrails run concurrently; a single failure is enough to trigger
    its policy.
    """

    async def evaluate(
        self, guardrails: Sequence[Guardrail], text: str, ctx: RunContext
    ) -> GuardrailOutcome:
        """
        Evaluates every guardrail against the text.

        Args:
            guardrails: Guardrails to run.
            text: User input or model output.
            ctx: Run context passed to each validator.

        Returns:
            The collected failures, in guardrail order.
        """
        if not guardrails:
            return GuardrailOutcome()
        results = await asyncio.gather(
            *(self._run_one(guardrail, text, ctx) for guardrail in guardrails)
        )
        failures = [
            GuardrailFailure(guardrail=guardrail, result=result)
            for guardrail, result in zip(guardrails, results)
            if not result.passed
        ]
        for failure in failures:
            logger.info(
                "Guardrail failed",
                extra={
                    "guardrail": failure.guardrail.name,
                    "kind": failure.guardrail.kind.value,
                    "policy": failure.guardrail.policy.value,
                    "agent": ctx.agent,
                    "step": ctx.step,
                },
            )
        return GuardrailOutcome(failures=failures)

    async def enforce_input(
        self, guardrails: Sequence[Guardrail], text: str, ctx: RunContext
    ) -> None:
        """
        Checks the raw user input.

        Raises:
            GuardrailTripwireError: When any input guardrail fails. There is no
                model output to retry, so every failure blocks.
        """
        outcome = await self.evaluate(guardrails, text, ctx)
        if outcome.failures:
            failure = outcome.first_blocking() or outcome.failures[0]
            raise GuardrailTripwireError(
                failure.guardrail.name, failure.guardrail.kind.value, failure.message
            )

    async def enforce_output(
        self, guardrails: Sequence[Guardrail], text: str, ctx: RunContext
    ) -> GuardrailOutcome:
        """
        Checks a final answer.

        Returns:
            The outcome; failures left in it all have the retry policy.

        Raises:
            GuardrailTripwireError: When a blocking guardrail fails.
        """
        outcome = await self.evaluate(guardrails, text, ctx)
        blocking = outcome.first_blocking()
        if blocking is not None:
            raise GuardrailTripwireError(
                blocking.guardrail.name, blocking.guardrail.kind.value, blocking.message
            )
        return outcome

    @staticmethod
    async def _run_one(guardrail: Guardrail, text: str, ctx: RunContext) -> GuardrailResult:
        try:
            result = guardrail.validate(text, ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            logger.warning(
                "Guardrail raised; treating as failure",
                extra={"guardrail": guardrail.name, "error_class": type(exc).__name__},
            )
            return GuardrailResult(
                passed=False,
                message=str(exc) or type(exc).__name__,
                metadata={"error": describe_exception(exc)},
            )
        if isinstance(result, GuardrailResult):
            return result
        return GuardrailResult(passed=bool(result))
