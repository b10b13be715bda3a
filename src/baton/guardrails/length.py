import math
from typing import Optional

from baton.domain.context import RunContext
from baton.domain.guardrail import Guardrail, GuardrailKind, GuardrailPolicy, GuardrailResult

UNITS = ("characters", "words", "tokens")


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""

    return math.ceil(len(text) / 4)


def measure(text: str, unit: str) -> int:
    if unit == "characters":
        return len(text)
    if unit == "words":
        return len(text.split())
    if unit == "tokens":
        return estimate_tokens(text)
    raise ValueError(f"Unknown length unit: {unit}")


def length_guardrail(
    kind: GuardrailKind = GuardrailKind.OUTPUT,
    max_length: Optional[int] = None,
    min_length: Optional[int] = None,
    unit: str = "characters",
    name: str = "length_check",
    policy: GuardrailPolicy = GuardrailPolicy.BLOCK,
) -> Guardrail:
    """
    Builds a guardrail bounding text length.

    Args:
        kind: Input or output.
        max_length: Inclusive upper bound, if any.
        min_length: Inclusive lower bound, if any.
        unit: ``characters``, ``words`` or ``tokens`` (estimated).
        name: Guardrail name reported on failure.
        policy: Block or retry.

    Returns:
        The configured Guardrail.
    """
    if unit not in UNITS:
        raise ValueError(f"Unknown length unit: {unit}")

    def validate(text: str, ctx: RunContext) -> GuardrailResult:
        length = measure(text, unit)
        metadata = {"character_length": len(text), "token_estimate": estimate_tokens(text)}
        if min_length is not None and length < min_length:
            return GuardrailResult(
                passed=False,
                message=f"Content too short: {length} {unit} (min: {min_length})",
                metadata=metadata,
            )
        if max_length is not None and length > max_length:
            return GuardrailResult(
                passed=False,
                message=f"Content too long: {length} {unit} (max: {max_length})",
                metadata=metadata,
            )
        return GuardrailResult(passed=True, metadata=metadata)

    return Guardrail(name=name, kind=kind, validate=validate, policy=policy)
