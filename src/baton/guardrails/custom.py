from baton.domain.guardrail import (
    Guardrail,
    GuardrailKind,
    GuardrailPolicy,
    GuardrailValidator,
)


def custom_guardrail(
    name: str,
    validate: GuardrailValidator,
    kind: GuardrailKind = GuardrailKind.OUTPUT,
    policy: GuardrailPolicy = GuardrailPolicy.BLOCK,
) -> Guardrail:
    """Wrap a caller-supplied ``(text, ctx)`` check as a guardrail."""

    if not name:
        raise ValueError("Guardrail name must be non-empty")
    return Guardrail(name=name, kind=kind, validate=validate, policy=policy)
