import re
from typing import Iterable, Optional

from baton.domain.context import RunContext
from baton.domain.guardrail import Guardrail, GuardrailKind, GuardrailPolicy, GuardrailResult

PII_PATTERNS = {
    "email": re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
    "phone": re.compile(r"(?<!\w)(\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    "ssn": re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),
    "credit_card": re.compile(r"\b\d{4}[-\s]?\d{4}[-\s]?\d{4}[-\s]?\d{4}\b"),
    "ip_address": re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b"),
}


def detect_pii(text: str, categories: Optional[Iterable[str]] = None) -> list:
    """Return the PII categories found in the text, in pattern order."""

    wanted = set(categories) if categories is not None else None
    return [
        category
        for category, pattern in PII_PATTERNS.items()
        if (wanted is None or category in wanted) and pattern.search(text)
    ]


def pii_guardrail(
    kind: GuardrailKind = GuardrailKind.OUTPUT,
    categories: Optional[Iterable[str]] = None,
    block: bool = True,
    name: str = "pii_detection",
    policy: GuardrailPolicy = GuardrailPolicy.BLOCK,
) -> Guardrail:
    """
    Builds a regex-based PII detector.

    Args:
        kind: Input or output.
        categories: Subset of ``PII_PATTERNS`` keys; all when omitted.
        block: When False, detections pass with a warning message.
        name: Guardrail name reported on failure.
        policy: Block or retry.
    """
    selected = list(categories) if categories is not None else None
    if selected is not None:
        unknown = set(selected) - set(PII_PATTERNS)
        if unknown:
            raise ValueError(f"Unknown PII categories: {sorted(unknown)}")

    def validate(text: str, ctx: RunContext) -> GuardrailResult:
        found = detect_pii(text, selected)
        if not found:
            return GuardrailResult(passed=True)
        metadata = {"detected_categories": found}
        if block:
            return GuardrailResult(
                passed=False, message=f"PII detected: {', '.join(found)}", metadata=metadata
            )
        return GuardrailResult(
            passed=True, message=f"Warning: PII detected: {', '.join(found)}", metadata=metadata
        )

    return Guardrail(name=name, kind=kind, validate=validate, policy=policy)
