from baton.guardrails.content_safety import SafetyClassification, content_safety_guardrail
from baton.guardrails.custom import custom_guardrail
from baton.guardrails.length import length_guardrail
from baton.guardrails.pii import detect_pii, pii_guardrail

__all__ = [
    "SafetyClassification",
    "content_safety_guardrail",
    "custom_guardrail",
    "detect_pii",
    "length_guardrail",
    "pii_guardrail",
]
