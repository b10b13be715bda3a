from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from pydantic import BaseModel, Field

from baton.domain.context import RunContext


class GuardrailKind(str, Enum):
    """Which text a guardrail validates."""

    INPUT = "input"
    OUTPUT = "output"


class GuardrailPolicy(str, Enum):
    """What happens when a guardrail fails."""

    BLOCK = "block"
    RETRY = "retry"


class GuardrailResult(BaseModel):
    """Result of a single guardrail check."""

    passed: bool
    message: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


GuardrailValidator = Callable[
    [str, RunContext],
    Union[GuardrailResult, bool, Awaitable[Union[GuardrailResult, bool]]],
]


@dataclass(eq=False)
class Guardrail:
    """
    A policy check applied to user input or generated output.

    Args:
        name: Stable name reported in tripwire errors.
        kind: Input or output.
        validate: Check returning a GuardrailResult or bool, sync or async.
        policy: BLOCK aborts the run; RETRY feeds the message back to the
            model and asks for a new answer.
    """

    name: str
    kind: GuardrailKind
    validate: GuardrailValidator
    policy: GuardrailPolicy = GuardrailPolicy.BLOCK
