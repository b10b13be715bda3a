import json
import logging
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from baton.domain.context import RunContext
from baton.domain.guardrail import Guardrail, GuardrailKind, GuardrailPolicy, GuardrailResult
from baton.domain.messages import Message
from baton.domain.tool import ToolSpec
from baton.llm.model_provider import ModelProvider, ModelRequest

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = (
    "hate speech",
    "violence",
    "sexual content",
    "harassment",
    "self-harm",
)
CLASSIFY_TOOL = "classify"


class SafetyClassification(BaseModel):
    """Classification the moderation model reports through the classify tool."""

    is_safe: bool = Field(description="Whether the text is free of the categories.")
    detected_categories: List[str] = Field(default_factory=list)
    confidence: Optional[float] = Field(default=None)


def content_safety_guardrail(
    provider: ModelProvider,
    model: str,
    kind: GuardrailKind = GuardrailKind.INPUT,
    categories: Iterable[str] = DEFAULT_CATEGORIES,
    name: str = "content_safety",
    policy: GuardrailPolicy = GuardrailPolicy.BLOCK,
) -> Guardrail:
    """
    Builds a model-backed moderation guardrail.

    The model is asked to call a ``classify`` tool; text is treated as safe
    when it does not, or when the classification cannot be parsed.

    Args:
        provider: Provider used for the moderation call.
        model: Moderation model name.
        kind: Input or output.
        categories: Categories the model should look for.
        name: Guardrail name reported on failure.
        policy: Block or retry.
    """
    category_list = list(categories)
    instructions = (
        "You are a content moderation system. Analyze the following text and "
        "determine if it contains any of these categories: "
        f"{', '.join(category_list)}. Report your decision with the "
        f"{CLASSIFY_TOOL} tool."
    )
    spec = ToolSpec(
        name=CLASSIFY_TOOL,
        description="Classify content safety",
        parameters=SafetyClassification.model_json_schema(),
    )

    async def validate(text: str, ctx: RunContext) -> GuardrailResult:
        response = await provider.complete(
            ModelRequest(
                agent_name=ctx.agent or name,
                model=model,
                instructions=instructions,
                messages=[Message.user(text)],
                tools=[spec],
                metadata={"guardrail": name, "step": ctx.step},
            )
        )
        call = next(
            (item for item in response.tool_calls if item.tool_name == CLASSIFY_TOOL), None
        )
        if call is None:
            return GuardrailResult(passed=True)
        arguments = call.arguments
        try:
            if isinstance(arguments, str):
                arguments = json.loads(arguments)
            classification = SafetyClassification.model_validate(arguments)
        except (json.JSONDecodeError, ValidationError):
            logger.warning(
                "Unparsable safety classification; treating as safe",
                extra={"guardrail": name},
            )
            return GuardrailResult(passed=True)
        if classification.is_safe:
            return GuardrailResult(passed=True, metadata=classification.model_dump())
        detected = ", ".join(classification.detected_categories) or "unsafe content"
        return GuardrailResult(
            passed=False,
            message=f"Content contains: {detected}",
            metadata=classification.model_dump(),
        )

    return Guardrail(name=name, kind=kind, validate=validate, policy=policy)
