from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from openai import AsyncOpenAI
from pydantic_ai.direct import model_request
from pydantic_ai.messages import ModelMessage
from pydantic_ai.messages import ModelRequest as AIModelRequest
from pydantic_ai.messages import ModelResponse as AIModelResponse
from pydantic_ai.messages import (
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models import Model, ModelRequestParameters
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.tools import ToolDefinition

from baton.config import Config
from baton.domain.messages import Role, ToolCallRequest
from baton.llm.model_provider import ModelRequest, ModelResponse
from baton.llm.stable_transport import StableTransport

logger = logging.getLogger(__name__)


class PydanticAIProvider:
    """Model provider implemented on the PydanticAI direct request API.

    One ``complete`` call is exactly one model request: tool execution and
    the agent loop stay in the run loop, not in PydanticAI.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        model_builder: Optional[Callable[[str], Model]] = None,
        transport: Optional[StableTransport] = None,
    ) -> None:
        """Initialize the provider.

        Args:
            config: Runtime configuration with credentials and proxy settings.
            model_builder: Optional override for building the PydanticAI model.
            transport: Retry wrapper; built from ``config.model_max_attempts``
                when omitted.
        """

        self._config = config or Config()
        self._model_builder = model_builder
        self._transport = transport or StableTransport(
            max_attempts=self._config.model_max_attempts
        )
        self._models: Dict[str, Model] = {}

    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Execute one model request.

        Args:
            request: Normalized request built by the turn driver.

        Returns:
            The normalized response.
        """

        model = self._get_model(request.model)
        messages = self._to_model_messages(request)
        parameters = ModelRequestParameters(
            function_tools=[
                ToolDefinition(
                    name=spec.name,
                    description=spec.description,
                    parameters_json_schema=spec.parameters,
                )
                for spec in request.tools
            ],
            allow_text_output=True,
        )
        log_extra = {
            "agent": request.agent_name,
            "model": request.model,
            "run_id": request.metadata.get("run_id"),
            "step": request.metadata.get("step"),
        }
        logger.debug("Model request start", extra=log_extra)
        response = await self._transport.call(
            lambda: model_request(
                model,
                messages,
                model_settings=request.settings or None,
                model_request_parameters=parameters,
            )
        )
        logger.debug("Model request complete", extra=log_extra)
        return self._from_model_response(response)

    def _get_model(self, model_name: str) -> Model:
        model = self._models.get(model_name)
        if model is None:
            model = self._build_model(model_name)
            self._models[model_name] = model
        return model

    def _build_model(self, model_name: str) -> Model:
        """Build the PydanticAI model for a model name.

        Args:
            model_name: Target model.

        Returns:
            A model configured for direct or proxy (LiteLLM) usage.
        """

        if self._model_builder is not None:
            return self._model_builder(model_name)

        config = self._config
        if config.use_litellm_proxy():
            api_key = config.get_litellm_proxy_api_key() or config.get_openai_api_key()
            base_url = config.get_litellm_proxy_url()
        else:
            api_key = config.get_openai_api_key()
            base_url = None
        if api_key is None:
            # Falls back to OPENAI_API_KEY from the environment.
            return OpenAIChatModel(model_name)

        client_kwargs: Dict[str, Any] = {
            "api_key": api_key,
            "max_retries": config.api_max_retries,
        }
        if base_url:
            client_kwargs["base_url"] = base_url
        provider = OpenAIProvider(openai_client=AsyncOpenAI(**client_kwargs))
        return OpenAIChatModel(model_name, provider=provider)

    @staticmethod
    def _to_model_messages(request: ModelRequest) -> List[ModelMessage]:
        """Map the conversation onto PydanticAI request/response messages.

        Consecutive non-assistant messages share one request message.
        """

        result: List[ModelMessage] = []
        pending: List[Any] = []
        if request.instructions:
            pending.append(SystemPromptPart(content=request.instructions))

        for message in request.messages:
            if message.role == Role.ASSISTANT:
                if pending:
                    result.append(AIModelRequest(parts=pending))
                    pending = []
                parts: List[Any] = []
                if message.text:
                    parts.append(TextPart(content=message.text))
                for call in message.tool_calls:
                    parts.append(
                        ToolCallPart(
                            tool_name=call.tool_name,
                            args=call.arguments,
                            tool_call_id=call.call_id,
                        )
                    )
                result.append(AIModelResponse(parts=parts or [TextPart(content="")]))
            elif message.role == Role.TOOL:
                pending.append(
                    ToolReturnPart(
                        tool_name=message.name or "",
                        content=message.text,
                        tool_call_id=message.tool_call_id or "",
                    )
                )
            elif message.role == Role.SYSTEM:
                pending.append(SystemPromptPart(content=message.text))
            else:
                pending.append(UserPromptPart(content=message.text))

        if pending:
            result.append(AIModelRequest(parts=pending))
        return result

    @staticmethod
    def _from_model_response(response: AIModelResponse) -> ModelResponse:
        texts: List[str] = []
        calls: List[ToolCallRequest] = []
        for part in response.parts:
            if isinstance(part, TextPart):
                texts.append(part.content)
            elif isinstance(part, ToolCallPart):
                arguments = part.args if part.args is not None else {}
                calls.append(
                    ToolCallRequest(
                        call_id=part.tool_call_id or "",
                        tool_name=part.tool_name,
                        arguments=arguments,
                    )
                )

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        if input_tokens is None:
            input_tokens = getattr(usage, "request_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        if output_tokens is None:
            output_tokens = getattr(usage, "response_tokens", None)
        text = "".join(texts)
        return ModelResponse(
            text=text or None,
            tool_calls=calls,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            finish_reason=getattr(response, "finish_reason", None),
            model_name=getattr(response, "model_name", None),
        )
