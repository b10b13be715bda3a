import asyncio

import pytest
from pydantic import SecretStr
from pydantic_ai.messages import ModelRequest as AIModelRequest
from pydantic_ai.messages import ModelResponse as AIModelResponse
from pydantic_ai.messages import (
    SystemPromptPart,
    TextPart,
    ToolCallPart,
    ToolReturnPart,
    UserPromptPart,
)
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.usage import RequestUsage

from baton.config import Config
from baton.domain.messages import Message, ToolCallRequest, ToolCallResult
from baton.domain.tool import ToolSpec
from baton.llm import pydantic_ai_provider as provider_module
from baton.llm.model_provider import ModelProvider, ModelRequest
from baton.llm.pydantic_ai_provider import PydanticAIProvider


def _request(**overrides) -> ModelRequest:
    call = ToolCallRequest(call_id="c1", tool_name="lookup", arguments={"q": "x"})
    values = dict(
        agent_name="Solo",
        model="gpt-test",
        instructions="Be brief.",
        messages=[
            Message.user("find x"),
            Message.assistant(None, [call]),
            ToolCallResult.success(call, "x=1").to_message(),
            Message.user("thanks"),
        ],
        tools=[ToolSpec(name="lookup", description="Look up", parameters={"type": "object"})],
        settings={"temperature": 0.2},
        metadata={"run_id": "r1", "step": 2},
    )
    values.update(overrides)
    return ModelRequest(**values)


def test_provider_satisfies_protocol() -> None:
    assert isinstance(PydanticAIProvider(Config()), ModelProvider)


def test_messages_are_grouped_into_requests_and_responses() -> None:
    """Consecutive non-assistant messages share one model request."""
    messages = PydanticAIProvider._to_model_messages(_request())

    assert [type(message) for message in messages] == [
        AIModelRequest,
        AIModelResponse,
        AIModelRequest,
    ]
    first, second, third = messages
    assert isinstance(first.parts[0], SystemPromptPart)
    assert first.parts[0].content == "Be brief."
    assert isinstance(first.parts[1], UserPromptPart)
    assert isinstance(second.parts[0], ToolCallPart)
    assert second.parts[0].tool_call_id == "c1"
    assert isinstance(third.parts[0], ToolReturnPart)
    assert third.parts[0].content == "x=1"
    assert third.parts[0].tool_name == "lookup"
    assert isinstance(third.parts[1], UserPromptPart)


def test_complete_maps_response_and_usage(monkeypatch: pytest.MonkeyPatch) -> None:
    """A single direct model request is made and its response normalized."""
    captured = {}

    async def fake_model_request(model, messages, model_settings=None, model_request_parameters=None):
        captured["model"] = model
        captured["settings"] = model_settings
        captured["tools"] = [tool.name for tool in model_request_parameters.function_tools]
        return AIModelResponse(
            parts=[
                TextPart(content="checking"),
                ToolCallPart(tool_name="lookup", args={"q": "y"}, tool_call_id="c2"),
            ],
            usage=RequestUsage(input_tokens=12, output_tokens=3),
            model_name="gpt-test",
        )

    monkeypatch.setattr(provider_module, "model_request", fake_model_request)
    sentinel = object()
    provider = PydanticAIProvider(Config(), model_builder=lambda name: sentinel)

    response = asyncio.run(provider.complete(_request()))

    assert captured["model"] is sentinel
    assert captured["settings"] == {"temperature": 0.2}
    assert captured["tools"] == ["lookup"]
    assert response.text == "checking"
    assert response.tool_calls == [
        ToolCallRequest(call_id="c2", tool_name="lookup", arguments={"q": "y"})
    ]
    assert response.input_tokens == 12
    assert response.output_tokens == 3
    assert response.model_name == "gpt-test"


def test_models_are_built_once_per_name() -> None:
    built = []

    def builder(name):
        built.append(name)
        return object()

    provider = PydanticAIProvider(Config(), model_builder=builder)

    first = provider._get_model("a")
    assert provider._get_model("a") is first
    provider._get_model("b")
    assert built == ["a", "b"]


def test_direct_openai_model_from_config() -> None:
    config = Config(openai_api_key=SecretStr("sk-test-key-000000"))

    model = PydanticAIProvider(config)._build_model("gpt-4o-mini")

    assert isinstance(model, OpenAIChatModel)
    assert model.model_name == "gpt-4o-mini"


def test_litellm_proxy_model_from_config() -> None:
    config = Config(
        litellm_use_proxy=True,
        litellm_proxy_url="http://proxy.local:4000",
        litellm_proxy_api_key=SecretStr("proxy-key"),
    )

    model = PydanticAIProvider(config)._build_model("gpt-4o-mini")

    assert isinstance(model, OpenAIChatModel)
    assert model.base_url.startswith("http://proxy.local:4000")
