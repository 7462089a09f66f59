"""Tests for vendor adapters against mocked HTTP endpoints.

Tests cover:
- Request shape per vendor (system prompt placement, JSON mode, auth headers)
- Response parsing and usage/cost accounting
- HTTP error mapping onto the shared error taxonomy
- Timeouts and connection tests
- Parsing of structured output, optionally into a pydantic model
"""

import json

import httpx
import pytest
from pydantic import BaseModel

from workout_ai.llm.errors import (
    AuthenticationError,
    InvalidRequestError,
    LLMConnectionError,
    LLMError,
    RateLimitError,
    StructuredOutputError,
)
from workout_ai.llm.providers.anthropic_provider import AnthropicProvider
from workout_ai.llm.providers.base import JSON_ONLY_INSTRUCTION
from workout_ai.llm.providers.gemini_provider import GeminiProvider
from workout_ai.llm.providers.openai_provider import (
    LOCAL_PLACEHOLDER_API_KEY,
    CustomLLMProvider,
    LocalLLMProvider,
    MoonshotProvider,
    OpenAIProvider,
)
from workout_ai.llm.types import ChatMessage, CompletionOptions, ProviderConfig, ProviderName

MESSAGES = [
    ChatMessage(role="system", content="You are a coach."),
    ChatMessage(role="user", content="Plan my week."),
]
SCHEMA = {"type": "object", "properties": {"plan": {"type": "string"}}}


def _capture(response: httpx.Response):
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return response

    return httpx.MockTransport(handler), captured


def _anthropic_body(text: str) -> dict:
    return {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "stop_reason": "end_turn",
        "model": "claude-3-5-sonnet-20241022",
        "content": [{"type": "text", "text": text}],
        "usage": {"input_tokens": 200, "output_tokens": 80},
    }


def _gemini_body(text: str) -> dict:
    return {
        "candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 30, "totalTokenCount": 150},
    }


@pytest.mark.asyncio
async def test_openai_structured_output_uses_json_mode(openai_body):
    transport, captured = _capture(httpx.Response(200, json=openai_body('{"plan": "x"}')))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    response = await provider.generate_structured_output(MESSAGES, SCHEMA)

    body = json.loads(captured[0].content)
    assert captured[0].url == "https://api.openai.com/v1/chat/completions"
    assert captured[0].headers["authorization"] == "Bearer sk-test"
    assert body["response_format"] == {"type": "json_object"}
    assert body["temperature"] == 0.3
    assert body["messages"][0]["role"] == "system"
    assert "JSON schema" in body["messages"][0]["content"]
    assert JSON_ONLY_INSTRUCTION not in body["messages"][0]["content"]
    assert response.content == {"plan": "x"}
    assert response.usage.total_tokens == response.usage.prompt_tokens + response.usage.completion_tokens
    assert response.usage.estimated_cost_usd > 0


@pytest.mark.asyncio
async def test_moonshot_has_no_json_mode_and_gets_json_instruction(openai_body):
    transport, captured = _capture(httpx.Response(200, json=openai_body("{}")))
    provider = MoonshotProvider(ProviderConfig(provider=ProviderName.MOONSHOT, api_key="sk-moon"), transport=transport)

    await provider.generate_structured_output(MESSAGES, SCHEMA)

    body = json.loads(captured[0].content)
    assert captured[0].url.host == "api.moonshot.cn"
    assert "response_format" not in body
    assert JSON_ONLY_INSTRUCTION in body["messages"][0]["content"]
    assert body["model"] == "moonshot-v1-8k"


@pytest.mark.asyncio
async def test_anthropic_sends_system_out_of_band():
    transport, captured = _capture(httpx.Response(200, json=_anthropic_body('{"plan": "y"}')))
    provider = AnthropicProvider(
        ProviderConfig(provider=ProviderName.ANTHROPIC, api_key="sk-ant"),
        transport=transport,
    )

    response = await provider.generate_structured_output(MESSAGES, SCHEMA)

    body = json.loads(captured[0].content)
    assert captured[0].headers["x-api-key"] == "sk-ant"
    assert captured[0].headers["anthropic-version"] == "2023-06-01"
    assert body["system"].startswith("You are a coach.")
    assert JSON_ONLY_INSTRUCTION in body["system"]
    assert all(m["role"] != "system" for m in body["messages"])
    assert response.content == {"plan": "y"}
    assert response.usage.prompt_tokens == 200
    assert response.usage.completion_tokens == 80
    assert response.usage.total_tokens == 280


@pytest.mark.asyncio
async def test_anthropic_caps_temperature():
    transport, captured = _capture(httpx.Response(200, json=_anthropic_body("hi")))
    provider = AnthropicProvider(ProviderConfig(provider=ProviderName.ANTHROPIC, api_key="sk-ant"), transport=transport)

    await provider.generate_completion(MESSAGES, CompletionOptions(temperature=1.8))

    assert json.loads(captured[0].content)["temperature"] == 1.0


@pytest.mark.asyncio
async def test_gemini_request_shape():
    transport, captured = _capture(httpx.Response(200, json=_gemini_body('{"plan": "z"}')))
    provider = GeminiProvider(ProviderConfig(provider=ProviderName.GEMINI, api_key="g-key"), transport=transport)
    conversation = [*MESSAGES, ChatMessage(role="assistant", content="{}"), ChatMessage(role="user", content="Fix it")]

    response = await provider.generate_structured_output(conversation, SCHEMA)

    body = json.loads(captured[0].content)
    assert captured[0].url.path.endswith("/models/gemini-1.5-flash:generateContent")
    assert captured[0].headers["x-goog-api-key"] == "g-key"
    assert body["systemInstruction"]["parts"][0]["text"].startswith("You are a coach.")
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert response.usage.total_tokens == 150


@pytest.mark.asyncio
async def test_gemini_invalid_key_is_authentication_error():
    error_body = {
        "error": {
            "code": 400,
            "message": "API key not valid. Please pass a valid API key.",
            "status": "INVALID_ARGUMENT",
            "details": [{"reason": "API_KEY_INVALID"}],
        }
    }
    transport, _ = _capture(httpx.Response(400, json=error_body))
    provider = GeminiProvider(ProviderConfig(provider=ProviderName.GEMINI, api_key="bad"), transport=transport)

    with pytest.raises(AuthenticationError):
        await provider.generate_completion(MESSAGES)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status_code", "expected"),
    [
        (401, AuthenticationError),
        (403, AuthenticationError),
        (429, RateLimitError),
        (400, InvalidRequestError),
        (404, InvalidRequestError),
        (500, LLMError),
    ],
)
async def test_openai_http_error_mapping(status_code, expected):
    transport, _ = _capture(httpx.Response(status_code, json={"error": {"message": "nope"}}))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    with pytest.raises(expected) as exc_info:
        await provider.generate_completion(MESSAGES)

    assert exc_info.value.provider == "openai"
    assert exc_info.value.status_code == status_code


@pytest.mark.asyncio
async def test_rate_limit_reads_retry_after():
    transport, _ = _capture(httpx.Response(429, headers={"retry-after": "12"}, json={"error": {"message": "slow"}}))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    with pytest.raises(RateLimitError) as exc_info:
        await provider.generate_completion(MESSAGES)

    assert exc_info.value.retry_after_seconds == 12.0
    assert exc_info.value.retryable is True


@pytest.mark.asyncio
async def test_transport_timeout_surfaces_as_timeout_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    provider = OpenAIProvider(
        ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"),
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(TimeoutError):
        await provider.generate_completion(MESSAGES)


@pytest.mark.asyncio
async def test_test_connection_uses_cheap_model_and_reports_failure():
    transport, captured = _capture(httpx.Response(401, json={"error": {"message": "bad key"}}))
    provider = AnthropicProvider(ProviderConfig(provider=ProviderName.ANTHROPIC, api_key="sk-ant"), transport=transport)

    assert await provider.test_connection() is False

    body = json.loads(captured[0].content)
    assert body["model"] == "claude-3-haiku-20240307"
    assert body["max_tokens"] == 5


@pytest.mark.asyncio
async def test_local_provider_uses_configured_endpoint_with_placeholder_key(openai_body):
    transport, captured = _capture(httpx.Response(200, json=openai_body("ok")))
    provider = LocalLLMProvider(
        ProviderConfig(provider=ProviderName.LOCAL, endpoint_url="http://localhost:11434/v1"),
        transport=transport,
    )

    response = await provider.generate_completion(MESSAGES)

    assert str(captured[0].url) == "http://localhost:11434/v1/chat/completions"
    assert captured[0].headers["authorization"] == f"Bearer {LOCAL_PLACEHOLDER_API_KEY}"
    assert response.usage.estimated_cost_usd == 0.0


def test_provider_requires_api_key():
    with pytest.raises(ValueError):
        OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="   "))


def test_local_provider_requires_endpoint():
    with pytest.raises(ValueError):
        LocalLLMProvider(ProviderConfig(provider=ProviderName.LOCAL))


@pytest.mark.asyncio
async def test_rate_limit_headers_are_tracked(openai_body):
    response = httpx.Response(
        200,
        headers={"x-ratelimit-remaining-requests": "99", "x-ratelimit-remaining-tokens": "15000"},
        json=openai_body("ok"),
    )
    transport, _ = _capture(response)
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    await provider.generate_completion(MESSAGES)

    info = provider.get_rate_limit_info()
    assert info.requests_remaining == 99
    assert info.tokens_remaining == 15000


def test_cost_per_1k_follows_configured_model():
    provider = AnthropicProvider(
        ProviderConfig(provider=ProviderName.ANTHROPIC, api_key="sk-ant", model="claude-3-haiku-20240307")
    )

    assert provider.cost_per_1k_input_tokens == 0.00025
    assert provider.cost_per_1k_output_tokens == 0.00125


class _PlanAnswer(BaseModel):
    plan: str


@pytest.mark.asyncio
async def test_structured_output_validates_into_response_model(openai_body):
    transport, _ = _capture(httpx.Response(200, json=openai_body('```json\n{"plan": "x"}\n```')))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    response = await provider.generate_structured_output(MESSAGES, SCHEMA, response_model=_PlanAnswer)

    assert response.content == _PlanAnswer(plan="x")
    assert response.provider == ProviderName.OPENAI
    assert response.usage.total_tokens == 150


@pytest.mark.asyncio
async def test_structured_output_rejects_non_json_answer(openai_body):
    transport, _ = _capture(httpx.Response(200, json=openai_body("Sorry, I can't help with that.")))
    provider = MoonshotProvider(ProviderConfig(provider=ProviderName.MOONSHOT, api_key="sk-moon"), transport=transport)

    with pytest.raises(StructuredOutputError) as exc_info:
        await provider.generate_structured_output(MESSAGES, SCHEMA)

    assert exc_info.value.provider == "moonshot"
    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_structured_output_rejects_wrong_shape(openai_body):
    transport, _ = _capture(httpx.Response(200, json=openai_body('{"plan": ["not", "a", "string"]}')))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    with pytest.raises(StructuredOutputError, match="_PlanAnswer"):
        await provider.generate_structured_output(MESSAGES, SCHEMA, response_model=_PlanAnswer)


@pytest.mark.asyncio
async def test_structured_text_returns_raw_answer(openai_body):
    transport, _ = _capture(httpx.Response(200, json=openai_body('```json\n{"plan": "x"}\n```')))
    provider = OpenAIProvider(ProviderConfig(provider=ProviderName.OPENAI, api_key="sk-test"), transport=transport)

    response = await provider.generate_structured_text(MESSAGES, SCHEMA)

    assert response.content == '```json\n{"plan": "x"}\n```'


@pytest.mark.asyncio
async def test_custom_provider_reports_its_own_name(openai_body):
    transport, captured = _capture(httpx.Response(200, json=openai_body("ok")))
    provider = CustomLLMProvider(
        ProviderConfig(provider=ProviderName.CUSTOM, endpoint_url="https://llm.example.com/v1", api_key="tok"),
        transport=transport,
    )

    response = await provider.generate_completion(MESSAGES)

    assert provider.provider_name == ProviderName.CUSTOM
    assert response.provider == ProviderName.CUSTOM
    assert str(captured[0].url) == "https://llm.example.com/v1/chat/completions"
    assert captured[0].headers["authorization"] == "Bearer tok"


def test_custom_provider_requires_endpoint():
    with pytest.raises(ValueError, match="Custom LLM endpoint URL is required"):
        CustomLLMProvider(ProviderConfig(provider=ProviderName.CUSTOM))


@pytest.mark.asyncio
async def test_anthropic_error_maps_through_sdk():
    body = {"type": "error", "error": {"type": "rate_limit_error", "message": "slow down"}}
    transport, _ = _capture(httpx.Response(429, headers={"retry-after": "7"}, json=body))
    provider = AnthropicProvider(ProviderConfig(provider=ProviderName.ANTHROPIC, api_key="sk-ant"), transport=transport)

    with pytest.raises(RateLimitError) as exc_info:
        await provider.generate_completion(MESSAGES)

    assert exc_info.value.provider == "anthropic"
    assert exc_info.value.retry_after_seconds == 7.0


@pytest.mark.asyncio
async def test_connection_failure_is_llm_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = LocalLLMProvider(
        ProviderConfig(provider=ProviderName.LOCAL, endpoint_url="http://localhost:11434/v1"),
        transport=httpx.MockTransport(handler),
    )

    with pytest.raises(LLMConnectionError):
        await provider.generate_completion(MESSAGES)


@pytest.mark.asyncio
async def test_gemini_server_error_is_retryable_llm_error():
    transport, _ = _capture(httpx.Response(503, json={"error": {"message": "overloaded", "status": "UNAVAILABLE"}}))
    provider = GeminiProvider(ProviderConfig(provider=ProviderName.GEMINI, api_key="g-key"), transport=transport)

    with pytest.raises(LLMError) as exc_info:
        await provider.generate_completion(MESSAGES)

    assert exc_info.value.status_code == 503
    assert exc_info.value.retryable is True
