"""OpenAI and OpenAI-compatible chat completion adapters.

Moonshot/Kimi and self-hosted servers (Ollama, LM Studio, vLLM) speak the
same /chat/completions wire format, so they all run on the openai SDK with
a different base_url.
"""

from __future__ import annotations

from typing import Any

import openai
from loguru import logger

from workout_ai.llm.errors import LLMConnectionError, LLMError
from workout_ai.llm.pricing import LOCAL_PRICES, MOONSHOT_PRICES, OPENAI_PRICES
from workout_ai.llm.providers.base import BaseLLMProvider, ParsedCompletion
from workout_ai.llm.types import ChatMessage, ProviderConfig, ProviderName

# The SDK refuses an empty key; unauthenticated local servers ignore this one
LOCAL_PLACEHOLDER_API_KEY = "not-needed"


class OpenAICompatibleProvider(BaseLLMProvider):
    base_url: str = ""

    def _client(self) -> openai.AsyncOpenAI:
        return openai.AsyncOpenAI(
            api_key=self.config.api_key or LOCAL_PLACEHOLDER_API_KEY,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
            http_client=self._http_client(),
        )

    async def _send(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> ParsedCompletion:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            async with self._client() as client:
                raw = await client.chat.completions.with_raw_response.create(**kwargs)
        except openai.APITimeoutError as e:
            raise TimeoutError(f"{self.vendor_label} request timed out") from e
        except openai.APIConnectionError as e:
            logger.warning(f"{self.vendor_label} connection failed: {e}", provider=str(self.provider_name))
            raise LLMConnectionError(f"Could not reach {self.vendor_label}: {e}", self.provider_name) from e
        except openai.APIStatusError as e:
            raise self._status_error(e.status_code, e.body, e.response.headers) from e
        except openai.APIError as e:
            raise LLMError(f"{self.vendor_label} request failed: {e.message}", self.provider_name) from e

        self._update_rate_limit_info(raw.headers)
        completion = raw.parse()
        content = completion.choices[0].message.content or "" if completion.choices else ""
        usage = completion.usage
        return ParsedCompletion(
            content=content,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            model=completion.model or model,
        )


class OpenAIProvider(OpenAICompatibleProvider):
    provider_name = ProviderName.OPENAI
    vendor_label = "OpenAI"
    default_model_name = "gpt-4o-mini"
    test_model_name = "gpt-4o-mini"
    price_table = OPENAI_PRICES
    supports_json_mode = True
    base_url = "https://api.openai.com/v1"


class MoonshotProvider(OpenAICompatibleProvider):
    """Moonshot/Kimi, OpenAI-compatible API at platform.moonshot.cn."""

    provider_name = ProviderName.MOONSHOT
    vendor_label = "Moonshot"
    default_model_name = "moonshot-v1-8k"
    test_model_name = "moonshot-v1-8k"
    price_table = MOONSHOT_PRICES
    base_url = "https://api.moonshot.cn/v1"


class LocalLLMProvider(OpenAICompatibleProvider):
    """Self-hosted OpenAI-compatible endpoint (Ollama, LM Studio, vLLM).

    The endpoint URL comes from the user's configuration; an API key is
    optional since most local servers run unauthenticated.
    """

    provider_name = ProviderName.LOCAL
    vendor_label = "Local LLM"
    default_model_name = "llama3.1"
    price_table = LOCAL_PRICES
    supports_json_mode = True
    requires_api_key = False

    def __init__(self, config: ProviderConfig, **kwargs: Any) -> None:
        if not config.endpoint_url:
            raise ValueError(f"{self.vendor_label} endpoint URL is required")
        super().__init__(config, **kwargs)
        self.base_url = config.endpoint_url

    @property
    def test_model_name(self) -> str:  # type: ignore[override]
        return self.default_model


class CustomLLMProvider(LocalLLMProvider):
    """Any other OpenAI-compatible endpoint the user points us at."""

    provider_name = ProviderName.CUSTOM
    vendor_label = "Custom LLM"
