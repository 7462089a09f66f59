from __future__ import annotations

from typing import Any

import anthropic
from loguru import logger

from workout_ai.llm.errors import LLMConnectionError, LLMError
from workout_ai.llm.pricing import ANTHROPIC_PRICES
from workout_ai.llm.providers.base import BaseLLMProvider, ParsedCompletion, split_system_messages
from workout_ai.llm.types import ChatMessage, ProviderName


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API.

    The system prompt travels in a dedicated top-level field rather than in
    the message array, and there is no native JSON mode, so structured output
    relies on the schema instructions added to the system prompt.
    """

    provider_name = ProviderName.ANTHROPIC
    vendor_label = "Anthropic"
    default_model_name = "claude-3-5-sonnet-20241022"
    test_model_name = "claude-3-haiku-20240307"
    price_table = ANTHROPIC_PRICES

    def _client(self) -> anthropic.AsyncAnthropic:
        return anthropic.AsyncAnthropic(
            api_key=self.config.api_key,
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
        system, conversation = split_system_messages(messages)
        if not conversation:
            # The Messages API rejects a request with only a system prompt
            conversation = [ChatMessage(role="user", content="Begin.")]

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": min(temperature, 1.0),
            "messages": [{"role": m.role, "content": m.content} for m in conversation],
        }
        if system:
            kwargs["system"] = system

        try:
            async with self._client() as client:
                raw = await client.messages.with_raw_response.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise TimeoutError("Anthropic request timed out") from e
        except anthropic.APIConnectionError as e:
            logger.warning(f"Anthropic connection failed: {e}", provider=str(self.provider_name))
            raise LLMConnectionError(f"Could not reach Anthropic: {e}", self.provider_name) from e
        except anthropic.APIStatusError as e:
            raise self._status_error(e.status_code, e.body, e.response.headers) from e
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic request failed: {e.message}", self.provider_name) from e

        self._update_rate_limit_info(raw.headers)
        message = raw.parse()
        text_blocks = [block.text for block in message.content if block.type == "text"]
        return ParsedCompletion(
            content="".join(text_blocks),
            prompt_tokens=message.usage.input_tokens,
            completion_tokens=message.usage.output_tokens,
            model=message.model or model,
        )
