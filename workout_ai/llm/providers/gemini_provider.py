from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from workout_ai.llm.errors import (
    AuthenticationError,
    LLMConnectionError,
    LLMError,
    RateLimitError,
    parse_retry_after,
)
from workout_ai.llm.pricing import GEMINI_PRICES
from workout_ai.llm.providers.base import BaseLLMProvider, ParsedCompletion, split_system_messages
from workout_ai.llm.types import ChatMessage, ProviderName

SAFETY_SETTINGS = [
    {"category": category, "threshold": "BLOCK_ONLY_HIGH"}
    for category in (
        "HARM_CATEGORY_HARASSMENT",
        "HARM_CATEGORY_HATE_SPEECH",
        "HARM_CATEGORY_SEXUALLY_EXPLICIT",
        "HARM_CATEGORY_DANGEROUS_CONTENT",
    )
]


class GeminiProvider(BaseLLMProvider):
    """Google Gemini generateContent API over plain httpx.

    Gemini names the assistant role "model" and takes the system prompt as a
    separate systemInstruction. JSON mode is requested via responseMimeType.
    """

    provider_name = ProviderName.GEMINI
    vendor_label = "Google Gemini"
    default_model_name = "gemini-1.5-flash"
    test_model_name = "gemini-1.5-flash"
    price_table = GEMINI_PRICES
    supports_json_mode = True
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def _build_payload(
        self,
        messages: list[ChatMessage],
        *,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> dict[str, Any]:
        system, conversation = split_system_messages(messages)
        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in conversation
            ],
            "generationConfig": generation_config,
            "safetySettings": SAFETY_SETTINGS,
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        return payload

    async def _send(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> ParsedCompletion:
        payload = self._build_payload(messages, temperature=temperature, max_tokens=max_tokens, json_mode=json_mode)
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.config.api_key}
        url = f"{self.base_url}/models/{model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise TimeoutError("Google Gemini request timed out") from e
        except httpx.RequestError as e:
            logger.warning(f"Google Gemini connection failed: {e}", provider=str(self.provider_name))
            raise LLMConnectionError(f"Could not reach Google Gemini: {e}", self.provider_name) from e

        if response.status_code >= 400:
            raise self._map_http_error(response)
        self._update_rate_limit_info(response.headers)

        try:
            return self._parse_completion(response.json(), model)
        except (ValueError, KeyError, TypeError) as e:
            raise LLMError(f"Unexpected Google Gemini response: {e}", self.provider_name, response.status_code) from e

    def _parse_completion(self, data: dict[str, Any], model: str) -> ParsedCompletion:
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            raise ValueError(f"no candidates returned (blockReason={block_reason})")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        usage = data.get("usageMetadata") or {}
        return ParsedCompletion(
            content="".join(part.get("text", "") for part in parts),
            prompt_tokens=int(usage.get("promptTokenCount") or 0),
            completion_tokens=int(usage.get("candidatesTokenCount") or 0),
            model=data.get("modelVersion") or model,
        )

    def _map_http_error(self, response: httpx.Response) -> LLMError:
        # Gemini reports an invalid key as 400 INVALID_ARGUMENT with reason API_KEY_INVALID
        try:
            body: object = response.json()
        except ValueError:
            body = response.text
        error = body.get("error") if isinstance(body, dict) else None
        error = error if isinstance(error, dict) else {}
        status_name = str(error.get("status") or "")
        details = str(error.get("details") or "") + str(error.get("message") or "")

        if status_name in {"UNAUTHENTICATED", "PERMISSION_DENIED"} or "API_KEY_INVALID" in details:
            return AuthenticationError("Invalid Google Gemini API key", self.provider_name, response.status_code)
        if status_name == "RESOURCE_EXHAUSTED":
            return RateLimitError(
                "Gemini rate limit exceeded",
                self.provider_name,
                retry_after_seconds=parse_retry_after(response.headers.get("retry-after")),
            )
        return self._status_error(response.status_code, body, response.headers)
