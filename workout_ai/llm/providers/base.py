"""Uniform provider adapter contract.

Each vendor implements a single _send hook on top of its SDK or HTTP API;
error mapping, usage accounting and JSON-schema prompting live here so
callers never special-case a vendor.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar

import httpx
from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from workout_ai.llm.errors import LLMError, StructuredOutputError, error_from_status
from workout_ai.llm.json_output import extract_json
from workout_ai.llm.pricing import PriceTable, estimate_cost
from workout_ai.llm.types import (
    ChatMessage,
    CompletionOptions,
    LLMResponse,
    ProviderConfig,
    ProviderName,
    RateLimitInfo,
    UsageRecord,
)

DEFAULT_TEMPERATURE = 0.7
STRUCTURED_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TIMEOUT_SECONDS = 30.0

JSON_ONLY_INSTRUCTION = (
    "IMPORTANT: You must respond ONLY with valid JSON that matches this schema. "
    "Do not include any text, markdown or code fences before or after the JSON. "
    "Return only the JSON object."
)


@dataclass(frozen=True)
class ParsedCompletion:
    """Vendor-neutral view of a successful completion payload."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    model: str


def split_system_messages(messages: list[ChatMessage]) -> tuple[str | None, list[ChatMessage]]:
    """Separate system messages for vendors that take them out-of-band.

    Multiple system messages are joined in order with a blank line.
    """
    system_parts = [m.content for m in messages if m.role == "system"]
    others = [m for m in messages if m.role != "system"]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, others


def render_schema_instruction(json_schema: dict[str, Any], *, native_json_mode: bool) -> str:
    schema_text = json.dumps(json_schema, indent=2)
    instruction = f"Your response must be a JSON object matching this JSON schema:\n{schema_text}"
    if native_json_mode:
        # The request flag already forces JSON output
        return instruction
    return f"{instruction}\n\n{JSON_ONLY_INSTRUCTION}"


def with_system_addendum(messages: list[ChatMessage], addendum: str) -> list[ChatMessage]:
    """Append text to the first system message, or prepend one if absent."""
    for index, message in enumerate(messages):
        if message.role == "system":
            augmented = ChatMessage(role="system", content=f"{message.content}\n\n{addendum}")
            return [*messages[:index], augmented, *messages[index + 1 :]]
    return [ChatMessage(role="system", content=addendum), *messages]


def vendor_error_message(body: object, fallback: str) -> str:
    """Best-effort human message from a vendor error body.

    Handles both {"error": {"message": ...}} and an already unwrapped
    {"message": ...} as the SDKs expose them.
    """
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return error
    return fallback


class BaseLLMProvider(ABC):
    provider_name: ClassVar[ProviderName]
    vendor_label: ClassVar[str]
    default_model_name: ClassVar[str]
    test_model_name: ClassVar[str]
    price_table: ClassVar[PriceTable]
    supports_json_mode: ClassVar[bool] = False
    requires_api_key: ClassVar[bool] = True

    def __init__(
        self,
        config: ProviderConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if self.requires_api_key and not self.validate_api_key(config.api_key):
            raise ValueError(f"{self.vendor_label} API key is required")
        self.config = config
        self.timeout = timeout
        self._transport = transport
        self._rate_limit_info = RateLimitInfo(provider=self.provider_name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.default_model!r})"

    @property
    def default_model(self) -> str:
        return self.config.model or self.default_model_name

    @property
    def cost_per_1k_input_tokens(self) -> float:
        return self.price_table.lookup(self.default_model).input_per_1k

    @property
    def cost_per_1k_output_tokens(self) -> float:
        return self.price_table.lookup(self.default_model).output_per_1k

    @staticmethod
    def validate_api_key(api_key: str | None) -> bool:
        return bool(api_key and api_key.strip())

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int, model: str | None = None) -> float:
        return estimate_cost(self.price_table, model or self.default_model, prompt_tokens, completion_tokens)

    def get_rate_limit_info(self) -> RateLimitInfo:
        return self._rate_limit_info.model_copy()

    # Vendor hook

    @abstractmethod
    async def _send(
        self,
        messages: list[ChatMessage],
        *,
        model: str,
        temperature: float,
        max_tokens: int,
        json_mode: bool,
    ) -> ParsedCompletion:
        """Run one completion against the vendor.

        Implementations map transport timeouts to TimeoutError and every
        other vendor failure to an LLMError subclass.
        """

    # Shared plumbing for adapters

    def _http_client(self) -> httpx.AsyncClient | None:
        """An httpx client bound to the injected transport, for the vendor SDKs."""
        if self._transport is None:
            return None
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    def _status_error(self, status_code: int, body: object, headers: Mapping[str, str]) -> LLMError:
        self._update_rate_limit_info(headers)
        error = error_from_status(
            self.provider_name,
            status_code,
            vendor_error_message(body, f"HTTP {status_code}"),
            vendor_label=self.vendor_label,
            retry_after=headers.get("retry-after"),
        )
        logger.warning(
            f"{self.vendor_label} returned an error",
            provider=str(self.provider_name),
            status_code=status_code,
            error_code=error.code,
        )
        return error

    def _update_rate_limit_info(self, headers: Mapping[str, str]) -> None:
        requests_remaining = headers.get("x-ratelimit-remaining-requests") or headers.get(
            "anthropic-ratelimit-requests-remaining"
        )
        tokens_remaining = headers.get("x-ratelimit-remaining-tokens") or headers.get(
            "anthropic-ratelimit-tokens-remaining"
        )
        reset_seconds = headers.get("x-ratelimit-reset-requests")

        info = RateLimitInfo(provider=self.provider_name)
        if requests_remaining and requests_remaining.isdigit():
            info.requests_remaining = int(requests_remaining)
        if tokens_remaining and tokens_remaining.isdigit():
            info.tokens_remaining = int(tokens_remaining)
        if reset_seconds:
            try:
                info.reset_time = datetime.now(UTC) + timedelta(seconds=float(reset_seconds.rstrip("s")))
            except ValueError:
                pass
        self._rate_limit_info = info

    async def _complete(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None,
        *,
        json_mode: bool,
        default_temperature: float,
    ) -> LLMResponse[str]:
        if not messages:
            raise ValueError("At least one message is required")
        opts = options or CompletionOptions()
        model = opts.model or self.default_model
        temperature = opts.temperature
        if temperature is None:
            temperature = self.config.temperature if self.config.temperature is not None else default_temperature
        max_tokens = opts.max_tokens or self.config.max_tokens or DEFAULT_MAX_TOKENS

        parsed = await self._send(
            messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            json_mode=json_mode,
        )

        usage = UsageRecord.from_counts(
            parsed.prompt_tokens,
            parsed.completion_tokens,
            self.calculate_cost(parsed.prompt_tokens, parsed.completion_tokens, parsed.model),
        )
        return LLMResponse[str](
            content=parsed.content,
            usage=usage,
            provider=self.provider_name,
            model=parsed.model,
        )

    # Public contract

    async def generate_completion(
        self,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> LLMResponse[str]:
        """Generate a free-text completion from chat messages."""
        return await self._complete(messages, options, json_mode=False, default_temperature=DEFAULT_TEMPERATURE)

    async def generate_structured_text(
        self,
        messages: list[ChatMessage],
        json_schema: dict[str, Any],
        options: CompletionOptions | None = None,
    ) -> LLMResponse[str]:
        """Request JSON-shaped output and return the vendor's raw text.

        Vendors with native JSON mode get the request flag plus the schema in
        the system message; the others get the schema and an explicit
        JSON-only instruction appended to the system prompt. Callers that
        run their own extraction and validation loop use this directly.
        """
        addendum = render_schema_instruction(json_schema, native_json_mode=self.supports_json_mode)
        augmented = with_system_addendum(messages, addendum)
        return await self._complete(
            augmented,
            options,
            json_mode=self.supports_json_mode,
            default_temperature=STRUCTURED_TEMPERATURE,
        )

    async def generate_structured_output(
        self,
        messages: list[ChatMessage],
        json_schema: dict[str, Any],
        options: CompletionOptions | None = None,
        *,
        response_model: type[BaseModel] | None = None,
    ) -> LLMResponse[Any]:
        """Request JSON output matching json_schema and return it parsed.

        Args:
            messages: Conversation to send
            json_schema: Schema the answer must follow
            options: Per-call overrides
            response_model: When given, the parsed JSON is validated into this model

        Returns:
            LLMResponse whose content is the parsed JSON value, or a
            response_model instance

        Raises:
            StructuredOutputError: If the answer is not JSON or fails response_model
        """
        response = await self.generate_structured_text(messages, json_schema, options)
        try:
            data = extract_json(response.content)
        except json.JSONDecodeError as e:
            raise StructuredOutputError(
                f"Failed to parse {self.vendor_label} structured output as JSON: {e.msg}",
                self.provider_name,
            ) from e

        content: Any = data
        if response_model is not None:
            try:
                content = response_model.model_validate(data)
            except PydanticValidationError as e:
                raise StructuredOutputError(
                    f"{self.vendor_label} structured output does not match {response_model.__name__}: "
                    f"{e.error_count()} error(s)",
                    self.provider_name,
                ) from e

        return LLMResponse[Any](
            content=content,
            usage=response.usage,
            provider=response.provider,
            model=response.model,
            timestamp=response.timestamp,
        )

    async def test_connection(self) -> bool:
        """Issue the cheapest possible call to confirm the credential works."""
        try:
            await self.generate_completion(
                [ChatMessage(role="user", content="Hi")],
                CompletionOptions(model=self.test_model_name, max_tokens=5, temperature=0.0),
            )
        except (LLMError, TimeoutError) as e:
            logger.info(f"{self.vendor_label} connection test failed: {type(e).__name__}: {e}")
            return False
        return True
