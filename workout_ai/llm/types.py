"""Vendor-agnostic LLM types shared by every provider adapter."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


class ProviderName(StrEnum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    MOONSHOT = "moonshot"
    LOCAL = "local"
    CUSTOM = "custom"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["system", "user", "assistant"]
    content: str


class CompletionOptions(BaseModel):
    """Per-call overrides. None means use the adapter's configured default."""

    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    model: str | None = None


class UsageRecord(BaseModel):
    prompt_tokens: int = Field(0, ge=0)
    completion_tokens: int = Field(0, ge=0)
    total_tokens: int = Field(0, ge=0)
    estimated_cost_usd: float = Field(0.0, ge=0.0)

    @model_validator(mode="after")
    def _check_total(self) -> UsageRecord:
        if self.total_tokens != self.prompt_tokens + self.completion_tokens:
            raise ValueError("total_tokens must equal prompt_tokens + completion_tokens")
        return self

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int, cost_usd: float) -> UsageRecord:
        # Vendors occasionally report totals that include cached/reasoning tokens; recompute
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost_usd=max(cost_usd, 0.0),
        )


class LLMResponse(BaseModel, Generic[T]):
    content: T
    usage: UsageRecord
    provider: ProviderName
    model: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class RateLimitInfo(BaseModel):
    provider: ProviderName
    requests_remaining: int | None = None
    tokens_remaining: int | None = None
    reset_time: datetime | None = None


class VendorCredential(BaseModel):
    """A user's stored AI configuration.

    Owned by the user record; the encrypted key is a vault payload and the
    plaintext never persists beyond a single generation call.
    """

    provider: ProviderName = ProviderName.OPENAI
    encrypted_key: str | None = None
    model: str | None = None
    endpoint_url: str | None = None
    enabled: bool = False


class ProviderConfig(BaseModel):
    """Decrypted configuration handed to an adapter constructor."""

    provider: ProviderName
    api_key: str = Field(default="", repr=False)
    model: str | None = None
    endpoint_url: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
