"""Vendor error taxonomy.

Vendor-specific HTTP failures are mapped onto these types inside each adapter,
so nothing above the adapter layer needs to know a vendor's status codes.

- 401/403 -> AuthenticationError (not retryable, user must re-enter key)
- 429     -> RateLimitError (retryable after the reported or estimated window)
- 400/404/422 -> InvalidRequestError (not retryable, indicates a prompt bug)
- anything else -> LLMError (not retryable by default; 5xx marked retryable)

StructuredOutputError covers answers that arrive but do not parse as the
requested JSON.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from workout_ai.core.errors import WorkoutAIError
from workout_ai.llm.types import ProviderName, RateLimitInfo

DEFAULT_RATE_LIMIT_BACKOFF_SECONDS = 60.0


class LLMError(WorkoutAIError):
    code = "LLM_ERROR"
    category = "vendor"

    def __init__(
        self,
        message: str,
        provider: ProviderName | str,
        status_code: int | None = None,
        *,
        retryable: bool | None = None,
    ):
        super().__init__(message)
        self.provider = str(provider)
        self.status_code = status_code
        if retryable is not None:
            self.retryable = retryable

    def details(self) -> dict[str, Any]:
        return {"provider": self.provider, "status_code": self.status_code}


class AuthenticationError(LLMError):
    code = "AUTHENTICATION_ERROR"

    def __init__(self, message: str, provider: ProviderName | str, status_code: int = 401):
        super().__init__(message, provider, status_code, retryable=False)


class RateLimitError(LLMError):
    code = "RATE_LIMIT_ERROR"

    def __init__(
        self,
        message: str,
        provider: ProviderName | str,
        retry_after_seconds: float | None = None,
        rate_limit_info: RateLimitInfo | None = None,
    ):
        super().__init__(message, provider, 429, retryable=True)
        self.retry_after_seconds = (
            retry_after_seconds if retry_after_seconds is not None else DEFAULT_RATE_LIMIT_BACKOFF_SECONDS
        )
        self.reset_time = datetime.now(UTC) + timedelta(seconds=self.retry_after_seconds)
        self.rate_limit_info = rate_limit_info

    def details(self) -> dict[str, Any]:
        payload = super().details()
        payload["retry_after_seconds"] = self.retry_after_seconds
        payload["reset_time"] = self.reset_time.isoformat()
        return payload


class InvalidRequestError(LLMError):
    code = "INVALID_REQUEST_ERROR"

    def __init__(self, message: str, provider: ProviderName | str, status_code: int = 400):
        super().__init__(message, provider, status_code, retryable=False)


class LLMConnectionError(LLMError):
    """Network-level failure reaching the vendor (DNS, connect, read errors)."""

    code = "LLM_CONNECTION_ERROR"
    category = "infrastructure"

    def __init__(self, message: str, provider: ProviderName | str):
        super().__init__(message, provider, None, retryable=True)


class StructuredOutputError(LLMError):
    """Vendor answered, but the answer is not the requested JSON shape."""

    code = "STRUCTURED_OUTPUT_ERROR"

    def __init__(self, message: str, provider: ProviderName | str):
        super().__init__(message, provider, None, retryable=False)


def parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds. HTTP-date values are ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def error_from_status(
    provider: ProviderName | str,
    status_code: int,
    message: str,
    *,
    vendor_label: str,
    retry_after: str | None = None,
) -> LLMError:
    """Map an HTTP status from a vendor onto the shared taxonomy."""
    if status_code in {401, 403}:
        return AuthenticationError(f"Invalid {vendor_label} API key", provider, status_code)
    if status_code == 429:
        return RateLimitError(
            f"{vendor_label} rate limit exceeded",
            provider,
            retry_after_seconds=parse_retry_after(retry_after),
        )
    if status_code in {400, 404, 422}:
        return InvalidRequestError(f"Invalid request: {message}", provider, status_code)
    return LLMError(message or f"HTTP {status_code}", provider, status_code, retryable=status_code >= 500)
