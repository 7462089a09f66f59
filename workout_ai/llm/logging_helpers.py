"""Helper functions for logging LLM requests and responses."""

from __future__ import annotations

from loguru import logger

from workout_ai.llm.types import ChatMessage, LLMResponse

_MAX_LOGGED_CHARS = 1000


def _truncate(text: str, limit: int = _MAX_LOGGED_CHARS) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "... (truncated)"


def log_llm_request(
    context: str,
    provider: str,
    model: str,
    messages: list[ChatMessage],
    attempt: int | None = None,
) -> None:
    """Log the prompt submitted to the vendor.

    Args:
        context: Context description (e.g., "Workout Plan Generation")
        provider: Vendor name
        model: Model name the request targets
        messages: Messages sent to the vendor
        attempt: Optional attempt number for retries
    """
    extra_data: dict[str, str | int] = {
        "provider": provider,
        "model": model,
        "message_count": len(messages),
        "prompt_chars": sum(len(m.content) for m in messages),
        "full_prompt": _truncate("\n\n".join(f"{m.role}: {m.content}" for m in messages), 4000),
    }
    if attempt is not None:
        extra_data["attempt"] = attempt

    logger.debug(
        f"LLM Request: {context} - PROMPT SUBMITTED",
        **extra_data,
    )


def log_llm_raw_response(
    context: str,
    response: LLMResponse[str],
    attempt: int | None = None,
) -> None:
    """Log the raw text returned by the vendor before parsing.

    Args:
        context: Context description (e.g., "Workout Plan Generation")
        response: Adapter response carrying raw text content
        attempt: Optional attempt number for retries
    """
    extra_data: dict[str, str | int | float] = {
        "provider": str(response.provider),
        "model": response.model,
        "raw_response": _truncate(response.content),
        "raw_response_length": len(response.content),
        "total_tokens": response.usage.total_tokens,
        "estimated_cost_usd": round(response.usage.estimated_cost_usd, 6),
    }
    if attempt is not None:
        extra_data["attempt"] = attempt

    logger.debug(
        f"LLM Response: {context} - RAW JSON OUTPUT",
        **extra_data,
    )


def log_llm_usage(response: LLMResponse[str]) -> None:
    usage = response.usage
    logger.info(
        f"[LLM Usage] {response.provider}/{response.model}: "
        f"{usage.total_tokens} tokens, ${usage.estimated_cost_usd:.6f}"
    )
