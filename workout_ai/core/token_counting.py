"""Pre-flight token estimation for vendor requests.

Counts use tiktoken's cl100k_base encoding. Non-OpenAI vendors tokenize
differently, so for them the numbers are an approximation good enough for
budgeting and logging, not for billing. A TokenBudget turns the estimate
into a hard pre-flight limit.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import tiktoken

from workout_ai.llm.pricing import PriceTable, estimate_cost
from workout_ai.llm.types import ChatMessage

# <|start|>role<|sep|>content<|end|>
MESSAGE_OVERHEAD_TOKENS = 4
# Every reply is primed with <|start|>assistant<|message|>
REPLY_PRIMING_TOKENS = 3


@dataclass(frozen=True)
class TokenEstimate:
    input_tokens: int
    estimated_output_tokens: int
    total_tokens: int
    estimated_cost_usd: float


@lru_cache(maxsize=1)
def _get_encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding("cl100k_base")


def count_tokens(text: str) -> int:
    return len(_get_encoding().encode(text))


def count_message_tokens(messages: list[ChatMessage]) -> int:
    """Count prompt tokens for a chat message list, including framing overhead."""
    total = 0
    for message in messages:
        total += MESSAGE_OVERHEAD_TOKENS
        total += count_tokens(message.role)
        total += count_tokens(message.content)
    return total + REPLY_PRIMING_TOKENS


def estimate_request(
    messages: list[ChatMessage],
    *,
    model: str,
    price_table: PriceTable,
    max_output_tokens: int,
) -> TokenEstimate:
    """Estimate tokens and worst-case cost before calling a vendor.

    Output is assumed to use the full max_output_tokens budget.
    """
    input_tokens = count_message_tokens(messages)
    return TokenEstimate(
        input_tokens=input_tokens,
        estimated_output_tokens=max_output_tokens,
        total_tokens=input_tokens + max_output_tokens,
        estimated_cost_usd=estimate_cost(price_table, model, input_tokens, max_output_tokens),
    )


@dataclass(frozen=True)
class TokenBudget:
    """Per-call ceiling checked before any vendor request is sent."""

    max_input_tokens: int = 8000
    max_output_tokens: int = 4000
    max_total_tokens: int = 12000
    max_cost_usd: float = 0.10


DEFAULT_WORKOUT_BUDGET = TokenBudget()


def check_budget(estimate: TokenEstimate, budget: TokenBudget) -> list[str]:
    """Return every reason the estimate breaks the budget; empty means allowed."""
    reasons = []
    if estimate.input_tokens > budget.max_input_tokens:
        reasons.append(f"Input tokens ({estimate.input_tokens}) exceed limit ({budget.max_input_tokens})")
    if estimate.estimated_output_tokens > budget.max_output_tokens:
        reasons.append(
            f"Estimated output tokens ({estimate.estimated_output_tokens}) exceed limit ({budget.max_output_tokens})"
        )
    if estimate.total_tokens > budget.max_total_tokens:
        reasons.append(f"Total tokens ({estimate.total_tokens}) exceed limit ({budget.max_total_tokens})")
    if estimate.estimated_cost_usd > budget.max_cost_usd:
        reasons.append(
            f"Estimated cost (${estimate.estimated_cost_usd:.4f}) exceeds limit (${budget.max_cost_usd:.2f})"
        )
    return reasons
