"""Per-model price tables (USD per 1K tokens).

Tables are keyed by model-name substring. The longest key contained in the
model name wins, so "gpt-4o-mini" is priced as itself rather than as "gpt-4o"
or "gpt-4". Unknown models fall back to the vendor's flagship price so cost
is never silently reported as zero.

Prices are for display only and are never used as billing of record.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


@dataclass(frozen=True)
class ModelPrice:
    input_per_1k: float
    output_per_1k: float


@dataclass(frozen=True)
class PriceTable:
    prices: Mapping[str, ModelPrice]
    fallback: ModelPrice

    def lookup(self, model: str) -> ModelPrice:
        model_lower = model.lower()
        matches = [key for key in self.prices if key in model_lower]
        if not matches:
            return self.fallback
        return self.prices[max(matches, key=len)]


OPENAI_PRICES = PriceTable(
    prices=MappingProxyType({
        "gpt-4o-mini": ModelPrice(0.00015, 0.0006),
        "gpt-4o": ModelPrice(0.0025, 0.01),
        "gpt-4-turbo": ModelPrice(0.01, 0.03),
        "gpt-4": ModelPrice(0.03, 0.06),
        "gpt-3.5-turbo": ModelPrice(0.0005, 0.0015),
    }),
    fallback=ModelPrice(0.0025, 0.01),
)

ANTHROPIC_PRICES = PriceTable(
    prices=MappingProxyType({
        "claude-3-5-sonnet": ModelPrice(0.003, 0.015),
        "claude-3-5-haiku": ModelPrice(0.0008, 0.004),
        "claude-3-opus": ModelPrice(0.015, 0.075),
        "claude-3-sonnet": ModelPrice(0.003, 0.015),
        "claude-3-haiku": ModelPrice(0.00025, 0.00125),
    }),
    fallback=ModelPrice(0.015, 0.075),
)

GEMINI_PRICES = PriceTable(
    prices=MappingProxyType({
        "gemini-1.5-pro": ModelPrice(0.00125, 0.005),
        "gemini-1.5-flash": ModelPrice(0.000075, 0.0003),
        "gemini-1.0-pro": ModelPrice(0.0005, 0.0015),
    }),
    fallback=ModelPrice(0.00125, 0.005),
)

MOONSHOT_PRICES = PriceTable(
    prices=MappingProxyType({
        "moonshot-v1-128k": ModelPrice(0.0084, 0.0084),
        "moonshot-v1-32k": ModelPrice(0.0034, 0.0034),
        "moonshot-v1-8k": ModelPrice(0.0017, 0.0017),
    }),
    fallback=ModelPrice(0.0084, 0.0084),
)

# Self-hosted endpoints have no per-token price
LOCAL_PRICES = PriceTable(prices=MappingProxyType({}), fallback=ModelPrice(0.0, 0.0))


def estimate_cost(table: PriceTable, model: str, prompt_tokens: int, completion_tokens: int) -> float:
    price = table.lookup(model)
    return (prompt_tokens / 1000) * price.input_per_1k + (completion_tokens / 1000) * price.output_per_1k
