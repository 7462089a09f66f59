"""Lookup table from vendor name to adapter class.

The provider factory is the only caller that dispatches through this table.
"""

from __future__ import annotations

from types import MappingProxyType

from workout_ai.llm.providers.anthropic_provider import AnthropicProvider
from workout_ai.llm.providers.base import BaseLLMProvider
from workout_ai.llm.providers.gemini_provider import GeminiProvider
from workout_ai.llm.providers.openai_provider import (
    CustomLLMProvider,
    LocalLLMProvider,
    MoonshotProvider,
    OpenAIProvider,
)
from workout_ai.llm.types import ProviderName

PROVIDER_REGISTRY: MappingProxyType[ProviderName, type[BaseLLMProvider]] = MappingProxyType({
    ProviderName.OPENAI: OpenAIProvider,
    ProviderName.ANTHROPIC: AnthropicProvider,
    ProviderName.GEMINI: GeminiProvider,
    ProviderName.MOONSHOT: MoonshotProvider,
    ProviderName.LOCAL: LocalLLMProvider,
    ProviderName.CUSTOM: CustomLLMProvider,
})

ENDPOINT_PROVIDERS = frozenset({ProviderName.LOCAL, ProviderName.CUSTOM})


def get_provider_class(provider: ProviderName | str) -> type[BaseLLMProvider]:
    """Resolve an adapter class by vendor name.

    Raises:
        KeyError: If the vendor is not registered
    """
    return PROVIDER_REGISTRY[ProviderName(provider)]

