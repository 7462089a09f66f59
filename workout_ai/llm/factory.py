"""Provider factory: pick and build the right adapter for a user.

Resolution order:
1. User has no AI configuration, or it is disabled -> system default
   credential from ProcessConfig, or ConfigurationError if there is none.
2. Otherwise decrypt the user's stored key and strip copy-paste whitespace.
3. Dispatch on the configured vendor through the registry; local/custom
   endpoints require an explicit endpoint URL.

Every failure here is a ConfigurationError so the caller can ask the user to
fix their settings instead of reporting a generic generation failure.
"""

from __future__ import annotations

import httpx
from loguru import logger

from workout_ai.config.settings import ProcessConfig
from workout_ai.core.encryption import CredentialVault, DecryptionError
from workout_ai.core.errors import ConfigurationError
from workout_ai.llm.providers.base import BaseLLMProvider
from workout_ai.llm.providers.registry import ENDPOINT_PROVIDERS, get_provider_class
from workout_ai.llm.types import ProviderConfig, ProviderName, VendorCredential

NOT_CONFIGURED_MESSAGE = "AI generation not configured. Please add your API key in settings."


class ProviderFactory:
    def __init__(
        self,
        process_config: ProcessConfig,
        vault: CredentialVault | None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.process_config = process_config
        self.vault = vault
        self._transport = transport

    def _build(self, config: ProviderConfig) -> BaseLLMProvider:
        try:
            provider_cls = get_provider_class(config.provider)
        except (KeyError, ValueError) as e:
            raise ConfigurationError(f"Unsupported AI provider: {config.provider}") from e

        try:
            return provider_cls(
                config,
                timeout=self.process_config.request_timeout_seconds,
                transport=self._transport,
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def _create_default(self) -> BaseLLMProvider:
        default = self.process_config.default_credential
        if default is None:
            raise ConfigurationError(NOT_CONFIGURED_MESSAGE)

        logger.debug(f"Using system default LLM provider={default.provider}")
        return self._build(
            ProviderConfig(
                provider=ProviderName(default.provider),
                api_key=default.api_key,
                model=default.model,
                max_tokens=self.process_config.max_output_tokens,
            )
        )

    def _decrypt_key(self, credential: VendorCredential) -> str | None:
        if not credential.encrypted_key:
            return None
        if self.vault is None:
            raise ConfigurationError("Encryption secret is not configured; stored API keys cannot be read.")
        try:
            api_key = self.vault.decrypt(credential.encrypted_key)
        except DecryptionError as e:
            logger.error(
                "Stored API key could not be decrypted",
                provider=str(credential.provider),
                error=str(e),
            )
            raise ConfigurationError(
                "Your saved API key could not be read. Please re-enter it in settings."
            ) from e
        return api_key.strip() or None

    def create_provider(self, user_config: VendorCredential | None) -> BaseLLMProvider:
        """Build the adapter for a user's configuration.

        Args:
            user_config: The user's stored AI configuration, if any

        Returns:
            A ready-to-use provider adapter

        Raises:
            ConfigurationError: If no usable credential exists
        """
        if user_config is None or not user_config.enabled:
            return self._create_default()

        return self.create_from_config(
            ProviderConfig(
                provider=user_config.provider,
                api_key=self._decrypt_key(user_config) or "",
                model=user_config.model,
                endpoint_url=user_config.endpoint_url,
                max_tokens=self.process_config.max_output_tokens,
            )
        )

    def create_from_config(self, config: ProviderConfig) -> BaseLLMProvider:
        """Build an adapter from plaintext configuration.

        Used for stored credentials after decryption and for testing a key
        before it is saved.

        Raises:
            ConfigurationError: If the endpoint or key required by the vendor is missing
        """
        vendor_cls = get_provider_class(config.provider)
        if config.provider in ENDPOINT_PROVIDERS:
            if not config.endpoint_url:
                raise ConfigurationError(f"{vendor_cls.vendor_label} endpoint URL not configured")
        elif not config.api_key.strip():
            raise ConfigurationError(f"{vendor_cls.vendor_label} API key not configured")

        return self._build(config.model_copy(update={"api_key": config.api_key.strip()}))
