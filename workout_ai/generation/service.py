"""Entry point used by the HTTP layer to generate workout plans."""

from __future__ import annotations

from typing import Protocol

import httpx
from loguru import logger

from workout_ai.config.settings import ProcessConfig
from workout_ai.core.encryption import CredentialVault
from workout_ai.core.errors import ConfigurationError
from workout_ai.generation.orchestrator import GenerationOrchestrator, GenerationResult, GenerationState
from workout_ai.generation.schemas import GenerationRequest
from workout_ai.llm.factory import ProviderFactory
from workout_ai.llm.types import ProviderConfig, VendorCredential


class CredentialStore(Protocol):
    """Persistence collaborator that owns users' AI configuration."""

    async def get_vendor_credential(self, user_id: str) -> VendorCredential | None: ...


class InMemoryCredentialStore:
    """Dictionary-backed CredentialStore for tests and single-process use."""

    def __init__(self, credentials: dict[str, VendorCredential] | None = None) -> None:
        self._credentials: dict[str, VendorCredential] = dict(credentials or {})

    async def get_vendor_credential(self, user_id: str) -> VendorCredential | None:
        return self._credentials.get(user_id)

    def set_vendor_credential(self, user_id: str, credential: VendorCredential) -> None:
        self._credentials[user_id] = credential


class GenerationService:
    def __init__(
        self,
        process_config: ProcessConfig,
        vault: CredentialVault | None,
        credential_store: CredentialStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.process_config = process_config
        self.credential_store = credential_store
        self.factory = ProviderFactory(process_config, vault, transport=transport)

    async def generate(self, user_id: str, request: GenerationRequest) -> GenerationResult:
        """Generate a workout plan for a user.

        The user's own credential is used when configured and enabled,
        otherwise the system default. Failures are returned on the result,
        never raised, except for cancellation.

        Args:
            user_id: Owner of the vendor credential
            request: Normalized generation request

        Returns:
            GenerationResult in a terminal state
        """
        credential = await self.credential_store.get_vendor_credential(user_id)
        try:
            provider = self.factory.create_provider(credential)
        except ConfigurationError as e:
            logger.warning(f"AI generation unavailable for user_id={user_id}: {e.message}")
            return GenerationResult(state=GenerationState.FAILED, error=e)

        logger.info(
            "Starting workout plan generation",
            user_id=user_id,
            provider=str(provider.provider_name),
            modality=str(request.modality),
        )
        orchestrator = GenerationOrchestrator(
            provider,
            request,
            timeout_seconds=self.process_config.request_timeout_seconds,
            max_retries=self.process_config.max_schema_retries,
            max_output_tokens=self.process_config.max_output_tokens,
            token_budget=self.process_config.token_budget,
        )
        return await orchestrator.run()

    async def test_credential(self, config: ProviderConfig) -> bool:
        """Check a plaintext key against its vendor before it is saved.

        Raises:
            ConfigurationError: If the configuration is incomplete
        """
        provider = self.factory.create_from_config(config)
        ok = await provider.test_connection()
        logger.info(f"Credential test for provider={config.provider}: {'ok' if ok else 'failed'}")
        return ok
