from fastapi import FastAPI, Request
from loguru import logger

from workout_ai.api.generation import router as generation_router
from workout_ai.config.settings import ProcessConfig, settings
from workout_ai.core.encryption import CredentialVault, get_vault
from workout_ai.core.errors import ConfigurationError
from workout_ai.core.logger import setup_logger
from workout_ai.generation.service import CredentialStore, GenerationService, InMemoryCredentialStore

# Initialize logger
setup_logger(level=settings.log_level)


def _load_vault() -> CredentialVault | None:
    try:
        return get_vault()
    except ConfigurationError as e:
        logger.warning(f"{e.message} Users can only generate with the system default credential.")
        return None


def create_app(
    service: GenerationService | None = None,
    credential_store: CredentialStore | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        service: Pre-built generation service (tests inject one)
        credential_store: Store for users' AI configuration, used when no
            service is given. Defaults to an empty in-memory store.
    """
    if service is None:
        service = GenerationService(
            ProcessConfig.from_settings(settings),
            _load_vault(),
            credential_store or InMemoryCredentialStore(),
        )

    application = FastAPI(title="Workout AI Engine")
    application.state.generation_service = service
    application.include_router(generation_router)

    @application.get("/health")
    def health():
        return {"status": "ok"}

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all HTTP requests."""
        logger.debug(f"Request: {request.method} {request.url.path}")
        response = await call_next(request)
        logger.debug(f"Response: {response.status_code} for {request.method} {request.url.path}")
        return response

    logger.info("FastAPI application initialized")
    return application


app = create_app()
