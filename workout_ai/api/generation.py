"""AI workout plan endpoints.

Maps the engine's error taxonomy onto HTTP status codes:
- input, configuration and token budget errors -> 400
- vendor authentication -> 401
- vendor rate limit -> 429 (with Retry-After)
- timeout -> 504
- schema validation exhausted -> 422
- any other vendor failure -> 502
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger

from workout_ai.api.dependencies import get_current_user_id, get_generation_service
from workout_ai.api.schemas import ConnectionTestRequest, ConnectionTestResponse, WorkoutPlanResponse
from workout_ai.core.errors import ConfigurationError, WorkoutAIError
from workout_ai.generation.errors import GenerationTimeoutError, SchemaValidationError, TokenBudgetExceededError
from workout_ai.generation.prompts import PromptBuildError
from workout_ai.generation.schemas import GenerationRequest
from workout_ai.generation.service import GenerationService
from workout_ai.llm.errors import AuthenticationError, LLMError, RateLimitError
from workout_ai.llm.types import ProviderConfig

router = APIRouter(prefix="/ai", tags=["ai"])


def status_for_error(error: WorkoutAIError) -> int:
    if isinstance(error, ConfigurationError | PromptBuildError | TokenBudgetExceededError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(error, AuthenticationError):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, RateLimitError):
        return status.HTTP_429_TOO_MANY_REQUESTS
    if isinstance(error, GenerationTimeoutError):
        return status.HTTP_504_GATEWAY_TIMEOUT
    if isinstance(error, SchemaValidationError):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(error, LLMError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _raise_http_error(error: WorkoutAIError) -> NoReturn:
    headers = None
    if isinstance(error, RateLimitError):
        headers = {"Retry-After": str(int(error.retry_after_seconds))}
    raise HTTPException(status_code=status_for_error(error), detail=error.to_dict(), headers=headers)


@router.post("/workout-plans", response_model=WorkoutPlanResponse)
async def generate_workout_plan(
    request: GenerationRequest,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> WorkoutPlanResponse:
    """Generate a workout plan with the user's configured AI vendor.

    Returns:
        The validated plan with usage totals

    Raises:
        HTTPException: Mapped from the engine error on failure
    """
    logger.info("Workout plan requested", user_id=user_id, modality=str(request.modality))
    result = await service.generate(user_id, request)

    if result.error is not None or result.plan is None:
        error = result.error or WorkoutAIError("Generation ended without a plan")
        _raise_http_error(error)

    return WorkoutPlanResponse(
        plan=result.plan,
        provider=result.provider,
        model=result.model,
        attempts=result.attempts,
        total_tokens=result.total_tokens,
        estimated_cost_usd=round(result.total_cost_usd, 6),
    )


@router.post("/config/test", response_model=ConnectionTestResponse)
async def check_ai_config(
    body: ConnectionTestRequest,
    user_id: str = Depends(get_current_user_id),
    service: GenerationService = Depends(get_generation_service),
) -> ConnectionTestResponse:
    """Check a vendor key with a minimal request before the user saves it."""
    logger.info("AI config test requested", user_id=user_id, provider=str(body.provider))
    try:
        ok = await service.test_credential(
            ProviderConfig(
                provider=body.provider,
                api_key=body.api_key,
                model=body.model,
                endpoint_url=body.endpoint_url,
            )
        )
    except ConfigurationError as e:
        _raise_http_error(e)

    message = "Connection successful" if ok else "Connection failed. Please check your API key and model."
    return ConnectionTestResponse(success=ok, provider=body.provider, message=message)
