"""Request/response bodies for the AI endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from workout_ai.generation.schemas import WorkoutPlanDocument
from workout_ai.llm.types import ProviderName


class WorkoutPlanResponse(BaseModel):
    plan: WorkoutPlanDocument
    provider: str | None = None
    model: str | None = None
    attempts: int
    total_tokens: int
    estimated_cost_usd: float


class ConnectionTestRequest(BaseModel):
    """A vendor key the user wants to check before saving it."""

    provider: ProviderName
    api_key: str = Field(default="", repr=False)
    model: str | None = None
    endpoint_url: str | None = None


class ConnectionTestResponse(BaseModel):
    success: bool
    provider: ProviderName
    message: str
