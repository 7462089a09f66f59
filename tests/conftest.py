"""Root conftest for all tests.

Shared fixtures: a sample generation request, a plan that satisfies it, and
helpers for faking vendor HTTP traffic with httpx.MockTransport (the openai
and anthropic SDKs accept it through their http_client).
"""

import copy
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from workout_ai.config.settings import DefaultCredential, ProcessConfig
from workout_ai.core.encryption import CredentialVault
from workout_ai.generation.schemas import GenerationRequest

# Low iteration count keeps key derivation fast in tests
TEST_PBKDF2_ITERATIONS = 1_000


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault("test-master-secret", iterations=TEST_PBKDF2_ITERATIONS)


@pytest.fixture
def process_config() -> ProcessConfig:
    """Process config with an OpenAI system default credential."""
    return ProcessConfig(
        default_credential=DefaultCredential(provider="openai", api_key="sk-system-default"),
        request_timeout_seconds=5.0,
        max_schema_retries=2,
        max_output_tokens=2000,
    )


@pytest.fixture
def sample_request() -> GenerationRequest:
    return GenerationRequest.model_validate({
        "profile": {
            "fitness_goals": ["Build strength", "Lose fat"],
            "experience_level": "intermediate",
            "activity_level": "moderately_active",
            "injuries_and_restrictions": "Mild left knee pain when running downhill",
            "height_cm": 178,
            "weight_kg": 80,
        },
        "equipment": ["Dumbbells", {"name": "Pull-up Bar", "quantity": 1}],
        "modality": "strength",
        "schedule": {
            "sessions_per_week": 3,
            "session_duration_minutes": 45,
            "preferred_days": ["monday", "wednesday", "friday"],
        },
    })


def _strength_workout(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "duration_minutes": 45,
        "focus": "Full body",
        "warmup": [{"name": "Arm Circles", "duration_seconds": 60, "instructions": "Small to large circles"}],
        "exercises": [
            {
                "name": "Dumbbell Goblet Squat",
                "sets": 3,
                "reps": 10,
                "rest_seconds": 90,
                "equipment": ["Dumbbells"],
                "target_muscles": ["quads", "glutes"],
                "instructions": "Keep the chest tall and knees tracking over toes",
            },
            {
                "name": "Push-up",
                "sets": 3,
                "reps": 12,
                "rest_seconds": 60,
                "equipment": [],
                "target_muscles": ["chest", "triceps"],
                "instructions": "Brace the core, lower under control",
            },
        ],
        "cooldown": [],
    }


@pytest.fixture
def valid_plan() -> dict[str, Any]:
    """A plan that satisfies sample_request (3 sessions, dumbbells only)."""
    return {
        "plan_overview": {
            "duration_weeks": 4,
            "sessions_per_week": 3,
            "focus_areas": ["strength", "conditioning"],
            "equipment_required": ["Dumbbells"],
        },
        "weekly_schedule": [
            {"day": "Monday", "workout": _strength_workout("Full Body A")},
            {"day": "Tuesday", "workout": None},
            {"day": "Wednesday", "workout": _strength_workout("Full Body B")},
            {"day": "Friday", "workout": _strength_workout("Full Body C")},
        ],
        "progression_notes": "Add one rep per set each week, deload in week 4",
        "safety_reminders": ["Stop if knee pain exceeds 3/10"],
    }


@pytest.fixture
def plan_with_quoted_sets(valid_plan: dict[str, Any]) -> dict[str, Any]:
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["sets"] = "3"
    return plan


def _openai_completion(content: str, prompt_tokens: int = 100, completion_tokens: int = 50) -> dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1_700_000_000,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


@pytest.fixture
def openai_body() -> Callable[..., dict[str, Any]]:
    """Factory for an OpenAI chat completion response body."""
    return _openai_completion


@pytest.fixture
def openai_replies() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Build a transport that answers successive OpenAI calls with the given contents.

    Returns (transport, captured_requests).
    """

    def factory(*contents: str) -> tuple[httpx.MockTransport, list[httpx.Request]]:
        captured: list[httpx.Request] = []
        remaining = list(contents)

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            content = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            return httpx.Response(200, json=_openai_completion(content))

        return httpx.MockTransport(handler), captured

    return factory


class _WhitespaceEncoding:
    """Stand-in for the tiktoken BPE, which is downloaded on first use."""

    def encode(self, text: str) -> list[str]:
        return text.split()


@pytest.fixture(autouse=True)
def offline_token_encoding(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("workout_ai.core.token_counting._get_encoding", lambda: _WhitespaceEncoding())
