"""Errors raised by the generation orchestrator."""

from __future__ import annotations

from typing import Any

from workout_ai.core.errors import WorkoutAIError
from workout_ai.generation.validator import ValidationIssue


class GenerationTimeoutError(WorkoutAIError):
    code = "GENERATION_TIMEOUT"
    category = "infrastructure"
    retryable = True

    def __init__(self, message: str, timeout_seconds: float):
        super().__init__(message)
        self.timeout_seconds = timeout_seconds

    def details(self) -> dict[str, Any]:
        return {"timeout_seconds": self.timeout_seconds}


class SchemaValidationError(WorkoutAIError):
    """Vendor output still failed validation after every retry."""

    code = "SCHEMA_VALIDATION_ERROR"
    category = "output_contract"

    def __init__(self, message: str, errors: list[ValidationIssue]):
        super().__init__(message)
        self.errors = errors

    def details(self) -> dict[str, Any]:
        return {"errors": [issue.model_dump(mode="json") for issue in self.errors]}


class GenerationCancelledError(WorkoutAIError):
    code = "GENERATION_CANCELLED"
    category = "infrastructure"


class TokenBudgetExceededError(WorkoutAIError):
    """The pre-flight estimate breaks the configured TokenBudget; nothing was sent."""

    code = "TOKEN_BUDGET_EXCEEDED"
    category = "input"

    def __init__(self, message: str, reasons: list[str]):
        super().__init__(message)
        self.reasons = reasons

    def details(self) -> dict[str, Any]:
        return {"reasons": self.reasons}


class UnexpectedGenerationError(WorkoutAIError):
    """Wraps an error the pipeline has no specific handling for."""

    code = "UNEXPECTED_GENERATION_ERROR"
    category = "internal"

    def __init__(self, message: str, error_type: str):
        super().__init__(message)
        self.error_type = error_type

    def details(self) -> dict[str, Any]:
        return {"error_type": self.error_type}
