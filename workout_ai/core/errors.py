"""Canonical error base for the generation engine.

Every error raised across the pipeline derives from WorkoutAIError so callers
can render a structured, actionable message instead of a generic failure.

Error categories:
- input: bad request or configuration; no vendor call is made
- vendor: authentication, rate limit, invalid request, generic vendor failure
- output_contract: schema validation failed after exhausting retries
- infrastructure: timeout, network failure, cancellation
"""

from __future__ import annotations

from typing import Any


class WorkoutAIError(Exception):
    """Base class for all engine errors.

    Attributes:
        code: Stable machine-readable error code (e.g., "CONFIGURATION_ERROR")
        category: One of input, vendor, output_contract, infrastructure, internal
        retryable: Whether the caller may retry the same request unchanged
    """

    code: str = "WORKOUT_AI_ERROR"
    category: str = "internal"
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def details(self) -> dict[str, Any]:
        """Extra structured fields for subclasses to extend."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code,
            "category": self.category,
            "message": self.message,
            "retryable": self.retryable,
        }
        payload.update(self.details())
        return payload


class ConfigurationError(WorkoutAIError):
    """Raised when no usable vendor credential or configuration exists.

    Distinct from runtime generation errors so callers can show a
    "fix your settings" message.
    """

    code = "CONFIGURATION_ERROR"
    category = "input"
