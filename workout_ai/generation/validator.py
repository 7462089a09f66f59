"""Response validator: raw vendor text -> validated WorkoutPlanDocument.

Pipeline: extract_json -> coerce_plan_data -> unwrap envelope -> strict
pydantic validation -> request-aware checks. Every failure is reported as a
list of ValidationIssue values that can be turned into a retry prompt.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from workout_ai.generation.coercion import coerce_plan_data
from workout_ai.generation.schemas import BODYWEIGHT_EQUIPMENT, WorkoutPlanDocument
from workout_ai.llm.json_output import extract_json

T = TypeVar("T")

MAX_ISSUES_IN_PROMPT = 20

# Readable expectations for pydantic error types without an "expected" context
_EXPECTED_BY_ERROR_TYPE = {
    "int_type": "integer",
    "int_parsing": "integer",
    "int_from_float": "integer",
    "string_type": "string",
    "list_type": "list",
    "dict_type": "object",
    "model_type": "object",
    "model_attributes_type": "object",
    "missing": "field to be present",
    "bool_type": "boolean",
}


class ValidationIssue(BaseModel):
    path: str
    message: str
    code: str
    received: Any = None
    expected: str | None = None


class ValidationResult(BaseModel, Generic[T]):
    success: bool
    data: T | None = None
    errors: list[ValidationIssue] = Field(default_factory=list)
    raw_input: Any = None


@dataclass(frozen=True)
class PlanConstraints:
    """Request-derived invariants a schema-valid plan must still satisfy."""

    allowed_equipment: tuple[str, ...] = ()
    sessions_per_week: int | None = None
    required_fields: tuple[str, ...] = field(default_factory=tuple)


# Schema validation


def _format_path(loc: tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "root"


def _received(error: dict[str, Any]) -> Any:
    if error["type"] == "missing":
        return None
    value = error.get("input")
    if isinstance(value, dict | list):
        return type(value).__name__
    return value


def format_pydantic_errors(exc: PydanticValidationError) -> list[ValidationIssue]:
    issues = []
    for error in exc.errors():
        ctx = error.get("ctx") or {}
        expected = ctx.get("expected") or _EXPECTED_BY_ERROR_TYPE.get(error["type"])
        issues.append(
            ValidationIssue(
                path=_format_path(tuple(error.get("loc", ()))),
                message=error["msg"],
                code=error["type"],
                received=_received(error),
                expected=str(expected) if expected is not None else None,
            )
        )
    return issues


def validate_with_schema(data: Any, model: type[BaseModel]) -> ValidationResult[Any]:
    try:
        validated = model.model_validate(data)
    except PydanticValidationError as e:
        return ValidationResult(success=False, errors=format_pydantic_errors(e), raw_input=data)
    return ValidationResult(success=True, data=validated)


def _envelope_candidates(data: Any) -> list[Any]:
    """Plan candidates in priority order: bare, {"plan": ...}, {"plans": [...]}."""
    candidates: list[Any] = []
    if isinstance(data, dict):
        candidates.append(data)
        if isinstance(data.get("plan"), dict):
            candidates.append(data["plan"])
        plans = data.get("plans")
        if isinstance(plans, list) and plans:
            candidates.append(plans[0])
    elif isinstance(data, list) and data:
        candidates.append(data[0])
    else:
        candidates.append(data)
    return candidates


# Request-aware checks


def check_plan_constraints(plan: WorkoutPlanDocument, constraints: PlanConstraints) -> list[ValidationIssue]:
    """Invariants that depend on the request rather than the schema alone."""
    issues: list[ValidationIssue] = []
    allowed = {name.strip().lower() for name in constraints.allowed_equipment} | BODYWEIGHT_EQUIPMENT

    for day_index, workout in plan.workouts():
        base = f"weekly_schedule.{day_index}.workout"
        for section in ("warmup", "exercises", "cooldown"):
            for ex_index, exercise in enumerate(getattr(workout, section)):
                path = f"{base}.{section}.{ex_index}"
                for eq_index, item in enumerate(exercise.equipment):
                    if item.strip().lower() not in allowed:
                        issues.append(
                            ValidationIssue(
                                path=f"{path}.equipment.{eq_index}",
                                message=f"Equipment '{item}' is not available to the user",
                                code="equipment_not_available",
                                received=item,
                                expected=", ".join(constraints.allowed_equipment) or "bodyweight only",
                            )
                        )
                if section != "exercises":
                    continue
                for name in constraints.required_fields:
                    if getattr(exercise, name, None) is None:
                        issues.append(
                            ValidationIssue(
                                path=f"{path}.{name}",
                                message=f"Field required for this workout type: {name}",
                                code="missing_modality_field",
                                expected="integer",
                            )
                        )

    if constraints.sessions_per_week is not None:
        workout_days = len(plan.workouts())
        if workout_days != constraints.sessions_per_week:
            issues.append(
                ValidationIssue(
                    path="weekly_schedule",
                    message=(
                        f"Plan has {workout_days} workout days, expected exactly "
                        f"{constraints.sessions_per_week}"
                    ),
                    code="sessions_mismatch",
                    received=workout_days,
                    expected=str(constraints.sessions_per_week),
                )
            )
    return issues


# Entry points


def parse_ai_response(raw: str) -> ValidationResult[Any]:
    """Extract and coerce JSON from raw text without schema validation."""
    try:
        data = extract_json(raw)
    except json.JSONDecodeError as e:
        return ValidationResult(
            success=False,
            errors=[ValidationIssue(path="root", message=f"Invalid JSON: {e.msg}", code="invalid_json")],
            raw_input=raw,
        )
    return ValidationResult(success=True, data=coerce_plan_data(data), raw_input=raw)


def validate_plan_response(
    raw: str,
    constraints: PlanConstraints | None = None,
) -> ValidationResult[WorkoutPlanDocument]:
    """Validate a raw vendor answer as a workout plan.

    Args:
        raw: The vendor's text response
        constraints: Request-derived checks applied once the schema passes

    Returns:
        ValidationResult with the plan on success, or every issue found
    """
    parsed = parse_ai_response(raw)
    if not parsed.success:
        return ValidationResult[WorkoutPlanDocument](success=False, errors=parsed.errors, raw_input=raw)

    best_errors: list[ValidationIssue] | None = None
    for candidate in _envelope_candidates(parsed.data):
        result = validate_with_schema(candidate, WorkoutPlanDocument)
        if result.success:
            plan: WorkoutPlanDocument = result.data
            issues = check_plan_constraints(plan, constraints) if constraints else []
            if issues:
                return ValidationResult[WorkoutPlanDocument](success=False, errors=issues, raw_input=raw)
            return ValidationResult[WorkoutPlanDocument](success=True, data=plan, raw_input=raw)
        if best_errors is None or len(result.errors) < len(best_errors):
            best_errors = result.errors

    return ValidationResult[WorkoutPlanDocument](success=False, errors=best_errors or [], raw_input=raw)


def create_validation_error_prompt(errors: list[ValidationIssue]) -> str:
    """Render issues as retry instructions for the vendor."""
    lines = []
    for issue in errors[:MAX_ISSUES_IN_PROMPT]:
        expected = f" (expected: {issue.expected})" if issue.expected else ""
        lines.append(f"- {issue.path}: {issue.message}{expected}")
    if len(errors) > MAX_ISSUES_IN_PROMPT:
        lines.append(f"- ...and {len(errors) - MAX_ISSUES_IN_PROMPT} more")

    error_list = "\n".join(lines)
    return (
        "The previous response had validation errors. Please fix the following issues and provide "
        f"a valid response:\n\n{error_list}\n\n"
        "Respond with only the corrected JSON object, with no text before or after it."
    )
