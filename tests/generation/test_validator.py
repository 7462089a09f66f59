"""Tests for the response validator.

Tests cover:
- JSON extraction from fenced blocks and surrounding prose
- Coercion of quoted counts before strict validation
- Error paths for values that cannot be coerced
- Envelope unwrapping ({"plan": ...}, {"plans": [...]})
- Request-aware checks (equipment subset, session count, modality fields)
"""

import copy
import json

import pytest

from workout_ai.generation.schemas import WorkoutPlanDocument
from workout_ai.generation.validator import (
    PlanConstraints,
    ValidationIssue,
    create_validation_error_prompt,
    extract_json,
    validate_plan_response,
    validate_with_schema,
)

CONSTRAINTS = PlanConstraints(
    allowed_equipment=("Dumbbells", "Pull-up Bar"),
    sessions_per_week=3,
    required_fields=("sets", "reps"),
)


def test_extract_json_from_fenced_block():
    raw = 'Here is your plan:\n```json\n{"a": {"b": [1, 2]}}\n```\nEnjoy!'

    assert extract_json(raw) == {"a": {"b": [1, 2]}}


def test_extract_json_from_prose_ignores_braces_in_strings():
    raw = 'Sure! {"note": "use {curly} and ] brackets", "n": 1} Let me know.'

    assert extract_json(raw) == {"note": "use {curly} and ] brackets", "n": 1}


def test_extract_json_rejects_non_json():
    with pytest.raises(json.JSONDecodeError):
        extract_json("I cannot help with that.")


def test_fenced_plan_roundtrip(valid_plan):
    raw = f"```json\n{json.dumps(valid_plan)}\n```"

    result = validate_plan_response(raw, CONSTRAINTS)

    assert result.success
    assert isinstance(result.data, WorkoutPlanDocument)
    assert result.data.model_dump(mode="json", exclude_none=True) == validate_with_schema(
        valid_plan, WorkoutPlanDocument
    ).data.model_dump(mode="json", exclude_none=True)


def test_quoted_sets_fail_strict_schema_but_pass_after_coercion(plan_with_quoted_sets):
    direct = validate_with_schema(plan_with_quoted_sets, WorkoutPlanDocument)
    assert not direct.success

    result = validate_plan_response(json.dumps(plan_with_quoted_sets), CONSTRAINTS)

    assert result.success
    assert result.data.weekly_schedule[0].workout.exercises[0].sets == 3


def test_uncoercible_sets_reports_path(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["sets"] = "three"

    result = validate_plan_response(json.dumps(plan), CONSTRAINTS)

    assert not result.success
    paths = [issue.path for issue in result.errors]
    assert "weekly_schedule.0.workout.exercises.0.sets" in paths
    issue = next(i for i in result.errors if i.path == "weekly_schedule.0.workout.exercises.0.sets")
    assert issue.received == "three"
    assert issue.expected == "integer"


def test_invalid_json_issue_keeps_raw_input():
    result = validate_plan_response("{not valid json")

    assert not result.success
    assert result.errors[0].code == "invalid_json"
    assert result.errors[0].path == "root"
    assert result.raw_input == "{not valid json"


@pytest.mark.parametrize("envelope", ["plan", "plans"])
def test_envelopes_are_unwrapped(valid_plan, envelope):
    wrapped = {"plan": valid_plan} if envelope == "plan" else {"plans": [valid_plan]}

    result = validate_plan_response(json.dumps(wrapped), CONSTRAINTS)

    assert result.success
    assert result.data.plan_overview.sessions_per_week == 3


def test_bare_list_uses_first_plan(valid_plan):
    assert validate_plan_response(json.dumps([valid_plan]), CONSTRAINTS).success


def test_duplicate_days_rejected(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][2]["day"] = "monday"

    result = validate_plan_response(json.dumps(plan))

    assert not result.success
    assert any("distinct" in issue.message for issue in result.errors)


def test_unavailable_equipment_rejected(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["equipment"] = ["Barbell"]

    result = validate_plan_response(json.dumps(plan), CONSTRAINTS)

    assert not result.success
    issue = result.errors[0]
    assert issue.code == "equipment_not_available"
    assert issue.path == "weekly_schedule.0.workout.exercises.0.equipment.0"


def test_equipment_match_is_case_insensitive_and_allows_bodyweight(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["equipment"] = ["dumbbells", "Bodyweight"]

    assert validate_plan_response(json.dumps(plan), CONSTRAINTS).success


def test_session_count_must_match(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][3]["workout"] = None

    result = validate_plan_response(json.dumps(plan), CONSTRAINTS)

    assert not result.success
    assert result.errors[0].code == "sessions_mismatch"


def test_missing_modality_field(valid_plan):
    plan = copy.deepcopy(valid_plan)
    del plan["weekly_schedule"][0]["workout"]["exercises"][1]["reps"]

    result = validate_plan_response(json.dumps(plan), CONSTRAINTS)

    assert not result.success
    assert result.errors[0].path == "weekly_schedule.0.workout.exercises.1.reps"
    assert result.errors[0].code == "missing_modality_field"


def test_validation_error_prompt():
    prompt = create_validation_error_prompt([
        ValidationIssue(path="weekly_schedule.0.day", message="Input should be a weekday", code="enum", expected="Monday"),
        ValidationIssue(path="progression_notes", message="Field required", code="missing"),
    ])

    assert prompt.startswith("The previous response had validation errors")
    assert "- weekly_schedule.0.day: Input should be a weekday (expected: Monday)" in prompt
    assert "- progression_notes: Field required" in prompt
    assert "only the corrected JSON" in prompt


def test_extract_json_skips_fence_without_json():
    raw = "```python\nprint('hi')\n```\nHere it is: {\"a\": 1}"

    assert extract_json(raw) == {"a": 1}


@pytest.mark.parametrize("equipment", [["Mat"], ["Floor"], ["No equipment"]])
def test_only_bodyweight_and_none_are_always_allowed(valid_plan, equipment):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["equipment"] = equipment

    result = validate_plan_response(json.dumps(plan), CONSTRAINTS)

    assert not result.success
    assert result.errors[0].code == "equipment_not_available"


def test_none_is_always_allowed(valid_plan):
    plan = copy.deepcopy(valid_plan)
    plan["weekly_schedule"][0]["workout"]["exercises"][0]["equipment"] = ["None"]

    assert validate_plan_response(json.dumps(plan), CONSTRAINTS).success


def test_strength_plan_without_rest_seconds_is_valid(valid_plan):
    plan = copy.deepcopy(valid_plan)
    for entry in plan["weekly_schedule"]:
        if entry["workout"]:
            for exercise in entry["workout"]["exercises"]:
                del exercise["rest_seconds"]

    assert validate_plan_response(json.dumps(plan), CONSTRAINTS).success
