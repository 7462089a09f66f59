"""Repair common vendor formatting slips before schema validation.

Vendors frequently quote numbers ("sets": "3") or emit a single string where
a list is expected ("equipment": "dumbbell"). Each field has its own typed
coercion; nothing else is touched. Coercion works on a deep copy and is
idempotent: coercing an already coerced tree changes nothing.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable
from typing import Any

from workout_ai.generation.schemas import Weekday

_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+(?:\.0+)?\s*$")

_WEEKDAYS = list(Weekday)


def coerce_count(value: Any) -> Any:
    """Turn an integer-looking string into an int; leave everything else as is.

    "3" -> 3, " 12 " -> 12, "4.0" -> 4, but "three" and "3.5" are untouched so
    validation can report them.
    """
    if isinstance(value, str) and _INTEGER_PATTERN.match(value):
        return int(float(value))
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def coerce_collection(value: Any) -> Any:
    """Wrap a lone scalar or object in a list. None and lists pass through."""
    if value is None or isinstance(value, list):
        return value
    if isinstance(value, str) and not value.strip():
        return []
    return [value]


COUNT_FIELDS = frozenset({
    "sets",
    "reps",
    "duration",
    "rest_seconds",
    "day_of_week",
    "work_seconds",
    "rounds",
    "duration_seconds",
    "duration_minutes",
    "duration_weeks",
    "sessions_per_week",
})

COLLECTION_FIELDS = frozenset({
    "equipment",
    "muscle_groups",
    "target_muscles",
    "warmup",
    "cooldown",
    "safety_reminders",
    "focus_areas",
    "equipment_required",
})

FIELD_COERCIONS: dict[str, Callable[[Any], Any]] = {
    **{name: coerce_count for name in COUNT_FIELDS},
    **{name: coerce_collection for name in COLLECTION_FIELDS},
}


def _normalize_aliases(node: dict[str, Any]) -> None:
    if "muscle_groups" in node and "target_muscles" not in node:
        node["target_muscles"] = node.pop("muscle_groups")

    # 1 = Monday ... 7 = Sunday
    day_number = node.get("day_of_week")
    if "day" not in node and isinstance(day_number, int) and 1 <= day_number <= 7:
        node["day"] = str(_WEEKDAYS[day_number - 1])


def _coerce_in_place(node: Any) -> None:
    if isinstance(node, list):
        for item in node:
            _coerce_in_place(item)
        return
    if not isinstance(node, dict):
        return

    for key in list(node.keys()):
        coercion = FIELD_COERCIONS.get(key)
        if coercion is not None:
            node[key] = coercion(node[key])
    _normalize_aliases(node)

    for value in node.values():
        if isinstance(value, dict | list):
            _coerce_in_place(value)


def coerce_plan_data(data: Any) -> Any:
    """Return a coerced deep copy of a parsed vendor answer.

    Only dict and list trees are processed; any other value is returned
    unchanged so validation reports it.
    """
    if not isinstance(data, dict | list):
        return data
    coerced = copy.deepcopy(data)
    _coerce_in_place(coerced)
    return coerced
