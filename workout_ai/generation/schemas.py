"""Request and output contracts for workout plan generation.

The output schema is strict: count fields only accept real integers, so a
vendor answer such as "sets": "3" must go through the coercion pass before it
validates, and "sets": "three" never does. Any output failing the schema is
either retried or surfaced as an error, never trusted.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator, model_validator

BODYWEIGHT_EQUIPMENT = frozenset({"bodyweight", "none"})


class Modality(StrEnum):
    STRENGTH = "strength"
    CARDIO = "cardio"
    HIIT = "hiit"
    FLEXIBILITY = "flexibility"


class Weekday(StrEnum):
    MONDAY = "Monday"
    TUESDAY = "Tuesday"
    WEDNESDAY = "Wednesday"
    THURSDAY = "Thursday"
    FRIDAY = "Friday"
    SATURDAY = "Saturday"
    SUNDAY = "Sunday"


def _normalize_weekday(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().capitalize()
    return value


# Request side


class UserProfile(BaseModel):
    fitness_goals: list[str] = Field(default_factory=list)
    experience_level: str | None = None
    activity_level: str | None = None
    medical_conditions: list[str] = Field(default_factory=list)
    injuries: list[str] = Field(default_factory=list)
    injuries_and_restrictions: str | None = None
    current_activities: str | None = None
    medications: str | None = None
    height_cm: float | None = Field(None, gt=0)
    weight_kg: float | None = Field(None, gt=0)


class EquipmentItem(BaseModel):
    name: str = Field(..., min_length=1)
    quantity: int | None = Field(None, gt=0)
    specifications: dict[str, str | int | float | bool | None] | None = None


class Schedule(BaseModel):
    sessions_per_week: int = Field(..., ge=1, le=7)
    session_duration_minutes: int = Field(..., gt=0, le=240)
    preferred_days: list[Weekday] = Field(default_factory=list)

    @field_validator("preferred_days", mode="before")
    @classmethod
    def _normalize_days(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [_normalize_weekday(v) for v in value]
        return value


class GenerationRequest(BaseModel):
    """Normalized input every provider adapter call is built from.

    Constructed per API call and discarded afterwards; never persisted.
    """

    profile: UserProfile = Field(default_factory=UserProfile)
    equipment: list[EquipmentItem] = Field(default_factory=list)
    modality: Modality = Modality.STRENGTH
    schedule: Schedule

    @field_validator("equipment", mode="before")
    @classmethod
    def _accept_plain_names(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": v} if isinstance(v, str) else v for v in value]
        return value


# Output side


class PlanOverview(BaseModel):
    duration_weeks: StrictInt = Field(..., ge=1, le=52)
    sessions_per_week: StrictInt = Field(..., ge=1, le=7)
    focus_areas: list[str] = Field(default_factory=list)
    equipment_required: list[str] = Field(default_factory=list)


class Exercise(BaseModel):
    name: str = Field(..., min_length=1)
    sets: StrictInt | None = Field(None, gt=0)
    reps: StrictInt | None = Field(None, gt=0)
    duration_seconds: StrictInt | None = Field(None, gt=0)
    rest_seconds: StrictInt | None = Field(None, ge=0)
    work_seconds: StrictInt | None = Field(None, gt=0)
    rounds: StrictInt | None = Field(None, gt=0)
    equipment: list[str] = Field(default_factory=list)
    target_muscles: list[str] = Field(default_factory=list)
    instructions: str = Field(..., min_length=1)
    modifications: str | None = None


class Workout(BaseModel):
    name: str = Field(..., min_length=1)
    duration_minutes: StrictInt = Field(..., gt=0)
    focus: str
    warmup: list[Exercise] = Field(default_factory=list)
    exercises: list[Exercise] = Field(..., min_length=1)
    cooldown: list[Exercise] = Field(default_factory=list)


class DaySchedule(BaseModel):
    day: Weekday
    workout: Workout | None = None

    @field_validator("day", mode="before")
    @classmethod
    def _normalize_day(cls, value: Any) -> Any:
        return _normalize_weekday(value)


class WorkoutPlanDocument(BaseModel):
    """A validated workout plan, handed to the caller for persistence."""

    model_config = ConfigDict(extra="ignore")

    plan_overview: PlanOverview
    weekly_schedule: list[DaySchedule] = Field(..., min_length=1, max_length=7)
    progression_notes: str
    safety_reminders: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _distinct_days(self) -> WorkoutPlanDocument:
        seen: set[Weekday] = set()
        duplicates: list[str] = []
        for entry in self.weekly_schedule:
            if entry.day in seen:
                duplicates.append(str(entry.day))
            seen.add(entry.day)
        if duplicates:
            raise ValueError(f"weekly_schedule days must be distinct, duplicated: {', '.join(duplicates)}")
        return self

    def workouts(self) -> list[tuple[int, Workout]]:
        return [(index, entry.workout) for index, entry in enumerate(self.weekly_schedule) if entry.workout]


def plan_json_schema() -> dict[str, Any]:
    """JSON schema sent to vendors for structured output."""
    return WorkoutPlanDocument.model_json_schema()
