from pydantic import BaseModel, Field, AliasChoices, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional, Literal, Any

from config.settings import settings
from models.domain import RoomType


class ApiModel(BaseModel):
    """Accepts both snake_case and camelCase keys, answers in camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ===========================
# Shared
# ===========================

class SlotRef(ApiModel):
    """A (day, slot) cell of the weekly grid"""
    day: str    # lowercase: "monday", "tuesday", etc.
    slot: int = Field(ge=0)


def _coerce_slot_refs(value: Any) -> Any:
    # "monday:3" and "Monday-3" shorthands
    if not isinstance(value, list):
        return value
    coerced = []
    for item in value:
        if isinstance(item, str):
            for sep in (":", "-", " "):
                if sep in item:
                    day, _, slot = item.rpartition(sep)
                    coerced.append({"day": day.strip(), "slot": slot.strip()})
                    break
            else:
                coerced.append(item)
        else:
            coerced.append(item)
    return coerced


def _coerce_references(value: Any) -> Any:
    """Subject references may be plain strings or {_id|id|name} objects."""
    if not isinstance(value, list):
        return value
    refs = []
    for item in value:
        if isinstance(item, dict):
            ref = item.get("_id") or item.get("id") or item.get("name")
            refs.append(ref if ref is not None else item)
        else:
            refs.append(item)
    return refs


# ===========================
# Entity Models
# ===========================

class Faculty(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    department: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    qualifications: List[str] = []          # subject ids or subject names
    max_hours_per_week: int = Field(gt=0)   # one hour == one slot
    unavailability: List[SlotRef] = []      # hard constraint
    preferred_slots: List[SlotRef] = []     # soft bonus

    coerce_slots = field_validator("unavailability", "preferred_slots", mode="before")(_coerce_slot_refs)
    coerce_qualifications = field_validator("qualifications", mode="before")(_coerce_references)


class Subject(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str
    sessions_per_week: int = Field(ge=1)
    duration: int = Field(default=1, ge=1)  # in slot units
    room_type: RoomType = RoomType.LECTURE
    departments: List[str] = []

    @field_validator("room_type", mode="before")
    @classmethod
    def _parse_room_type(cls, value):
        return RoomType.parse(value)


class Room(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    capacity: int = Field(gt=0)
    type: RoomType = RoomType.LECTURE
    available: bool = True
    unavailability: List[SlotRef] = []

    coerce_slots = field_validator("unavailability", mode="before")(_coerce_slot_refs)

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value):
        return RoomType.parse(value)


class Batch(ApiModel):
    id: str = Field(validation_alias=AliasChoices("id", "_id"))
    name: str = ""
    department: str = ""
    year: int = Field(default=1, ge=1)
    strength: int = Field(gt=0)
    subjects: List[str] = []

    coerce_subjects = field_validator("subjects", mode="before")(_coerce_references)


# ===========================
# Request Schema
# ===========================

class GridConfig(ApiModel):
    """Working days and slots of the weekly grid"""
    days: List[str] = Field(default_factory=lambda: list(settings.grid_days))
    slots_per_day: int = Field(default_factory=lambda: settings.grid_slots_per_day, ge=1)
    day_start: str = Field(default_factory=lambda: settings.grid_day_start)
    slot_minutes: int = Field(default_factory=lambda: settings.grid_slot_minutes, gt=0)


class GenerationOptions(ApiModel):
    """Search bounds and alternative generation settings"""
    max_alternatives: int = Field(default_factory=lambda: settings.solver_max_alternatives, ge=1, le=20)
    time_limit: float = Field(default_factory=lambda: settings.solver_time_limit_seconds, gt=0)
    backtrack_budget: int = Field(default_factory=lambda: settings.solver_backtrack_budget, ge=0)
    seed: int = Field(default_factory=lambda: settings.solver_random_seed)
    strategy: Literal["backtracking", "cpsat"] = Field(default_factory=lambda: settings.solver_strategy)
    relax_hour_cap: bool = False


class EntitySnapshot(ApiModel):
    """Faculty, subject, room and batch records as read from the store"""
    faculty: List[Faculty] = Field(default=[], validation_alias=AliasChoices("faculty", "faculties"))
    subjects: List[Subject] = []
    rooms: List[Room] = []
    batches: List[Batch] = []


class GenerateRequest(EntitySnapshot):
    options: GenerationOptions = Field(default_factory=GenerationOptions)
    grid: GridConfig = Field(default_factory=GridConfig)


# ===========================
# Response Schema
# ===========================

class AssignmentOut(ApiModel):
    batch_id: str
    subject_id: str
    faculty_id: str
    room_id: str
    day: str
    slot: int
    duration: int = 1
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class UnassignedSession(ApiModel):
    batch_id: str
    subject_id: str
    ordinal: int


class DaySchedule(ApiModel):
    """Assignments of a single day, ordered by slot"""
    day: str
    slots: List[AssignmentOut]


class ScheduleOut(ApiModel):
    assignments: List[AssignmentOut]
    total_slots: int
    assigned_slots: int
    conflicts: int
    score: int = 0
    unassigned: List[UnassignedSession] = []
    timetable: List[DaySchedule] = []


class ErrorMessage(ApiModel):
    """Error or warning message"""
    title: str
    message: str


class Messages(ApiModel):
    error_message: List[ErrorMessage] = []


class GenerateResponse(ApiModel):
    schedule: Optional[ScheduleOut] = None
    alternatives: List[ScheduleOut] = []
    status: Optional[str] = None  # "COMPLETE", "PARTIAL"
    needs_review: bool = False
    solve_time_seconds: Optional[float] = None
    messages: Messages = Messages()
