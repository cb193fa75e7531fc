"""
Data models and Pydantic schemas for the timetable generation API.
"""
from .schemas import (
    SlotRef,
    Faculty,
    Subject,
    Room,
    Batch,
    GridConfig,
    GenerationOptions,
    EntitySnapshot,
    GenerateRequest,
    AssignmentOut,
    UnassignedSession,
    DaySchedule,
    ScheduleOut,
    ErrorMessage,
    Messages,
    GenerateResponse
)

__all__ = [
    "SlotRef",
    "Faculty",
    "Subject",
    "Room",
    "Batch",
    "GridConfig",
    "GenerationOptions",
    "EntitySnapshot",
    "GenerateRequest",
    "AssignmentOut",
    "UnassignedSession",
    "DaySchedule",
    "ScheduleOut",
    "ErrorMessage",
    "Messages",
    "GenerateResponse"
]
