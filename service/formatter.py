"""
Converts engine schedules into the API response representation.
"""
from datetime import datetime, time, timedelta
from typing import Dict, List

from models.domain import TimetableModel, Schedule
from models.schemas import (
    AssignmentOut, UnassignedSession, DaySchedule, ScheduleOut,
    GenerateResponse, Messages, ErrorMessage,
)


def _parse_time(time_str: str) -> time:
    """Parse HH:MM time string to time object."""
    return datetime.strptime(time_str, '%H:%M').time()


def _add_minutes(t: time, minutes: int) -> time:
    """Add minutes to a time object."""
    dt = datetime.combine(datetime.today(), t)
    dt += timedelta(minutes=minutes)
    return dt.time()


def slot_times(model: TimetableModel, slot: int, duration: int = 1):
    """Start and end clock times (HH:MM) of `duration` slots from `slot`."""
    grid = model.grid
    start = _add_minutes(_parse_time(grid.day_start), slot * grid.slot_minutes)
    end = _add_minutes(start, duration * grid.slot_minutes)
    return start.strftime('%H:%M'), end.strftime('%H:%M')


def format_schedule(model: TimetableModel, schedule: Schedule) -> ScheduleOut:
    assignments = []
    by_day: Dict[int, List[AssignmentOut]] = {}
    for a in sorted(schedule.assignments, key=lambda a: (a.day, a.slot, a.unit)):
        unit = model.units[a.unit]
        start_time, end_time = slot_times(model, a.slot, unit.duration)
        out = AssignmentOut(
            batch_id=model.batches[unit.batch].id,
            subject_id=model.subjects[unit.subject].id,
            faculty_id=model.faculty[a.faculty].id,
            room_id=model.rooms[a.room].id,
            day=model.grid.days[a.day],
            slot=a.slot,
            duration=unit.duration,
            start_time=start_time,
            end_time=end_time,
        )
        assignments.append(out)
        by_day.setdefault(a.day, []).append(out)

    # Days without classes are left out
    timetable = [
        DaySchedule(day=model.grid.days[day], slots=by_day[day])
        for day in sorted(by_day)
    ]

    unassigned = []
    for u_idx in schedule.unassigned:
        batch_id, subject_id, ordinal = model.unit_key(model.units[u_idx])
        unassigned.append(UnassignedSession(batch_id=batch_id, subject_id=subject_id, ordinal=ordinal))

    return ScheduleOut(
        assignments=assignments,
        total_slots=schedule.total_slots,
        assigned_slots=schedule.assigned_slots,
        conflicts=schedule.conflicts,
        score=schedule.score,
        unassigned=unassigned,
        timetable=timetable,
    )


def build_response(model: TimetableModel, schedules: List[Schedule], solve_time: float) -> GenerateResponse:
    formatted = [format_schedule(model, s) for s in schedules]
    primary = schedules[0]
    messages = []

    if not primary.complete:
        missing = primary.total_slots - primary.assigned_slots
        overloaded = primary.conflicts - missing
        if missing:
            messages.append(ErrorMessage(
                title="Partial Schedule",
                message=(
                    f"{missing} of {primary.total_slots} session(s) could not be placed "
                    f"(search stopped: {primary.exhausted or 'search'}). Try a larger "
                    f"backtrack budget or time limit, or add faculty, rooms or slots."
                ),
            ))
        if overloaded > 0:
            messages.append(ErrorMessage(
                title="Weekly Hours Exceeded",
                message=f"{overloaded} faculty member(s) are scheduled beyond their weekly hours.",
            ))

    return GenerateResponse(
        schedule=formatted[0],
        alternatives=formatted[1:],
        status="COMPLETE" if primary.complete else "PARTIAL",
        needs_review=not primary.complete,
        solve_time_seconds=solve_time,
        messages=Messages(error_message=messages),
    )
