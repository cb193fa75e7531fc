"""
Entity model builder.

Normalizes the faculty/subject/room/batch snapshot into the immutable
`TimetableModel`: arenas sorted by identifier, lookup indices, derived
session units and the qualified-faculty and suitable-room indices the search
reads instead of scanning the entity lists.
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Iterable

from models.domain import (
    TimeGrid, FacultyInfo, SubjectInfo, RoomInfo, BatchInfo, SessionUnit,
    TimetableModel,
)
from models.schemas import EntitySnapshot, GridConfig, SlotRef
from service.errors import ModelError

logger = logging.getLogger(__name__)

VALID_DAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MINUTES_PER_DAY = 24 * 60


def build_grid(config: GridConfig, problems: List[str]) -> TimeGrid:
    days = []
    for day in config.days:
        name = day.strip().lower()
        if name not in VALID_DAYS:
            problems.append(f"Invalid working day '{day}'. Use valid weekdays: {', '.join(VALID_DAYS)}")
        elif name in days:
            problems.append(f"Working day '{day}' is listed twice")
        else:
            days.append(name)
    if not days:
        problems.append("The time grid has no working days")
    try:
        start = datetime.strptime(config.day_start, "%H:%M")
    except ValueError:
        problems.append(f"Invalid day start '{config.day_start}'. Use HH:MM format (e.g., '09:00')")
    else:
        end_minutes = start.hour * 60 + start.minute + config.slots_per_day * config.slot_minutes
        if end_minutes > MINUTES_PER_DAY:
            problems.append(
                f"The time grid runs past midnight: {config.slots_per_day} slots of "
                f"{config.slot_minutes} minutes starting at {config.day_start}"
            )
    return TimeGrid(
        days=tuple(days),
        slots_per_day=config.slots_per_day,
        day_start=config.day_start,
        slot_minutes=config.slot_minutes,
    )


def _slot_mask(grid: TimeGrid, refs: Iterable[SlotRef], owner: str, problems: List[str]) -> int:
    """Bitmask of grid cells named by `refs`; days outside the grid are ignored."""
    mask = 0
    for ref in refs:
        day = ref.day.strip().lower()
        if day not in VALID_DAYS:
            problems.append(f"{owner}: invalid day '{ref.day}'")
            continue
        if day not in grid.days:
            continue
        if ref.slot >= grid.slots_per_day:
            problems.append(
                f"{owner}: slot {ref.slot} on {day} is outside the grid "
                f"({grid.slots_per_day} slots per day)"
            )
            continue
        mask |= 1 << grid.cell(grid.days.index(day), ref.slot)
    return mask


def _check_unique(kind: str, ids: List[str], problems: List[str]):
    seen = set()
    for entity_id in ids:
        if entity_id in seen:
            problems.append(f"Duplicate {kind} id '{entity_id}'")
        seen.add(entity_id)


def _resolve_subject(ref: str, by_id: Dict[str, int], by_name: Dict[str, int]) -> Optional[int]:
    if ref in by_id:
        return by_id[ref]
    return by_name.get(ref.strip().lower())


def build_model(snapshot: EntitySnapshot, grid_config: Optional[GridConfig] = None) -> TimetableModel:
    """
    Build the typed model for one generation request.

    Args:
        snapshot: Validated faculty, subject, room and batch records
        grid_config: Working days and slots; settings defaults when omitted

    Returns:
        The immutable TimetableModel

    Raises:
        ModelError: listing every reason the snapshot cannot be scheduled
    """
    problems: List[str] = []
    grid = build_grid(grid_config or GridConfig(), problems)

    faculty_records = sorted(snapshot.faculty, key=lambda f: f.id)
    subject_records = sorted(snapshot.subjects, key=lambda s: s.id)
    room_records = sorted((r for r in snapshot.rooms if r.available), key=lambda r: r.id)
    batch_records = sorted(snapshot.batches, key=lambda b: b.id)

    _check_unique("faculty", [f.id for f in faculty_records], problems)
    _check_unique("subject", [s.id for s in subject_records], problems)
    _check_unique("room", [r.id for r in snapshot.rooms], problems)
    _check_unique("batch", [b.id for b in batch_records], problems)

    # Subjects
    subjects = tuple(
        SubjectInfo(
            id=s.id,
            name=s.name,
            sessions_per_week=s.sessions_per_week,
            duration=s.duration,
            room_type=s.room_type,
            departments=frozenset(d.strip().lower() for d in s.departments),
        )
        for s in subject_records
    )
    subject_index = {s.id: idx for idx, s in enumerate(subjects)}
    # Shared names only resolve by id
    name_counts = Counter(s.name.strip().lower() for s in subjects)
    ambiguous_names = {name for name, count in name_counts.items() if count > 1}
    for name in sorted(ambiguous_names):
        logger.warning(f"Subject name '{name}' is used by {name_counts[name]} subjects; refer to them by id")
    subject_by_name = {
        s.name.strip().lower(): idx for idx, s in enumerate(subjects)
        if s.name.strip().lower() not in ambiguous_names
    }

    # Rooms
    rooms = tuple(
        RoomInfo(
            id=r.id,
            name=r.name or r.id,
            capacity=r.capacity,
            type=r.type,
            blocked=_slot_mask(grid, r.unavailability, f"Room {r.name or r.id}", problems),
        )
        for r in room_records
    )
    room_index = {r.id: idx for idx, r in enumerate(rooms)}

    # Faculty and qualifications
    faculty = []
    qualified: Dict[int, List[int]] = {idx: [] for idx in range(len(subjects))}
    for f_idx, record in enumerate(faculty_records):
        faculty.append(FacultyInfo(
            id=record.id,
            name=record.name,
            department=record.department,
            max_hours=record.max_hours_per_week,
            blocked=_slot_mask(grid, record.unavailability, f"Faculty {record.name}", problems),
            preferred=_slot_mask(grid, record.preferred_slots, f"Faculty {record.name}", problems),
        ))
        for ref in dict.fromkeys(record.qualifications):
            s_idx = _resolve_subject(ref, subject_index, subject_by_name)
            if s_idx is None:
                if ref.strip().lower() in ambiguous_names:
                    logger.warning(f"Faculty {record.name} lists ambiguous qualification '{ref}'")
                else:
                    logger.warning(f"Faculty {record.name} lists unknown qualification '{ref}'")
                continue
            if f_idx not in qualified[s_idx]:
                qualified[s_idx].append(f_idx)
    faculty = tuple(faculty)
    faculty_index = {f.id: idx for idx, f in enumerate(faculty)}

    # Batches
    max_capacity = max((r.capacity for r in rooms), default=0)
    batches = []
    for record in batch_records:
        subject_ids = []
        for ref in record.subjects:
            s_idx = _resolve_subject(ref, subject_index, subject_by_name)
            if s_idx is None and ref.strip().lower() in ambiguous_names:
                problems.append(
                    f"Batch {record.name or record.id} references subject name '{ref}', "
                    f"which several subjects share; use the subject id"
                )
            elif s_idx is None:
                problems.append(f"Batch {record.name or record.id} references unknown subject '{ref}'")
            elif s_idx not in subject_ids:
                subject_ids.append(s_idx)
        if record.strength > max_capacity:
            problems.append(
                f"Batch {record.name or record.id} has {record.strength} students "
                f"but the largest available room holds {max_capacity}"
            )
        batches.append(BatchInfo(
            id=record.id,
            name=record.name or record.id,
            department=record.department,
            year=record.year,
            strength=record.strength,
            subjects=tuple(subject_ids),
        ))
    batches = tuple(batches)
    batch_index = {b.id: idx for idx, b in enumerate(batches)}

    # Demanded subjects need a qualified teacher who can fit one session
    demanded = sorted({s_idx for b in batches for s_idx in b.subjects})
    qualified_faculty: Dict[int, Tuple[int, ...]] = {}
    for s_idx in demanded:
        subject = subjects[s_idx]
        if subject.duration > grid.slots_per_day:
            problems.append(
                f"Subject {subject.name} needs {subject.duration} consecutive slots "
                f"but a day only has {grid.slots_per_day}"
            )
        teachers = tuple(f for f in qualified[s_idx] if faculty[f].max_hours >= subject.duration)
        if not teachers:
            problems.append(f"Subject {subject.name} has no qualified faculty")
        qualified_faculty[s_idx] = teachers

    # Rooms of a suitable type and capacity, smallest first
    suitable_rooms: Dict[Tuple[int, int], Tuple[int, ...]] = {}
    for b_idx, batch in enumerate(batches):
        for s_idx in batch.subjects:
            subject = subjects[s_idx]
            if subject.departments and batch.department.strip().lower() not in subject.departments:
                logger.warning(
                    f"Batch {batch.name} ({batch.department}) takes {subject.name}, "
                    f"which does not list that department"
                )
            candidates = sorted(
                (r_idx for r_idx, room in enumerate(rooms)
                 if room.type.hosts(subject.room_type) and room.capacity >= batch.strength),
                key=lambda r_idx: (rooms[r_idx].capacity, rooms[r_idx].id),
            )
            if not candidates and batch.strength <= max_capacity:
                problems.append(
                    f"No {subject.room_type.value} room can seat batch {batch.name} "
                    f"({batch.strength} students) for {subject.name}"
                )
            suitable_rooms[(b_idx, s_idx)] = tuple(candidates)

    if problems:
        logger.warning(f"Model build failed with {len(problems)} problem(s)")
        raise ModelError(problems)

    units = []
    for b_idx, batch in enumerate(batches):
        for s_idx in batch.subjects:
            subject = subjects[s_idx]
            for ordinal in range(subject.sessions_per_week):
                units.append(SessionUnit(
                    index=len(units),
                    batch=b_idx,
                    subject=s_idx,
                    ordinal=ordinal,
                    duration=subject.duration,
                ))

    logger.info(
        f"Built model: {len(units)} session units, {len(faculty)} faculty, "
        f"{len(rooms)} rooms, {len(batches)} batches, grid {len(grid.days)}x{grid.slots_per_day}"
    )

    return TimetableModel(
        grid=grid,
        faculty=faculty,
        subjects=subjects,
        rooms=rooms,
        batches=batches,
        units=tuple(units),
        faculty_index=faculty_index,
        subject_index=subject_index,
        room_index=room_index,
        batch_index=batch_index,
        qualified_faculty=qualified_faculty,
        suitable_rooms=suitable_rooms,
    )
