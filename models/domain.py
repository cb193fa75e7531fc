"""
Typed internal model the engine works on.

Built once per request by the model builder and never mutated afterwards;
search runs only read it. Entities reference each other by arena index,
occupancy is tracked by the search as per-resource bitsets over the grid.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, FrozenSet


class RoomType(str, Enum):
    LECTURE = "lecture"
    LAB = "lab"
    HALL = "hall"

    @classmethod
    def parse(cls, value):
        """Accept enum members, values in any case and the "classroom" label."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().lower()
            if name in ("classroom", "class", "lecture hall"):
                return cls.LECTURE
            for member in cls:
                if member.value == name:
                    return member
        raise ValueError(f"Unknown room type: {value!r}. Use lecture, lab or hall")

    def hosts(self, required: "RoomType") -> bool:
        """True if a room of this type may host a subject needing `required`."""
        return self in SUITABLE_ROOM_TYPES[required]


SUITABLE_ROOM_TYPES: Dict[RoomType, FrozenSet[RoomType]] = {
    RoomType.LECTURE: frozenset({RoomType.LECTURE, RoomType.HALL}),
    RoomType.LAB: frozenset({RoomType.LAB}),
    RoomType.HALL: frozenset({RoomType.HALL}),
}


@dataclass(frozen=True)
class TimeGrid:
    days: Tuple[str, ...]
    slots_per_day: int
    day_start: str = "09:00"
    slot_minutes: int = 60

    @property
    def size(self) -> int:
        return len(self.days) * self.slots_per_day

    def cell(self, day: int, slot: int) -> int:
        return day * self.slots_per_day + slot

    def coords(self, cell: int) -> Tuple[int, int]:
        return divmod(cell, self.slots_per_day)

    def block(self, day: int, slot: int, duration: int) -> int:
        """Bitmask of the `duration` cells starting at (day, slot)."""
        return ((1 << duration) - 1) << self.cell(day, slot)

    def starts(self, duration: int) -> List[Tuple[int, int]]:
        """All (day, slot) starts where a session of `duration` fits in one day."""
        return [
            (day, slot)
            for day in range(len(self.days))
            for slot in range(self.slots_per_day - duration + 1)
        ]


@dataclass(frozen=True)
class FacultyInfo:
    id: str
    name: str
    department: str
    max_hours: int
    blocked: int        # bitmask of unavailable cells
    preferred: int      # bitmask of preferred cells


@dataclass(frozen=True)
class SubjectInfo:
    id: str
    name: str
    sessions_per_week: int
    duration: int
    room_type: RoomType
    departments: FrozenSet[str]


@dataclass(frozen=True)
class RoomInfo:
    id: str
    name: str
    capacity: int
    type: RoomType
    blocked: int


@dataclass(frozen=True)
class BatchInfo:
    id: str
    name: str
    department: str
    year: int
    strength: int
    subjects: Tuple[int, ...]


@dataclass(frozen=True)
class SessionUnit:
    """One required lecture occurrence of a (batch, subject) pair."""
    index: int
    batch: int
    subject: int
    ordinal: int
    duration: int


@dataclass(frozen=True)
class TimetableModel:
    grid: TimeGrid
    faculty: Tuple[FacultyInfo, ...]
    subjects: Tuple[SubjectInfo, ...]
    rooms: Tuple[RoomInfo, ...]
    batches: Tuple[BatchInfo, ...]
    units: Tuple[SessionUnit, ...]
    faculty_index: Dict[str, int]
    subject_index: Dict[str, int]
    room_index: Dict[str, int]
    batch_index: Dict[str, int]
    # subject index -> qualified faculty indices
    qualified_faculty: Dict[int, Tuple[int, ...]]
    # (batch index, subject index) -> suitable room indices, smallest first
    suitable_rooms: Dict[Tuple[int, int], Tuple[int, ...]]

    def unit_key(self, unit: SessionUnit) -> Tuple[str, str, int]:
        return (self.batches[unit.batch].id, self.subjects[unit.subject].id, unit.ordinal)


@dataclass(frozen=True)
class Assignment:
    unit: int
    faculty: int
    room: int
    day: int
    slot: int


@dataclass
class Schedule:
    """Result of one search run, scored by the evaluator."""
    assignments: List[Assignment]
    total_slots: int
    assigned_slots: int = 0
    conflicts: int = 0
    score: int = 0
    unassigned: List[int] = field(default_factory=list)
    run: int = 0
    strategy: str = "backtracking"
    backtracks: int = 0
    exhausted: Optional[str] = None   # "budget", "time" or "search" when partial

    @property
    def complete(self) -> bool:
        return self.conflicts == 0 and self.assigned_slots == self.total_slots

    def signature(self) -> FrozenSet[Tuple[int, int, int, int, int]]:
        return frozenset(
            (a.unit, a.faculty, a.room, a.day, a.slot) for a in self.assignments
        )
