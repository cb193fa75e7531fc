"""
Hard constraints and soft objectives of the timetabling problem.

Occupancy is kept as one integer bitset per faculty, room and batch, with bit
`day * slots_per_day + slot` set when the resource is busy in that cell. A
session of duration d covers d consecutive bits, so every overlap test is a
single AND.
"""
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Iterable, Tuple

from models.domain import TimetableModel, Assignment, SessionUnit


class Occupancy:
    """Mutable occupancy state owned by a single search run."""

    def __init__(self, model: TimetableModel):
        self.faculty = [0] * len(model.faculty)
        self.rooms = [0] * len(model.rooms)
        self.batches = [0] * len(model.batches)
        self.hours = [0] * len(model.faculty)

    def place(self, unit: SessionUnit, faculty: int, room: int, mask: int):
        self.faculty[faculty] |= mask
        self.rooms[room] |= mask
        self.batches[unit.batch] |= mask
        self.hours[faculty] += unit.duration

    def release(self, unit: SessionUnit, faculty: int, room: int, mask: int):
        self.faculty[faculty] &= ~mask
        self.rooms[room] &= ~mask
        self.batches[unit.batch] &= ~mask
        self.hours[faculty] -= unit.duration


class ConstraintSet:
    """
    Hard constraints 1-7 over a built model.

    1-3: no faculty, room or batch is busy twice in one cell.
    4:   room capacity >= batch strength (enforced by the suitable-room index).
    5:   faculty is qualified (enforced by the qualified-faculty index).
    6:   no session covers a cell the faculty (or room) marked unavailable.
    7:   faculty weekly hours stay within max_hours.
    """

    def __init__(self, model: TimetableModel):
        self.model = model
        self.grid = model.grid
        # Read-only once built; search runs on worker threads share it
        self._domain_sizes: Dict[Tuple[int, int], int] = {
            key: self._count_placements(key) for key in model.suitable_rooms
        }

    def mask(self, unit: SessionUnit, day: int, slot: int) -> int:
        return self.grid.block(day, slot, unit.duration)

    def is_free(self, occupancy: Occupancy, unit: SessionUnit, faculty: int, room: int, mask: int) -> bool:
        if (self.model.faculty[faculty].blocked | occupancy.faculty[faculty]) & mask:
            return False
        if (self.model.rooms[room].blocked | occupancy.rooms[room]) & mask:
            return False
        return not occupancy.batches[unit.batch] & mask

    def within_cap(self, occupancy: Occupancy, unit: SessionUnit, faculty: int) -> bool:
        return occupancy.hours[faculty] + unit.duration <= self.model.faculty[faculty].max_hours

    def _count_placements(self, key: Tuple[int, int]) -> int:
        b_idx, s_idx = key
        duration = self.model.subjects[s_idx].duration
        starts = [self.grid.block(d, s, duration) for d, s in self.grid.starts(duration)]
        count = 0
        for f_idx in self.model.qualified_faculty.get(s_idx, ()):
            f_blocked = self.model.faculty[f_idx].blocked
            for r_idx in self.model.suitable_rooms[key]:
                blocked = f_blocked | self.model.rooms[r_idx].blocked
                count += sum(1 for m in starts if not m & blocked)
        return count

    def domain_size(self, unit: SessionUnit) -> int:
        """Statically feasible (faculty, room, start) combinations of a unit."""
        return self._domain_sizes[(unit.batch, unit.subject)]

    def structural_violations(self, assignments: Iterable[Assignment]) -> List[str]:
        """Violations of constraints 1-6; a correct search never produces any."""
        model = self.model
        violations = []
        busy_f: Dict[int, int] = defaultdict(int)
        busy_r: Dict[int, int] = defaultdict(int)
        busy_b: Dict[int, int] = defaultdict(int)
        placed = set()

        for a in assignments:
            unit = model.units[a.unit]
            label = "{}/{}#{}".format(*model.unit_key(unit))
            if a.unit in placed:
                violations.append(f"{label} is assigned more than once")
            placed.add(a.unit)
            if a.slot + unit.duration > self.grid.slots_per_day or a.day >= len(self.grid.days):
                violations.append(f"{label} does not fit in the grid")
                continue
            mask = self.mask(unit, a.day, a.slot)
            if busy_f[a.faculty] & mask:
                violations.append(f"{label}: faculty {model.faculty[a.faculty].id} double-booked")
            if busy_r[a.room] & mask:
                violations.append(f"{label}: room {model.rooms[a.room].id} double-booked")
            if busy_b[unit.batch] & mask:
                violations.append(f"{label}: batch double-booked")
            busy_f[a.faculty] |= mask
            busy_r[a.room] |= mask
            busy_b[unit.batch] |= mask

            room = model.rooms[a.room]
            if room.capacity < model.batches[unit.batch].strength:
                violations.append(f"{label}: room {room.id} too small")
            if not room.type.hosts(model.subjects[unit.subject].room_type):
                violations.append(f"{label}: room {room.id} has unsuitable type {room.type.value}")
            if a.faculty not in model.qualified_faculty.get(unit.subject, ()):
                violations.append(f"{label}: faculty {model.faculty[a.faculty].id} not qualified")
            if model.faculty[a.faculty].blocked & mask:
                violations.append(f"{label}: faculty {model.faculty[a.faculty].id} unavailable")
            if room.blocked & mask:
                violations.append(f"{label}: room {room.id} unavailable")
        return violations

    def faculty_hours(self, assignments: Iterable[Assignment]) -> Dict[int, int]:
        hours: Dict[int, int] = defaultdict(int)
        for a in assignments:
            hours[a.faculty] += self.model.units[a.unit].duration
        return hours

    def overloaded_faculty(self, assignments: Iterable[Assignment]) -> List[int]:
        """Faculty whose weekly cap (constraint 7) is exceeded."""
        return sorted(
            f_idx for f_idx, hours in self.faculty_hours(assignments).items()
            if hours > self.model.faculty[f_idx].max_hours
        )


@dataclass(frozen=True)
class SoftWeights:
    faculty_clustering: int = 2
    batch_gaps: int = 3
    subject_same_day: int = 5
    preferred_slot: int = 4


class SoftObjectives:
    """Soft terms; higher score is better, only used to rank candidates."""

    def __init__(self, model: TimetableModel, weights: SoftWeights = SoftWeights()):
        self.model = model
        self.weights = weights

    def terms(self, assignments: List[Assignment]) -> Dict[str, int]:
        model = self.model
        days = len(model.grid.days)

        faculty_load: Dict[int, List[int]] = defaultdict(lambda: [0] * days)
        batch_cells: Dict[Tuple[int, int], List[int]] = defaultdict(list)
        subject_days: Dict[Tuple[int, int, int], List[int]] = defaultdict(list)
        preferred = 0

        for a in assignments:
            unit = model.units[a.unit]
            faculty_load[a.faculty][a.day] += unit.duration
            batch_cells[(unit.batch, a.day)].extend(range(a.slot, a.slot + unit.duration))
            subject_days[(unit.batch, unit.subject, a.day)].append(a.slot)
            mask = model.grid.block(a.day, a.slot, unit.duration)
            if model.faculty[a.faculty].preferred & mask == mask:
                preferred += 1

        # Squared daily load above the evenly spread optimum
        clustering = 0
        for loads in faculty_load.values():
            total = sum(loads)
            q, r = divmod(total, days)
            even = r * (q + 1) ** 2 + (days - r) * q ** 2
            clustering += sum(load * load for load in loads) - even

        gaps = 0
        for cells in batch_cells.values():
            gaps += (max(cells) - min(cells) + 1) - len(set(cells))

        same_day = 0
        for (_, s_idx, _), starts in subject_days.items():
            if len(starts) < 2:
                continue
            same_day += len(starts) - 1
            duration = model.subjects[s_idx].duration
            ordered = sorted(starts)
            same_day += sum(1 for x, y in zip(ordered, ordered[1:]) if y - x == duration)

        return {
            "faculty_clustering": clustering,
            "batch_gaps": gaps,
            "subject_same_day": same_day,
            "preferred_slot": preferred,
        }

    def score(self, assignments: List[Assignment]) -> int:
        terms = self.terms(assignments)
        w = self.weights
        return (
            w.preferred_slot * terms["preferred_slot"]
            - w.faculty_clustering * terms["faculty_clustering"]
            - w.batch_gaps * terms["batch_gaps"]
            - w.subject_same_day * terms["subject_same_day"]
        )
