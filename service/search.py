"""
Backtracking search over session units.

Units are visited in a fixed most-constrained-first order. Each unit walks
its candidates (faculty by current load, rooms smallest first, starts in grid
order) lazily from a generator kept on an explicit stack, so backtracking is
just releasing the unit's bits and pulling the next candidate.
"""
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from models.domain import TimetableModel, SessionUnit, Assignment
from service.constraints import ConstraintSet, Occupancy

logger = logging.getLogger(__name__)

# faculty, room, day, slot, mask
Candidate = Tuple[int, int, int, int, int]

TIME_CHECK_INTERVAL = 64


@dataclass
class SearchLimits:
    backtrack_budget: int
    deadline: float                 # time.monotonic() value
    relax_hour_cap: bool = False


@dataclass
class SearchOutcome:
    assignments: List[Assignment]
    unassigned: List[int]
    backtracks: int = 0
    exhausted: Optional[str] = None  # "budget", "time" or "search"
    overloaded: List[int] = field(default_factory=list)

    @property
    def conflicts(self) -> int:
        return len(self.unassigned) + len(self.overloaded)


class BacktrackingSearch:
    """
    One deterministic depth-first search run.

    With `rng` set, ties in the unit order, the faculty and room orders and
    the order of starts are perturbed, which is how alternative runs differ.
    """

    def __init__(self, model: TimetableModel, constraints: ConstraintSet,
                 rng: Optional[random.Random] = None):
        self.model = model
        self.constraints = constraints
        self.rng = rng

        n_faculty = len(model.faculty)
        faculty_rank = list(range(n_faculty))
        if rng is not None:
            rng.shuffle(faculty_rank)
        self._faculty_rank = faculty_rank

        self._rooms: Dict[Tuple[int, int], Tuple[int, ...]] = {}
        for key, rooms in model.suitable_rooms.items():
            if rng is None:
                self._rooms[key] = rooms
            else:
                jitter = {r: rng.random() for r in rooms}
                self._rooms[key] = tuple(
                    sorted(rooms, key=lambda r: (model.rooms[r].capacity, jitter[r]))
                )

        self._starts: Dict[int, List[Tuple[int, int, int]]] = {}
        self.order = self._order_units()

    def _order_units(self) -> List[SessionUnit]:
        tie = {}
        if self.rng is not None:
            tie = {u.index: self.rng.random() for u in self.model.units}
        return sorted(
            self.model.units,
            key=lambda u: (
                self.constraints.domain_size(u),
                -u.duration,
                tie.get(u.index, 0.0),
                u.batch,
                u.subject,
                u.ordinal,
            ),
        )

    def _starts_for(self, duration: int) -> List[Tuple[int, int, int]]:
        if duration not in self._starts:
            grid = self.model.grid
            starts = grid.starts(duration)
            if self.rng is not None:
                day_rank = list(range(len(grid.days)))
                self.rng.shuffle(day_rank)
                if self.rng.random() < 0.5:
                    starts.sort(key=lambda ds: (ds[1], day_rank[ds[0]]))
                else:
                    starts.sort(key=lambda ds: (day_rank[ds[0]], ds[1]))
            self._starts[duration] = [(d, s, grid.block(d, s, duration)) for d, s in starts]
        return self._starts[duration]

    def candidates(self, unit: SessionUnit, occupancy: Occupancy,
                   ignore_cap: bool = False) -> Iterator[Candidate]:
        """Feasible placements of `unit` in the current occupancy, in try order."""
        faculty = sorted(
            self.model.qualified_faculty[unit.subject],
            key=lambda f: (occupancy.hours[f], self._faculty_rank[f]),
        )
        rooms = self._rooms[(unit.batch, unit.subject)]
        starts = self._starts_for(unit.duration)
        for f in faculty:
            if not ignore_cap and not self.constraints.within_cap(occupancy, unit, f):
                continue
            for r in rooms:
                for day, slot, mask in starts:
                    if self.constraints.is_free(occupancy, unit, f, r, mask):
                        yield f, r, day, slot, mask

    def _complete(self, occupancy: Occupancy, placed: List[Optional[Candidate]],
                  depth: int, relax: bool) -> SearchOutcome:
        """Greedily place the units after `depth` on a copy of the state."""
        state = Occupancy(self.model)
        state.faculty = list(occupancy.faculty)
        state.rooms = list(occupancy.rooms)
        state.batches = list(occupancy.batches)
        state.hours = list(occupancy.hours)

        chosen = list(placed[:depth])
        unassigned = []
        for unit in self.order[depth:]:
            candidate = next(self.candidates(unit, state), None)
            if candidate is None and relax:
                candidate = next(self.candidates(unit, state, ignore_cap=True), None)
            if candidate is None:
                unassigned.append(unit.index)
                chosen.append(None)
                continue
            state.place(unit, candidate[0], candidate[1], candidate[4])
            chosen.append(candidate)

        return self._outcome(chosen, unassigned, state)

    def _outcome(self, chosen: List[Optional[Candidate]], unassigned: List[int],
                 occupancy: Occupancy) -> SearchOutcome:
        assignments = [
            Assignment(unit=unit.index, faculty=c[0], room=c[1], day=c[2], slot=c[3])
            for unit, c in zip(self.order, chosen) if c is not None
        ]
        assignments.sort(key=lambda a: a.unit)
        overloaded = [
            f for f, hours in enumerate(occupancy.hours)
            if hours > self.model.faculty[f].max_hours
        ]
        return SearchOutcome(
            assignments=assignments,
            unassigned=sorted(unassigned),
            overloaded=overloaded,
        )

    def run(self, limits: SearchLimits) -> SearchOutcome:
        """
        Search until every unit is placed or the limits are hit.

        Each dead end deeper than any completed before is completed greedily
        and the best completion is kept; it is returned when the search stops
        without a full assignment.
        """
        order = self.order
        n = len(order)
        occupancy = Occupancy(self.model)
        stack: List[Iterator[Candidate]] = []
        chosen: List[Optional[Candidate]] = [None] * n
        depth = 0
        completed_depth = -1
        backtracks = 0
        steps = 0
        best: Optional[SearchOutcome] = None
        exhausted = None

        while depth < n:
            steps += 1
            if steps % TIME_CHECK_INTERVAL == 0 and time.monotonic() >= limits.deadline:
                exhausted = "time"
                break

            unit = order[depth]
            if len(stack) == depth:
                stack.append(self.candidates(unit, occupancy))
            candidate = next(stack[depth], None)

            if candidate is not None:
                occupancy.place(unit, candidate[0], candidate[1], candidate[4])
                chosen[depth] = candidate
                depth += 1
                continue

            # Dead end
            if depth > completed_depth:
                completed_depth = depth
                completion = self._complete(occupancy, chosen, depth, limits.relax_hour_cap)
                if best is None or (completion.conflicts, len(completion.unassigned)) < \
                        (best.conflicts, len(best.unassigned)):
                    best = completion
            stack.pop()
            if depth == 0:
                exhausted = "search"
                break
            backtracks += 1
            if backtracks > limits.backtrack_budget:
                exhausted = "budget"
                break
            depth -= 1
            previous = chosen[depth]
            occupancy.release(order[depth], previous[0], previous[1], previous[4])
            chosen[depth] = None

        if exhausted is None:
            outcome = self._outcome(chosen, [], occupancy)
        elif best is not None:
            outcome = best
        else:
            # Stopped by the clock before any dead end; up to there the search
            # followed first candidates, which is what the completion does too
            outcome = self._complete(occupancy, chosen, depth, limits.relax_hour_cap)
        outcome.backtracks = backtracks
        outcome.exhausted = exhausted
        logger.debug(
            f"Search placed {len(outcome.assignments)}/{n} units "
            f"after {backtracks} backtracks (stopped: {exhausted or 'complete'})"
        )
        return outcome
