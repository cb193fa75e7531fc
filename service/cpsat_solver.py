"""
OR-Tools CP-SAT scheduling strategy.

Solves the same typed model as the backtracking search with Google OR-Tools
CP-SAT: one boolean per statically feasible (unit, faculty, room, start),
maximizing the number of placed units and then preferred-slot matches.
"""

from ortools.sat.python import cp_model
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Tuple
import logging

from models.domain import TimetableModel, Assignment

logger = logging.getLogger(__name__)

PLACEMENT_WEIGHT = 1000


class CPSATScheduler:
    """
    Constraint-based scheduler using OR-Tools CP-SAT solver.

    Unlike the backtracking search it never exceeds a weekly cap; units it
    cannot place are left unassigned.
    """

    def __init__(self, model: TimetableModel,
                 time_limit_seconds: float = 30, random_seed: int = 42):
        """
        Initialize the scheduler.

        Args:
            model: The built timetable model
            time_limit_seconds: Maximum time allowed for solver
            random_seed: Solver seed, fixed for reproducible results
        """
        self.timetable = model
        self.model = cp_model.CpModel()
        self.solver = cp_model.CpSolver()

        # Solver parameters for deterministic behavior
        self.solver.parameters.random_seed = random_seed
        self.solver.parameters.num_workers = 1
        self.solver.parameters.max_time_in_seconds = time_limit_seconds

        # (unit, faculty, room, day, slot) -> var
        self.variables: Dict[Tuple[int, int, int, int, int], cp_model.IntVar] = {}
        self.status_name: str = "UNKNOWN"
        self.solve_time: float = 0.0

    def solve(self) -> List[Assignment]:
        """
        Build and solve the CP-SAT model.

        Returns:
            The placed assignments; empty when no solution was found in time
        """
        self._create_variables()
        self._add_hard_constraints()
        self._add_objective()

        start_time = datetime.now()
        status = self.solver.Solve(self.model)
        self.solve_time = (datetime.now() - start_time).total_seconds()
        self.status_name = self.solver.StatusName(status)
        logger.info(
            f"CP-SAT finished with {self.status_name} in {self.solve_time:.2f}s "
            f"({len(self.variables)} variables)"
        )

        return self._extract_solution(status)

    def _create_variables(self):
        """Create one decision variable per statically feasible placement."""
        tt = self.timetable
        grid = tt.grid
        for unit in tt.units:
            starts = [(d, s, grid.block(d, s, unit.duration)) for d, s in grid.starts(unit.duration)]
            for f_idx in tt.qualified_faculty[unit.subject]:
                f_blocked = tt.faculty[f_idx].blocked
                for r_idx in tt.suitable_rooms[(unit.batch, unit.subject)]:
                    blocked = f_blocked | tt.rooms[r_idx].blocked
                    for day, slot, mask in starts:
                        if mask & blocked:
                            continue
                        self.variables[(unit.index, f_idx, r_idx, day, slot)] = self.model.NewBoolVar(
                            f'unit_{unit.index}_f_{f_idx}_r_{r_idx}_d_{day}_s_{slot}'
                        )

    def _add_hard_constraints(self):
        """Add all hard constraints to the model."""
        tt = self.timetable
        per_unit = defaultdict(list)
        faculty_cells = defaultdict(list)
        room_cells = defaultdict(list)
        batch_cells = defaultdict(list)
        faculty_hours = defaultdict(list)

        for (u_idx, f_idx, r_idx, day, slot), var in self.variables.items():
            unit = tt.units[u_idx]
            per_unit[u_idx].append(var)
            faculty_hours[f_idx].append(var * unit.duration)
            for k in range(unit.duration):
                cell = tt.grid.cell(day, slot + k)
                faculty_cells[(f_idx, cell)].append(var)
                room_cells[(r_idx, cell)].append(var)
                batch_cells[(unit.batch, cell)].append(var)

        # 1. Each session unit placed at most once
        for unit_vars in per_unit.values():
            self.model.Add(sum(unit_vars) <= 1)

        # 2. No faculty, room or batch double-booking
        for cells in (faculty_cells, room_cells, batch_cells):
            for cell_vars in cells.values():
                if len(cell_vars) > 1:
                    self.model.Add(sum(cell_vars) <= 1)

        # 3. Weekly teaching hours
        for f_idx, terms in faculty_hours.items():
            self.model.Add(sum(terms) <= tt.faculty[f_idx].max_hours)

    def _add_objective(self):
        """Maximize placed units first, preferred-slot matches second."""
        tt = self.timetable
        objective_terms = []
        for (u_idx, f_idx, r_idx, day, slot), var in self.variables.items():
            weight = PLACEMENT_WEIGHT
            mask = tt.grid.block(day, slot, tt.units[u_idx].duration)
            if tt.faculty[f_idx].preferred & mask == mask:
                weight += 1
            objective_terms.append(var * weight)

        if objective_terms:
            self.model.Maximize(sum(objective_terms))

    def _extract_solution(self, status) -> List[Assignment]:
        """Extract placed assignments from the solver."""
        if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
            return []

        return [
            Assignment(unit=u_idx, faculty=f_idx, room=r_idx, day=day, slot=slot)
            for (u_idx, f_idx, r_idx, day, slot), var in sorted(self.variables.items(), key=lambda kv: kv[0])
            if self.solver.Value(var) == 1
        ]
