"""
Solution evaluator: statistics, residual conflicts and soft score.
"""
import logging
from typing import List

from models.domain import TimetableModel, Assignment, Schedule
from service.constraints import ConstraintSet, SoftObjectives
from service.errors import ScheduleInvariantError

logger = logging.getLogger(__name__)


class SolutionEvaluator:
    def __init__(self, model: TimetableModel, constraints: ConstraintSet, objectives: SoftObjectives):
        self.model = model
        self.constraints = constraints
        self.objectives = objectives

    def evaluate(self, assignments: List[Assignment], run: int = 0,
                 strategy: str = "backtracking") -> Schedule:
        """
        Score a (possibly partial) assignment.

        Constraints 1-6 are checked structurally during search, so any
        violation here is a defect and raises ScheduleInvariantError. Only
        unmet demand and exceeded weekly caps count as conflicts.
        """
        violations = self.constraints.structural_violations(assignments)
        if violations:
            logger.critical(f"Run {run} produced {len(violations)} structural violation(s): {violations[:5]}")
            raise ScheduleInvariantError(
                f"Search produced an invalid assignment: {violations[0]}"
            )

        placed = {a.unit for a in assignments}
        unassigned = [u.index for u in self.model.units if u.index not in placed]
        overloaded = self.constraints.overloaded_faculty(assignments)

        return Schedule(
            assignments=sorted(assignments, key=lambda a: a.unit),
            total_slots=len(self.model.units),
            assigned_slots=len(placed),
            conflicts=len(unassigned) + len(overloaded),
            score=self.objectives.score(assignments),
            unassigned=unassigned,
            run=run,
            strategy=strategy,
        )
