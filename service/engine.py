"""
Timetable generation engine.

Builds the model, runs independent search attempts (the unperturbed run plus
seeded perturbations) on a thread pool and merges their schedules at the end.
"""
import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from config.settings import settings
from models.domain import TimetableModel, Schedule
from models.schemas import EntitySnapshot, GenerationOptions, GridConfig
from service.constraints import ConstraintSet, SoftObjectives, SoftWeights
from service.cpsat_solver import CPSATScheduler
from service.evaluator import SolutionEvaluator
from service.model_builder import build_model
from service.search import BacktrackingSearch, SearchLimits

logger = logging.getLogger(__name__)


def select_alternatives(schedules: List[Schedule], limit: int) -> List[Schedule]:
    """Drop duplicate assignment sets and keep the `limit` best schedules.

    Fewer conflicts first, then more assigned units, then higher soft score;
    the run index breaks remaining ties so the result is reproducible.
    """
    seen = set()
    distinct = []
    for schedule in sorted(
        schedules,
        key=lambda s: (s.conflicts, -s.assigned_slots, -s.score, s.run),
    ):
        signature = schedule.signature()
        if signature in seen:
            continue
        seen.add(signature)
        distinct.append(schedule)
    return distinct[:limit]


def default_weights() -> SoftWeights:
    return SoftWeights(
        faculty_clustering=settings.weight_faculty_clustering,
        batch_gaps=settings.weight_batch_gaps,
        subject_same_day=settings.weight_subject_same_day,
        preferred_slot=settings.weight_preferred_slot,
    )


class TimetableEngine:
    """
    Generates one or more scored schedules for an entity snapshot.

    The built model is shared read-only by every run; each run owns its
    occupancy state, and only finished schedules come back to the caller.
    """

    def __init__(self, weights: Optional[SoftWeights] = None,
                 attempts_per_alternative: Optional[int] = None,
                 num_workers: Optional[int] = None):
        self.weights = weights or default_weights()
        self.attempts_per_alternative = attempts_per_alternative or settings.solver_attempts_per_alternative
        self.num_workers = num_workers or settings.solver_num_workers

    def generate(self, snapshot: EntitySnapshot, options: Optional[GenerationOptions] = None,
                 grid: Optional[GridConfig] = None) -> List[Schedule]:
        """
        Build the model from `snapshot` and search it.

        Raises:
            ModelError: the snapshot cannot be scheduled; no search is run
        """
        model = build_model(snapshot, grid)
        return self.generate_for_model(model, options)

    def generate_for_model(self, model: TimetableModel,
                           options: Optional[GenerationOptions] = None) -> List[Schedule]:
        options = options or GenerationOptions()
        deadline = time.monotonic() + options.time_limit
        constraints = ConstraintSet(model)
        evaluator = SolutionEvaluator(model, constraints, SoftObjectives(model, self.weights))

        if options.strategy == "cpsat":
            return [self._run_cpsat(model, evaluator, options)]

        runs = max(1, options.max_alternatives * self.attempts_per_alternative)
        workers = max(1, min(self.num_workers, runs))
        logger.info(f"Starting {runs} search run(s) on {workers} worker(s) for {len(model.units)} units")

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._run_search, model, constraints, evaluator, run, options, deadline)
                for run in range(runs)
            ]
            schedules = [future.result() for future in futures]

        selected = select_alternatives(schedules, options.max_alternatives)
        best = selected[0]
        logger.info(
            f"Selected {len(selected)} of {runs} schedule(s); best run {best.run}: "
            f"{best.assigned_slots}/{best.total_slots} assigned, {best.conflicts} conflict(s), score {best.score}"
        )
        return selected

    def _run_search(self, model: TimetableModel, constraints: ConstraintSet,
                    evaluator: SolutionEvaluator, run: int,
                    options: GenerationOptions, deadline: float) -> Schedule:
        rng = random.Random(options.seed + run) if run else None
        search = BacktrackingSearch(model, constraints, rng)
        outcome = search.run(SearchLimits(
            backtrack_budget=options.backtrack_budget,
            deadline=deadline,
            relax_hour_cap=options.relax_hour_cap,
        ))

        schedule = evaluator.evaluate(outcome.assignments, run=run)
        schedule.backtracks = outcome.backtracks
        schedule.exhausted = outcome.exhausted
        if schedule.complete:
            logger.debug(f"Run {run} found a complete schedule after {outcome.backtracks} backtracks")
        else:
            logger.info(
                f"Run {run} stopped ({outcome.exhausted}) with {schedule.assigned_slots}/"
                f"{schedule.total_slots} assigned and {schedule.conflicts} conflict(s)"
            )
        return schedule

    def _run_cpsat(self, model: TimetableModel, evaluator: SolutionEvaluator,
                   options: GenerationOptions) -> Schedule:
        scheduler = CPSATScheduler(model, time_limit_seconds=options.time_limit, random_seed=options.seed)
        schedule = evaluator.evaluate(scheduler.solve(), strategy="cpsat")
        if not schedule.complete:
            schedule.exhausted = "search" if scheduler.status_name == "OPTIMAL" else "time"
        return schedule


def generate(snapshot: EntitySnapshot, options: Optional[GenerationOptions] = None,
             grid: Optional[GridConfig] = None) -> List[Schedule]:
    """Generate schedules with the default engine configuration."""
    return TimetableEngine().generate(snapshot, options, grid)
