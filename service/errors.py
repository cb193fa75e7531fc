"""
Errors raised by the timetable engine.
"""
from typing import List


class ModelError(Exception):
    """The input snapshot cannot yield a schedule; raised before any search."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid timetable model")


class ScheduleInvariantError(RuntimeError):
    """A produced assignment breaks a structural hard constraint.

    This points at a bug in constraint propagation, never at bad input.
    """
