"""
Search events

A backend reports what its search is doing through three event types, all
dispatched synchronously to the registered callback:

- GlobalProgress: a new best objective or bound is known
- IntegerCandidateFound: an integer-feasible candidate is available
- RelaxationNode: a node relaxation was solved and a heuristic solution may
  be injected

Candidate and relaxation events double as the mailbox through which the
callback hands lazy constraints and injected values back to the backend. An
event is closed once its dispatch returns; reading or writing it afterwards
raises ScopeError.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from .constraint import LinearConstraint, Row
from .errors import ScopeError


class SearchEvent:
    """Base class of the events a backend dispatches."""

    closed: bool = False

    def close(self) -> None:
        self.closed = True

    def _check_open(self, what: str) -> None:
        if self.closed:
            raise ScopeError(
                f"{what} is only available while the {type(self).__name__} event is dispatched"
            )


@dataclass
class GlobalProgress(SearchEvent):
    """Best objective and bound as reported by the solver.

    Values are raw: infinite ones are given as the solver's sentinel.
    """

    objective: float
    bound: float
    runtime: float = 0.0
    nodes: int = 0


class _LazyMailbox(SearchEvent):
    def __init__(self):
        self.lazy_constraints: List[LinearConstraint] = []

    def add_lazy(self, constraint: LinearConstraint) -> None:
        self._check_open("Adding a lazy constraint")
        self.lazy_constraints.append(constraint)

    @property
    def lazy_rows(self) -> List[Row]:
        return [row for c in self.lazy_constraints for row in c.rows()]


class IntegerCandidateFound(_LazyMailbox):
    """An integer-feasible candidate; values are read-only."""

    def __init__(self, values):
        super().__init__()
        self._values = np.array(values, dtype=float)
        self._values.setflags(write=False)

    @property
    def values(self) -> np.ndarray:
        self._check_open("Reading the candidate")
        return self._values

    def value(self, index: int) -> float:
        self._check_open("Reading the candidate")
        return float(self._values[index])

    def __repr__(self):
        return f"IntegerCandidateFound(n={len(self._values)})"


class RelaxationNode(_LazyMailbox):
    """A solved node relaxation plus the assignment injected at it."""

    def __init__(self, relaxation, depth: int = 0):
        super().__init__()
        self._relaxation = np.array(relaxation, dtype=float)
        self._relaxation.setflags(write=False)
        self.depth = depth
        self.assignment: Dict[int, float] = {}

    @property
    def relaxation(self) -> np.ndarray:
        self._check_open("Reading the relaxation")
        return self._relaxation

    def relaxation_value(self, index: int) -> float:
        self._check_open("Reading the relaxation")
        return float(self._relaxation[index])

    def set_value(self, index: int, value: float) -> None:
        self._check_open("Injecting a solution")
        value = float(value)
        if not math.isfinite(value):
            raise ValueError(f"Injected value for x{index} must be finite, got {value}")
        self.assignment[int(index)] = value

    def completed(self) -> np.ndarray:
        """Relaxation values overridden by the injected assignment."""
        x = self._relaxation.copy()
        for index, value in self.assignment.items():
            x[index] = value
        return x

    def __repr__(self):
        return f"RelaxationNode(depth={self.depth}, injected={len(self.assignment)})"
