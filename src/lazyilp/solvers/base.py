from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, List, Optional, Protocol

import numpy as np

from ..constants import SOLVER_INFINITY
from ..constraint import Row
from ..params import SolverParameters

if TYPE_CHECKING:
    from ..callback import Callback


class SolverStatus(StrEnum):
    OPTIMAL = "optimal"
    TIME_LIMIT = "time_limit"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"
    INTERRUPTED = "interrupted"
    UNKNOWN = "unknown"


@dataclass
class ModelData:
    """Everything a backend needs to build its model.

    The objective is always to be minimised; a maximisation session hands
    over negated coefficients.
    """

    objective: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    integrality: np.ndarray
    rows: List[Row]
    lazy_rows: List[Row] = field(default_factory=list)
    branch_priority: Optional[np.ndarray] = None
    start: Optional[np.ndarray] = None

    @property
    def num_variables(self) -> int:
        return len(self.objective)

    @property
    def integer_indices(self) -> List[int]:
        return [int(i) for i in np.flatnonzero(self.integrality)]


@dataclass
class SolverStats:
    solver_name: str
    solve_time: Optional[float] = None
    nodes: Optional[int] = None
    lazy_constraints: int = 0
    heuristic_solutions: int = 0


@dataclass
class SolverResult:
    """Raw outcome of a backend run.

    ``objective`` and ``bound`` use the solver's sentinel for infinite
    values (``SOLVER_INFINITY``), exactly as the backend reported them.
    """

    x: Optional[np.ndarray]
    status: SolverStatus
    stats: SolverStats
    objective: float = SOLVER_INFINITY
    bound: float = -SOLVER_INFINITY
    raw_result: Optional[object] = None


class SolverBackend(Protocol):
    def solve(
        self,
        model: ModelData,
        parameters: SolverParameters,
        callback: Optional["Callback"],
    ) -> SolverResult:
        ...


def from_solver_infinity(value: float) -> float:
    """Map the solver's infinity sentinel to a signed float infinity."""
    value = float(value)
    if value >= SOLVER_INFINITY:
        return float("inf")
    if value <= -SOLVER_INFINITY:
        return float("-inf")
    return value
