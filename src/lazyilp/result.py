from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .solvers.base import SolverStats, SolverStatus


@dataclass(frozen=True)
class SolveResult:
    """Outcome of one ``optimize()`` call, in the session's objective sense.

    ``gap`` is ``(objective - bound) / (1 + |objective|)`` measured in the
    minimisation sense, so it is never negative for a finished search.
    ``values`` is None when no feasible solution was found.
    """

    status: SolverStatus
    objective: float
    bound: float
    gap: float
    values: Optional[np.ndarray]
    stats: SolverStats

    @property
    def has_solution(self) -> bool:
        return self.values is not None

    @property
    def is_optimal(self) -> bool:
        return self.status == SolverStatus.OPTIMAL

    def label(self, variable_index: int) -> float:
        if self.values is None:
            raise IndexError("No solution values available")
        return float(self.values[variable_index])
