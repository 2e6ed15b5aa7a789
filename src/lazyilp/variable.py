from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

import numpy as np

from .constants import Domain
from .errors import ConfigurationError


@dataclass
class Variable:
    """A decision variable, identified by its index in the session."""

    index: int
    objective: float
    domain: Domain = Domain.BINARY
    lower: float = 0.0
    upper: float = 1.0
    branch_priority: int = 0
    start: Optional[float] = None
    value: Optional[float] = None

    @property
    def is_integer(self) -> bool:
        return self.domain != Domain.CONTINUOUS

    def __repr__(self):
        return f"Var(x{self.index}, {self.domain}, obj={self.objective:g})"


def _default_bounds(domain: Domain) -> tuple[float, float]:
    if domain == Domain.BINARY:
        return 0.0, 1.0
    return 0.0, math.inf


class VariableSet:
    """Ordered collection of the variables of one session.

    Indices run from 0 to ``len(self) - 1`` in order of creation and never
    change.
    """

    def __init__(self):
        self._variables: List[Variable] = []

    def __len__(self) -> int:
        return len(self._variables)

    def __iter__(self) -> Iterator[Variable]:
        return iter(self._variables)

    def __getitem__(self, index: int) -> Variable:
        self.check_index(index)
        return self._variables[index]

    def extend(
        self,
        coefficients: Sequence[float],
        domain: Domain | str = Domain.BINARY,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
    ) -> range:
        try:
            domain = Domain(domain)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown variable domain '{domain}'") from exc

        default_lower, default_upper = _default_bounds(domain)
        lower = default_lower if lower is None else float(lower)
        upper = default_upper if upper is None else float(upper)
        if domain == Domain.BINARY and (lower < 0.0 or upper > 1.0):
            raise ConfigurationError(
                f"Binary variable bounds must lie in [0, 1], got [{lower}, {upper}]"
            )
        if lower > upper:
            raise ConfigurationError(f"Lower bound {lower} exceeds upper bound {upper}")

        coefficients = [float(c) for c in coefficients]
        if not all(math.isfinite(c) for c in coefficients):
            raise ConfigurationError("Objective coefficients must be finite")

        first = len(self._variables)
        for offset, coefficient in enumerate(coefficients):
            self._variables.append(
                Variable(
                    index=first + offset,
                    objective=coefficient,
                    domain=domain,
                    lower=lower,
                    upper=upper,
                )
            )
        return range(first, len(self._variables))

    def check_index(self, index) -> int:
        if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
            raise ConfigurationError(
                f"Variable index must be an integer, got {type(index).__name__}"
            )
        if not 0 <= index < len(self._variables):
            raise ConfigurationError(
                f"Variable index {index} out of range for {len(self._variables)} variable(s)"
            )
        return int(index)

    # Array views handed to the solver backends

    def objective(self) -> np.ndarray:
        return np.array([v.objective for v in self._variables], dtype=float)

    def lower_bounds(self) -> np.ndarray:
        return np.array([v.lower for v in self._variables], dtype=float)

    def upper_bounds(self) -> np.ndarray:
        return np.array([v.upper for v in self._variables], dtype=float)

    def integrality(self) -> np.ndarray:
        return np.array([1 if v.is_integer else 0 for v in self._variables], dtype=int)

    def branch_priorities(self) -> np.ndarray:
        return np.array([v.branch_priority for v in self._variables], dtype=int)

    def start(self) -> Optional[np.ndarray]:
        if any(v.start is None for v in self._variables) or not self._variables:
            return None
        return np.array([v.start for v in self._variables], dtype=float)
