from __future__ import annotations

import math
from enum import StrEnum
from typing import Iterable, List, NamedTuple, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError


class Term(NamedTuple):
    index: int
    coefficient: float


class RowSense(StrEnum):
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="
    EQUAL = "=="


class Row(NamedTuple):
    """A single solver row: ``sum(coefficient * x[index]) <sense> rhs``."""

    terms: Tuple[Term, ...]
    sense: RowSense
    rhs: float

    def activity(self, x: np.ndarray) -> float:
        return float(sum(c * x[i] for i, c in self.terms))

    def violation(self, x: np.ndarray) -> float:
        lhs = self.activity(x)
        if self.sense == RowSense.LESS_EQUAL:
            return max(0.0, lhs - self.rhs)
        if self.sense == RowSense.GREATER_EQUAL:
            return max(0.0, self.rhs - lhs)
        return abs(lhs - self.rhs)


class LinearConstraint:
    """``lower <= sum(coefficient * x[index]) <= upper``.

    Bounds may coincide (equality) or be infinite (one-sided). A lazy
    constraint is one added from inside a callback; the solver only has to
    enforce it from the point of addition onward.
    """

    def __init__(
        self,
        terms: Iterable[Term | Tuple[int, float]],
        lower: float = -math.inf,
        upper: float = math.inf,
        lazy: bool = False,
    ):
        self.terms: Tuple[Term, ...] = tuple(_as_term(t) for t in terms)
        self.lower = float(lower)
        self.upper = float(upper)
        self.lazy = bool(lazy)

        if math.isnan(self.lower) or math.isnan(self.upper):
            raise ConfigurationError("Constraint bounds must not be NaN")
        if self.lower > self.upper:
            raise ConfigurationError(
                f"Constraint lower bound {self.lower} exceeds upper bound {self.upper}"
            )
        if self.lower == self.upper and math.isinf(self.lower):
            raise ConfigurationError("Equality constraint needs a finite right-hand side")
        if not all(math.isfinite(t.coefficient) for t in self.terms):
            raise ConfigurationError("Constraint coefficients must be finite")

    @classmethod
    def from_arrays(
        cls,
        indices: Sequence[int],
        coefficients: Sequence[float],
        lower: float = -math.inf,
        upper: float = math.inf,
        lazy: bool = False,
    ) -> "LinearConstraint":
        indices = list(indices)
        coefficients = list(coefficients)
        if len(indices) != len(coefficients):
            raise ConfigurationError(
                f"Got {len(indices)} indices but {len(coefficients)} coefficients"
            )
        return cls(zip(indices, coefficients), lower, upper, lazy)

    @property
    def indices(self) -> List[int]:
        return [t.index for t in self.terms]

    @property
    def is_equality(self) -> bool:
        return self.lower == self.upper

    def rows(self) -> List[Row]:
        """Rows emitted for this constraint.

        One equality row when the bounds coincide, otherwise one row per
        finite bound.
        """
        if self.is_equality:
            return [Row(self.terms, RowSense.EQUAL, self.lower)]
        rows = []
        if self.lower != -math.inf:
            rows.append(Row(self.terms, RowSense.GREATER_EQUAL, self.lower))
        if self.upper != math.inf:
            rows.append(Row(self.terms, RowSense.LESS_EQUAL, self.upper))
        return rows

    def check_indices(self, num_variables: int) -> None:
        for t in self.terms:
            if not 0 <= t.index < num_variables:
                raise ConfigurationError(
                    f"Variable index {t.index} out of range for {num_variables} variable(s)"
                )

    def is_satisfied(self, x: np.ndarray, tol: float = 1e-6) -> bool:
        return all(row.violation(x) <= tol for row in self.rows())

    def __repr__(self):
        expr = " + ".join(f"{t.coefficient:g}*x{t.index}" for t in self.terms) or "0"
        kind = "Lazy" if self.lazy else "Constraint"
        return f"{kind}({self.lower:g} <= {expr} <= {self.upper:g})"


def _as_term(term) -> Term:
    try:
        index, coefficient = term
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Constraint terms must be (index, coefficient) pairs, got {term!r}"
        ) from exc
    if isinstance(index, bool) or not isinstance(index, (int, np.integer)):
        raise ConfigurationError(
            f"Variable index must be an integer, got {type(index).__name__}"
        )
    return Term(int(index), float(coefficient))
