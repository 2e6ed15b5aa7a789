from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from .callback import Callback
from .constants import DEFAULT_ABS_GAP, DEFAULT_REL_GAP, Backend, Domain, Sense
from .constraint import LinearConstraint
from .errors import ConfigurationError, ScopeError, StateError
from .params import SolverParameters
from .result import SolveResult
from .solvers import ModelData, SolverResult, SolverStatus, get_solver_backend
from .solvers.base import from_solver_infinity
from .variable import VariableSet

logger = logging.getLogger(__name__)


class SolverSession:
    """An integer linear program together with the solver that searches it.

    The session owns the variables, the pool of static and lazy constraints
    and the solver parameters. ``optimize()`` runs the search synchronously;
    the results are then available through ``objective()``, ``bound()``,
    ``gap()`` and ``label()``.

    Example:
        session = SolverSession(sense="maximize")
        session.add_variables([1.0, 1.0])
        session.add_constraint([(0, 1.0), (1, 1.0)], upper=1.0)
        session.optimize()
        session.objective()  # 1.0
    """

    def __init__(
        self,
        sense: Sense | str = Sense.MINIMIZE,
        backend: Backend | str = Backend.BRANCH_AND_CUT,
        parameters: Optional[SolverParameters] = None,
    ):
        try:
            self.sense = Sense(sense)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown objective sense '{sense}'") from exc

        self.backend = backend.value if isinstance(backend, Backend) else str(backend)
        self.variables = VariableSet()
        self._constraints: List[LinearConstraint] = []
        self._parameters = parameters if parameters is not None else SolverParameters()
        self._callback: Optional[Callback] = None
        self._result: Optional[SolveResult] = None
        self._started = False
        self._searching = False

    @property
    def objective_sign(self) -> float:
        """Factor between the session's objective and the minimised one."""
        return -1.0 if self.sense == Sense.MAXIMIZE else 1.0

    @property
    def is_searching(self) -> bool:
        return self._searching

    @property
    def constraints(self) -> List[LinearConstraint]:
        return list(self._constraints)

    @property
    def lazy_constraints(self) -> List[LinearConstraint]:
        return [c for c in self._constraints if c.lazy]

    @property
    def parameters(self) -> SolverParameters:
        return self._parameters

    @property
    def callback(self) -> Optional[Callback]:
        return self._callback

    # =========================================================================
    # Model building
    # =========================================================================

    def add_variables(
        self,
        coefficients: Sequence[float],
        domain: Domain | str = Domain.BINARY,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
    ) -> range:
        """Append one variable per objective coefficient; returns their indices."""
        if self._started:
            raise ConfigurationError("Variables cannot be added once optimize() has started")
        indices = self.variables.extend(coefficients, domain, lower, upper)
        logger.debug(f"Added {len(indices)} {Domain(domain)} variable(s)")
        return indices

    def add_constraint(
        self,
        terms,
        lower: float = -math.inf,
        upper: float = math.inf,
    ) -> LinearConstraint:
        """Add ``lower <= sum(coefficient * x[index]) <= upper``.

        ``terms`` is a sequence of ``(index, coefficient)`` pairs, or a
        LinearConstraint whose own bounds are then used.
        """
        if self._searching:
            raise ConfigurationError(
                "Static constraints cannot be added during the search; "
                "use Callback.add_lazy_constraint"
            )
        constraint = self._make_constraint(terms, lower, upper, lazy=False)
        self._constraints.append(constraint)
        return constraint

    def add_lazy_constraint(
        self,
        terms,
        lower: float = -math.inf,
        upper: float = math.inf,
    ) -> LinearConstraint:
        """Add a lazy constraint; only valid inside a callback event."""
        if self._callback is None:
            raise ScopeError("Lazy constraints require a registered callback")
        return self._callback.add_lazy_constraint(terms, lower, upper)

    def _record_lazy_constraint(self, terms, lower, upper) -> LinearConstraint:
        if not self._searching:
            raise ScopeError("Lazy constraints can only be added during optimize()")
        constraint = self._make_constraint(terms, lower, upper, lazy=True)
        self._constraints.append(constraint)
        return constraint

    def _make_constraint(self, terms, lower, upper, lazy: bool) -> LinearConstraint:
        if isinstance(terms, LinearConstraint):
            constraint = LinearConstraint(terms.terms, terms.lower, terms.upper, lazy=lazy)
        else:
            constraint = LinearConstraint(terms, lower, upper, lazy=lazy)
        constraint.check_indices(len(self.variables))
        return constraint

    def set_branch_priority(self, variable_index: int, priority: int) -> None:
        index = self.variables.check_index(variable_index)
        if (
            isinstance(priority, bool)
            or not isinstance(priority, (int, float, np.integer, np.floating))
            or not math.isfinite(priority)
            or int(priority) != priority
        ):
            raise ConfigurationError(f"Branch priority must be an integer, got {priority!r}")
        self.variables[index].branch_priority = int(priority)

    def set_start(self, values: Sequence[float]) -> None:
        """Warm start: one value per variable, in index order."""
        try:
            values = [float(v) for v in values]
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Start values must be numbers: {exc}") from exc
        if len(values) != len(self.variables):
            raise ConfigurationError(
                f"Start vector has {len(values)} value(s) for {len(self.variables)} variable(s)"
            )
        if not all(math.isfinite(v) for v in values):
            raise ConfigurationError("Start values must be finite")
        for variable, value in zip(self.variables, values):
            variable.start = value

    def set_parameters(self, config=None, **options) -> SolverParameters:
        """Update solver parameters; options not given keep their value."""
        if self._searching:
            raise ConfigurationError("Parameters cannot change during the search")
        merged = {}
        if isinstance(config, SolverParameters):
            merged.update(config.as_dict())
        elif isinstance(config, Mapping):
            merged.update(config)
        elif config is not None:
            raise ConfigurationError(
                f"Expected SolverParameters or a mapping, got {type(config).__name__}"
            )
        merged.update(options)
        self._parameters = self._parameters.updated(merged)
        return self._parameters

    def set_callback(self, callback: Optional[Callback]) -> None:
        """Register the callback that separates lazy constraints.

        Registering a callback switches the solver to lazy-constraint mode;
        ``None`` removes it.
        """
        if self._searching:
            raise ConfigurationError("The callback cannot change during the search")
        if callback is not None:
            if not isinstance(callback, Callback):
                raise ConfigurationError(
                    f"Expected a Callback, got {type(callback).__name__}"
                )
            if callback.session is not self:
                raise ConfigurationError("Callback was created for a different session")
            callback.state.reset()
        self._callback = callback

    register_callback = set_callback

    # =========================================================================
    # Search
    # =========================================================================

    def optimize(self) -> SolveResult:
        if self._searching:
            raise ConfigurationError("optimize() is already running")
        if not len(self.variables):
            raise ConfigurationError("The model has no variables")

        backend = get_solver_backend(self.backend)
        model = self._model_data()

        self._started = True
        self._searching = True
        self._result = None
        if self._callback is not None:
            self._callback.begin()

        start_time = time.time()
        try:
            raw = backend.solve(model, self._search_parameters(), self._callback)
        finally:
            self._searching = False
            if self._callback is not None:
                self._callback.end()

        result = self._build_result(raw)
        self._result = result
        if result.values is not None:
            for variable, value in zip(self.variables, result.values):
                variable.value = float(value)

        logger.debug(
            f"optimize() finished in {time.time() - start_time:.3f}s: "
            f"status={result.status}, objective={result.objective:g}, bound={result.bound:g}"
        )
        return result

    def _model_data(self) -> ModelData:
        return ModelData(
            objective=self.objective_sign * self.variables.objective(),
            lower=self.variables.lower_bounds(),
            upper=self.variables.upper_bounds(),
            integrality=self.variables.integrality(),
            rows=[row for c in self._constraints if not c.lazy for row in c.rows()],
            lazy_rows=[row for c in self._constraints if c.lazy for row in c.rows()],
            branch_priority=self.variables.branch_priorities(),
            start=self.variables.start(),
        )

    def _search_parameters(self) -> SolverParameters:
        # Backends minimise, so the cutoff follows the objective sign
        if self._parameters.cutoff is None or self.sense == Sense.MINIMIZE:
            return self._parameters
        return replace(self._parameters, cutoff=-self._parameters.cutoff)

    def _build_result(self, raw: SolverResult) -> SolveResult:
        objective = from_solver_infinity(raw.objective)
        bound = from_solver_infinity(raw.bound)

        if raw.x is None or math.isinf(objective):
            values = None
            gap = math.inf
        else:
            values = np.array(raw.x, dtype=float)
            values.setflags(write=False)
            gap = (objective - bound) / (1.0 + abs(objective)) if math.isfinite(bound) else math.inf

        sign = self.objective_sign
        return SolveResult(
            status=raw.status,
            objective=sign * objective,
            bound=sign * bound,
            gap=gap,
            values=values,
            stats=raw.stats,
        )

    # =========================================================================
    # Results
    # =========================================================================

    @property
    def result(self) -> SolveResult:
        if self._result is None:
            raise StateError("No result available; call optimize() first")
        return self._result

    @property
    def status(self) -> SolverStatus:
        return self.result.status

    def _solution(self) -> SolveResult:
        result = self.result
        if result.values is None:
            raise StateError(f"The search ended without a feasible solution ({result.status})")
        return result

    def objective(self) -> float:
        return self._solution().objective

    def bound(self) -> float:
        return self.result.bound

    def gap(self) -> float:
        return self._solution().gap

    def label(self, variable_index: int) -> float:
        index = self.variables.check_index(variable_index)
        return self._solution().label(index)

    def labels(self) -> np.ndarray:
        return self._solution().values.copy()

    def number_of_threads(self) -> int:
        return self._parameters.threads or 0

    def absolute_gap(self) -> float:
        gap = self._parameters.absolute_gap
        return DEFAULT_ABS_GAP if gap is None else gap

    def relative_gap(self) -> float:
        gap = self._parameters.relative_gap
        return DEFAULT_REL_GAP if gap is None else gap
