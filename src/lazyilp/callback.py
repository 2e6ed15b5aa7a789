"""
Callback protocol

A Callback is attached to one SolverSession and is driven by the backend
during ``optimize()``. Every search event goes through ``dispatch``:

- GlobalProgress updates the best objective and bound. The solver's
  infinity sentinel is translated to a signed float infinity here and
  nowhere else.
- IntegerCandidateFound runs the separation routine, which may add lazy
  constraints, and then marks a heuristic opportunity as pending.
- RelaxationNode runs the heuristic-completion routine if, and only if, an
  opportunity is pending, and clears it before the routine runs. Heuristic
  completion therefore runs at most once per integer candidate.

Any exception raised while dispatching aborts the search as a SolverError
whose ``__cause__`` is the original exception.
"""

from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Optional

import numpy as np

from .constraint import LinearConstraint
from .errors import ConfigurationError, ScopeError, SolverError, StateError
from .events import GlobalProgress, IntegerCandidateFound, RelaxationNode, SearchEvent
from .solvers.base import from_solver_infinity

if TYPE_CHECKING:
    from .session import SolverSession

logger = logging.getLogger(__name__)


@dataclass
class CallbackState:
    """Bookkeeping of one callback registration, kept in the minimisation sense."""

    best_objective: float = math.inf
    best_bound: float = -math.inf
    pending_heuristic_opportunity: bool = False
    runtime: float = 0.0

    def reset(self) -> None:
        self.best_objective = math.inf
        self.best_bound = -math.inf
        self.pending_heuristic_opportunity = False
        self.runtime = 0.0


class Callback(ABC):
    """Separation and heuristic completion for a branch-and-cut search.

    Subclasses implement the two routines below. Both may work through the
    accessors of this class (``candidate_value``, ``add_lazy_constraint``,
    ``inject_value``) or return their result:

    - ``separate_and_add_lazy_constraints`` may return an iterable of
      LinearConstraint objects, each added as a lazy constraint.
    - ``compute_feasible_solution`` may return a mapping from variable index
      to value (or a full sequence of values) to inject.

    Example:
        class NoBothOnes(Callback):
            def separate_and_add_lazy_constraints(self, candidate):
                if self.label(0) > 0.5 and self.label(1) > 0.5:
                    self.add_lazy_constraint([(0, 1.0), (1, 1.0)], upper=1.0)

            def compute_feasible_solution(self, relaxation):
                return None

        session.set_callback(NoBothOnes(session))
    """

    def __init__(self, session: "SolverSession"):
        self._session = session
        self.state = CallbackState()
        self._event: Optional[SearchEvent] = None
        self._active = False
        self._lock = threading.RLock()

    @property
    def session(self) -> "SolverSession":
        return self._session

    @abstractmethod
    def separate_and_add_lazy_constraints(
        self, candidate: IntegerCandidateFound
    ) -> Optional[Iterable[LinearConstraint]]:
        """Inspect an integer candidate and cut it off if it is infeasible."""

    @abstractmethod
    def compute_feasible_solution(self, relaxation: RelaxationNode):
        """Complete the last candidate into a feasible solution."""

    # =========================================================================
    # Protocol driven by the session and the backend
    # =========================================================================

    @property
    def is_active(self) -> bool:
        return self._active

    def begin(self) -> None:
        """Enter the active state at the start of a search.

        Best objective and bound carry over from earlier searches of the
        same registration; only a pending heuristic opportunity is dropped.
        """
        with self._lock:
            self.state.pending_heuristic_opportunity = False
            self._event = None
            self._active = True

    def end(self) -> None:
        """Return to idle once the search is over."""
        with self._lock:
            self._active = False
            self._event = None

    def dispatch(self, event: SearchEvent) -> None:
        with self._lock:
            if not self._active:
                raise StateError("Callback received an event outside of optimize()")
            self._event = event
            try:
                if isinstance(event, GlobalProgress):
                    self._on_progress(event)
                elif isinstance(event, IntegerCandidateFound):
                    self._on_candidate(event)
                elif isinstance(event, RelaxationNode):
                    self._on_relaxation(event)
                else:
                    raise TypeError(f"Unknown search event {type(event).__name__}")
            except SolverError:
                raise
            except Exception as e:
                logger.error(f"Error in callback while handling {type(event).__name__}: {e}")
                raise SolverError(
                    f"{type(e).__name__}: {e} while executing callback"
                ) from e
            finally:
                event.close()
                self._event = None

    def _on_progress(self, event: GlobalProgress) -> None:
        objective = from_solver_infinity(event.objective)
        bound = from_solver_infinity(event.bound)
        self.state.best_objective = min(self.state.best_objective, objective)
        self.state.best_bound = max(self.state.best_bound, bound)
        self.state.runtime = float(event.runtime)

    def _on_candidate(self, event: IntegerCandidateFound) -> None:
        added = self.separate_and_add_lazy_constraints(event)
        if added is not None:
            for constraint in added:
                if not isinstance(constraint, LinearConstraint):
                    raise ConfigurationError(
                        "Separation must return LinearConstraint objects, "
                        f"got {type(constraint).__name__}"
                    )
                self.add_lazy_constraint(constraint)
        self.state.pending_heuristic_opportunity = True

    def _on_relaxation(self, event: RelaxationNode) -> None:
        if not self.state.pending_heuristic_opportunity:
            return
        self.state.pending_heuristic_opportunity = False
        assignment = self.compute_feasible_solution(event)
        if assignment is None:
            return
        if isinstance(assignment, Mapping):
            items = assignment.items()
        else:
            items = ((i, v) for i, v in enumerate(assignment) if v is not None)
        for index, value in items:
            self.inject_value(index, value)

    # =========================================================================
    # Accessors for client code
    # =========================================================================

    @property
    def best_objective(self) -> float:
        """Best known objective, in the session's sense."""
        return self._session.objective_sign * self.state.best_objective

    @property
    def best_bound(self) -> float:
        """Best known bound, in the session's sense."""
        return self._session.objective_sign * self.state.best_bound

    @property
    def runtime(self) -> float:
        return self.state.runtime

    def candidate_value(self, variable_index: int) -> float:
        """Value of a variable in the current candidate."""
        event = self._require("candidate_value", IntegerCandidateFound)
        index = self._session.variables.check_index(variable_index)
        return event.value(index)

    def candidate_values(self) -> np.ndarray:
        event = self._require("candidate_values", IntegerCandidateFound)
        return event.values.copy()

    def relaxation_value(self, variable_index: int) -> float:
        """Value of a variable in the current node relaxation."""
        event = self._require("relaxation_value", RelaxationNode)
        index = self._session.variables.check_index(variable_index)
        return event.relaxation_value(index)

    def inject_value(self, variable_index: int, value: float) -> None:
        """Set one variable of the heuristic solution submitted at this node."""
        event = self._require("inject_value", RelaxationNode)
        index = self._session.variables.check_index(variable_index)
        value = float(value)
        if not math.isfinite(value):
            raise ConfigurationError(f"Injected value for x{index} must be finite, got {value}")
        event.set_value(index, value)

    # Short aliases
    label = candidate_value
    set_label = inject_value

    def add_lazy_constraint(
        self,
        terms,
        lower: float = -math.inf,
        upper: float = math.inf,
    ) -> LinearConstraint:
        """Add a lazy constraint from inside the current event.

        ``terms`` is a sequence of ``(index, coefficient)`` pairs or a
        LinearConstraint, whose own bounds are used in that case.
        """
        event = self._require("add_lazy_constraint", IntegerCandidateFound, RelaxationNode)
        if isinstance(terms, LinearConstraint):
            terms, lower, upper = terms.terms, terms.lower, terms.upper
        constraint = self._session._record_lazy_constraint(terms, lower, upper)
        event.add_lazy(constraint)
        logger.debug(f"Lazy constraint added: {constraint}")
        return constraint

    def _require(self, accessor: str, *event_types):
        event = self._event
        if event is None or not isinstance(event, event_types):
            names = " or ".join(t.__name__ for t in event_types)
            raise ScopeError(f"{accessor}() is only available during {names}")
        return event


class FunctionCallback(Callback):
    """Callback built from two plain functions.

    ``separate(candidate)`` returns the lazy constraints violated by the
    candidate; ``complete(relaxation)`` returns a (partial) assignment to
    inject. Either may be omitted.
    """

    def __init__(
        self,
        session: "SolverSession",
        separate: Optional[Callable[[IntegerCandidateFound], Optional[Iterable[LinearConstraint]]]] = None,
        complete: Optional[Callable[[RelaxationNode], object]] = None,
    ):
        super().__init__(session)
        self._separate = separate
        self._complete = complete

    def separate_and_add_lazy_constraints(self, candidate):
        if self._separate is None:
            return None
        return self._separate(candidate)

    def compute_feasible_solution(self, relaxation):
        if self._complete is None:
            return None
        return self._complete(relaxation)
