"""
Branch-and-Cut Backend

LP-based branch-and-cut for integer linear programs whose constraint set is
completed lazily by a callback. Node relaxations are solved with HiGHS
through scipy.optimize.linprog.

Features:
- Node selection driven by the focus parameter (best-first, depth-first,
  hybrid)
- Branching on the fractional variable of highest branch priority, most
  fractional first among equals
- Lazy constraints: every integer candidate is handed to the callback
  before it may become the incumbent; a candidate cut off by its own
  separation is discarded and the node is re-solved
- Heuristic solutions injected at relaxation nodes are rounded, completed
  over the unassigned continuous variables and checked against every row
- Warm start from a feasible start vector
- Absolute/relative gap, cutoff and time limit termination
"""

from __future__ import annotations

import heapq
import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple

import numpy as np
from scipy.optimize import linprog
from scipy.sparse import coo_matrix

from ..constants import (
    DEFAULT_ABS_GAP,
    DEFAULT_FEAS_TOL,
    DEFAULT_INT_TOL,
    DEFAULT_REL_GAP,
    SOLVER_INFINITY,
    Focus,
    LPMethod,
    PreSolver,
)
from ..constraint import Row, RowSense
from ..errors import SolverError
from ..events import GlobalProgress, IntegerCandidateFound, RelaxationNode
from ..params import SolverParameters
from .base import ModelData, SolverResult, SolverStats, SolverStatus

if TYPE_CHECKING:
    from ..callback import Callback

logger = logging.getLogger(__name__)

# Separation rounds allowed at a single node before the search gives up
MAX_CUT_ROUNDS = 1000


class NodeSelection(Enum):
    """Node selection strategy."""

    BEST_FIRST = "best_first"  # Always pick node with best bound
    DEPTH_FIRST = "depth_first"  # Pick deepest node (finds feasible solutions faster)
    HYBRID = "hybrid"  # Mostly depth-first, every tenth node best-first


_FOCUS_NODE_SELECTION = {
    Focus.FEASIBILITY: NodeSelection.DEPTH_FIRST,
    Focus.OPTIMALITY: NodeSelection.BEST_FIRST,
    Focus.BEST_BOUND: NodeSelection.BEST_FIRST,
    Focus.BALANCED: NodeSelection.HYBRID,
}

# HiGHS offers no separate primal simplex or sifting through linprog
_LP_METHODS = {
    LPMethod.PRIMAL_SIMPLEX: "highs-ds",
    LPMethod.DUAL_SIMPLEX: "highs-ds",
    LPMethod.BARRIER: "highs-ipm",
    LPMethod.SIFTING: "highs-ds",
}


@dataclass(order=True)
class BCNode:
    """A node in the branch-and-cut tree.

    ``lower_bound`` is inherited from the parent relaxation and raised to the
    node's own relaxation value once solved; ``priority`` mirrors it for
    best-first ordering.
    """

    priority: float

    node_id: int = field(compare=False)
    depth: int = field(compare=False)

    # Tightened bounds: index -> (lb, ub)
    var_bounds: Dict[int, Tuple[float, float]] = field(compare=False, default_factory=dict)

    lower_bound: float = field(compare=False, default=-SOLVER_INFINITY)


@dataclass
class BCStats:
    """Statistics from the branch-and-cut search."""

    nodes_explored: int = 0
    nodes_pruned: int = 0
    nodes_infeasible: int = 0
    lp_solves: int = 0
    cut_rounds: int = 0
    lazy_constraints: int = 0
    heuristic_solutions: int = 0
    rejected_candidates: int = 0


class RowPool:
    """Static and lazy rows, kept as the sparse matrices linprog expects."""

    def __init__(self, rows: List[Row], num_variables: int):
        self.rows: List[Row] = list(rows)
        self.num_variables = num_variables
        self._matrices = None

    def __len__(self) -> int:
        return len(self.rows)

    def extend(self, rows: List[Row]) -> None:
        if rows:
            self.rows.extend(rows)
            self._matrices = None

    def matrices(self):
        """(A_ub, b_ub, A_eq, b_eq); ``>=`` rows are negated into ``<=`` rows."""
        if self._matrices is None:
            self._matrices = self._build()
        return self._matrices

    def _build(self):
        ub = ([], [], [], [])  # data, row, col, rhs
        eq = ([], [], [], [])
        for row in self.rows:
            if row.sense == RowSense.EQUAL:
                target, sign = eq, 1.0
            else:
                target, sign = ub, (-1.0 if row.sense == RowSense.GREATER_EQUAL else 1.0)
            r = len(target[3])
            for index, coefficient in row.terms:
                target[0].append(sign * coefficient)
                target[1].append(r)
                target[2].append(index)
            target[3].append(sign * row.rhs)

        def to_matrix(part):
            data, rows, cols, rhs = part
            if not rhs:
                return None, None
            shape = (len(rhs), self.num_variables)
            return coo_matrix((data, (rows, cols)), shape=shape).tocsr(), np.array(rhs, dtype=float)

        A_ub, b_ub = to_matrix(ub)
        A_eq, b_eq = to_matrix(eq)
        return A_ub, b_ub, A_eq, b_eq

    def max_violation(self, x: np.ndarray, start: int = 0) -> float:
        if start >= len(self.rows):
            return 0.0
        if start > 0:
            return max(row.violation(x) for row in self.rows[start:])
        A_ub, b_ub, A_eq, b_eq = self.matrices()
        violation = 0.0
        if A_ub is not None:
            violation = max(violation, float(np.max(A_ub @ x - b_ub)))
        if A_eq is not None:
            violation = max(violation, float(np.max(np.abs(A_eq @ x - b_eq))))
        return violation


@dataclass
class _LPResult:
    status: int  # linprog status: 0 optimal, 1 limit, 2 infeasible, 3 unbounded, 4 numerical
    x: Optional[np.ndarray] = None
    objective: float = SOLVER_INFINITY
    message: str = ""


@dataclass
class _Search:
    """Mutable state of one branch-and-cut run."""

    model: ModelData
    callback: Optional["Callback"]
    pool: RowPool
    start_time: float
    abs_gap: float
    rel_gap: float
    time_limit: float
    lp_method: str
    lp_options: Dict[str, object]
    verbose: bool
    incumbent_x: Optional[np.ndarray] = None
    incumbent_obj: float = SOLVER_INFINITY
    best_bound: float = -SOLVER_INFINITY
    next_node_id: int = 1
    stats: BCStats = field(default_factory=BCStats)

    @property
    def elapsed(self) -> float:
        return time.time() - self.start_time

    @property
    def remaining_time(self) -> float:
        return self.time_limit - self.elapsed

    def log(self, message: str) -> None:
        if self.verbose:
            logger.info(message)
        else:
            logger.debug(message)


class BranchAndCutBackend:
    """
    LP-based branch-and-cut with lazy constraints and heuristic injection.

    Search events are dispatched to the callback as they happen:
    GlobalProgress whenever the incumbent or the global bound improves,
    RelaxationNode for every node relaxation solved to optimality and not
    pruned, IntegerCandidateFound for every integer point that would improve
    the incumbent.
    """

    def solve(
        self,
        model: ModelData,
        parameters: SolverParameters,
        callback: Optional["Callback"],
    ) -> SolverResult:
        search = self._new_search(model, parameters, callback)

        if parameters.threads and parameters.threads > 1:
            logger.debug(f"threads={parameters.threads} ignored; the search is single-threaded")
        if parameters.presolve_passes is not None:
            logger.debug("presolve_passes has no counterpart in the HiGHS LP interface")

        node_selection = _FOCUS_NODE_SELECTION[parameters.focus or Focus.BALANCED]
        int_indices = model.integer_indices

        search.log(
            f"Branch-and-Cut: {model.num_variables} variables "
            f"({len(int_indices)} integer), {len(search.pool)} rows"
        )
        search.log(f"Node selection: {node_selection.value}, LP method: {search.lp_method}")
        search.log(f"{'Nodes':>8} {'Incumbent':>12} {'Best Bound':>12} {'Gap':>10} {'Time':>8}")
        search.log("-" * 54)

        if model.start is not None:
            self._try_start(search, int_indices)

        root = BCNode(priority=-SOLVER_INFINITY, node_id=0, depth=0)
        node_queue: List[BCNode] = [root]
        counter = 0
        status: Optional[SolverStatus] = None

        # Main B&C loop
        while node_queue:
            if search.remaining_time <= 0:
                search.log(f"Time limit reached ({search.time_limit}s)")
                status = SolverStatus.TIME_LIMIT
                break

            self._update_bound(search, node_queue)
            if self._gap_closed(search):
                search.log(f"Optimality gap reached (gap={self._relative_gap(search):.2e})")
                status = SolverStatus.OPTIMAL
                break

            node = self._select_node(node_queue, node_selection, counter)
            counter += 1
            search.stats.nodes_explored += 1

            # Prune by bound (quick check before solving the relaxation)
            if node.lower_bound >= search.incumbent_obj - search.abs_gap:
                search.stats.nodes_pruned += 1
                continue

            children = self._process_node(search, node, int_indices)
            if children is None:
                status = SolverStatus.UNBOUNDED
                break
            for child in children:
                heapq.heappush(node_queue, child)

            if search.stats.nodes_explored % 100 == 0:
                self._log_progress(search, "")

        if status is None:
            # Queue exhausted: the incumbent, if any, is optimal
            if search.incumbent_x is not None:
                search.best_bound = search.incumbent_obj
                status = SolverStatus.OPTIMAL
            else:
                search.best_bound = SOLVER_INFINITY
                status = SolverStatus.INFEASIBLE
            self._emit_progress(search)
        elif status == SolverStatus.UNBOUNDED:
            search.best_bound = -SOLVER_INFINITY

        return self._finish(search, status)

    def _new_search(self, model, parameters, callback) -> _Search:
        lp_options: Dict[str, object] = {"presolve": parameters.presolve != PreSolver.NONE}
        search = _Search(
            model=model,
            callback=callback,
            pool=RowPool(list(model.rows) + list(model.lazy_rows), model.num_variables),
            start_time=time.time(),
            abs_gap=DEFAULT_ABS_GAP if parameters.absolute_gap is None else parameters.absolute_gap,
            rel_gap=DEFAULT_REL_GAP if parameters.relative_gap is None else parameters.relative_gap,
            time_limit=math.inf if parameters.time_limit is None else parameters.time_limit,
            lp_method=_LP_METHODS[parameters.lp_method] if parameters.lp_method else "highs",
            lp_options=lp_options,
            verbose=bool(parameters.verbosity),
        )
        if parameters.cutoff is not None:
            search.incumbent_obj = min(parameters.cutoff, SOLVER_INFINITY)
        return search

    def _finish(self, search: _Search, status: SolverStatus) -> SolverResult:
        stats = search.stats
        solve_time = search.elapsed

        search.log("-" * 54)
        search.log(f"Status: {status}")
        search.log(f"Nodes explored: {stats.nodes_explored}")
        search.log(f"LP solves: {stats.lp_solves}")
        search.log(f"Lazy constraints added: {stats.lazy_constraints}")
        search.log(f"Heuristic solutions: {stats.heuristic_solutions}")
        if search.incumbent_x is not None:
            search.log(f"Best objective: {search.incumbent_obj:.6e}")
            search.log(f"Best bound: {search.best_bound:.6e}")

        has_solution = search.incumbent_x is not None
        if has_solution:
            objective = search.incumbent_obj
        elif status == SolverStatus.UNBOUNDED:
            objective = -SOLVER_INFINITY
        else:
            objective = SOLVER_INFINITY

        return SolverResult(
            x=search.incumbent_x,
            status=status,
            stats=SolverStats(
                solver_name="B&C(HiGHS)",
                solve_time=solve_time,
                nodes=stats.nodes_explored,
                lazy_constraints=stats.lazy_constraints,
                heuristic_solutions=stats.heuristic_solutions,
            ),
            objective=objective,
            bound=search.best_bound,
            raw_result={"bc_stats": stats},
        )

    # =========================================================================
    # Node processing
    # =========================================================================

    def _process_node(
        self,
        search: _Search,
        node: BCNode,
        int_indices: List[int],
    ) -> Optional[List[BCNode]]:
        """Solve a node, separating until its relaxation is stable.

        Returns the children to enqueue, or None if the relaxation is
        unbounded.
        """
        for _ in range(MAX_CUT_ROUNDS):
            lp = self._solve_lp(search, node.var_bounds)
            search.stats.lp_solves += 1

            if lp.status == 2:
                search.stats.nodes_infeasible += 1
                return []
            if lp.status == 3:
                return None
            if lp.status == 1 and search.remaining_time <= 0:
                # Interrupted by the time limit; keep the node so the bound stays valid
                return [node]
            if lp.status != 0:
                raise SolverError(f"LP relaxation failed: {lp.message}", code=lp.status)

            x, obj = lp.x, lp.objective
            node.lower_bound = max(node.lower_bound, obj)
            node.priority = node.lower_bound

            if obj >= search.incumbent_obj - search.abs_gap:
                search.stats.nodes_pruned += 1
                return []

            rows_before = len(search.pool)
            self._relaxation_event(search, node, x, int_indices)
            if obj >= search.incumbent_obj - search.abs_gap:
                search.stats.nodes_pruned += 1
                return []

            violations = self._get_integer_violations(x, int_indices)
            if not violations:
                self._offer_candidate(search, self._snap(x, int_indices), "*", since=rows_before)

            if search.pool.max_violation(x, start=rows_before) > DEFAULT_FEAS_TOL:
                search.stats.cut_rounds += 1
                continue

            if not violations:
                return []
            return self._branch(search, node, obj, violations)

        raise SolverError(
            f"Separation did not converge at node {node.node_id} "
            f"after {MAX_CUT_ROUNDS} rounds"
        )

    def _solve_lp(
        self,
        search: _Search,
        var_bounds: Dict[int, Tuple[float, float]],
        fixed: Optional[Dict[int, float]] = None,
    ) -> _LPResult:
        model = search.model
        bounds = []
        for i in range(model.num_variables):
            if fixed is not None and i in fixed:
                lb = ub = fixed[i]
            else:
                lb, ub = var_bounds.get(i, (model.lower[i], model.upper[i]))
            bounds.append((None if lb == -math.inf else lb, None if ub == math.inf else ub))

        options = dict(search.lp_options)
        if math.isfinite(search.time_limit):
            options["time_limit"] = max(search.remaining_time, 0.0)

        A_ub, b_ub, A_eq, b_eq = search.pool.matrices()
        result = linprog(
            model.objective,
            A_ub=A_ub,
            b_ub=b_ub,
            A_eq=A_eq,
            b_eq=b_eq,
            bounds=bounds,
            method=search.lp_method,
            options=options,
        )
        if result.status == 0:
            return _LPResult(status=0, x=np.asarray(result.x, dtype=float), objective=float(result.fun))
        return _LPResult(status=int(result.status), message=str(result.message))

    def _update_bound(self, search: _Search, node_queue: List[BCNode]) -> None:
        bound = min(n.lower_bound for n in node_queue)
        if search.incumbent_x is not None:
            bound = min(bound, search.incumbent_obj)
        if bound > search.best_bound:
            search.best_bound = bound
            self._emit_progress(search)

    def _relative_gap(self, search: _Search) -> float:
        if search.incumbent_x is None:
            return math.inf
        diff = abs(search.incumbent_obj - search.best_bound)
        if abs(search.incumbent_obj) > 1e-10:
            return diff / abs(search.incumbent_obj)
        return diff

    def _gap_closed(self, search: _Search) -> bool:
        if search.incumbent_x is None:
            return False
        return (
            self._relative_gap(search) <= search.rel_gap
            or abs(search.incumbent_obj - search.best_bound) <= search.abs_gap
        )

    # =========================================================================
    # Node Selection
    # =========================================================================

    def _select_node(
        self,
        node_queue: List[BCNode],
        strategy: NodeSelection,
        counter: int,
    ) -> BCNode:
        """Select next node to process based on strategy."""
        if strategy == NodeSelection.BEST_FIRST or (
            strategy == NodeSelection.HYBRID and counter % 10 == 0
        ):
            return heapq.heappop(node_queue)

        max_depth = -1
        max_idx = 0
        for i, node in enumerate(node_queue):
            if node.depth > max_depth:
                max_depth = node.depth
                max_idx = i
        node = node_queue.pop(max_idx)
        heapq.heapify(node_queue)
        return node

    # =========================================================================
    # Branching
    # =========================================================================

    def _get_integer_violations(
        self, x: np.ndarray, int_indices: List[int]
    ) -> List[Tuple[int, float]]:
        return [
            (i, float(x[i]))
            for i in int_indices
            if abs(x[i] - round(x[i])) > DEFAULT_INT_TOL
        ]

    def _branch(
        self,
        search: _Search,
        node: BCNode,
        obj: float,
        violations: List[Tuple[int, float]],
    ) -> List[BCNode]:
        """Branch on the fractional variable of highest priority.

        Among variables of equal priority the most fractional one wins.
        """
        priorities = search.model.branch_priority

        def key(item):
            idx, val = item
            priority = int(priorities[idx]) if priorities is not None else 0
            return (-priority, abs(0.5 - abs(val - round(val))))

        branch_idx, branch_val = min(violations, key=key)
        lb, ub = node.var_bounds.get(
            branch_idx,
            (search.model.lower[branch_idx], search.model.upper[branch_idx]),
        )

        down_bounds = dict(node.var_bounds)
        down_bounds[branch_idx] = (lb, math.floor(branch_val))
        up_bounds = dict(node.var_bounds)
        up_bounds[branch_idx] = (math.ceil(branch_val), ub)

        children = []
        for bounds in (down_bounds, up_bounds):
            children.append(
                BCNode(
                    priority=obj,
                    node_id=search.next_node_id,
                    depth=node.depth + 1,
                    var_bounds=bounds,
                    lower_bound=obj,
                )
            )
            search.next_node_id += 1
        return children

    # =========================================================================
    # Candidates, heuristics and events
    # =========================================================================

    @staticmethod
    def _snap(x: np.ndarray, int_indices: List[int]) -> np.ndarray:
        x = np.array(x, dtype=float)
        if int_indices:
            x[int_indices] = np.round(x[int_indices]) + 0.0
        return x

    def _offer_candidate(
        self,
        search: _Search,
        x: np.ndarray,
        marker: str,
        since: Optional[int] = None,
    ) -> bool:
        """Hand an integer point to separation and keep it if it survives.

        The point must satisfy every row added since row ``since`` (by
        default, since separation started).
        """
        obj = float(search.model.objective @ x)
        if obj >= search.incumbent_obj - search.abs_gap:
            return False

        rows_before = len(search.pool)
        if search.callback is not None:
            event = IntegerCandidateFound(x)
            search.callback.dispatch(event)
            self._add_lazy_rows(search, event)

        check_from = rows_before if since is None else min(since, rows_before)
        if search.pool.max_violation(x, start=check_from) > DEFAULT_FEAS_TOL:
            search.stats.rejected_candidates += 1
            logger.debug(f"Candidate with objective {obj:.6g} cut off by lazy constraints")
            return False

        search.incumbent_x = x.copy()
        search.incumbent_obj = obj
        self._emit_progress(search)
        self._log_progress(search, marker)
        return True

    def _relaxation_event(
        self,
        search: _Search,
        node: BCNode,
        x: np.ndarray,
        int_indices: List[int],
    ) -> None:
        if search.callback is None:
            return
        event = RelaxationNode(x, depth=node.depth)
        search.callback.dispatch(event)
        self._add_lazy_rows(search, event)
        if not event.assignment:
            return

        candidate = self._complete_assignment(
            search, event.completed(), set(event.assignment), int_indices
        )
        if candidate is None:
            return
        if self._offer_candidate(search, candidate, "H"):
            search.stats.heuristic_solutions += 1

    def _complete_assignment(
        self,
        search: _Search,
        x: np.ndarray,
        assigned: Set[int],
        int_indices: List[int],
    ) -> Optional[np.ndarray]:
        """Turn an injected assignment into a feasible point, or None.

        Integer variables are rounded and must already be integral.
        Unassigned continuous variables are re-optimised with everything
        else fixed.
        """
        model = search.model
        if self._get_integer_violations(x, int_indices):
            logger.debug("Injected solution rejected: integer variable not integral")
            return None
        x = self._snap(x, int_indices)

        int_set = set(int_indices)
        free = [i for i in range(model.num_variables) if i not in int_set and i not in assigned]
        if free:
            fixed = {i: float(x[i]) for i in range(model.num_variables) if i not in free}
            lp = self._solve_lp(search, {}, fixed=fixed)
            search.stats.lp_solves += 1
            if lp.status != 0:
                logger.debug(f"Injected solution rejected: completion LP failed ({lp.message})")
                return None
            x = self._snap(lp.x, int_indices)

        if np.any(x < model.lower - DEFAULT_FEAS_TOL) or np.any(x > model.upper + DEFAULT_FEAS_TOL):
            logger.debug("Injected solution rejected: variable bounds violated")
            return None
        if search.pool.max_violation(x) > DEFAULT_FEAS_TOL:
            logger.debug("Injected solution rejected: constraint violated")
            return None
        return x

    def _try_start(self, search: _Search, int_indices: List[int]) -> None:
        start = np.array(search.model.start, dtype=float)
        candidate = self._complete_assignment(
            search, start, set(range(len(start))), int_indices
        )
        if candidate is None:
            search.log("Start vector is infeasible and was ignored")
            return
        self._offer_candidate(search, candidate, "S")

    def _add_lazy_rows(self, search: _Search, event) -> None:
        if event.lazy_constraints:
            search.stats.lazy_constraints += len(event.lazy_constraints)
            search.pool.extend(event.lazy_rows)

    def _emit_progress(self, search: _Search) -> None:
        if search.callback is None:
            return
        objective = search.incumbent_obj if search.incumbent_x is not None else SOLVER_INFINITY
        search.callback.dispatch(
            GlobalProgress(
                objective=objective,
                bound=search.best_bound,
                runtime=search.elapsed,
                nodes=search.stats.nodes_explored,
            )
        )

    def _log_progress(self, search: _Search, marker: str) -> None:
        bound_str = f"{search.best_bound:>12.4e}" if search.best_bound > -SOLVER_INFINITY else "        -inf"
        inc_str = f"{search.incumbent_obj:>12.4e}" if search.incumbent_x is not None else "         inf"
        search.log(
            f"{search.stats.nodes_explored:>8} {inc_str} {bound_str} "
            f"{self._relative_gap(search):>10.2e} {search.elapsed:>7.1f}s {marker}"
        )
