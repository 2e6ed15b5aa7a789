"""Gurobi backend using gurobipy.

Gurobi runs its own branch-and-cut; this backend only builds the model,
maps the session parameters onto Gurobi parameters and translates Gurobi
callbacks into search events:

- MIP (progress information) -> GlobalProgress
- MIPSOL (new integer solution) -> IntegerCandidateFound, lazy rows via cbLazy
- MIPNODE with an optimal relaxation -> RelaxationNode, injected values via
  cbSetSolution

Lazy constraints left over from an earlier search are added as model
constraints with the Lazy attribute set.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

import numpy as np

from ..constants import SOLVER_INFINITY, Focus, LPMethod, PreSolver
from ..constraint import Row, RowSense
from ..errors import SolverError
from ..events import GlobalProgress, IntegerCandidateFound, RelaxationNode
from ..params import SolverParameters
from .base import ModelData, SolverResult, SolverStats, SolverStatus

if TYPE_CHECKING:
    from ..callback import Callback

logger = logging.getLogger(__name__)


_MIP_FOCUS = {
    Focus.BALANCED: 0,
    Focus.FEASIBILITY: 1,
    Focus.OPTIMALITY: 2,
    Focus.BEST_BOUND: 3,
}

_NODE_METHOD = {
    LPMethod.PRIMAL_SIMPLEX: 0,
    LPMethod.DUAL_SIMPLEX: 1,
    LPMethod.BARRIER: 2,
    LPMethod.SIFTING: 1,  # dual simplex, with sifting enabled below
}

_PRE_DUAL = {
    PreSolver.AUTO: -1,
    PreSolver.PRIMAL: 0,
    PreSolver.DUAL: 1,
}


def gurobi_parameters(parameters: SolverParameters) -> Dict[str, object]:
    """Gurobi parameter names and values for the given configuration."""
    params: Dict[str, object] = {
        # aggressively search for disconnected sub-problems
        "Disconnected": 2,
        "OutputFlag": 1 if parameters.verbosity else 0,
    }
    if parameters.time_limit is not None:
        params["TimeLimit"] = parameters.time_limit
    if parameters.threads is not None:
        params["Threads"] = parameters.threads
    if parameters.absolute_gap is not None:
        params["MIPGapAbs"] = parameters.absolute_gap
    if parameters.relative_gap is not None:
        params["MIPGap"] = parameters.relative_gap
    if parameters.focus is not None:
        params["MIPFocus"] = _MIP_FOCUS[parameters.focus]
    if parameters.cutoff is not None:
        params["Cutoff"] = parameters.cutoff
    if parameters.lp_method is not None:
        params["NodeMethod"] = _NODE_METHOD[parameters.lp_method]
        if parameters.lp_method == LPMethod.SIFTING:
            params["SiftMethod"] = 1  # moderate, 2 = aggressive
    if parameters.presolve == PreSolver.NONE:
        params["Presolve"] = 0
    elif parameters.presolve is not None:
        params["PreDual"] = _PRE_DUAL[parameters.presolve]
        params["PrePasses"] = -1 if parameters.presolve_passes is None else parameters.presolve_passes
    elif parameters.presolve_passes is not None:
        params["PrePasses"] = parameters.presolve_passes
    return params


def callback_failure(error: BaseException, gurobi_error=()) -> SolverError:
    """SolverError reporting an exception raised inside the Gurobi callback."""
    if gurobi_error and isinstance(error, gurobi_error):
        return SolverError(f"{error.message} while executing Gurobi callback", code=error.errno)
    return SolverError(f"{type(error).__name__}: {error} while executing Gurobi callback")


class GurobiBackend:
    """Backend for the Gurobi MIP solver.

    Requires gurobipy and a Gurobi licence; the size-limited licence shipped
    with the pip package is enough for small models.
    """

    def solve(
        self,
        model: ModelData,
        parameters: SolverParameters,
        callback: Optional["Callback"],
    ) -> SolverResult:
        try:
            import gurobipy as gp
            from gurobipy import GRB
        except ImportError as exc:
            raise ImportError(
                "Gurobi backend requires 'gurobipy' to be installed. "
                "Install it with `pip install lazyilp[gurobi]` and make sure a Gurobi licence is available."
            ) from exc

        try:
            with gp.Env(empty=True) as env:
                env.setParam("OutputFlag", 1 if parameters.verbosity else 0)
                env.start()
                with gp.Model(env=env) as grb_model:
                    return self._solve(gp, GRB, grb_model, model, parameters, callback)
        except gp.GurobiError as e:
            raise SolverError(str(e.message), code=e.errno) from e

    def _solve(self, gp, GRB, grb_model, model: ModelData, parameters, callback) -> SolverResult:
        for name, value in gurobi_parameters(parameters).items():
            grb_model.setParam(name, value)

        variables = self._add_variables(GRB, grb_model, model)
        for row in model.rows:
            grb_model.addLConstr(self._expression(gp, row, variables), _sense(GRB, row), row.rhs)
        for row in model.lazy_rows:
            constr = grb_model.addLConstr(self._expression(gp, row, variables), _sense(GRB, row), row.rhs)
            constr.Lazy = 1

        if callback is not None:
            grb_model.setParam("LazyConstraints", 1)
        grb_model.update()

        counters = {"lazy": 0, "heuristic": 0}
        failures: List[BaseException] = []

        def add_lazy_rows(cb_model, event) -> None:
            for row in event.lazy_rows:
                cb_model.cbLazy(self._expression(gp, row, variables), _sense(GRB, row), row.rhs)
            counters["lazy"] += len(event.lazy_constraints)

        def gurobi_callback(cb_model, where):
            if failures:
                return
            try:
                if where == GRB.Callback.MIP:
                    callback.dispatch(
                        GlobalProgress(
                            objective=cb_model.cbGet(GRB.Callback.MIP_OBJBST),
                            bound=cb_model.cbGet(GRB.Callback.MIP_OBJBND),
                            runtime=cb_model.cbGet(GRB.Callback.RUNTIME),
                            nodes=int(cb_model.cbGet(GRB.Callback.MIP_NODCNT)),
                        )
                    )
                elif where == GRB.Callback.MIPSOL:
                    event = IntegerCandidateFound(cb_model.cbGetSolution(variables))
                    callback.dispatch(event)
                    add_lazy_rows(cb_model, event)
                elif (
                    where == GRB.Callback.MIPNODE
                    and cb_model.cbGet(GRB.Callback.MIPNODE_STATUS) == GRB.OPTIMAL
                ):
                    event = RelaxationNode(cb_model.cbGetNodeRel(variables))
                    callback.dispatch(event)
                    add_lazy_rows(cb_model, event)
                    if event.assignment:
                        indices = sorted(event.assignment)
                        cb_model.cbSetSolution(
                            [variables[i] for i in indices],
                            [event.assignment[i] for i in indices],
                        )
                        cb_model.cbUseSolution()
                        counters["heuristic"] += 1
            except Exception as e:
                failures.append(e)
                cb_model.terminate()

        grb_model.optimize(gurobi_callback if callback is not None else None)

        if failures:
            error = failures[0]
            if isinstance(error, SolverError):
                raise error
            raise callback_failure(error, gp.GurobiError) from error

        status = self._interpret_status(GRB, grb_model.Status)
        if grb_model.SolCount > 0:
            x = np.array(grb_model.getAttr("X", variables), dtype=float)
            objective = float(grb_model.ObjVal)
        else:
            x = None
            objective = -SOLVER_INFINITY if status == SolverStatus.UNBOUNDED else SOLVER_INFINITY
        try:
            bound = float(grb_model.ObjBound)
        except gp.GurobiError:
            bound = SOLVER_INFINITY if status == SolverStatus.INFEASIBLE else -SOLVER_INFINITY

        return SolverResult(
            x=x,
            status=status,
            stats=SolverStats(
                solver_name="Gurobi",
                solve_time=float(grb_model.Runtime),
                nodes=int(grb_model.NodeCount),
                lazy_constraints=counters["lazy"],
                heuristic_solutions=counters["heuristic"],
            ),
            objective=objective,
            bound=bound,
            raw_result={"gurobi_status": grb_model.Status},
        )

    @staticmethod
    def _add_variables(GRB, grb_model, model: ModelData) -> list:
        variables = []
        for i in range(model.num_variables):
            lb = float(model.lower[i])
            ub = float(model.upper[i])
            if not model.integrality[i]:
                vtype = GRB.CONTINUOUS
            elif lb >= 0.0 and ub <= 1.0:
                vtype = GRB.BINARY
            else:
                vtype = GRB.INTEGER
            variables.append(
                grb_model.addVar(
                    lb=max(lb, -GRB.INFINITY),
                    ub=min(ub, GRB.INFINITY),
                    obj=float(model.objective[i]),
                    vtype=vtype,
                    name=f"x{i}",
                )
            )
        grb_model.ModelSense = GRB.MINIMIZE
        grb_model.update()

        if model.branch_priority is not None:
            for var, priority in zip(variables, model.branch_priority):
                if priority:
                    var.BranchPriority = int(priority)
        if model.start is not None:
            for var, value in zip(variables, model.start):
                var.Start = float(value)
        return variables

    @staticmethod
    def _expression(gp, row: Row, variables: list):
        return gp.LinExpr([c for _, c in row.terms], [variables[i] for i, _ in row.terms])

    @staticmethod
    def _interpret_status(GRB, status: int) -> SolverStatus:
        if status == GRB.OPTIMAL:
            return SolverStatus.OPTIMAL
        if status in (GRB.INFEASIBLE, GRB.INF_OR_UNBD, GRB.CUTOFF):
            return SolverStatus.INFEASIBLE
        if status == GRB.UNBOUNDED:
            return SolverStatus.UNBOUNDED
        if status == GRB.TIME_LIMIT:
            return SolverStatus.TIME_LIMIT
        if status == GRB.INTERRUPTED:
            return SolverStatus.INTERRUPTED
        logger.warning(f"Unrecognised Gurobi status {status}")
        return SolverStatus.UNKNOWN


def _sense(GRB, row: Row) -> str:
    if row.sense == RowSense.LESS_EQUAL:
        return GRB.LESS_EQUAL
    if row.sense == RowSense.GREATER_EQUAL:
        return GRB.GREATER_EQUAL
    return GRB.EQUAL
