__all__ = [
    "SolverSession",
    "Callback",
    "FunctionCallback",
    "CallbackState",
    "GlobalProgress",
    "IntegerCandidateFound",
    "RelaxationNode",
    "LinearConstraint",
    "Term",
    "Row",
    "RowSense",
    "Variable",
    "SolverParameters",
    "SolveResult",
    "SolverStatus",
    "LazyILPError",
    "ConfigurationError",
    "ScopeError",
    "StateError",
    "SolverError",
    "Backend",
    "Sense",
    "Domain",
    "Focus",
    "LPMethod",
    "PreSolver",
    "BRANCH_AND_CUT",
    "GUROBI",
    "MINIMIZE",
    "MAXIMIZE",
    "BINARY",
    "INTEGER",
    "CONTINUOUS",
    "SOLVER_INFINITY",
    "get_solver_backend",
    "register_solver_backend",
]

__version__ = "0.1.0"

from .session import SolverSession
from .callback import Callback, FunctionCallback, CallbackState
from .events import GlobalProgress, IntegerCandidateFound, RelaxationNode
from .constraint import LinearConstraint, Term, Row, RowSense
from .variable import Variable
from .params import SolverParameters
from .result import SolveResult
from .errors import LazyILPError, ConfigurationError, ScopeError, StateError, SolverError
from .constants import SOLVER_INFINITY, Backend, Sense, Domain, Focus, LPMethod, PreSolver
from .solvers import SolverStatus, get_solver_backend, register_solver_backend

BRANCH_AND_CUT = Backend.BRANCH_AND_CUT
GUROBI = Backend.GUROBI

MINIMIZE = Sense.MINIMIZE
MAXIMIZE = Sense.MAXIMIZE

BINARY = Domain.BINARY
INTEGER = Domain.INTEGER
CONTINUOUS = Domain.CONTINUOUS
