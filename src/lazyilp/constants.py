from enum import StrEnum


# Value the C-style solver APIs use for "no finite value" (GRB_INFINITY)
SOLVER_INFINITY = 1e100

DEFAULT_INT_TOL = 1e-6
DEFAULT_FEAS_TOL = 1e-6
DEFAULT_ABS_GAP = 1e-10
DEFAULT_REL_GAP = 1e-4
DEFAULT_TIME_LIMIT = float("inf")


class Backend(StrEnum):
    BRANCH_AND_CUT = "branch_and_cut"
    GUROBI = "gurobi"


class Sense(StrEnum):
    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


class Domain(StrEnum):
    BINARY = "binary"
    INTEGER = "integer"
    CONTINUOUS = "continuous"


class Focus(StrEnum):
    FEASIBILITY = "feasibility"
    OPTIMALITY = "optimality"
    BEST_BOUND = "best_bound"
    BALANCED = "balanced"


class LPMethod(StrEnum):
    PRIMAL_SIMPLEX = "primal_simplex"
    DUAL_SIMPLEX = "dual_simplex"
    BARRIER = "barrier"
    SIFTING = "sifting"


class PreSolver(StrEnum):
    AUTO = "auto"
    PRIMAL = "primal"
    DUAL = "dual"
    NONE = "none"
