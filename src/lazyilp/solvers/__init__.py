from __future__ import annotations

from typing import Dict

from ..constants import Backend
from ..errors import ConfigurationError
from .base import (
    ModelData,
    SolverBackend,
    SolverResult,
    SolverStats,
    SolverStatus,
)
from .branch_and_cut import BranchAndCutBackend
from .gurobi_backend import GurobiBackend


_BRANCH_AND_CUT_BACKEND = BranchAndCutBackend()
_GUROBI_BACKEND = GurobiBackend()


_SOLVER_BACKENDS: Dict[str, SolverBackend] = {
    Backend.BRANCH_AND_CUT.value: _BRANCH_AND_CUT_BACKEND,
    Backend.GUROBI.value: _GUROBI_BACKEND,
}


def register_solver_backend(backend_name: str, backend: SolverBackend) -> None:
    _SOLVER_BACKENDS[backend_name] = backend


def get_solver_backend(backend: Backend | str) -> SolverBackend:
    backend_name = backend.value if isinstance(backend, Backend) else str(backend)
    if backend_name not in _SOLVER_BACKENDS:
        raise ConfigurationError(f"No solver backend registered for '{backend_name}'")
    return _SOLVER_BACKENDS[backend_name]


__all__ = [
    "ModelData",
    "SolverBackend",
    "SolverResult",
    "SolverStats",
    "SolverStatus",
    "BranchAndCutBackend",
    "GurobiBackend",
    "get_solver_backend",
    "register_solver_backend",
]
