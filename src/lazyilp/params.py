from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Mapping, Optional

from .constants import Focus, LPMethod, PreSolver
from .errors import ConfigurationError


@dataclass(frozen=True)
class SolverParameters:
    """Solver configuration.

    ``None`` leaves the corresponding knob at the solver's default.

    - time_limit: stop after this many seconds
    - threads: parallelism hint, 0 lets the solver decide
    - absolute_gap / relative_gap: stop once the gap closes below the value
    - focus: search bias (feasibility, optimality, best_bound, balanced)
    - verbosity: emit a progress log
    - lp_method: algorithm for the node relaxations
    - presolve / presolve_passes: presolve direction and pass count (-1 = auto)
    - cutoff: discard solutions whose objective is not better than this
    """

    time_limit: Optional[float] = None
    threads: Optional[int] = None
    absolute_gap: Optional[float] = None
    relative_gap: Optional[float] = None
    focus: Optional[Focus] = None
    verbosity: Optional[bool] = None
    lp_method: Optional[LPMethod] = None
    presolve: Optional[PreSolver] = None
    presolve_passes: Optional[int] = None
    cutoff: Optional[float] = None

    def __post_init__(self):
        _non_negative(self, "time_limit")
        _non_negative(self, "absolute_gap")
        _non_negative(self, "relative_gap")

        _integer(self, "threads", minimum=0)
        _integer(self, "presolve_passes", minimum=-1)

        if self.cutoff is not None:
            if math.isnan(float(self.cutoff)):
                raise ConfigurationError("cutoff must not be NaN")
            object.__setattr__(self, "cutoff", float(self.cutoff))

        if self.verbosity is not None:
            object.__setattr__(self, "verbosity", bool(self.verbosity))

        _coerce_enum(self, "focus", Focus)
        _coerce_enum(self, "lp_method", LPMethod)
        _coerce_enum(self, "presolve", PreSolver)

    def updated(self, options: Mapping[str, Any]) -> "SolverParameters":
        """Copy with the given options replaced; the others are kept."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigurationError(f"Unknown solver parameter(s): {', '.join(unknown)}")
        return replace(self, **options)

    def as_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


def _non_negative(params: SolverParameters, name: str) -> None:
    value = getattr(params, name)
    if value is None:
        return
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if math.isnan(value) or value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value}")
    object.__setattr__(params, name, value)


def _integer(params: SolverParameters, name: str, minimum: int) -> None:
    value = getattr(params, name)
    if value is None:
        return
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or int(value) != value
    ):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    object.__setattr__(params, name, int(value))


def _coerce_enum(params: SolverParameters, name: str, enum_type) -> None:
    value = getattr(params, name)
    if value is None:
        return
    try:
        object.__setattr__(params, name, enum_type(value))
    except ValueError as exc:
        choices = ", ".join(m.value for m in enum_type)
        raise ConfigurationError(
            f"Invalid {name} '{value}'; expected one of: {choices}"
        ) from exc
