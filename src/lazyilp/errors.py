from __future__ import annotations

from typing import Optional


class LazyILPError(Exception):
    """Base class of every error raised by lazyilp."""


class ConfigurationError(LazyILPError, ValueError):
    """Invalid model-building call or solver parameter."""


class ScopeError(LazyILPError, RuntimeError):
    """A callback accessor was used outside the search event it belongs to."""


class StateError(LazyILPError, RuntimeError):
    """A post-solve query was made before a successful ``optimize()``."""


class SolverError(LazyILPError, RuntimeError):
    """The search was aborted, by the solver or by callback code.

    ``code`` is the solver's error number when it reported one. When the
    failure originated in client code the original exception is available
    as ``__cause__``.
    """

    def __init__(self, message: str, code: Optional[int] = None):
        self.code = code
        self.message = message
        if code is not None:
            super().__init__(f"solver error {code}: {message}")
        else:
            super().__init__(message)
