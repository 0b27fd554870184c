"""Exception hierarchy for the Joule heating solver.

Configuration problems carry the process exit status reported by
:func:`joule.solve.joule_solve` and the ``joule`` CLI.
"""

from __future__ import annotations


class JouleError(RuntimeError):
    """Base class for all solver errors."""


class ConfigurationError(JouleError):
    """Invalid or unsupported configuration, detected before any mesh work."""

    exit_code: int = 1


class MeshFormatError(ConfigurationError):
    """Mesh source is missing or structurally malformed."""

    exit_code = 2


class UnknownIntegratorError(ConfigurationError):
    """ODE solver selector is not one of the supported schemes."""

    exit_code = 3

    def __init__(self, code: object) -> None:
        super().__init__(f"Unknown ODE solver type: {code}")
        self.code = code


class SolverConvergenceError(JouleError):
    """An implicit stage solve did not converge.

    Attributes:
        system: Name of the linear system that failed.
        info: Iterations performed (or the backend's failure code).
    """

    def __init__(self, system: str, info: int, residual: float | None = None) -> None:
        msg = f"Linear solve for '{system}' did not converge (info={info})"
        if residual is not None:
            msg += f", residual={residual:.3e}"
        super().__init__(msg)
        self.system = system
        self.info = info
        self.residual = residual


class StaleViewError(JouleError):
    """A field view was used after its owning buffer was reallocated."""
