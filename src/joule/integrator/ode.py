"""Diagonally-implicit Runge-Kutta integrators.

Every scheme is a lower-triangular Butcher tableau ``(A, b, c)``. Stage ``i``
of a step from ``t`` with size ``dt``:

    set_time(t + c_i dt)
    k_i = implicit_solve(a_ii dt, x + dt sum_{j<i} a_ij k_j)

and the step finishes with ``x <- x + dt sum_i b_i k_i``.

Selector codes:

====  ==========================================  =====
code  scheme                                      order
====  ==========================================  =====
1     Backward Euler (L-stable)                   1
2     SDIRK23, gamma = (2 - sqrt 2)/2 (L-stable)  2
3     SDIRK33 (L-stable)                          3
22    implicit midpoint (A-stable)                2
23    SDIRK23, gamma = (3 + sqrt 3)/6 (A-stable)  3
34    SDIRK34 (A-stable)                          4
====  ==========================================  =====
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum

import numpy as np

from joule.core.bases import ODESolver, TimeDependentOperator
from joule.exceptions import UnknownIntegratorError

logger = logging.getLogger(__name__)


class ODESolverKind(IntEnum):
    BACKWARD_EULER = 1
    SDIRK23_L = 2
    SDIRK33 = 3
    IMPLICIT_MIDPOINT = 22
    SDIRK23_A = 23
    SDIRK34 = 34


@dataclass(frozen=True)
class ButcherTableau:
    """Lower-triangular tableau of a DIRK scheme."""

    name: str
    a: np.ndarray
    b: np.ndarray
    c: np.ndarray
    order: int

    @property
    def stages(self) -> int:
        return int(self.b.size)


# ============================================================
# Tableaux
# ============================================================


def _sdirk23(gamma: float, name: str, order: int) -> ButcherTableau:
    a = np.array([[gamma, 0.0], [1.0 - 2.0 * gamma, gamma]])
    return ButcherTableau(name, a, np.array([0.5, 0.5]), np.array([gamma, 1.0 - gamma]), order)


def _sdirk33() -> ButcherTableau:
    a = 0.435866521508458999416019
    b = 1.20849664917601007033648
    c = 0.717933260754229499708010
    A = np.array([
        [a, 0.0, 0.0],
        [c - a, a, 0.0],
        [b, 1.0 - a - b, a],
    ])
    return ButcherTableau("SDIRK33", A, np.array([b, 1.0 - a - b, a]), np.array([a, c, 1.0]), 3)


def _sdirk34() -> ButcherTableau:
    q = 0.5 + np.cos(np.pi / 18.0) / np.sqrt(3.0)
    r = 1.0 / (6.0 * (2.0 * q - 1.0) ** 2)
    A = np.array([
        [q, 0.0, 0.0],
        [0.5 - q, q, 0.0],
        [2.0 * q, 1.0 - 4.0 * q, q],
    ])
    return ButcherTableau("SDIRK34", A, np.array([r, 1.0 - 2.0 * r, r]), np.array([q, 0.5, 1.0 - q]), 4)


def butcher_tableau(kind: ODESolverKind) -> ButcherTableau:
    if kind is ODESolverKind.BACKWARD_EULER:
        return ButcherTableau("BackwardEuler", np.array([[1.0]]), np.array([1.0]), np.array([1.0]), 1)
    if kind is ODESolverKind.SDIRK23_L:
        return _sdirk23((2.0 - np.sqrt(2.0)) / 2.0, "SDIRK23 (L-stable)", 2)
    if kind is ODESolverKind.SDIRK33:
        return _sdirk33()
    if kind is ODESolverKind.IMPLICIT_MIDPOINT:
        return ButcherTableau("ImplicitMidpoint", np.array([[0.5]]), np.array([1.0]), np.array([0.5]), 2)
    if kind is ODESolverKind.SDIRK23_A:
        return _sdirk23((3.0 + np.sqrt(3.0)) / 6.0, "SDIRK23 (A-stable)", 3)
    if kind is ODESolverKind.SDIRK34:
        return _sdirk34()
    raise UnknownIntegratorError(kind)


# ============================================================
# Solver
# ============================================================


class DIRKSolver(ODESolver):
    """Generic DIRK integrator driven by ``implicit_solve``."""

    def __init__(self, tableau: ButcherTableau) -> None:
        super().__init__()
        self.tableau = tableau

    def step(self, x: np.ndarray, t: float, dt: float) -> float:
        op = self.operator
        if op is None:
            raise RuntimeError("ODE solver used before init(operator)")
        tab = self.tableau
        k = np.zeros((tab.stages, x.size))
        for i in range(tab.stages):
            stage = x.copy()
            for j in range(i):
                if tab.a[i, j] != 0.0:
                    stage += dt * tab.a[i, j] * k[j]
            op.set_time(t + tab.c[i] * dt)
            k[i] = op.implicit_solve(tab.a[i, i] * dt, stage)
        x += dt * (tab.b @ k)
        t_new = t + dt
        op.set_time(t_new)
        return t_new

    def __repr__(self) -> str:
        return f"DIRKSolver({self.tableau.name})"


def make_ode_solver(code: int, operator: TimeDependentOperator | None = None) -> DIRKSolver:
    """Build the integrator for a selector code.

    Raises:
        UnknownIntegratorError: If ``code`` is not a supported selector.
    """
    try:
        kind = ODESolverKind(int(code))
    except (TypeError, ValueError) as exc:
        raise UnknownIntegratorError(code) from exc
    solver = DIRKSolver(butcher_tableau(kind))
    if operator is not None:
        solver.init(operator)
    logger.debug("Selected ODE solver %d: %s", code, solver.tableau.name)
    return solver
