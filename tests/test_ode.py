"""Tests for the diagonally-implicit Runge-Kutta integrators.

Test categories:
1. Selector codes and unknown-code rejection
2. Tableau consistency
3. Convergence order on a scalar linear problem
4. Stage times passed to the operator
"""

from __future__ import annotations

import numpy as np
import pytest

from joule.core.bases import TimeDependentOperator
from joule.exceptions import UnknownIntegratorError
from joule.integrator.ode import DIRKSolver, ODESolverKind, butcher_tableau, make_ode_solver

ALL_CODES = [1, 2, 3, 22, 23, 34]
EXPECTED_ORDER = {1: 1, 2: 2, 3: 3, 22: 2, 23: 3, 34: 4}


class ScalarDecay(TimeDependentOperator):
    """``dx/dt = lam * x``, solved exactly at each implicit stage."""

    def __init__(self, lam: float = -1.0) -> None:
        super().__init__(size=1)
        self.lam = lam
        self.stage_times: list[float] = []

    def implicit_solve(self, dt, x):
        self.stage_times.append(self.time)
        return self.lam * x / (1.0 - dt * self.lam)


def integrate(code: int, steps: int, t_final: float = 1.0) -> float:
    op = ScalarDecay()
    solver = make_ode_solver(code, op)
    x = np.array([1.0])
    t = 0.0
    dt = t_final / steps
    for _ in range(steps):
        t = solver.step(x, t, dt)
    return float(x[0])


# ====================================================
# Selection
# ====================================================


class TestSelection:
    """Tests for make_ode_solver."""

    @pytest.mark.parametrize("code", ALL_CODES)
    def test_known_codes(self, code):
        solver = make_ode_solver(code)
        assert isinstance(solver, DIRKSolver)
        assert solver.tableau.order == EXPECTED_ORDER[code]

    @pytest.mark.parametrize("code", [0, 4, 21, 99])
    def test_unknown_code(self, code):
        with pytest.raises(UnknownIntegratorError) as excinfo:
            make_ode_solver(code)
        assert excinfo.value.exit_code == 3
        assert str(excinfo.value) == f"Unknown ODE solver type: {code}"

    def test_step_before_init(self):
        solver = make_ode_solver(1)
        with pytest.raises(RuntimeError):
            solver.step(np.zeros(1), 0.0, 0.1)


class TestTableaux:
    """Consistency of the Butcher tableaux."""

    @pytest.mark.parametrize("kind", list(ODESolverKind))
    def test_row_sums_match_nodes(self, kind):
        tab = butcher_tableau(kind)
        np.testing.assert_allclose(tab.a.sum(axis=1), tab.c, atol=1e-14)
        assert tab.b.sum() == pytest.approx(1.0)

    @pytest.mark.parametrize("kind", list(ODESolverKind))
    def test_lower_triangular(self, kind):
        tab = butcher_tableau(kind)
        np.testing.assert_array_equal(np.triu(tab.a, k=1), 0.0)
        assert np.all(np.diag(tab.a) > 0.0)


# ====================================================
# Accuracy
# ====================================================


class TestConvergence:
    """Observed order on dx/dt = -x."""

    @pytest.mark.parametrize("code", ALL_CODES)
    def test_observed_order(self, code):
        exact = np.exp(-1.0)
        e1 = abs(integrate(code, 10) - exact)
        e2 = abs(integrate(code, 20) - exact)
        observed = np.log2(e1 / e2)
        assert observed > EXPECTED_ORDER[code] - 0.3

    def test_backward_euler_single_step(self):
        """One BE step of size dt gives x / (1 + dt)."""
        assert integrate(1, 1, t_final=0.5) == pytest.approx(1.0 / 1.5)

    def test_stage_times(self):
        op = ScalarDecay()
        solver = make_ode_solver(34, op)
        t = solver.step(np.array([1.0]), 2.0, 0.5)
        tab = solver.tableau
        np.testing.assert_allclose(op.stage_times, 2.0 + tab.c * 0.5)
        assert t == pytest.approx(2.5)
        assert op.time == pytest.approx(2.5)
