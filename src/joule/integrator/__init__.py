"""Implicit Runge-Kutta integrators and the time-step loop."""

from joule.integrator.ode import (
    ButcherTableau,
    DIRKSolver,
    ODESolverKind,
    butcher_tableau,
    make_ode_solver,
)
from joule.integrator.stepper import StepperPhase, StepperSummary, TimeStepper, is_last_step

__all__ = [
    "ButcherTableau",
    "DIRKSolver",
    "ODESolverKind",
    "StepperPhase",
    "StepperSummary",
    "TimeStepper",
    "butcher_tableau",
    "is_last_step",
    "make_ode_solver",
]
