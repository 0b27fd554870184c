"""Time-step loop: advance, inspect, dump and output by cadence."""

from __future__ import annotations

import logging
import time as wall_time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from joule.core.bases import Communicator, ODESolver, OutputSink, StepResult
from joule.layout import StateVector
from joule.physics.coupled_diffusion import CoupledDiffusionOperator

logger = logging.getLogger(__name__)


class StepperPhase(str, Enum):
    INITIALIZING = "initializing"
    STEPPING = "stepping"
    LAST_STEP = "last_step"
    DONE = "done"


def is_last_step(t: float, dt: float, t_final: float) -> bool:
    """True when the step from ``t`` reaches ``t_final`` within half a step."""
    return t + dt >= t_final - dt / 2


@dataclass
class StepperSummary:
    """Outcome of :meth:`TimeStepper.run`."""

    steps: int = 0
    final_time: float = 0.0
    wall_time_s: float = 0.0
    electric_losses: float | None = None
    results: list[StepResult] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "steps": self.steps,
            "sim_time": self.final_time,
            "wall_time_s": self.wall_time_s,
            "electric_losses": self.electric_losses,
        }


class TimeStepper:
    """Drive an ODE solver over a coupled operator from ``t = 0`` to ``t_final``.

    Args:
        operator: Coupled operator, already initialized.
        solver: ODE solver bound to ``operator``.
        comm: Communicator (diagnostics are logged on rank 0).
        t_final: Final time.
        dt: Fixed step size.
        vis_steps: Output cadence in steps; the last step always outputs.
        diag_steps: Loss-diagnostic cadence in steps.
        sinks: Visualization / checkpoint writers refreshed at output steps.
        debug: Dump operator matrices and vectors after every step.
        field_dump: Optional ``(state, t)`` callable writing raw field files
            after every step.
        basename: Prefix of debug dump files.
    """

    def __init__(
        self,
        operator: CoupledDiffusionOperator,
        solver: ODESolver,
        comm: Communicator,
        t_final: float,
        dt: float,
        vis_steps: int = 1,
        diag_steps: int = 1,
        sinks: Sequence[OutputSink] = (),
        debug: bool = False,
        field_dump: Callable[[StateVector, float], Any] | None = None,
        basename: str | Path = "Joule",
    ) -> None:
        if dt <= 0.0:
            raise ValueError(f"dt must be positive, got {dt}")
        if vis_steps < 1 or diag_steps < 1:
            raise ValueError("vis_steps and diag_steps must be >= 1")
        self.operator = operator
        self.solver = solver
        self.comm = comm
        self.t_final = t_final
        self.dt = dt
        self.vis_steps = vis_steps
        self.diag_steps = diag_steps
        self.sinks = list(sinks)
        self.debug = debug
        self.field_dump = field_dump
        self.basename = str(basename)
        self.phase = StepperPhase.INITIALIZING
        if solver.operator is not operator:
            solver.init(operator)

    def advance(self, state: StateVector, t: float, dt: float) -> float:
        """One step from ``t``; the algebraic fields are refreshed. No I/O.

        Returns:
            The new time.
        """
        x = state.buffer
        t = self.solver.step(x, t, dt)
        self.operator.update_algebraic(x)
        return t

    def _guarded(self, what: str, t: float, func: Callable[..., Any], *args: Any) -> bool:
        try:
            func(*args)
        except OSError as exc:
            logger.warning("%s failed at t=%g, skipping: %s", what, t, exc)
            return False
        return True

    def run(self, state: StateVector, max_steps: int | None = None) -> StepperSummary:
        """Step until the last step (or ``max_steps``) is done.

        Args:
            state: Initialized state; updated in place.
            max_steps: Optional cap on the number of steps.

        Returns:
            Summary with one :class:`StepResult` per step.
        """
        summary = StepperSummary()
        t_wall_start = wall_time.monotonic()
        t = 0.0
        last_step = False
        ti = 1
        self.phase = StepperPhase.STEPPING
        if self.comm.is_root:
            logger.info("Starting time integration: t_final=%g, dt=%g, %r", self.t_final, self.dt, self.solver)

        while not last_step:
            if is_last_step(t, self.dt, self.t_final):
                last_step = True
                self.phase = StepperPhase.LAST_STEP

            t = self.advance(state, t, self.dt)

            if self.debug:
                self._guarded("Debug dump", t, self.operator.debug_dump, self.basename, t)
            if self.field_dump is not None:
                self._guarded("Field dump", t, self.field_dump, state, t)

            losses = None
            if last_step or ti % self.diag_steps == 0:
                losses = self.operator.electric_losses()
                summary.electric_losses = losses
                if self.comm.is_root:
                    logger.info("step %6d,\tt = %6.3f,\tdot(E, J) = %.8f", ti, t, losses)

            output = last_step or ti % self.vis_steps == 0
            if output:
                self.comm.barrier()
                for sink in self.sinks:
                    self._guarded(type(sink).__name__, t, sink.save, ti, t)

            summary.results.append(
                StepResult(step=ti, time=t, dt=self.dt, last_step=last_step,
                           electric_losses=losses, output=output)
            )
            summary.steps = ti
            summary.final_time = t

            if max_steps is not None and ti >= max_steps and not last_step:
                logger.info("Stopping after max_steps=%d at t=%g", max_steps, t)
                break
            ti += 1

        self.phase = StepperPhase.DONE
        summary.wall_time_s = wall_time.monotonic() - t_wall_start
        if self.comm.is_root:
            logger.info(
                "Time integration complete: %d steps in %.2f s (%.1f steps/s)",
                summary.steps, summary.wall_time_s,
                summary.steps / max(summary.wall_time_s, 1e-10),
            )
        return summary
