"""Top-level driver: configuration to finished run.

Sequence:

1. validate integrator selector and element order (before any mesh work)
2. load or generate the mesh; resolve boundary markers and material maps
3. prepare the mesh (refine, partition, optional AMR, rebalance)
4. build the spaces, state layout and coupled operator; initialize the state
5. open output sinks, run the time stepper, release every resource
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any

import numpy as np

from joule.config import JouleConfig
from joule.core.bases import Communicator, MeshBase
from joule.core.comm import SerialCommunicator
from joule.diagnostics.checkpoint import FieldDataCollection
from joule.diagnostics.field_dump import FieldDumper
from joule.diagnostics.glvis import GLVisSession
from joule.exceptions import ConfigurationError
from joule.fem.boundary import build_bc_map
from joule.fem.coefficients import DomainProperties
from joule.fem.spaces import FiniteElementCollection, FiniteElementSpace, SpaceKind
from joule.integrator.ode import make_ode_solver
from joule.integrator.stepper import StepperSummary, TimeStepper
from joule.layout import FieldLayout, StateVector
from joule.mesh.io import load_mesh, make_rod_mesh
from joule.mesh.preparer import MeshPreparer
from joule.physics.coupled_diffusion import CoupledDiffusionOperator
from joule.presets import apply_preset

logger = logging.getLogger(__name__)

SUPPORTED_ORDERS = (1,)


class JouleRun:
    """Assembled components of one run; built by :meth:`setup`."""

    def __init__(self, config: JouleConfig, comm: Communicator | None = None) -> None:
        self.config = config
        self.comm = comm if comm is not None else SerialCommunicator()
        self.summary: StepperSummary | None = None

    def _log(self, msg: str, *args: Any) -> None:
        if self.comm.is_root:
            logger.info(msg, *args)

    def validate(self) -> None:
        """Checks that need no mesh.

        Raises:
            UnknownIntegratorError: For an unsupported ``ode_solver``.
            ConfigurationError: For an unsupported ``order``.
        """
        self.ode_solver = make_ode_solver(self.config.ode_solver)
        if self.config.order not in SUPPORTED_ORDERS:
            raise ConfigurationError(
                f"order {self.config.order} is not supported, expected one of {SUPPORTED_ORDERS}"
            )

    def load_mesh(self, mesh: MeshBase | None = None) -> MeshBase:
        if mesh is not None:
            return mesh
        cfg = self.config
        if cfg.mesh_file is not None:
            return load_mesh(cfg.mesh_file)
        rod = cfg.rod
        return make_rod_mesh(rod.length, rod.num_elements, rod.core_fraction)

    def setup(self, mesh: MeshBase | None = None) -> None:
        self.config = apply_preset(self.config)
        cfg = self.config
        self.validate()

        serial = self.load_mesh(mesh)
        self.bcs = build_bc_map(
            {name: bc.model_dump() for name, bc in cfg.boundary_conditions.items()},
            frequency=cfg.frequency,
        )
        self.markers = self.bcs.resolve(serial)
        self.properties = DomainProperties(cfg.domain_properties)
        bdr_before = serial.bdr_attributes.copy()

        self.pmesh = MeshPreparer(self.comm).prepare(
            serial, cfg.ser_ref_levels, cfg.par_ref_levels, cfg.amr
        )
        if not np.array_equal(self.pmesh.bdr_attributes, bdr_before):
            self.markers = self.bcs.resolve(self.pmesh)
        del serial

        p = cfg.order
        self.layout = FieldLayout.from_spaces(
            l2=FiniteElementSpace(self.pmesh, FiniteElementCollection(SpaceKind.L2, p - 1)),
            hdiv=FiniteElementSpace(self.pmesh, FiniteElementCollection(SpaceKind.HDIV, p - 1)),
            h1=FiniteElementSpace(self.pmesh, FiniteElementCollection(SpaceKind.H1, p)),
            hcurl=FiniteElementSpace(self.pmesh, FiniteElementCollection(SpaceKind.HCURL, p)),
        )
        self.state = StateVector(self.layout.offsets)
        self._log("FE spaces initialised: %d state entries", self.state.size)

        self.operator = CoupledDiffusionOperator(
            self.layout,
            self.markers,
            self.bcs,
            self.properties,
            mu=cfg.mu,
            comm=self.comm,
            static_condensation=cfg.static_condensation,
            rtol=cfg.linear_solver.rtol,
            maxiter=cfg.linear_solver.maxiter,
        )
        self._log("Diffusion operator initialised")
        self.operator.init(self.state)
        self.ode_solver.init(self.operator)

    def run(self, stack: ExitStack) -> StepperSummary:
        cfg = self.config
        out_dir = Path(cfg.output_dir)
        sinks = []

        if cfg.visualization:
            glvis = stack.enter_context(
                GLVisSession(self.layout, self.state, self.comm, cfg.vis_host, cfg.vis_port)
            )
            glvis.open()
            sinks.append(glvis)

        if cfg.visit:
            dc = stack.enter_context(
                FieldDataCollection(cfg.basename, out_dir, self.pmesh, self.state, self.comm)
            )
            try:
                dc.save(cycle=0, time=0.0)
            except OSError as exc:
                logger.warning("Initial data collection save failed, skipping: %s", exc)
            sinks.append(dc)

        dumper = FieldDumper(cfg.basename, out_dir, self.layout, self.comm) if cfg.gfprint else None

        stepper = TimeStepper(
            self.operator,
            self.ode_solver,
            self.comm,
            t_final=cfg.t_final,
            dt=cfg.dt,
            vis_steps=cfg.vis_steps,
            diag_steps=cfg.diag_steps,
            sinks=sinks,
            debug=cfg.debug,
            field_dump=dumper,
            basename=out_dir / cfg.basename,
        )
        self.stepper = stepper
        self.summary = stepper.run(self.state)
        self._log("Solved")
        return self.summary


def joule_solve(
    config: JouleConfig,
    comm: Communicator | None = None,
    mesh: MeshBase | None = None,
) -> int:
    """Run a full simulation.

    Args:
        config: Run configuration.
        comm: Communicator (serial by default).
        mesh: Serial mesh to use instead of ``config.mesh_file``.

    Returns:
        0 on success, or the exit code of the configuration error.

    Raises:
        SolverConvergenceError: If a linear solve fails; resources are
            released first.
    """
    run = JouleRun(config, comm)
    with ExitStack() as stack:
        try:
            run.setup(mesh)
        except ConfigurationError as exc:
            if run.comm.is_root:
                logger.error("%s", exc)
            return exc.exit_code
        run.run(stack)
    return 0
