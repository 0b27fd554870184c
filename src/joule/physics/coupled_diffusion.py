"""Coupled magnetic diffusion, Joule heating and thermal diffusion operator.

Semi-discrete system::

    Div(sigma Grad Phi) = 0
    sigma E = Curl(B) / mu - sigma Grad Phi
    dB/dt = -Curl(E)
    F = -k Grad T
    c dT/dt = -Div(F) + sigma E.E

Only ``B`` and ``T`` are evolved by the ODE integrator. ``Phi``, ``E``,
``F`` and ``w = sigma E.E`` are algebraic: they are recomputed at every
implicit stage and written back into the state by :meth:`update_algebraic`.

Lowest-order 1D reduction (element dofs ``e``, vertex dofs ``v``)::

    K_sigma Phi = 0                       (Dirichlet on electric_potential)
    sigma_e h_e E_e = (C B)_e / mu - sigma_e (C Phi)_e
    M_B dB/dt = -C^T E + b_E(t)           (b_E on tangential_dEdt vertices)
    M_kinv F = C^T T                      (F = 0 on thermal_flux vertices)
    M_c dT/dt = -C F + M w
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path

import numpy as np
import scipy.io
import scipy.sparse as sp
from scipy.sparse.linalg import cg, spsolve

from joule.core.bases import Communicator, TimeDependentOperator
from joule.exceptions import ConfigurationError, SolverConvergenceError
from joule.fem.boundary import (
    ELECTRIC_POTENTIAL,
    TANGENTIAL_DEDT,
    BCMap,
    EssentialMarkers,
)
from joule.fem.coefficients import (
    ELECTRICAL_CONDUCTIVITY,
    HEAT_CAPACITY,
    INVERSE_HEAT_CAPACITY,
    INVERSE_THERMAL_CONDUCTIVITY,
    DomainProperties,
)
from joule.layout import FIELD_NAMES, FieldLayout, StateVector
from joule.physics.assembly import (
    boundary_normals,
    difference_matrix,
    eliminate_dofs,
    jacobi,
    lumped_vertex_mass,
    weighted_laplacian,
)

logger = logging.getLogger(__name__)

ALGEBRAIC_FIELDS = ("F", "P", "E", "w")


class CoupledDiffusionOperator(TimeDependentOperator):
    """Implicit-solve operator over the six-field state vector.

    Args:
        layout: Spaces and block offsets of the state.
        markers: Resolved essential-boundary markers.
        bcs: Boundary condition descriptors (for ``p_bc`` and ``E_bc`` data).
        properties: Material property maps.
        mu: Magnetic permeability.
        comm: Communicator for the loss reduction.
        static_condensation: Eliminate the temperature rates before the
            thermal solve instead of solving the mixed system.
        rtol: Relative tolerance of the CG solves.
        maxiter: Iteration cap of the CG solves.
    """

    def __init__(
        self,
        layout: FieldLayout,
        markers: EssentialMarkers,
        bcs: BCMap,
        properties: DomainProperties,
        mu: float,
        comm: Communicator,
        static_condensation: bool = False,
        rtol: float = 1e-10,
        maxiter: int = 1000,
    ) -> None:
        super().__init__(layout.offsets.total)
        if comm.size > 1:
            raise ConfigurationError(
                f"the reference discretization solves on one process, got {comm.size} ranks"
            )
        if mu <= 0.0:
            raise ConfigurationError(f"permeability must be positive, got {mu}")
        for space in (layout.l2, layout.hdiv, layout.h1, layout.hcurl):
            if not space.fec.lowest_order:
                raise ConfigurationError(f"only lowest-order spaces are assembled, got {space.fec.name}")

        self.layout = layout
        self.offsets = layout.offsets
        self.markers = markers
        self.mu = mu
        self.comm = comm
        self.static_condensation = static_condensation
        self.rtol = rtol
        self.maxiter = maxiter

        self.p_bc: Callable[[np.ndarray, float], np.ndarray] = bcs.function(ELECTRIC_POTENTIAL)
        self.e_bc: Callable[[np.ndarray, float], np.ndarray] = bcs.function(TANGENTIAL_DEDT)

        mesh = layout.l2.mesh
        attrs = mesh.attributes
        properties.check_attributes(attrs)
        self.h = mesh.element_lengths()[layout.l2.elements]
        self.sigma = properties[ELECTRICAL_CONDUCTIVITY](attrs)
        self.kinv = properties[INVERSE_THERMAL_CONDUCTIVITY](attrs)
        self.cap = properties[HEAT_CAPACITY](attrs)
        self.inv_cap = properties[INVERSE_HEAT_CAPACITY](attrs)
        if np.any(self.sigma <= 0.0):
            raise ConfigurationError("electrical conductivity must be positive on every element")

        self._assemble()

        self._stage_cache: dict[float, sp.csr_matrix] = {}
        self._algebraic: dict[str, np.ndarray] = {
            name: np.zeros(self.offsets.size(name)) for name in ALGEBRAIC_FIELDS
        }
        self._last_rhs: dict[str, np.ndarray] = {}

    # ============================================================
    # Assembly
    # ============================================================

    def _assemble(self) -> None:
        layout = self.layout
        vdofs = layout.h1.element_vertex_dofs()
        nv = layout.h1.vsize
        self.C = difference_matrix(vdofs, nv)

        # Electrostatics
        self.K_sigma = weighted_laplacian(self.C, self.sigma / self.h)
        self.potential_dofs = layout.h1.essential_dofs(self.markers.electric_potential)
        self.potential_x = layout.h1.dof_coordinates()[self.potential_dofs]

        # Magnetic diffusion
        self.m_B = lumped_vertex_mass(vdofs, self.h, np.ones_like(self.h), nv)
        self.curl_curl = weighted_laplacian(self.C, 1.0 / (self.mu * self.sigma * self.h))
        normals = boundary_normals(vdofs, nv)
        e_dofs = layout.hdiv.essential_dofs(self.markers.tangential_dEdt)
        self.e_bc_dofs = e_dofs
        self.e_bc_normals = normals[e_dofs]
        self.e_bc_x = layout.hdiv.dof_coordinates()[e_dofs]
        self.held_B_dofs = np.setdiff1d(layout.hdiv.boundary_dofs(), e_dofs)

        # Thermal diffusion
        self.m_kinv = lumped_vertex_mass(vdofs, self.h, self.kinv, nv)
        self.flux_dofs = layout.hdiv.essential_dofs(self.markers.thermal_flux)
        self.m_c = self.cap * self.h
        self.m_c_inv = self.inv_cap / self.h

        logger.debug(
            "Assembled operator: %d elements, %d vertex dofs, %d potential / %d E / %d flux essential dofs",
            self.h.size, nv, self.potential_dofs.size, e_dofs.size, self.flux_dofs.size,
        )

    # ============================================================
    # Linear solves
    # ============================================================

    def _cg(self, A: sp.spmatrix, b: np.ndarray, system: str) -> np.ndarray:
        x, info = cg(A, b, rtol=self.rtol, atol=0.0, maxiter=self.maxiter, M=jacobi(A))
        if info != 0:
            residual = float(np.linalg.norm(b - A @ x))
            raise SolverConvergenceError(system, info, residual)
        return x

    def solve_potential(self, t: float) -> np.ndarray:
        """Electric potential at time ``t``."""
        n = self.K_sigma.shape[0]
        if self.potential_dofs.size == 0:
            return np.zeros(n)
        values = self.p_bc(self.potential_x, t)
        A, b = eliminate_dofs(self.K_sigma, np.zeros(n), self.potential_dofs, values)
        self._last_rhs["P"] = b
        return self._cg(A, b, "electric_potential")

    def electric_field(self, B: np.ndarray, phi: np.ndarray) -> np.ndarray:
        return (self.C @ B) / (self.mu * self.sigma * self.h) - (self.C @ phi) / self.h

    def thermal_flux(self, T: np.ndarray) -> np.ndarray:
        """Flux balancing the temperature ``T`` (no time derivative)."""
        F = (self.C.T @ T) / np.where(self.m_kinv > 0.0, self.m_kinv, 1.0)
        F[self.flux_dofs] = 0.0
        return F

    def _b_e(self, t: float) -> np.ndarray:
        b = np.zeros(self.m_B.size)
        if self.e_bc_dofs.size:
            b[self.e_bc_dofs] = self.e_bc_normals * self.e_bc(self.e_bc_x, t)
        return b

    def _magnetic_stage_matrix(self, dt: float) -> sp.csr_matrix:
        A = self._stage_cache.get(dt)
        if A is None:
            A = (sp.diags(self.m_B) + dt * self.curl_curl).tocsr()
            A, _ = eliminate_dofs(A, np.zeros(A.shape[0]), self.held_B_dofs)
            self._stage_cache[dt] = A
        return A

    def _solve_magnetic(self, dt: float, B: np.ndarray, phi: np.ndarray, t: float) -> np.ndarray:
        rhs = -(self.curl_curl @ B) + self.C.T @ ((self.C @ phi) / self.h) + self._b_e(t)
        rhs[self.held_B_dofs] = 0.0
        self._last_rhs["B"] = rhs
        return self._cg(self._magnetic_stage_matrix(dt), rhs, "magnetic_flux")

    def _solve_thermal(self, dt: float, T: np.ndarray, w: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Flux and temperature rate of the stage ``T + dt k_T``."""
        heat = self.h * w
        if self.static_condensation:
            A = sp.diags(self.m_kinv) + dt * weighted_laplacian(self.C, self.m_c_inv)
            b = self.C.T @ T + dt * (self.C.T @ (self.m_c_inv * heat))
            A, b = eliminate_dofs(A, b, self.flux_dofs)
            self._last_rhs["F"] = b
            F = self._cg(A, b, "thermal_flux")
        else:
            nf = self.m_kinv.size
            A = sp.bmat(
                [
                    [sp.diags(self.m_kinv), -dt * self.C.T],
                    [self.C, sp.diags(self.m_c)],
                ],
                format="csr",
            )
            b = np.concatenate([self.C.T @ T, heat])
            # F = 0 rows on thermal_flux vertices
            keep = np.ones(A.shape[0])
            keep[self.flux_dofs] = 0.0
            A = (sp.diags(keep) @ A + sp.diags(1.0 - keep)).tocsr()
            b[self.flux_dofs] = 0.0
            self._last_rhs["F"] = b
            sol = spsolve(A, b)
            if not np.all(np.isfinite(sol)):
                raise SolverConvergenceError("thermal_mixed", -1)
            F = sol[:nf]
        F[self.flux_dofs] = 0.0
        k_T = self.m_c_inv * (heat - self.C @ F)
        return F, k_T

    # ============================================================
    # TimeDependentOperator contract
    # ============================================================

    def init(
        self,
        state: StateVector,
        initial_conditions: Mapping[str, Callable[[np.ndarray], np.ndarray]] | None = None,
    ) -> None:
        """Zero the state, apply initial conditions and compute algebraic fields at t = 0."""
        state.buffer[:] = 0.0
        for name, func in (initial_conditions or {}).items():
            if name not in FIELD_NAMES:
                raise ConfigurationError(f"unknown field '{name}' in initial conditions")
            x = self.layout.space(name).dof_coordinates()
            state.view(name).data[:] = func(x)
        self.set_time(0.0)
        self.update_algebraic(state.buffer)

    def implicit_solve(self, dt: float, x: np.ndarray) -> np.ndarray:
        """Rates ``k`` with the algebraic relations holding at ``x + dt k``.

        Only the ``B`` and ``T`` segments of ``k`` are nonzero.
        """
        o = self.offsets
        t = self.time
        B = x[o.slice("B")]
        T = x[o.slice("T")]

        phi = self.solve_potential(t)
        k_B = self._solve_magnetic(dt, B, phi, t)
        E = self.electric_field(B + dt * k_B, phi)
        w = self.sigma * E * E
        F, k_T = self._solve_thermal(dt, T, w)

        self._algebraic = {"F": F, "P": phi, "E": E, "w": w}
        k = np.zeros_like(x)
        k[o.slice("B")] = k_B
        k[o.slice("T")] = k_T
        return k

    def update_algebraic(self, x: np.ndarray) -> None:
        """Write ``Phi``, ``E``, ``F`` and ``w`` consistent with ``x`` at the current time."""
        o = self.offsets
        phi = self.solve_potential(self.time)
        E = self.electric_field(x[o.slice("B")], phi)
        values = {
            "P": phi,
            "E": E,
            "w": self.sigma * E * E,
            "F": self.thermal_flux(x[o.slice("T")]),
        }
        for name, v in values.items():
            x[o.slice(name)] = v
        self._algebraic = values

    def electric_losses(self, E: np.ndarray | None = None) -> float:
        """Joule dissipation ``sum_e sigma_e E_e^2 h_e``, summed over ranks."""
        if E is None:
            E = self._algebraic["E"]
        local = float(np.sum(self.sigma * E * E * self.h))
        return float(self.comm.allreduce(local, "sum"))

    def debug_dump(self, basename: str | Path, t: float) -> list[Path]:
        """Write the assembled matrices and the last stage right-hand sides.

        Returns:
            Paths written.
        """
        prefix = f"{basename}_{t:g}"
        Path(prefix).parent.mkdir(parents=True, exist_ok=True)
        written = []
        matrices = {
            "C": self.C,
            "K_sigma": self.K_sigma,
            "curl_curl": self.curl_curl,
            "M_B": sp.diags(self.m_B),
            "M_kinv": sp.diags(self.m_kinv),
        }
        for name, mat in matrices.items():
            path = Path(f"{prefix}_{name}.mtx")
            scipy.io.mmwrite(str(path), sp.coo_matrix(mat))
            written.append(path)
        for name, vec in {**self._algebraic, **{f"rhs_{k}": v for k, v in self._last_rhs.items()}}.items():
            path = Path(f"{prefix}_{name}.txt")
            np.savetxt(path, vec, fmt="%.8e")
            written.append(path)
        logger.debug("Debug dump at t=%g: %d files", t, len(written))
        return written

    @property
    def algebraic(self) -> dict[str, np.ndarray]:
        """Algebraic fields of the last stage solve or update."""
        return dict(self._algebraic)
