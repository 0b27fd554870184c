"""Boundary condition descriptors and essential-dof marker resolution.

Boundary conditions are registered by field name in a :class:`BCMap`:

- ``tangential_dEdt``: tangential electric field data ``E_bc(x, t)``
- ``thermal_flux``: attributes where the normal heat flux is held at zero
- ``electric_potential``: Dirichlet data for the potential ``p_bc(x, t)``

A marker array has one entry per boundary attribute up to the largest one
present in the mesh; ``markers[i]`` is 1 iff attribute ``i + 1`` is listed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field

import numpy as np

from joule.core.bases import MeshBase
from joule.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

TANGENTIAL_DEDT = "tangential_dEdt"
THERMAL_FLUX = "thermal_flux"
ELECTRIC_POTENTIAL = "electric_potential"

BC_NAMES = (TANGENTIAL_DEDT, THERMAL_FLUX, ELECTRIC_POTENTIAL)

SpaceTimeFunction = Callable[[np.ndarray, float], np.ndarray]


def zero_function(x: np.ndarray, t: float) -> np.ndarray:
    return np.zeros_like(np.asarray(x, dtype=np.float64))


def cosine_potential(voltage: float, frequency: float) -> SpaceTimeFunction:
    """Alternating potential ``+V cos(2 pi f t)`` for ``x < 0``, ``-V cos(2 pi f t)`` otherwise."""

    def p_bc(x: np.ndarray, t: float) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        sign = np.where(x < 0.0, 1.0, -1.0)
        return sign * voltage * np.cos(2.0 * np.pi * frequency * t)

    return p_bc


@dataclass(frozen=True)
class BoundaryCondition:
    """Attributes of the boundary where a condition applies."""

    name: str
    attributes: tuple[int, ...] = ()

    def markers(self, mesh: MeshBase) -> np.ndarray:
        """Marker array sized to the mesh's largest boundary attribute."""
        bdr = mesh.bdr_attributes
        size = int(bdr.max()) if bdr.size else 0
        markers = np.zeros(size, dtype=np.int64)
        for attr in self.attributes:
            if 1 <= attr <= size:
                markers[attr - 1] = 1
            else:
                logger.warning(
                    "Boundary attribute %d for '%s' is not present in the mesh (max %d)",
                    attr, self.name, size,
                )
        return markers


@dataclass(frozen=True)
class FunctionDirichletBC(BoundaryCondition):
    """Essential condition with space-time data ``g(x, t)``."""

    function: SpaceTimeFunction = field(default=zero_function)

    def evaluate(self, x: np.ndarray, t: float) -> np.ndarray:
        return np.asarray(self.function(x, t), dtype=np.float64)


class BCMap(Mapping[str, BoundaryCondition]):
    """Boundary conditions keyed by field name."""

    def __init__(self, conditions: Mapping[str, BoundaryCondition] | None = None) -> None:
        self._conditions: dict[str, BoundaryCondition] = {}
        for name, bc in (conditions or {}).items():
            self.add(name, bc)

    def add(self, name: str, bc: BoundaryCondition) -> None:
        if name not in BC_NAMES:
            raise ConfigurationError(f"unknown boundary condition '{name}', expected one of {BC_NAMES}")
        self._conditions[name] = bc

    def __getitem__(self, name: str) -> BoundaryCondition:
        return self._conditions[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._conditions)

    def __len__(self) -> int:
        return len(self._conditions)

    def get_markers(self, name: str, mesh: MeshBase) -> np.ndarray:
        """Markers for ``name``; all zero when no condition is registered."""
        if name in self._conditions:
            return self._conditions[name].markers(mesh)
        return BoundaryCondition(name).markers(mesh)

    def resolve(self, mesh: MeshBase) -> EssentialMarkers:
        return EssentialMarkers(
            tangential_dEdt=self.get_markers(TANGENTIAL_DEDT, mesh),
            thermal_flux=self.get_markers(THERMAL_FLUX, mesh),
            electric_potential=self.get_markers(ELECTRIC_POTENTIAL, mesh),
        )

    def function(self, name: str) -> SpaceTimeFunction:
        bc = self._conditions.get(name)
        if isinstance(bc, FunctionDirichletBC):
            return bc.evaluate
        return zero_function


@dataclass
class EssentialMarkers:
    """Resolved marker arrays for the three boundary-condition fields."""

    tangential_dEdt: np.ndarray
    thermal_flux: np.ndarray
    electric_potential: np.ndarray

    def as_dict(self) -> dict[str, np.ndarray]:
        return {
            TANGENTIAL_DEDT: self.tangential_dEdt,
            THERMAL_FLUX: self.thermal_flux,
            ELECTRIC_POTENTIAL: self.electric_potential,
        }


def build_bc_map(
    boundary_conditions: Mapping[str, Mapping[str, object]],
    frequency: float,
) -> BCMap:
    """Build the default descriptors from a ``{name: {attributes, voltage}}`` table.

    ``electric_potential`` gets the alternating cosine potential at the
    given ``frequency``; ``tangential_dEdt`` gets zero data.
    """
    bcs = BCMap()
    for name, entry in boundary_conditions.items():
        attrs = tuple(int(a) for a in entry.get("attributes", ()))
        if name == ELECTRIC_POTENTIAL:
            voltage = float(entry.get("voltage", 1.0))
            bcs.add(name, FunctionDirichletBC(name, attrs, cosine_potential(voltage, frequency)))
        elif name == TANGENTIAL_DEDT:
            bcs.add(name, FunctionDirichletBC(name, attrs, zero_function))
        else:
            bcs.add(name, BoundaryCondition(name, attrs))
    return bcs
