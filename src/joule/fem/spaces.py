"""Finite element collections and spaces on line meshes.

In one dimension the four spaces of the de Rham sequence reduce to two
shapes: vertex-based continuous spaces (H1 and H(div)) and element-based
discontinuous spaces (L2 and H(curl)). For ``n`` local elements touching
``nv`` local vertices:

============  ===================
space         local vector size
============  ===================
H1(q)         ``nv + (q - 1) n``
H(div)(q)     ``nv + q n``
L2(q)         ``(q + 1) n``
H(curl)(q)    ``q n``
============  ===================

Only the lowest-order member of each family is assembled by the reference
discretization; higher orders are still sized consistently.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np

from joule.core.bases import FiniteElementSpaceBase
from joule.mesh.line_mesh import ParLineMesh


class SpaceKind(str, Enum):
    L2 = "L2"
    H1 = "H1"
    HCURL = "ND"
    HDIV = "RT"


@dataclass(frozen=True)
class FiniteElementCollection:
    """Family and polynomial order of a discrete space."""

    kind: SpaceKind
    order: int
    dim: int = 1

    def __post_init__(self) -> None:
        min_order = 1 if self.kind in (SpaceKind.H1, SpaceKind.HCURL) else 0
        if self.order < min_order:
            raise ValueError(f"{self.kind.value} order must be >= {min_order}, got {self.order}")

    @property
    def name(self) -> str:
        return f"{self.kind.value}_{self.dim}D_P{self.order}"

    @property
    def vertex_based(self) -> bool:
        return self.kind in (SpaceKind.H1, SpaceKind.HDIV)

    @property
    def lowest_order(self) -> bool:
        if self.kind in (SpaceKind.H1, SpaceKind.HCURL):
            return self.order == 1
        return self.order == 0


class FiniteElementSpace(FiniteElementSpaceBase):
    """Rank-local discrete space on a :class:`ParLineMesh`.

    Degrees of freedom are numbered vertex dofs first (in increasing global
    vertex index), then element dofs (in local element order).
    """

    def __init__(self, mesh: ParLineMesh, fec: FiniteElementCollection) -> None:
        self._mesh = mesh
        self.fec = fec
        self.elements = mesh.local_elements
        n = self.elements.size

        if fec.vertex_based:
            self.vertices = mesh.local_vertices()
            per_element = fec.order - 1 if fec.kind is SpaceKind.H1 else fec.order
        else:
            self.vertices = np.empty(0, dtype=np.int64)
            per_element = fec.order + 1 if fec.kind is SpaceKind.L2 else fec.order
        self.num_vertex_dofs = int(self.vertices.size)
        self.dofs_per_element = per_element
        self._vsize = self.num_vertex_dofs + per_element * n

        self._vertex_dof = np.full(mesh.num_vertices, -1, dtype=np.int64)
        self._vertex_dof[self.vertices] = np.arange(self.num_vertex_dofs)

    @property
    def vsize(self) -> int:
        return self._vsize

    @property
    def mesh(self) -> ParLineMesh:
        return self._mesh

    def vertex_dof(self, vertices: np.ndarray) -> np.ndarray:
        """Local dof of each global vertex (-1 where not local)."""
        return self._vertex_dof[np.asarray(vertices, dtype=np.int64)]

    def element_vertex_dofs(self) -> np.ndarray:
        """Local vertex dofs of each local element, shape (n, 2)."""
        return self.vertex_dof(self._mesh.elements[self.elements])

    def dof_coordinates(self) -> np.ndarray:
        """x coordinate of every lowest-order dof (vertices, then element centers)."""
        if not self.fec.lowest_order:
            raise NotImplementedError("dof coordinates are defined for lowest order only")
        if self.fec.vertex_based:
            return self._mesh.vertices[self.vertices]
        return self._mesh.element_centers()[self.elements]

    def essential_dofs(self, markers: np.ndarray) -> np.ndarray:
        """Local dofs on boundary vertices whose attribute is marked.

        ``markers[i]`` refers to boundary attribute ``i + 1``. Element-based
        spaces have no boundary dofs.
        """
        if not self.fec.vertex_based:
            return np.empty(0, dtype=np.int64)
        markers = np.asarray(markers)
        bdr_attr = self._mesh.bdr_vertex_attributes
        valid = (bdr_attr >= 1) & (bdr_attr <= markers.size)
        marked = np.zeros(bdr_attr.size, dtype=bool)
        marked[valid] = markers[bdr_attr[valid] - 1] != 0
        dofs = self.vertex_dof(self._mesh.bdr_vertices[marked])
        return np.unique(dofs[dofs >= 0])

    def boundary_dofs(self) -> np.ndarray:
        """Local dofs on every boundary vertex."""
        if not self.fec.vertex_based:
            return np.empty(0, dtype=np.int64)
        dofs = self.vertex_dof(self._mesh.bdr_vertices)
        return np.unique(dofs[dofs >= 0])
