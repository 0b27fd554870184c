"""One-dimensional element meshes for rod-type conductors.

A :class:`LineMesh` is a set of two-vertex elements along the x axis. Each
element carries a material attribute and each end vertex may carry a boundary
attribute. Refinement bisects elements; children inherit the parent's
attribute (and, on a distributed mesh, its owning rank).

:class:`ParLineMesh` is the distributed counterpart. The element arrays are
replicated on every rank (a rod mesh is small) and an ``owner`` array records
which rank each element belongs to. All rank-local queries (``num_elements``,
``attributes``, ``local_elements``) go through that ownership map.
"""

from __future__ import annotations

import logging

import numpy as np
from numba import njit

from joule.core.bases import Communicator, MeshBase, ParMeshBase

logger = logging.getLogger(__name__)


# ============================================================
# Numba-accelerated kernels
# ============================================================


@njit(cache=True)
def bisect_elements(
    vertices: np.ndarray,
    elements: np.ndarray,
    attributes: np.ndarray,
    marked: np.ndarray,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Bisect the marked elements of a line mesh.

    Children replace their parent in place (left child first) so element
    order stays spatially coherent. New midpoint vertices are appended.

    Args:
        vertices: Vertex coordinates, shape (nv,).
        elements: Element vertex indices, shape (ne, 2).
        attributes: Element attributes, shape (ne,).
        marked: Boolean mask of elements to bisect, shape (ne,).

    Returns:
        ``(vertices, elements, attributes, parents)`` of the refined mesh,
        where ``parents[i]`` is the index of element ``i``'s parent in the
        input mesh.
    """
    ne = elements.shape[0]
    nv = vertices.shape[0]
    n_marked = 0
    for e in range(ne):
        if marked[e]:
            n_marked += 1

    new_vertices = np.empty(nv + n_marked)
    new_vertices[:nv] = vertices
    new_elements = np.empty((ne + n_marked, 2), dtype=np.int64)
    new_attributes = np.empty(ne + n_marked, dtype=np.int64)
    parents = np.empty(ne + n_marked, dtype=np.int64)

    k = 0
    v = nv
    for e in range(ne):
        a = elements[e, 0]
        b = elements[e, 1]
        if marked[e]:
            new_vertices[v] = 0.5 * (vertices[a] + vertices[b])
            new_elements[k, 0] = a
            new_elements[k, 1] = v
            new_elements[k + 1, 0] = v
            new_elements[k + 1, 1] = b
            new_attributes[k] = attributes[e]
            new_attributes[k + 1] = attributes[e]
            parents[k] = e
            parents[k + 1] = e
            k += 2
            v += 1
        else:
            new_elements[k, 0] = a
            new_elements[k, 1] = b
            new_attributes[k] = attributes[e]
            parents[k] = e
            k += 1

    return new_vertices, new_elements, new_attributes, parents


def block_partition(centers: np.ndarray, size: int) -> np.ndarray:
    """Assign elements to ranks in contiguous blocks along the rod.

    Elements are ordered by centroid and split into ``size`` chunks whose
    lengths differ by at most one.

    Returns:
        Owner rank per element, shape (ne,).
    """
    ne = centers.shape[0]
    order = np.argsort(centers, kind="stable")
    owner = np.empty(ne, dtype=np.int64)
    bounds = np.linspace(0, ne, size + 1).round().astype(np.int64)
    for rank in range(size):
        owner[order[bounds[rank] : bounds[rank + 1]]] = rank
    return owner


# ============================================================
# Serial mesh
# ============================================================


class LineMesh(MeshBase):
    """Serial 1D mesh.

    Args:
        vertices: Vertex x coordinates, shape (nv,).
        elements: Vertex index pairs, shape (ne, 2).
        attributes: Element (material) attributes, shape (ne,).
        bdr_vertices: Boundary vertex indices.
        bdr_attributes: Attribute of each boundary vertex.
    """

    def __init__(
        self,
        vertices: np.ndarray,
        elements: np.ndarray,
        attributes: np.ndarray,
        bdr_vertices: np.ndarray,
        bdr_attributes: np.ndarray,
    ) -> None:
        self.vertices = np.asarray(vertices, dtype=np.float64)
        self.elements = np.asarray(elements, dtype=np.int64).reshape(-1, 2)
        self._attributes = np.asarray(attributes, dtype=np.int64)
        self.bdr_vertices = np.asarray(bdr_vertices, dtype=np.int64)
        self.bdr_vertex_attributes = np.asarray(bdr_attributes, dtype=np.int64)
        self.parents = np.arange(self.elements.shape[0], dtype=np.int64)
        self._nc = False

        if self._attributes.shape[0] != self.elements.shape[0]:
            raise ValueError("one attribute per element is required")
        if self.bdr_vertices.shape != self.bdr_vertex_attributes.shape:
            raise ValueError("one attribute per boundary vertex is required")

    # --- MeshBase ---

    @property
    def dimension(self) -> int:
        return 1

    @property
    def num_elements(self) -> int:
        return int(self.elements.shape[0])

    @property
    def num_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def attributes(self) -> np.ndarray:
        return self._attributes

    @property
    def global_attributes(self) -> np.ndarray:
        """Attributes of every element, regardless of ownership."""
        return self._attributes

    @property
    def bdr_attributes(self) -> np.ndarray:
        return np.unique(self.bdr_vertex_attributes)

    @property
    def nonconforming(self) -> bool:
        return self._nc

    def ensure_nc_mesh(self) -> None:
        self._nc = True

    def uniform_refinement(self) -> None:
        self._refine(np.ones(self.elements.shape[0], dtype=np.bool_))

    def general_refinement(self, elements: np.ndarray) -> None:
        marked = np.zeros(self.elements.shape[0], dtype=np.bool_)
        marked[np.asarray(elements, dtype=np.int64)] = True
        self._refine(marked)

    def partition(self, comm: Communicator) -> ParLineMesh:
        return ParLineMesh(comm, self)

    # --- geometry ---

    def element_lengths(self) -> np.ndarray:
        x = self.vertices[self.elements]
        return np.abs(x[:, 1] - x[:, 0])

    def element_centers(self) -> np.ndarray:
        return self.vertices[self.elements].mean(axis=1)

    def _refine(self, marked: np.ndarray) -> None:
        vertices, elements, attributes, parents = bisect_elements(
            self.vertices, self.elements, self._attributes, marked
        )
        self.vertices = vertices
        self.elements = elements
        self._attributes = attributes
        self.parents = parents
        logger.debug(
            "Refined %d of %d elements -> %d elements",
            int(np.sum(marked)), marked.shape[0], elements.shape[0],
        )


# ============================================================
# Distributed mesh
# ============================================================


class ParLineMesh(LineMesh, ParMeshBase):
    """Distributed 1D mesh built by partitioning a :class:`LineMesh`.

    Args:
        comm: Communicator the mesh is distributed over.
        mesh: Serial mesh to partition. It is copied, not referenced.
    """

    def __init__(self, comm: Communicator, mesh: LineMesh) -> None:
        super().__init__(
            mesh.vertices.copy(),
            mesh.elements.copy(),
            mesh.attributes.copy(),
            mesh.bdr_vertices.copy(),
            mesh.bdr_vertex_attributes.copy(),
        )
        self._comm = comm
        self._nc = mesh.nonconforming
        self.owner = block_partition(self.element_centers(), comm.size)
        self.rebalance_count = 0
        comm.barrier()

    def partition(self, comm: Communicator) -> ParMeshBase:
        return ParMeshBase.partition(self, comm)

    @property
    def comm(self) -> Communicator:
        return self._comm

    @property
    def local_elements(self) -> np.ndarray:
        """Global indices of the elements owned by this rank."""
        return np.flatnonzero(self.owner == self._comm.rank)

    @property
    def num_elements(self) -> int:
        return int(np.count_nonzero(self.owner == self._comm.rank))

    @property
    def global_num_elements(self) -> int:
        return int(self.elements.shape[0])

    @property
    def attributes(self) -> np.ndarray:
        return self._attributes[self.local_elements]

    def local_vertices(self) -> np.ndarray:
        """Sorted indices of the vertices touched by local elements."""
        return np.unique(self.elements[self.local_elements])

    def general_refinement(self, elements: np.ndarray) -> None:
        """Refine local elements; marks are exchanged so replicas stay in sync."""
        local = self.local_elements[np.asarray(elements, dtype=np.int64)]
        marked = np.zeros(self.global_num_elements, dtype=np.bool_)
        for part in self._comm.allgather(local):
            marked[np.asarray(part, dtype=np.int64)] = True
        self._refine(marked)

    def _refine(self, marked: np.ndarray) -> None:
        owner = self.owner
        super()._refine(marked)
        self.owner = owner[self.parents]

    def finalize(self, refine: bool = False) -> None:
        """Orient every element left-to-right.

        Elements read from a file may list their vertices in either order;
        assembly assumes ``x[v0] < x[v1]``.
        """
        x = self.vertices[self.elements]
        flipped = x[:, 0] > x[:, 1]
        if np.any(flipped):
            self.elements[flipped] = self.elements[flipped][:, ::-1]
        logger.debug("Finalized mesh: %d elements reoriented", int(np.sum(flipped)))

    def rebalance(self) -> None:
        before = np.bincount(self.owner, minlength=self._comm.size)
        self.owner = block_partition(self.element_centers(), self._comm.size)
        after = np.bincount(self.owner, minlength=self._comm.size)
        self.rebalance_count += 1
        self._comm.barrier()
        logger.debug("Rebalanced elements per rank: %s -> %s", before.tolist(), after.tolist())
