"""Lowest-order matrices of the 1D coupled diffusion system.

With element dofs (L2, H(curl)) numbered by local element and vertex dofs
(H1, H(div)) numbered by :class:`~joule.fem.spaces.FiniteElementSpace`,
everything is built from three pieces:

- the element-vertex difference matrix ``C`` (``C[e, v0] = -1``,
  ``C[e, v1] = +1``), which is the 1D gradient, curl and divergence
  up to element lengths
- diagonal element matrices ``diag(a_e h_e)`` for piecewise-constant ``a``
- lumped vertex masses ``sum_{e ni v} a_e h_e / 2``
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp
from numba import njit


# ============================================================
# Numba-accelerated kernels
# ============================================================


@njit(cache=True)
def lumped_vertex_mass(
    element_dofs: np.ndarray,
    lengths: np.ndarray,
    coeff: np.ndarray,
    num_dofs: int,
) -> np.ndarray:
    """Row-sum lumped P1 mass ``sum_e coeff_e h_e / 2`` at every vertex dof.

    Args:
        element_dofs: Vertex dofs of each element, shape (n, 2).
        lengths: Element lengths, shape (n,).
        coeff: Piecewise-constant coefficient, shape (n,).
        num_dofs: Number of vertex dofs.

    Returns:
        Diagonal of the lumped mass matrix, shape (num_dofs,).
    """
    m = np.zeros(num_dofs)
    for e in range(element_dofs.shape[0]):
        half = 0.5 * coeff[e] * lengths[e]
        m[element_dofs[e, 0]] += half
        m[element_dofs[e, 1]] += half
    return m


@njit(cache=True)
def boundary_normals(element_dofs: np.ndarray, num_dofs: int) -> np.ndarray:
    """Outward 1D normal (-1 left end, +1 right end, 0 interior) per vertex dof."""
    left = np.zeros(num_dofs, dtype=np.int64)
    right = np.zeros(num_dofs, dtype=np.int64)
    for e in range(element_dofs.shape[0]):
        left[element_dofs[e, 0]] += 1
        right[element_dofs[e, 1]] += 1
    normals = np.zeros(num_dofs)
    for v in range(num_dofs):
        if left[v] > 0 and right[v] == 0:
            normals[v] = -1.0
        elif right[v] > 0 and left[v] == 0:
            normals[v] = 1.0
    return normals


# ============================================================
# Sparse building blocks
# ============================================================


def difference_matrix(element_dofs: np.ndarray, num_dofs: int) -> sp.csr_matrix:
    """Element-by-vertex difference matrix ``C``, shape (n, num_dofs)."""
    n = element_dofs.shape[0]
    rows = np.repeat(np.arange(n), 2)
    cols = element_dofs.reshape(-1)
    vals = np.tile([-1.0, 1.0], n)
    return sp.csr_matrix((vals, (rows, cols)), shape=(n, num_dofs))


def weighted_laplacian(C: sp.csr_matrix, weights: np.ndarray) -> sp.csr_matrix:
    """``C^T diag(weights) C``: P1 stiffness when ``weights = a_e / h_e``."""
    return (C.T @ sp.diags(weights) @ C).tocsr()


def eliminate_dofs(A: sp.spmatrix, b: np.ndarray, dofs: np.ndarray, values: np.ndarray | None = None):
    """Impose ``x[dofs] = values`` by symmetric row and column elimination.

    Args:
        A: Square system matrix.
        b: Right-hand side.
        dofs: Constrained dofs.
        values: Prescribed values (zero when omitted).

    Returns:
        ``(A, b)`` copies with the constraints applied; ``A`` stays
        symmetric when it was.
    """
    dofs = np.asarray(dofs, dtype=np.int64)
    b = np.array(b, dtype=np.float64)
    if dofs.size == 0:
        return sp.csr_matrix(A), b
    x_d = np.zeros(A.shape[0])
    if values is not None:
        x_d[dofs] = values
    b -= A @ x_d

    keep = np.ones(A.shape[0])
    keep[dofs] = 0.0
    mask = sp.diags(keep)
    pinned = np.zeros(A.shape[0])
    pinned[dofs] = 1.0
    A = (mask @ A @ mask + sp.diags(pinned)).tocsr()
    b[dofs] = x_d[dofs]
    return A, b


def jacobi(A: sp.spmatrix) -> sp.dia_matrix:
    """Inverse-diagonal preconditioner (unit where the diagonal vanishes)."""
    d = A.diagonal()
    d = np.where(d != 0.0, d, 1.0)
    return sp.diags(1.0 / d)
