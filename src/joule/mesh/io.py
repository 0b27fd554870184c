"""Mesh file I/O and built-in rod geometries.

Mesh files are JSON documents::

    {
      "dimension": 1,
      "vertices": [0.0, 0.25, 0.5, ...],
      "elements": [[0, 1], [1, 2], ...],
      "attributes": [2, 1, ...],
      "boundary": [{"vertex": 0, "attribute": 1}, ...]
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import IO, Any

import numpy as np

from joule.exceptions import MeshFormatError
from joule.mesh.line_mesh import LineMesh

logger = logging.getLogger(__name__)

# MFEM geometry codes
POINT = 0
SEGMENT = 1


def mesh_from_dict(data: dict[str, Any]) -> LineMesh:
    """Build a :class:`LineMesh` from its JSON document.

    Raises:
        MeshFormatError: If a key is missing or the arrays are inconsistent.
    """
    try:
        dim = int(data.get("dimension", 1))
        vertices = np.asarray(data["vertices"], dtype=np.float64)
        elements = np.asarray(data["elements"], dtype=np.int64)
        attributes = np.asarray(data["attributes"], dtype=np.int64)
        boundary = data.get("boundary", [])
        bdr_vertices = np.asarray([int(b["vertex"]) for b in boundary], dtype=np.int64)
        bdr_attributes = np.asarray([int(b["attribute"]) for b in boundary], dtype=np.int64)
    except (KeyError, TypeError, ValueError) as exc:
        raise MeshFormatError(f"malformed mesh description: {exc}") from exc

    if dim != 1:
        raise MeshFormatError(f"only 1D line meshes are supported, got dimension {dim}")
    if vertices.ndim != 1 or vertices.size < 2:
        raise MeshFormatError("'vertices' must be a list of at least two coordinates")
    if elements.ndim != 2 or elements.shape[1] != 2 or elements.shape[0] == 0:
        raise MeshFormatError("'elements' must be a non-empty list of vertex pairs")
    if attributes.shape != (elements.shape[0],):
        raise MeshFormatError(
            f"expected {elements.shape[0]} element attributes, got {attributes.size}"
        )
    if np.any(attributes < 1) or np.any(bdr_attributes < 1):
        raise MeshFormatError("attributes must be positive integers")
    nv = vertices.shape[0]
    if np.any(elements < 0) or np.any(elements >= nv):
        raise MeshFormatError("element vertex index out of range")
    if np.any(bdr_vertices < 0) or np.any(bdr_vertices >= nv):
        raise MeshFormatError("boundary vertex index out of range")
    if np.any(elements[:, 0] == elements[:, 1]):
        raise MeshFormatError("degenerate element (repeated vertex)")
    if np.any(vertices[elements[:, 0]] == vertices[elements[:, 1]]):
        raise MeshFormatError("degenerate element (zero length)")

    return LineMesh(vertices, elements, attributes, bdr_vertices, bdr_attributes)


def mesh_to_dict(mesh: LineMesh) -> dict[str, Any]:
    return {
        "dimension": 1,
        "vertices": mesh.vertices.tolist(),
        "elements": mesh.elements.tolist(),
        "attributes": mesh.global_attributes.tolist(),
        "boundary": [
            {"vertex": int(v), "attribute": int(a)}
            for v, a in zip(mesh.bdr_vertices, mesh.bdr_vertex_attributes)
        ],
    }


def load_mesh(path: str | Path) -> LineMesh:
    """Read a mesh file.

    Raises:
        MeshFormatError: If the file cannot be read or parsed.
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = json.load(f)
    except OSError as exc:
        raise MeshFormatError(f"cannot read mesh file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise MeshFormatError(f"mesh file {path} is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise MeshFormatError(f"mesh file {path} must contain a JSON object")

    mesh = mesh_from_dict(data)
    logger.info(
        "Loaded mesh %s: %d elements, %d vertices, boundary attributes %s",
        path, mesh.num_elements, mesh.num_vertices, mesh.bdr_attributes.tolist(),
    )
    return mesh


def save_mesh(mesh: LineMesh, path: str | Path) -> None:
    Path(path).write_text(json.dumps(mesh_to_dict(mesh), indent=2))


def print_mesh(mesh: LineMesh, stream: IO[str]) -> None:
    """Write the mesh in MFEM v1.0 text format (segments, point boundaries)."""
    stream.write("MFEM mesh v1.0\n\ndimension\n1\n\n")
    stream.write(f"elements\n{mesh.elements.shape[0]}\n")
    for attr, (a, b) in zip(mesh.global_attributes, mesh.elements):
        stream.write(f"{attr} {SEGMENT} {a} {b}\n")
    stream.write(f"\nboundary\n{mesh.bdr_vertices.shape[0]}\n")
    for v, attr in zip(mesh.bdr_vertices, mesh.bdr_vertex_attributes):
        stream.write(f"{attr} {POINT} {v}\n")
    stream.write(f"\nvertices\n{mesh.vertices.shape[0]}\n1\n")
    for x in mesh.vertices:
        stream.write(f"{x:.8g}\n")


def make_rod_mesh(
    length: float = 1.0,
    num_elements: int = 16,
    core_fraction: float = 0.5,
    core_attribute: int = 1,
    lead_attribute: int = 2,
) -> LineMesh:
    """Uniform rod on ``[-length/2, length/2]``.

    The central ``core_fraction`` of the rod gets ``core_attribute``, the two
    leads at either end get ``lead_attribute``. The left end vertex has
    boundary attribute 1 and the right end vertex boundary attribute 2.
    """
    if num_elements < 1:
        raise ValueError("num_elements must be positive")
    vertices = np.linspace(-0.5 * length, 0.5 * length, num_elements + 1)
    elements = np.column_stack([np.arange(num_elements), np.arange(1, num_elements + 1)])
    centers = 0.5 * (vertices[:-1] + vertices[1:])
    attributes = np.where(
        np.abs(centers) < 0.5 * core_fraction * length, core_attribute, lead_attribute
    )
    return LineMesh(
        vertices,
        elements,
        attributes,
        bdr_vertices=np.array([0, num_elements]),
        bdr_attributes=np.array([1, 2]),
    )
