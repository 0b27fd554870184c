"""Raw per-rank text dumps of the state fields and mesh."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import IO

import numpy as np

from joule.core.bases import Communicator
from joule.layout import FieldLayout, StateVector
from joule.mesh.io import print_mesh

logger = logging.getLogger(__name__)

DUMP_FIELDS = ("T", "E", "B", "F", "w", "P")
PRECISION = 8


def format_time(t: float) -> str:
    """``t`` in shortest form, zero-padded on the left to six characters."""
    return f"{t:g}".rjust(6, "0")


def write_field(stream: IO[str], fec_name: str, values: np.ndarray, precision: int = PRECISION) -> None:
    """Write a field with its space header, one value per line."""
    stream.write(f"FiniteElementSpace\nFiniteElementCollection: {fec_name}\nVDim: 1\nOrdering: 0\n\n")
    for v in np.asarray(values):
        stream.write(f"{v:.{precision}g}\n")


class FieldDumper:
    """Callable writing ``{basename}_{t}_{name}.{rank:06d}`` files after a step.

    Args:
        basename: File name prefix.
        output_dir: Directory for the dumps.
        layout: State layout (for the spaces' collection names).
        comm: Communicator providing the rank suffix.
    """

    def __init__(
        self,
        basename: str,
        output_dir: str | Path,
        layout: FieldLayout,
        comm: Communicator,
    ) -> None:
        self.basename = basename
        self.output_dir = Path(output_dir)
        self.layout = layout
        self.comm = comm

    def path_for(self, name: str, t: float) -> Path:
        return self.output_dir / f"{self.basename}_{format_time(t)}_{name}.{self.comm.rank:06d}"

    def __call__(self, state: StateVector, t: float) -> list[Path]:
        """Write the mesh and every dumped field.

        Raises:
            OSError: If a file cannot be written.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        written = []

        mesh_path = self.path_for("mesh", t)
        with mesh_path.open("w") as f:
            print_mesh(self.layout.l2.mesh, f)
        written.append(mesh_path)

        for name in DUMP_FIELDS:
            path = self.path_for(name, t)
            with path.open("w") as f:
                write_field(f, self.layout.space(name).fec.name, state.view(name).data)
            written.append(path)

        logger.debug("Dumped %d field files at t=%g", len(written), t)
        return written
