"""Checkpoint data collection: one HDF5 file per output cycle.

Usage:
    dc = FieldDataCollection("Joule", output_dir, mesh, state, comm)
    dc.save(cycle=0, time=0.0)

    data = load_data_collection("out/Joule_000010.h5")
    T = data["fields"]["T"]
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import h5py
import numpy as np

from joule.core.bases import Communicator, OutputSink
from joule.layout import FIELD_LABELS, FIELD_NAMES, StateVector
from joule.mesh.line_mesh import ParLineMesh

logger = logging.getLogger(__name__)

COLLECTION_VERSION = 1


class FieldDataCollection(OutputSink):
    """Write every registered state field with mesh data at each cycle.

    Files are ``{output_dir}/{basename}_{cycle:06d}.h5`` on one rank, and
    ``{basename}_{cycle:06d}.{rank:06d}.h5`` when the communicator has
    several ranks.

    Args:
        basename: File name prefix.
        output_dir: Directory for the files (created on first save).
        mesh: Distributed mesh the fields live on.
        state: State whose fields are written.
        comm: Communicator providing the rank suffix.
        fields: Field names to register (default: all six).
    """

    def __init__(
        self,
        basename: str,
        output_dir: str | Path,
        mesh: ParLineMesh,
        state: StateVector,
        comm: Communicator,
        fields: tuple[str, ...] = FIELD_NAMES,
    ) -> None:
        self.basename = basename
        self.output_dir = Path(output_dir)
        self.mesh = mesh
        self.state = state
        self.comm = comm
        self.fields = tuple(fields)
        self.saved: list[Path] = []

    def path_for(self, cycle: int) -> Path:
        name = f"{self.basename}_{cycle:06d}"
        if self.comm.size > 1:
            name += f".{self.comm.rank:06d}"
        return self.output_dir / f"{name}.h5"

    def save(self, cycle: int, time: float) -> None:
        """Write the registered fields for ``cycle``.

        Raises:
            OSError: If the file cannot be written.
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(cycle)
        local = self.mesh.local_elements

        with h5py.File(path, "w") as f:
            f.attrs["cycle"] = cycle
            f.attrs["time"] = time
            f.attrs["rank"] = self.comm.rank
            f.attrs["size"] = self.comm.size
            f.attrs["collection_version"] = COLLECTION_VERSION

            grp_mesh = f.create_group("mesh")
            grp_mesh.create_dataset("vertices", data=self.mesh.vertices)
            grp_mesh.create_dataset("elements", data=self.mesh.elements[local])
            grp_mesh.create_dataset("attributes", data=self.mesh.global_attributes[local])

            grp_fields = f.create_group("fields")
            for name in self.fields:
                dset = grp_fields.create_dataset(name, data=self.state.view(name).data)
                dset.attrs["label"] = FIELD_LABELS[name]

        self.saved.append(path)
        logger.debug("Saved data collection %s (cycle %d, t=%g)", path, cycle, time)


def load_data_collection(filename: str | Path) -> dict[str, Any]:
    """Read one file written by :class:`FieldDataCollection`.

    Returns:
        Dictionary with keys ``cycle``, ``time``, ``mesh`` (dict of arrays)
        and ``fields`` (dict of arrays).
    """
    with h5py.File(filename, "r") as f:
        cycle = int(f.attrs["cycle"])
        time = float(f.attrs["time"])
        mesh = {key: np.array(f["mesh"][key]) for key in f["mesh"]}
        fields = {key: np.array(f["fields"][key]) for key in f["fields"]}

    logger.debug("Loaded data collection %s: cycle %d, fields %s", filename, cycle, list(fields))
    return {"cycle": cycle, "time": time, "mesh": mesh, "fields": fields}
