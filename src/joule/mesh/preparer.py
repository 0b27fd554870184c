"""Mesh preparation applied once before time integration.

Sequence (each phase depends on the previous one):

1. enable non-conforming refinement bookkeeping on the serial mesh
2. ``ser_ref_levels`` uniform refinements in serial
3. partition across the ranks of the communicator
4. ``par_ref_levels`` uniform refinements of the distributed mesh, then
   finalize element orientation
5. optional one-shot AMR: refine every element whose attribute is 1
6. rebalance if the mesh is non-conforming

The AMR pass is not error-estimator driven: the whole attribute-1 region
(the conductor) is refined once.
"""

from __future__ import annotations

import logging

import numpy as np

from joule.core.bases import Communicator, MeshBase, ParMeshBase
from joule.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

AMR_ATTRIBUTE = 1


class MeshPreparer:
    """Refine, distribute and balance a serial mesh.

    Args:
        comm: Communicator the mesh is distributed over.
    """

    def __init__(self, comm: Communicator) -> None:
        self.comm = comm

    def _log(self, msg: str, *args: object) -> None:
        if self.comm.is_root:
            logger.info(msg, *args)

    def prepare(
        self,
        mesh: MeshBase,
        ser_ref_levels: int = 0,
        par_ref_levels: int = 0,
        enable_amr: bool = False,
    ) -> ParMeshBase:
        """Run the full preparation sequence.

        Args:
            mesh: Serial mesh. It is consumed: only the returned distributed
                mesh should be used afterwards.
            ser_ref_levels: Uniform refinements before partitioning.
            par_ref_levels: Uniform refinements after partitioning.
            enable_amr: Refine the attribute-1 region once.

        Returns:
            Distributed, refined and balanced mesh.
        """
        if ser_ref_levels < 0 or par_ref_levels < 0:
            raise ConfigurationError(
                f"refinement levels must be non-negative, got {ser_ref_levels}/{par_ref_levels}"
            )

        mesh.ensure_nc_mesh()

        for _ in range(ser_ref_levels):
            mesh.uniform_refinement()
        self._log("Mesh refined in serial (%d levels): %d elements", ser_ref_levels, mesh.num_elements)

        pmesh = mesh.partition(self.comm)
        del mesh

        for _ in range(par_ref_levels):
            pmesh.uniform_refinement()
        pmesh.finalize(refine=True)
        self._log(
            "Parallel mesh defined on %d ranks (%d levels): %d elements",
            self.comm.size, par_ref_levels, pmesh.global_num_elements,
        )

        if enable_amr:
            self.refine_attribute_region(pmesh, AMR_ATTRIBUTE)

        if pmesh.nonconforming:
            pmesh.rebalance()
            self._log("Mesh rebalanced")

        return pmesh

    def refine_attribute_region(self, pmesh: ParMeshBase, attribute: int) -> int:
        """Refine every local element carrying ``attribute`` exactly once.

        Returns:
            Number of local elements selected.
        """
        selected = np.flatnonzero(pmesh.attributes == attribute)
        before = pmesh.global_num_elements
        pmesh.general_refinement(selected)
        self._log(
            "Parallel mesh refined: attribute %d region, %d -> %d elements",
            attribute, before, pmesh.global_num_elements,
        )
        return int(selected.size)
