"""Line meshes, mesh file I/O and the pre-solve mesh preparation sequence."""

from joule.mesh.io import load_mesh, make_rod_mesh, mesh_from_dict, print_mesh, save_mesh
from joule.mesh.line_mesh import LineMesh, ParLineMesh, bisect_elements, block_partition
from joule.mesh.preparer import AMR_ATTRIBUTE, MeshPreparer

__all__ = [
    "AMR_ATTRIBUTE",
    "LineMesh",
    "MeshPreparer",
    "ParLineMesh",
    "bisect_elements",
    "block_partition",
    "load_mesh",
    "make_rod_mesh",
    "mesh_from_dict",
    "print_mesh",
    "save_mesh",
]
