"""Output sinks: HDF5 checkpoints, GLVis streaming and raw field dumps."""

from joule.diagnostics.checkpoint import FieldDataCollection, load_data_collection
from joule.diagnostics.field_dump import FieldDumper, format_time, write_field
from joule.diagnostics.glvis import GLVisSession

__all__ = [
    "FieldDataCollection",
    "FieldDumper",
    "GLVisSession",
    "format_time",
    "load_data_collection",
    "write_field",
]
