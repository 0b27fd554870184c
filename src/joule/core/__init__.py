"""Interface contracts and communicators shared by all solver components."""

from joule.core.bases import (
    Communicator,
    FiniteElementSpaceBase,
    MeshBase,
    ODESolver,
    OutputSink,
    ParMeshBase,
    StepResult,
    TimeDependentOperator,
)
from joule.core.comm import MPICommunicator, SerialCommunicator

__all__ = [
    "Communicator",
    "FiniteElementSpaceBase",
    "MeshBase",
    "MPICommunicator",
    "ODESolver",
    "OutputSink",
    "ParMeshBase",
    "SerialCommunicator",
    "StepResult",
    "TimeDependentOperator",
]
