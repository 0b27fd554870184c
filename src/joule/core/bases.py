"""Core abstract base classes and shared data structures.

Defines the interface contracts between the time-stepping core and its
external collaborators:

- ``Communicator``: collective operations across cooperating processes
- ``MeshBase`` / ``ParMeshBase``: serial and distributed meshes
- ``FiniteElementSpaceBase``: discrete spaces built on a distributed mesh
- ``TimeDependentOperator``: the implicit-solve contract used by integrators
- ``ODESolver``: implicit time integrators
- ``OutputSink``: visualization / checkpoint writers driven by the stepper
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass
class StepResult:
    """Result of a single completed time step.

    Attributes:
        step: Step index ``ti`` (starts at 1).
        time: Simulation time after this step.
        dt: Step size used.
        last_step: True for the terminal step of the run.
        electric_losses: Global Joule dissipation rate, or None when not
            computed at this step.
        output: True when visualization/checkpoint output was triggered.
    """

    step: int = 0
    time: float = 0.0
    dt: float = 0.0
    last_step: bool = False
    electric_losses: float | None = None
    output: bool = False


class Communicator(ABC):
    """Collective communication between the processes of one run."""

    @property
    @abstractmethod
    def rank(self) -> int:
        """Rank of this process."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Number of cooperating processes."""

    @abstractmethod
    def allreduce(self, value: float, op: str = "sum") -> float:
        """Reduce ``value`` over all ranks (``op`` is 'sum', 'max' or 'min')."""

    @abstractmethod
    def allgather(self, obj: Any) -> list[Any]:
        """Collect ``obj`` from every rank, ordered by rank."""

    @abstractmethod
    def barrier(self) -> None:
        """Block until every rank reaches this point."""

    @property
    def is_root(self) -> bool:
        return self.rank == 0


class MeshBase(ABC):
    """Serial mesh with element (material) and boundary attributes."""

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Spatial dimension."""

    @property
    @abstractmethod
    def num_elements(self) -> int:
        """Number of elements held by this object."""

    @property
    @abstractmethod
    def attributes(self) -> np.ndarray:
        """Element attributes, shape ``(num_elements,)``."""

    @property
    @abstractmethod
    def bdr_attributes(self) -> np.ndarray:
        """Sorted unique boundary attributes."""

    @property
    @abstractmethod
    def nonconforming(self) -> bool:
        """True once non-conforming refinement bookkeeping is active."""

    @abstractmethod
    def ensure_nc_mesh(self) -> None:
        """Enable non-conforming refinement bookkeeping."""

    @abstractmethod
    def uniform_refinement(self) -> None:
        """Refine every element once."""

    @abstractmethod
    def general_refinement(self, elements: np.ndarray) -> None:
        """Refine exactly the listed (local) elements once."""

    @abstractmethod
    def partition(self, comm: Communicator) -> ParMeshBase:
        """Distribute this mesh across the ranks of ``comm``."""


class ParMeshBase(MeshBase):
    """Distributed mesh: one partition per rank."""

    @property
    @abstractmethod
    def comm(self) -> Communicator:
        """Communicator the mesh is distributed over."""

    @property
    @abstractmethod
    def global_num_elements(self) -> int:
        """Element count summed over all ranks."""

    @abstractmethod
    def finalize(self, refine: bool = False) -> None:
        """Finalize orientation bookkeeping after refinement."""

    @abstractmethod
    def rebalance(self) -> None:
        """Redistribute elements so every rank holds a similar share."""

    def partition(self, comm: Communicator) -> ParMeshBase:
        raise TypeError("mesh is already distributed")


class FiniteElementSpaceBase(ABC):
    """Discrete space on a distributed mesh."""

    @property
    @abstractmethod
    def vsize(self) -> int:
        """Rank-local vector size."""

    @property
    @abstractmethod
    def mesh(self) -> ParMeshBase:
        """Mesh the space is built on."""


class TimeDependentOperator(ABC):
    """Operator ``dx/dt = f(x, t)`` solved implicitly by an ODE integrator."""

    def __init__(self, size: int, t: float = 0.0) -> None:
        self.size = size
        self._time = t

    @property
    def time(self) -> float:
        return self._time

    def set_time(self, t: float) -> None:
        self._time = t

    @abstractmethod
    def implicit_solve(self, dt: float, x: np.ndarray) -> np.ndarray:
        """Solve ``k = f(x + dt*k, t)`` for the rate ``k``.

        Args:
            dt: Implicit stage coefficient times the step size.
            x: Current stage state, shape ``(size,)``. Not modified.

        Returns:
            Rate vector of shape ``(size,)``.
        """


class ODESolver(ABC):
    """Implicit time integrator bound to a :class:`TimeDependentOperator`."""

    def __init__(self) -> None:
        self.operator: TimeDependentOperator | None = None

    def init(self, operator: TimeDependentOperator) -> None:
        self.operator = operator

    @abstractmethod
    def step(self, x: np.ndarray, t: float, dt: float) -> float:
        """Advance ``x`` in place from ``t`` to ``t + dt``.

        Returns:
            The new time.
        """


class OutputSink(ABC):
    """Periodic output (visualization, checkpoint) driven by the stepper."""

    @abstractmethod
    def save(self, cycle: int, time: float) -> None:
        """Write the registered fields for this cycle."""

    def close(self) -> None:
        """Release resources (sockets, files)."""

    def __enter__(self) -> OutputSink:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
