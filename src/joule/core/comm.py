"""Communicators: single-process default and an mpi4py adapter."""

from __future__ import annotations

import logging
from typing import Any

from joule.core.bases import Communicator

logger = logging.getLogger(__name__)

_REDUCTIONS = ("sum", "max", "min")


class SerialCommunicator(Communicator):
    """Communicator for a run on a single process.

    ``rank`` and ``size`` may be overridden so partition bookkeeping can be
    exercised for a given rank without launching peers; reductions are then
    the identity on the local value.
    """

    def __init__(self, rank: int = 0, size: int = 1) -> None:
        if size < 1 or not 0 <= rank < size:
            raise ValueError(f"invalid rank/size: {rank}/{size}")
        self._rank = rank
        self._size = size
        self.barrier_count = 0

    @property
    def rank(self) -> int:
        return self._rank

    @property
    def size(self) -> int:
        return self._size

    def allreduce(self, value: float, op: str = "sum") -> float:
        if op not in _REDUCTIONS:
            raise ValueError(f"unsupported reduction: {op!r}")
        return value

    def allgather(self, obj: Any) -> list[Any]:
        return [obj]

    def barrier(self) -> None:
        self.barrier_count += 1


class MPICommunicator(Communicator):
    """Wrap an mpi4py communicator (``MPI.COMM_WORLD`` by default)."""

    def __init__(self, comm: Any | None = None) -> None:
        from mpi4py import MPI

        self._mpi = MPI
        self._comm = comm if comm is not None else MPI.COMM_WORLD

    @property
    def rank(self) -> int:
        return self._comm.Get_rank()

    @property
    def size(self) -> int:
        return self._comm.Get_size()

    def allreduce(self, value: float, op: str = "sum") -> float:
        ops = {"sum": self._mpi.SUM, "max": self._mpi.MAX, "min": self._mpi.MIN}
        if op not in ops:
            raise ValueError(f"unsupported reduction: {op!r}")
        return self._comm.allreduce(value, op=ops[op])

    def allgather(self, obj: Any) -> list[Any]:
        return self._comm.allgather(obj)

    def barrier(self) -> None:
        self._comm.Barrier()
