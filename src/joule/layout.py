"""Block layout of the coupled state vector.

The six coupled fields share one contiguous ``float64`` buffer, in a fixed
order::

    [ T (L2) | F (H(div)) | P (H1) | E (H(curl)) | B (H(div)) | w (L2) ]

Field access goes through :class:`FieldView` objects, which are windows into
the buffer tagged with the buffer generation they were created for. A view
used after :meth:`StateVector.reallocate` raises :class:`StaleViewError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from joule.core.bases import FiniteElementSpaceBase
from joule.exceptions import StaleViewError

logger = logging.getLogger(__name__)

FIELD_NAMES = ("T", "F", "P", "E", "B", "w")

FIELD_LABELS = {
    "T": "temperature",
    "F": "thermal_flux",
    "P": "electric_potential",
    "E": "electric_field",
    "B": "magnetic_flux",
    "w": "joule_heating",
}


@dataclass(frozen=True)
class BlockOffsets:
    """Seven monotone offsets delimiting the six field segments."""

    offsets: tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.offsets) != len(FIELD_NAMES) + 1:
            raise ValueError(f"expected {len(FIELD_NAMES) + 1} offsets, got {len(self.offsets)}")
        if self.offsets[0] != 0 or any(b < a for a, b in zip(self.offsets, self.offsets[1:])):
            raise ValueError(f"offsets must start at 0 and be non-decreasing: {self.offsets}")

    def __getitem__(self, i: int) -> int:
        return self.offsets[i]

    def __len__(self) -> int:
        return len(self.offsets)

    @property
    def total(self) -> int:
        return self.offsets[-1]

    def slice(self, name: str) -> slice:
        i = FIELD_NAMES.index(name)
        return slice(self.offsets[i], self.offsets[i + 1])

    def size(self, name: str) -> int:
        s = self.slice(name)
        return s.stop - s.start


def compute_offsets(l2: int, hdiv: int, h1: int, hcurl: int) -> BlockOffsets:
    """Offsets for the T, F, P, E, B, w segments.

    Args:
        l2: Local size of the L2 space (T and w).
        hdiv: Local size of the H(div) space (F and B).
        h1: Local size of the H1 space (P).
        hcurl: Local size of the H(curl) space (E).

    Raises:
        ValueError: If any size is negative.
    """
    sizes = (l2, hdiv, h1, hcurl, hdiv, l2)
    if any(s < 0 for s in sizes):
        raise ValueError(f"space sizes must be non-negative: l2={l2} hdiv={hdiv} h1={h1} hcurl={hcurl}")
    offsets = [0]
    for s in sizes:
        offsets.append(offsets[-1] + int(s))
    return BlockOffsets(tuple(offsets))


class FieldLayout:
    """Offsets plus the spaces each segment lives in."""

    def __init__(
        self,
        l2: FiniteElementSpaceBase,
        hdiv: FiniteElementSpaceBase,
        h1: FiniteElementSpaceBase,
        hcurl: FiniteElementSpaceBase,
    ) -> None:
        self.l2 = l2
        self.hdiv = hdiv
        self.h1 = h1
        self.hcurl = hcurl
        self.offsets = compute_offsets(l2.vsize, hdiv.vsize, h1.vsize, hcurl.vsize)

    @classmethod
    def from_spaces(
        cls,
        l2: FiniteElementSpaceBase,
        hdiv: FiniteElementSpaceBase,
        h1: FiniteElementSpaceBase,
        hcurl: FiniteElementSpaceBase,
    ) -> FieldLayout:
        layout = cls(l2, hdiv, h1, hcurl)
        logger.debug("State layout offsets: %s", list(layout.offsets.offsets))
        return layout

    def space(self, name: str) -> FiniteElementSpaceBase:
        return {
            "T": self.l2, "F": self.hdiv, "P": self.h1,
            "E": self.hcurl, "B": self.hdiv, "w": self.l2,
        }[name]


class FieldView:
    """Non-owning window ``(offset, size)`` into a :class:`StateVector`."""

    def __init__(self, state: StateVector, name: str) -> None:
        s = state.offsets.slice(name)
        self.name = name
        self.offset = s.start
        self.size = s.stop - s.start
        self.generation = state.generation
        self._state = state

    @property
    def stale(self) -> bool:
        return self.generation != self._state.generation

    @property
    def data(self) -> np.ndarray:
        """Writable numpy view of the segment."""
        if self.stale:
            raise StaleViewError(
                f"view of '{self.name}' belongs to generation {self.generation}, "
                f"buffer is at generation {self._state.generation}"
            )
        return self._state.buffer[self.offset : self.offset + self.size]

    def __repr__(self) -> str:
        return f"FieldView({self.name!r}, offset={self.offset}, size={self.size}, gen={self.generation})"


class StateVector:
    """Owner of the contiguous buffer for all coupled fields."""

    def __init__(self, offsets: BlockOffsets) -> None:
        self.offsets = offsets
        self.buffer = np.zeros(offsets.total)
        self.generation = 0

    @property
    def size(self) -> int:
        return int(self.buffer.size)

    def view(self, name: str) -> FieldView:
        return FieldView(self, name)

    def views(self) -> dict[str, FieldView]:
        return {name: FieldView(self, name) for name in FIELD_NAMES}

    def reallocate(self, offsets: BlockOffsets) -> None:
        """Replace the buffer with a zeroed one for new offsets.

        Every view created before this call becomes stale.
        """
        self.offsets = offsets
        self.buffer = np.zeros(offsets.total)
        self.generation += 1
        logger.debug("State reallocated: %d entries, generation %d", offsets.total, self.generation)
