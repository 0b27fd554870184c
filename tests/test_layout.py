"""Tests for the state vector layout.

Test categories:
1. Block offsets are monotone and sum the segment sizes
2. Offsets derived from the discrete spaces
3. Field views alias the shared buffer
4. Views become stale after reallocation
"""

from __future__ import annotations

import numpy as np
import pytest

from joule.exceptions import StaleViewError
from joule.layout import FIELD_NAMES, BlockOffsets, StateVector, compute_offsets

# ====================================================
# Offsets
# ====================================================


class TestComputeOffsets:
    """Tests for compute_offsets."""

    def test_segment_order(self):
        """Segments are T, F, P, E, B, w with the matching space sizes."""
        o = compute_offsets(l2=3, hdiv=4, h1=5, hcurl=2)
        assert o.offsets == (0, 3, 7, 12, 14, 18, 21)
        assert o.total == 21
        assert [o.size(name) for name in FIELD_NAMES] == [3, 4, 5, 2, 4, 3]

    def test_monotone(self):
        """Offsets never decrease, including for empty spaces."""
        o = compute_offsets(l2=0, hdiv=7, h1=0, hcurl=1)
        assert all(b >= a for a, b in zip(o.offsets, o.offsets[1:]))
        assert o.total == 0 + 7 + 0 + 1 + 7 + 0

    def test_negative_size_rejected(self):
        with pytest.raises(ValueError):
            compute_offsets(l2=-1, hdiv=2, h1=2, hcurl=2)

    def test_block_offsets_validation(self):
        """BlockOffsets rejects a wrong count or decreasing entries."""
        with pytest.raises(ValueError):
            BlockOffsets((0, 1, 2))
        with pytest.raises(ValueError):
            BlockOffsets((0, 3, 2, 4, 5, 6, 7))


class TestFieldLayout:
    """Offsets derived from lowest-order spaces on the rod."""

    def test_sizes_from_spaces(self, layout, pmesh):
        n = pmesh.global_num_elements
        o = layout.offsets
        assert o.size("T") == n
        assert o.size("w") == n
        assert o.size("E") == n
        assert o.size("P") == n + 1
        assert o.size("F") == n + 1
        assert o.size("B") == n + 1
        assert o.total == 6 * n + 3

    def test_space_lookup(self, layout):
        assert layout.space("T") is layout.l2
        assert layout.space("B") is layout.hdiv
        assert layout.space("P") is layout.h1
        assert layout.space("E") is layout.hcurl


# ====================================================
# State vector and views
# ====================================================


class TestStateVector:
    """Tests for StateVector and FieldView."""

    def test_views_alias_buffer(self):
        """Writing through a view writes the shared buffer."""
        state = StateVector(compute_offsets(2, 3, 3, 2))
        state.view("E").data[:] = [1.0, 2.0]
        np.testing.assert_array_equal(state.buffer[8:10], [1.0, 2.0])
        assert np.count_nonzero(state.buffer) == 2

    def test_views_cover_buffer(self):
        state = StateVector(compute_offsets(2, 3, 3, 2))
        views = state.views()
        assert sum(v.size for v in views.values()) == state.size
        assert views["T"].offset == 0
        assert views["w"].offset + views["w"].size == state.size

    def test_stale_view_after_reallocate(self):
        """A view created before reallocation raises on access."""
        state = StateVector(compute_offsets(2, 3, 3, 2))
        view = state.view("T")
        state.reallocate(compute_offsets(4, 5, 5, 4))

        assert view.stale
        assert state.generation == 1
        with pytest.raises(StaleViewError):
            _ = view.data

    def test_fresh_view_after_reallocate(self):
        state = StateVector(compute_offsets(2, 3, 3, 2))
        state.reallocate(compute_offsets(4, 5, 5, 4))
        view = state.view("T")
        assert not view.stale
        assert view.data.shape == (4,)
        assert state.size == 4 + 5 + 5 + 4 + 5 + 4
