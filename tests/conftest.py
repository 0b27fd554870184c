"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest

from joule.config import JouleConfig
from joule.core.comm import SerialCommunicator
from joule.fem.spaces import FiniteElementCollection, FiniteElementSpace, SpaceKind
from joule.layout import FieldLayout
from joule.mesh.io import make_rod_mesh
from joule.mesh.preparer import MeshPreparer
from joule.solve import JouleRun


@pytest.fixture
def comm():
    return SerialCommunicator()


@pytest.fixture
def rod_mesh():
    """Eight-element rod: four conductor elements (attribute 1) between two leads."""
    return make_rod_mesh(length=1.0, num_elements=8, core_fraction=0.5)


@pytest.fixture
def pmesh(rod_mesh, comm):
    """Rod mesh prepared without refinement."""
    return MeshPreparer(comm).prepare(rod_mesh)


@pytest.fixture
def layout(pmesh):
    """Lowest-order de Rham spaces on the prepared rod."""
    return FieldLayout.from_spaces(
        l2=FiniteElementSpace(pmesh, FiniteElementCollection(SpaceKind.L2, 0)),
        hdiv=FiniteElementSpace(pmesh, FiniteElementCollection(SpaceKind.HDIV, 0)),
        h1=FiniteElementSpace(pmesh, FiniteElementCollection(SpaceKind.H1, 1)),
        hcurl=FiniteElementSpace(pmesh, FiniteElementCollection(SpaceKind.HCURL, 1)),
    )


@pytest.fixture
def short_config_dict(tmp_path):
    """Short run of the single-material test problem, no file output."""
    return {
        "problem": "test",
        "t_final": 2.0,
        "dt": 0.5,
        "visit": False,
        "output_dir": str(tmp_path),
    }


@pytest.fixture
def make_run(short_config_dict):
    """Factory for a set-up :class:`JouleRun` with config overrides."""

    def _make(**overrides):
        run = JouleRun(JouleConfig(**{**short_config_dict, **overrides}))
        run.setup()
        return run

    return _make
