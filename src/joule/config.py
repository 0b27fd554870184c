"""Pydantic v2 configuration for Joule heating runs.

Provides validated, typed configuration with submodels for the linear
solver, the generated rod mesh and the boundary conditions. Missing material
maps, boundary conditions and mesh settings are filled from the selected
problem preset (see :mod:`joule.presets`).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from joule.exceptions import ConfigurationError


class LinearSolverConfig(BaseModel):
    """Iterative linear solver controls."""

    rtol: float = Field(1e-10, gt=0, lt=1, description="Relative residual tolerance of CG solves")
    maxiter: int = Field(1000, ge=1, description="Maximum CG iterations")


class RodMeshConfig(BaseModel):
    """Generated rod mesh (used when no mesh file is given)."""

    length: float = Field(1.0, gt=0, description="Rod length")
    num_elements: int = Field(16, ge=1, description="Number of elements before refinement")
    core_fraction: float = Field(0.5, gt=0, le=1.0, description="Central fraction with attribute 1")


class BoundaryConditionConfig(BaseModel):
    """Boundary attributes of one boundary condition."""

    attributes: list[int] = Field(default_factory=list, description="Boundary attributes (1-based)")
    voltage: float = Field(1.0, description="Amplitude of the applied potential")

    @field_validator("attributes")
    @classmethod
    def check_positive(cls, v: list[int]) -> list[int]:
        if any(a < 1 for a in v):
            raise ValueError(f"boundary attributes must be >= 1, got {v}")
        return v


class JouleConfig(BaseModel):
    """Top-level run configuration."""

    problem: str = Field("rod", description="Problem preset: 'rod' or 'test'")
    mesh_file: str | None = Field(None, description="JSON mesh file (None = generated rod)")
    rod: RodMeshConfig | None = Field(None, description="Generated rod mesh settings")
    order: int = Field(1, ge=1, description="Finite element order")
    ser_ref_levels: int = Field(0, ge=0, description="Uniform refinements in serial")
    par_ref_levels: int = Field(0, ge=0, description="Uniform refinements in parallel")
    ode_solver: int = Field(1, description="ODE solver: 1, 2, 3, 22, 23 or 34")
    t_final: float = Field(100.0, gt=0, description="Final time")
    dt: float = Field(0.5, gt=0, description="Time step")
    mu: float = Field(1.0, gt=0, description="Magnetic permeability")
    frequency: float = Field(1.0 / 60.0, ge=0, description="Frequency of the applied potential")

    visualization: bool = Field(False, description="Stream fields to GLVis")
    vis_steps: int = Field(1, ge=1, description="Output every N steps")
    vis_host: str = Field("localhost", description="GLVis server host")
    vis_port: int = Field(19916, ge=1, le=65535, description="GLVis server port")
    visit: bool = Field(True, description="Write HDF5 data collection at output steps")
    basename: str = Field("Joule", description="Output file prefix")
    output_dir: str = Field(".", description="Output directory")
    gfprint: bool = Field(False, description="Raw text dump of every field after each step")
    diag_steps: int = Field(1, ge=1, description="Log electric losses every N steps")

    amr: bool = Field(False, description="Refine the attribute-1 region once before stepping")
    static_condensation: bool = Field(False, description="Condense temperature rates in the thermal solve")
    debug: bool = Field(False, description="Dump operator matrices after every step")

    linear_solver: LinearSolverConfig = Field(default_factory=LinearSolverConfig)
    domain_properties: dict[str, dict[int, float]] | None = Field(
        None, description="Material property maps {name: {attribute: value}}"
    )
    boundary_conditions: dict[str, BoundaryConditionConfig] | None = Field(
        None, description="Boundary conditions keyed by field name"
    )

    @model_validator(mode="after")
    def check_problem(self) -> JouleConfig:
        from joule.presets import get_preset_names

        if self.problem not in get_preset_names():
            raise ValueError(f"unknown problem '{self.problem}', expected one of {get_preset_names()}")
        if self.basename == "" or "/" in self.basename:
            raise ValueError("basename must be a non-empty file name prefix")
        return self

    @classmethod
    def from_file(cls, path: str | Path) -> JouleConfig:
        """Load configuration from a JSON file.

        Raises:
            ConfigurationError: If the file cannot be read or fails validation.
        """
        path = Path(path)
        try:
            with path.open() as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"cannot load config {path}: {exc}") from exc
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JouleConfig:
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    def to_json(self, path: str | Path | None = None) -> str:
        """Serialize to JSON string, optionally writing to file."""
        out = self.model_dump_json(indent=2)
        if path is not None:
            Path(path).write_text(out)
        return out
