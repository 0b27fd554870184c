"""Discrete spaces, material coefficients and boundary conditions."""

from joule.fem.boundary import (
    BC_NAMES,
    ELECTRIC_POTENTIAL,
    TANGENTIAL_DEDT,
    THERMAL_FLUX,
    BCMap,
    BoundaryCondition,
    EssentialMarkers,
    FunctionDirichletBC,
    build_bc_map,
    cosine_potential,
    zero_function,
)
from joule.fem.coefficients import (
    ELECTRICAL_CONDUCTIVITY,
    HEAT_CAPACITY,
    INVERSE_HEAT_CAPACITY,
    INVERSE_THERMAL_CONDUCTIVITY,
    DomainProperties,
    PWConstCoefficient,
)
from joule.fem.spaces import FiniteElementCollection, FiniteElementSpace, SpaceKind

__all__ = [
    "BC_NAMES",
    "BCMap",
    "BoundaryCondition",
    "DomainProperties",
    "ELECTRICAL_CONDUCTIVITY",
    "ELECTRIC_POTENTIAL",
    "EssentialMarkers",
    "FiniteElementCollection",
    "FiniteElementSpace",
    "FunctionDirichletBC",
    "HEAT_CAPACITY",
    "INVERSE_HEAT_CAPACITY",
    "INVERSE_THERMAL_CONDUCTIVITY",
    "PWConstCoefficient",
    "SpaceKind",
    "TANGENTIAL_DEDT",
    "THERMAL_FLUX",
    "build_bc_map",
    "cosine_potential",
    "zero_function",
]
