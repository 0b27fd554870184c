"""Discrete coupled eddy-current / Joule heating / thermal diffusion operator."""

from joule.physics.coupled_diffusion import ALGEBRAIC_FIELDS, CoupledDiffusionOperator

__all__ = ["ALGEBRAIC_FIELDS", "CoupledDiffusionOperator"]
