"""Joule: coupled eddy-current, Joule heating and thermal diffusion time stepping."""

__version__ = "0.1.0"

from joule.config import JouleConfig
from joule.solve import JouleRun, joule_solve

__all__ = ["JouleConfig", "JouleRun", "__version__", "joule_solve"]
