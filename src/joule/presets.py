"""Named problem presets.

Each preset supplies the material maps, boundary conditions and generated
mesh settings of a problem. Values set explicitly in a
:class:`~joule.config.JouleConfig` take precedence.

- ``rod``: metal conductor (attribute 1) between two leads (attribute 2),
  driven by an alternating potential at both ends
- ``test``: single-material rod with unit properties, for quick checks

Usage:
    from joule.presets import apply_preset
    config = apply_preset(JouleConfig(problem="rod"))
"""

from __future__ import annotations

import copy
import math
from typing import Any

from joule.config import JouleConfig

_SIGMA_METAL = 2.0 * math.pi * 10.0

_PRESETS: dict[str, dict[str, Any]] = {
    "rod": {
        "_meta": {"description": "Metal rod with leads, alternating potential at both ends"},
        "rod": {"length": 1.0, "num_elements": 16, "core_fraction": 0.5},
        "domain_properties": {
            "electrical_conductivity": {1: _SIGMA_METAL, 2: 0.1 * _SIGMA_METAL},
            "thermal_conductivity": {1: 0.01, 2: 0.001},
            "heat_capacity": {1: 1.0, 2: 1.0},
        },
        "boundary_conditions": {
            "tangential_dEdt": {"attributes": [1, 2]},
            "thermal_flux": {"attributes": []},
            "electric_potential": {"attributes": [1, 2], "voltage": 1.0},
        },
    },
    "test": {
        "_meta": {"description": "Single-material unit rod"},
        "rod": {"length": 1.0, "num_elements": 8, "core_fraction": 1.0},
        "domain_properties": {
            "electrical_conductivity": {1: 1.0},
            "thermal_conductivity": {1: 1.0},
            "heat_capacity": {1: 1.0},
        },
        "boundary_conditions": {
            "tangential_dEdt": {"attributes": [1, 2]},
            "thermal_flux": {"attributes": []},
            "electric_potential": {"attributes": [1, 2], "voltage": 1.0},
        },
    },
}


def get_preset(name: str) -> dict[str, Any]:
    """Return a copy of a preset (without ``_meta``).

    Raises:
        KeyError: If the preset name is not found.
    """
    if name not in _PRESETS:
        available = ", ".join(_PRESETS.keys())
        raise KeyError(f"Unknown preset '{name}'. Available: {available}")
    preset = copy.deepcopy(_PRESETS[name])
    preset.pop("_meta", None)
    return preset


def get_preset_names() -> list[str]:
    """Return list of all preset names."""
    return list(_PRESETS.keys())


def list_presets() -> list[dict[str, str]]:
    return [
        {"name": name, "description": preset["_meta"]["description"]}
        for name, preset in _PRESETS.items()
    ]


def apply_preset(config: JouleConfig) -> JouleConfig:
    """Fill unset material maps, boundary conditions and rod mesh from the problem preset."""
    preset = get_preset(config.problem)
    update: dict[str, Any] = {}
    if config.domain_properties is None:
        update["domain_properties"] = preset["domain_properties"]
    if config.boundary_conditions is None:
        update["boundary_conditions"] = preset["boundary_conditions"]
    if config.rod is None:
        update["rod"] = preset["rod"]
    if not update:
        return config
    return JouleConfig.from_dict({**config.model_dump(), **update})
