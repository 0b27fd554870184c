"""Tests for run configuration and problem presets.

Test categories:
1. Defaults and field validation
2. JSON file loading and serialization
3. Preset lookup and application
"""

from __future__ import annotations

import json

import pytest

from joule.config import JouleConfig
from joule.exceptions import ConfigurationError
from joule.presets import apply_preset, get_preset, get_preset_names, list_presets

# ====================================================
# Defaults and validation
# ====================================================


class TestJouleConfig:
    """Tests for field defaults and validation."""

    def test_defaults(self):
        config = JouleConfig()
        assert config.problem == "rod"
        assert config.order == 1
        assert config.ode_solver == 1
        assert config.t_final == pytest.approx(100.0)
        assert config.dt == pytest.approx(0.5)
        assert config.frequency == pytest.approx(1.0 / 60.0)
        assert config.vis_steps == 1
        assert config.visit
        assert not config.visualization
        assert config.basename == "Joule"
        assert config.linear_solver.rtol == pytest.approx(1e-10)

    def test_negative_dt(self):
        with pytest.raises(ConfigurationError) as excinfo:
            JouleConfig.from_dict({"dt": -0.1})
        assert excinfo.value.exit_code == 1

    @pytest.mark.parametrize("field, value", [("vis_steps", 0), ("order", 0), ("ser_ref_levels", -1)])
    def test_out_of_range(self, field, value):
        with pytest.raises(ConfigurationError):
            JouleConfig.from_dict({field: value})

    def test_unknown_problem(self):
        with pytest.raises(ConfigurationError, match="unknown problem"):
            JouleConfig.from_dict({"problem": "coil"})

    @pytest.mark.parametrize("basename", ["", "out/Joule"])
    def test_bad_basename(self, basename):
        with pytest.raises(ConfigurationError):
            JouleConfig.from_dict({"basename": basename})

    def test_boundary_attributes_positive(self):
        with pytest.raises(ConfigurationError):
            JouleConfig.from_dict({"boundary_conditions": {"thermal_flux": {"attributes": [0]}}})


# ====================================================
# Files
# ====================================================


class TestConfigFile:
    """Tests for JSON loading and serialization."""

    def test_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "problem": "test",
            "dt": 0.25,
            "domain_properties": {
                "electrical_conductivity": {"1": 3.0},
                "thermal_conductivity": {"1": 1.0},
                "heat_capacity": {"1": 1.0},
            },
        }))
        config = JouleConfig.from_file(path)
        assert config.dt == pytest.approx(0.25)
        assert config.domain_properties["electrical_conductivity"][1] == pytest.approx(3.0)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="cannot load"):
            JouleConfig.from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            JouleConfig.from_file(tmp_path / "missing.json")

    def test_to_json_reloads(self, tmp_path):
        path = tmp_path / "out.json"
        config = JouleConfig(problem="test", dt=0.125, amr=True)
        config.to_json(path)
        assert JouleConfig.from_file(path) == config


# ====================================================
# Presets
# ====================================================


class TestPresets:
    """Tests for problem presets."""

    def test_names(self):
        assert get_preset_names() == ["rod", "test"]
        assert {p["name"] for p in list_presets()} == {"rod", "test"}

    def test_unknown_preset(self):
        with pytest.raises(KeyError, match="Available"):
            get_preset("coil")

    def test_preset_is_a_copy(self):
        preset = get_preset("rod")
        preset["domain_properties"]["heat_capacity"][1] = -1.0
        assert get_preset("rod")["domain_properties"]["heat_capacity"][1] == pytest.approx(1.0)
        assert "_meta" not in preset

    def test_apply_fills_missing(self):
        config = apply_preset(JouleConfig(problem="rod"))
        assert config.rod.num_elements == 16
        assert set(config.boundary_conditions) == {"tangential_dEdt", "thermal_flux", "electric_potential"}
        sigma = config.domain_properties["electrical_conductivity"]
        assert sigma[2] == pytest.approx(0.1 * sigma[1])

    def test_explicit_values_win(self):
        props = {
            "electrical_conductivity": {1: 7.0},
            "thermal_conductivity": {1: 1.0},
            "heat_capacity": {1: 1.0},
        }
        config = apply_preset(JouleConfig(problem="test", domain_properties=props, dt=0.1))
        assert config.domain_properties["electrical_conductivity"][1] == pytest.approx(7.0)
        assert config.dt == pytest.approx(0.1)
        assert config.rod.num_elements == 8
