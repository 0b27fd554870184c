"""Tests for the top-level driver and the command-line interface.

Test categories:
1. Exit codes of configuration failures
2. Successful runs with the optional outputs enabled
3. Solver failures propagate
4. CLI commands (run, verify, presets) and option precedence
"""

from __future__ import annotations

import json
import logging
import socket

import pytest
from click.testing import CliRunner

from joule.cli.main import _load_config, cli
from joule.config import JouleConfig
from joule.exceptions import SolverConvergenceError
from joule.mesh.io import make_rod_mesh
from joule.solve import JouleRun, joule_solve


def short_config(tmp_path, **overrides) -> JouleConfig:
    data = {"problem": "test", "t_final": 1.0, "dt": 0.5, "visit": False, "output_dir": str(tmp_path)}
    data.update(overrides)
    return JouleConfig(**data)


# ====================================================
# Exit codes
# ====================================================


class TestExitCodes:
    """Configuration failures are reported before any mesh work."""

    def test_success(self, tmp_path):
        assert joule_solve(short_config(tmp_path)) == 0

    def test_unknown_ode_solver(self, tmp_path, caplog):
        with caplog.at_level(logging.ERROR, logger="joule.solve"):
            code = joule_solve(short_config(tmp_path, ode_solver=4))
        assert code == 3
        assert "Unknown ODE solver type: 4" in caplog.text

    def test_unsupported_order(self, tmp_path):
        assert joule_solve(short_config(tmp_path, order=2)) == 1

    def test_missing_mesh_file(self, tmp_path):
        config = short_config(tmp_path, mesh_file=str(tmp_path / "missing.json"))
        assert joule_solve(config) == 2

    def test_solver_checked_before_mesh(self, tmp_path):
        """An unknown solver wins over a missing mesh file."""
        config = short_config(tmp_path, ode_solver=99, mesh_file=str(tmp_path / "missing.json"))
        assert joule_solve(config) == 3

    def test_zero_thermal_conductivity(self, tmp_path):
        props = {
            "electrical_conductivity": {1: 1.0},
            "thermal_conductivity": {1: 0.0},
            "heat_capacity": {1: 1.0},
        }
        assert joule_solve(short_config(tmp_path, domain_properties=props)) == 1

    def test_zero_length_mesh_file(self, tmp_path):
        path = tmp_path / "mesh.json"
        path.write_text(json.dumps({
            "vertices": [0.0, 0.5, 0.5, 1.0],
            "elements": [[0, 1], [1, 2], [2, 3]],
            "attributes": [1, 1, 1],
        }))
        assert joule_solve(short_config(tmp_path, mesh_file=str(path))) == 2


# ====================================================
# Successful runs
# ====================================================


class TestRuns:
    """Runs with the optional features enabled."""

    def test_checkpoints_written(self, tmp_path):
        assert joule_solve(short_config(tmp_path, visit=True)) == 0
        assert sorted(p.name for p in tmp_path.glob("*.h5")) == [
            "Joule_000000.h5", "Joule_000001.h5", "Joule_000002.h5",
        ]

    def test_raw_field_dump(self, tmp_path):
        assert joule_solve(short_config(tmp_path, gfprint=True)) == 0
        assert (tmp_path / "Joule_000001_T.000000").exists()
        assert (tmp_path / "Joule_0000.5_mesh.000000").exists()

    def test_visualization_without_server(self, tmp_path, caplog):
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            port = s.getsockname()[1]
        config = short_config(tmp_path, visualization=True, vis_host="127.0.0.1", vis_port=port)
        with caplog.at_level(logging.WARNING):
            assert joule_solve(config) == 0
        assert "Cannot connect to GLVis" in caplog.text

    def test_amr_refines_conductor(self, tmp_path):
        run = JouleRun(short_config(tmp_path, amr=True))
        run.setup()
        assert run.pmesh.global_num_elements == 16
        assert run.layout.l2.vsize == 16

    def test_explicit_mesh(self, tmp_path):
        run = JouleRun(short_config(tmp_path))
        run.setup(mesh=make_rod_mesh(length=1.0, num_elements=4, core_fraction=1.0))
        assert run.layout.h1.vsize == 5

    def test_static_condensation_run(self, tmp_path):
        assert joule_solve(short_config(tmp_path, static_condensation=True, ode_solver=34)) == 0

    def test_solved_logged(self, tmp_path, caplog):
        with caplog.at_level(logging.INFO, logger="joule.solve"):
            joule_solve(short_config(tmp_path))
        assert "Diffusion operator initialised" in caplog.text
        assert "Solved" in caplog.text


class TestSolverFailure:
    """A non-converging linear solve is not a configuration error."""

    def test_propagates(self, tmp_path):
        config = short_config(tmp_path, linear_solver={"rtol": 1e-14, "maxiter": 1})
        with pytest.raises(SolverConvergenceError):
            joule_solve(config)


# ====================================================
# CLI
# ====================================================


class TestCLI:
    """Tests for the click command group."""

    def test_run(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["run", "-p", "test", "-tf", "1", "-dt", "0.5", "-no-visit", "--output-dir", str(tmp_path)]
        )
        assert result.exit_code == 0, result.output
        assert "Problem: test" in result.output

    def test_run_unknown_solver_exit_code(self, tmp_path):
        result = CliRunner().invoke(
            cli, ["run", "-p", "test", "-s", "4", "-tf", "1", "-no-visit", "--output-dir", str(tmp_path)]
        )
        assert result.exit_code == 3

    def test_run_solver_failure_exit_code(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "problem": "test",
            "t_final": 1.0,
            "visit": False,
            "output_dir": str(tmp_path),
            "linear_solver": {"rtol": 1e-14, "maxiter": 1},
        }))
        result = CliRunner().invoke(cli, ["run", str(path)])
        assert result.exit_code == 1
        assert "Simulation failed" in result.output
        assert not isinstance(result.exception, SolverConvergenceError)

    def test_verify_valid(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"problem": "rod", "ode_solver": 34}))
        result = CliRunner().invoke(cli, ["verify", str(path)])
        assert result.exit_code == 0, result.output
        assert "Configuration is valid:" in result.output
        assert "SDIRK34" in result.output

    def test_verify_invalid(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"dt": -1.0}))
        result = CliRunner().invoke(cli, ["verify", str(path)])
        assert result.exit_code == 1

    def test_verify_unknown_solver(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"ode_solver": 5}))
        result = CliRunner().invoke(cli, ["verify", str(path)])
        assert result.exit_code == 3

    def test_presets(self):
        result = CliRunner().invoke(cli, ["presets"])
        assert result.exit_code == 0
        assert "rod" in result.output
        assert "test" in result.output

    def test_flags_do_not_switch_off_config(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"problem": "test", "amr": True, "dt": 0.25}))
        config = _load_config(str(path), {"amr": False, "dt": None, "t_final": 3.0})
        assert config.amr
        assert config.dt == pytest.approx(0.25)
        assert config.t_final == pytest.approx(3.0)
