"""Tests for the time-step loop.

Test categories:
1. Last-step detection
2. Full run of the rod to t_final (step count, final checkpoint)
3. Output and diagnostic cadence
4. Failing sinks are skipped, not fatal
5. Per-step dumps (debug, raw fields)
"""

from __future__ import annotations

import logging
from contextlib import ExitStack

import numpy as np
import pytest

from joule.config import JouleConfig
from joule.core.bases import OutputSink
from joule.diagnostics.checkpoint import load_data_collection
from joule.diagnostics.field_dump import FieldDumper
from joule.integrator.stepper import StepperPhase, TimeStepper, is_last_step
from joule.solve import JouleRun


class RecordingSink(OutputSink):
    """Records every ``save`` call."""

    def __init__(self):
        self.calls: list[tuple[int, float]] = []
        self.closed = False

    def save(self, cycle, time):
        self.calls.append((cycle, time))

    def close(self):
        self.closed = True


class FailingSink(OutputSink):
    def save(self, cycle, time):
        raise OSError("disk full")


def make_stepper(run, **kwargs) -> TimeStepper:
    kwargs.setdefault("t_final", 2.0)
    kwargs.setdefault("dt", 0.5)
    return TimeStepper(run.operator, run.ode_solver, run.comm, **kwargs)


# ====================================================
# Last step
# ====================================================


class TestLastStep:
    """Tests for the half-step termination rule."""

    def test_exact_multiple(self):
        assert not is_last_step(99.0, 0.5, 100.0)
        assert is_last_step(99.5, 0.5, 100.0)

    def test_within_half_step(self):
        """A step landing less than half a step short of t_final is the last one."""
        assert is_last_step(0.7, 0.25, 1.0)
        assert not is_last_step(0.5, 0.25, 1.0)

    def test_first_last_index(self):
        t, dt, ti = 0.0, 0.5, 1
        while not is_last_step(t, dt, 100.0):
            t += dt
            ti += 1
        assert ti == 200

    def test_invalid_dt(self, make_run):
        run = make_run()
        with pytest.raises(ValueError):
            make_stepper(run, dt=0.0)


# ====================================================
# Full run
# ====================================================


@pytest.mark.slow
class TestFullRun:
    """Rod problem stepped to t_final = 100 with dt = 0.5."""

    @pytest.fixture
    def finished(self, tmp_path):
        config = JouleConfig(
            problem="test", t_final=100.0, dt=0.5, vis_steps=50, visit=True, output_dir=str(tmp_path)
        )
        run = JouleRun(config)
        with ExitStack() as stack:
            run.setup()
            run.run(stack)
        return run

    def test_step_count(self, finished):
        summary = finished.summary
        assert summary.steps == 200
        assert summary.final_time == pytest.approx(100.0)

    def test_times_non_decreasing(self, finished):
        times = [r.time for r in finished.summary.results]
        assert np.all(np.diff(times) > 0.0)

    def test_only_final_step_is_last(self, finished):
        flags = [r.last_step for r in finished.summary.results]
        assert flags.count(True) == 1
        assert flags[-1]

    def test_checkpoints(self, finished, tmp_path):
        files = sorted(p.name for p in tmp_path.glob("Joule_*.h5"))
        assert files == [
            "Joule_000000.h5", "Joule_000050.h5", "Joule_000100.h5",
            "Joule_000150.h5", "Joule_000200.h5",
        ]
        data = load_data_collection(tmp_path / "Joule_000200.h5")
        assert data["cycle"] == 200
        assert data["time"] == pytest.approx(100.0)
        np.testing.assert_allclose(data["fields"]["T"], finished.state.view("T").data)

    def test_rod_heats_up(self, finished):
        assert np.all(finished.state.view("T").data > 0.0)
        assert finished.stepper.phase == StepperPhase.DONE


# ====================================================
# Cadence
# ====================================================


class TestCadence:
    """Tests for output and diagnostic cadence."""

    def test_output_every_n_and_last(self, make_run):
        run = make_run()
        sink = RecordingSink()
        summary = make_stepper(run, vis_steps=3, sinks=[sink]).run(run.state)
        assert [c for c, _ in sink.calls] == [3, 4]
        assert [r.output for r in summary.results] == [False, False, True, True]

    def test_barrier_before_output(self, make_run):
        run = make_run()
        before = run.comm.barrier_count
        make_stepper(run, vis_steps=2).run(run.state)
        assert run.comm.barrier_count - before == 2

    def test_diagnostic_cadence(self, make_run):
        run = make_run()
        summary = make_stepper(run, diag_steps=3).run(run.state)
        computed = [r.electric_losses is not None for r in summary.results]
        assert computed == [False, False, True, True]
        assert summary.electric_losses == summary.results[-1].electric_losses

    def test_losses_logged(self, make_run, caplog):
        run = make_run()
        with caplog.at_level(logging.INFO, logger="joule.integrator.stepper"):
            make_stepper(run).run(run.state)
        assert caplog.text.count("dot(E, J)") == 4

    def test_max_steps(self, make_run):
        run = make_run()
        summary = make_stepper(run).run(run.state, max_steps=2)
        assert summary.steps == 2
        assert summary.final_time == pytest.approx(1.0)
        assert not any(r.last_step for r in summary.results)

    def test_advance_does_no_output(self, make_run):
        run = make_run()
        sink = RecordingSink()
        stepper = make_stepper(run, sinks=[sink])
        t = stepper.advance(run.state, 0.0, 0.5)
        assert t == pytest.approx(0.5)
        assert sink.calls == []

    def test_advance_refreshes_algebraic_fields(self, make_run):
        run = make_run()
        stepper = make_stepper(run)
        stepper.advance(run.state, 0.0, 0.5)
        np.testing.assert_array_equal(run.state.view("E").data, run.operator.algebraic["E"])
        np.testing.assert_array_equal(run.state.view("w").data, run.operator.algebraic["w"])


# ====================================================
# Failures
# ====================================================


class TestSinkFailures:
    """An output failure is logged and the run continues."""

    def test_failing_sink_skipped(self, make_run, caplog):
        run = make_run()
        recorder = RecordingSink()
        with caplog.at_level(logging.WARNING, logger="joule.integrator.stepper"):
            summary = make_stepper(run, sinks=[FailingSink(), recorder]).run(run.state)
        assert summary.steps == 4
        assert len(recorder.calls) == 4
        assert "skipping" in caplog.text
        assert "disk full" in caplog.text


# ====================================================
# Per-step dumps
# ====================================================


class TestDumps:
    """Tests for debug and raw field dumps."""

    def test_debug_dump_each_step(self, make_run, tmp_path):
        run = make_run()
        make_stepper(run, t_final=1.0, debug=True, basename=tmp_path / "Joule").run(run.state)
        assert (tmp_path / "Joule_0.5_K_sigma.mtx").exists()
        assert (tmp_path / "Joule_1_curl_curl.mtx").exists()

    def test_field_dump_each_step(self, make_run, tmp_path):
        run = make_run()
        dumper = FieldDumper("Joule", tmp_path / "raw", run.layout, run.comm)
        make_stepper(run, t_final=1.0, field_dump=dumper).run(run.state)
        names = {p.name for p in (tmp_path / "raw").iterdir()}
        assert "Joule_0000.5_T.000000" in names
        assert "Joule_000001_mesh.000000" in names
