"""Command-line interface for the Joule heating solver.

Usage:
    joule run -p rod -s 1 -dt 0.5 -tf 100
    joule run config.json -amr -sc
    joule verify config.json
    joule presets
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import click

from joule.exceptions import ConfigurationError, JouleError


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """Joule: coupled eddy-current and Joule heating simulator."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


_ON_FLAGS = ("gfprint", "amr", "static_condensation", "debug")


def _load_config(config_file: str | None, overrides: dict[str, Any]):
    from joule.config import JouleConfig

    base: dict[str, Any] = {}
    if config_file is not None:
        base = JouleConfig.from_file(config_file).model_dump(exclude_unset=True)
    for key, value in overrides.items():
        # on-only flags never switch a config-file setting off
        if value is None or (key in _ON_FLAGS and not value):
            continue
        base[key] = value
    return JouleConfig.from_dict(base)


@cli.command()
@click.argument("config_file", type=click.Path(exists=True), required=False)
@click.option("-m", "--mesh", "mesh_file", type=str, default=None, help="Mesh file to use.")
@click.option("-o", "--order", "order", type=int, default=None, help="Finite element order.")
@click.option("-rs", "--refine-serial", "ser_ref_levels", type=int, default=None,
              help="Number of times to refine the mesh uniformly in serial.")
@click.option("-rp", "--refine-parallel", "par_ref_levels", type=int, default=None,
              help="Number of times to refine the mesh uniformly in parallel.")
@click.option("-s", "--ode-solver", "ode_solver", type=int, default=None,
              help="ODE solver: 1 Backward Euler, 2 SDIRK23 (L), 3 SDIRK33, "
              "22 implicit midpoint, 23 SDIRK23 (A), 34 SDIRK34.")
@click.option("-tf", "--t-final", "t_final", type=float, default=None, help="Final time.")
@click.option("-dt", "--time-step", "dt", type=float, default=None, help="Time step.")
@click.option("-mu", "--permeability", "mu", type=float, default=None, help="Magnetic permeability.")
@click.option("-f", "--frequency", "frequency", type=float, default=None,
              help="Frequency of the applied potential.")
@click.option("-vis/-no-vis", "--visualization/--no-visualization", "visualization", default=None,
              help="Enable or disable GLVis visualization.")
@click.option("-vs", "--visualization-steps", "vis_steps", type=int, default=None,
              help="Visualize every n-th timestep.")
@click.option("-visit/-no-visit", "--visit-datafiles/--no-visit-datafiles", "visit", default=None,
              help="Save data files for post-processing.")
@click.option("-k", "--outputfilename", "basename", type=str, default=None, help="Output file prefix.")
@click.option("--output-dir", "output_dir", type=str, default=None, help="Output directory.")
@click.option("-print", "--print", "gfprint", is_flag=True, default=None,
              help="Print raw field files after every step.")
@click.option("-amr", "--amr", "amr", is_flag=True, default=None, help="Refine the attribute-1 region once.")
@click.option("-sc", "--static-condensation", "static_condensation", is_flag=True, default=None,
              help="Enable static condensation in the thermal solve.")
@click.option("-debug", "--debug", "debug", is_flag=True, default=None,
              help="Dump operator matrices after every step.")
@click.option("-p", "--problem", "problem", type=str, default=None, help="Problem to run: rod or test.")
def run(config_file: str | None, **overrides: Any) -> None:
    """Run a simulation from a configuration file and/or options."""
    from joule.solve import joule_solve

    try:
        config = _load_config(config_file, overrides)
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(exc.exit_code)

    click.echo(f"Problem: {config.problem}, ODE solver {config.ode_solver}, "
               f"dt={config.dt:g}, t_final={config.t_final:g}")
    try:
        code = joule_solve(config)
    except JouleError as exc:
        click.echo(f"Simulation failed: {exc}", err=True)
        sys.exit(1)
    if code != 0:
        sys.exit(code)


@cli.command()
@click.argument("config_file", type=click.Path(exists=True))
def verify(config_file: str) -> None:
    """Verify a configuration file is valid."""
    from joule.integrator.ode import make_ode_solver
    from joule.presets import apply_preset

    try:
        config = apply_preset(_load_config(config_file, {}))
        solver = make_ode_solver(config.ode_solver)
    except ConfigurationError as exc:
        click.echo(f"Configuration error: {exc}", err=True)
        sys.exit(exc.exit_code)

    click.echo("Configuration is valid:")
    click.echo(f"  Problem: {config.problem}")
    click.echo(f"  Mesh: {config.mesh_file or 'generated rod'}")
    click.echo(f"  ODE solver: {solver.tableau.name}")
    click.echo(f"  dt: {config.dt:g}, t_final: {config.t_final:g}")
    click.echo(f"  Materials: {', '.join(sorted(config.domain_properties))}")


@cli.command()
def presets() -> None:
    """List the available problem presets."""
    from joule.presets import list_presets

    for p in list_presets():
        click.echo(f"  {p['name']:<6} {p['description']}")
