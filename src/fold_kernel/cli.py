# src/fold_kernel/cli.py

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Tuple

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import typer

from .config.loader import ConfigError, build_integrator_state, load_scenario_config
from .core.errors import FoldError
from .core.integrator import NEUTRAL_STATE, FoldIntegratorState, step_inexact_newton
from .core.registry import create_default_registry
from .core.results import dofs_to_dataframe, history_to_dataframe
from .core.types import FoldComputationContext

app = typer.Typer(
    add_completion=False,
    help=(
        "Fold contact kernel CLI\n\n"
        "Evaluate barrier potentials and run inexact-Newton contact steps\n"
        "from YAML/JSON scenario files."
    ),
)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------


def _ensure_output_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _setup_logger(output_dir: Path, log_stem: str) -> logging.Logger:
    """
    Set up a per-run logger writing to <output_dir>/<log_stem>.log.

    Records of the kernel modules (``fold_kernel.*``) end up in the same file.
    """
    _ensure_output_dir(output_dir)
    logger = logging.getLogger("fold_kernel")
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    log_file = output_dir / f"{log_stem}.log"
    handler = logging.FileHandler(log_file, mode="w", encoding="utf-8")
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logging.getLogger(f"fold_kernel.cli.{log_stem}")


def _close_logger() -> None:
    logger = logging.getLogger("fold_kernel")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def _print_and_log(logger: logging.Logger, msg: str) -> None:
    typer.echo(msg)
    logger.info(msg)


def _load_state(config: Path) -> Tuple[FoldIntegratorState, float, float, float]:
    try:
        scenario = load_scenario_config(config)
        state = build_integrator_state(scenario)
    except (ConfigError, FoldError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    return state, scenario.delta_time, scenario.line_search_scale, scenario.freeze_damping


def _evaluation_table(state: FoldIntegratorState, delta_time: float) -> pd.DataFrame:
    context = FoldComputationContext(delta_time=delta_time, iteration=0)
    rows: List[dict] = []
    for index, constraint in enumerate(state.constraints):
        local = state.states[index] if state.states is not None else NEUTRAL_STATE
        evaluation = constraint.evaluate(local, context) if constraint.enabled else None
        rows.append(
            {
                "index": index,
                "type": constraint.type,
                "id": constraint.id or "",
                "enabled": constraint.enabled,
                "energy": evaluation.energy if evaluation is not None else 0.0,
                "gradient_norm": evaluation.gradient.norm() if evaluation is not None else 0.0,
                "hessian_trace": float(evaluation.hessian.trace()) if evaluation is not None else 0.0,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["index", "type", "id", "enabled", "energy", "gradient_norm", "hessian_trace"],
    )


def _save_history_plot(history_df: pd.DataFrame, path: Path) -> None:
    """Write the per-iteration energy history to a PNG file."""
    fig, ax = plt.subplots()
    ax.plot(history_df["iteration"], history_df["max_energy"], marker="o", label="max |E|")
    ax.plot(history_df["iteration"], history_df["total_energy"], marker=".", label="sum |E|")
    ax.set_xlabel("Iteration")
    ax.set_ylabel("Energy")
    ax.set_title("Constraint energy per Newton iteration")
    ax.grid(True)
    ax.set_xlim(left=0)
    ax.legend()
    fig.savefig(path, dpi=120)
    plt.close(fig)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


@app.command("types")
def list_types() -> None:
    """List the constraint types of the built-in registry."""
    registry = create_default_registry()
    for factory in registry.list():
        typer.echo(factory.type)


@app.command()
def evaluate(
    config: Path = typer.Argument(..., help="Scenario YAML/JSON file."),
) -> None:
    """Evaluate every constraint of a scenario once and print the results."""
    state, delta_time, _, _ = _load_state(config)
    table = _evaluation_table(state, delta_time)
    if table.empty:
        typer.echo("No constraints configured.")
        return
    typer.echo(table.to_string(index=False))


@app.command()
def step(
    config: Path = typer.Argument(..., help="Scenario YAML/JSON file."),
    output_dir: Path = typer.Option(
        Path("results"),
        "--output-dir",
        "-o",
        help="Directory for CSV exports and the run log.",
    ),
    prefix: str = typer.Option(
        "",
        "--prefix",
        help="Optional prefix for output file names.",
    ),
    plot: bool = typer.Option(
        False,
        "--plot",
        help="Save a PNG plot of the energy history.",
    ),
) -> None:
    """
    Run one inexact-Newton step of a scenario.

    Examples
    --------
        fold-kernel step examples/wall_contact.yml --output-dir results/wall --plot
    """
    _ensure_output_dir(output_dir)
    filename_prefix = f"{prefix}_" if prefix else ""
    log_stem = f"{filename_prefix}step"
    logger = _setup_logger(output_dir, log_stem)

    try:
        _print_and_log(logger, f"Loading config: {config}")
        state, delta_time, line_search_scale, freeze_damping = _load_state(config)

        _print_and_log(
            logger,
            f"Running step: {len(state.positions)} DOF(s), {len(state.constraints)} constraint(s), "
            f"dt = {delta_time:g}",
        )
        t0 = time.perf_counter()
        try:
            result = step_inexact_newton(
                state,
                delta_time=delta_time,
                line_search_scale=line_search_scale,
                freeze_damping=freeze_damping,
            )
        except FoldError as exc:
            raise typer.BadParameter(str(exc)) from exc
        wall_time = time.perf_counter() - t0

        status = "converged" if result.converged else "not converged"
        _print_and_log(
            logger,
            f"Step {status} after {result.iterations} iteration(s); "
            f"beta = {result.beta:.6g}; wall time = {wall_time * 1e3:.2f} ms",
        )

        history_df = history_to_dataframe(result)
        dofs_df = dofs_to_dataframe(result.positions, result.velocities)

        history_path = output_dir / f"{filename_prefix}history.csv"
        dofs_path = output_dir / f"{filename_prefix}dofs.csv"
        _print_and_log(logger, f"Writing iteration history to {history_path}")
        history_df.to_csv(history_path, index=False)
        _print_and_log(logger, f"Writing DOF state to {dofs_path}")
        dofs_df.to_csv(dofs_path)

        if plot:
            plot_path = output_dir / f"{filename_prefix}history.png"
            if history_df.empty:
                _print_and_log(logger, "No iterations recorded; skipping plot.")
            else:
                _save_history_plot(history_df, plot_path)
                _print_and_log(logger, f"Energy plot written to {plot_path}")

        typer.echo(f"\nDetailed log written to {output_dir / f'{log_stem}.log'}")
        logger.info("Run completed.")
    finally:
        _close_logger()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
