"""Tabular views of integrator output (pandas)."""

from __future__ import annotations

from dataclasses import asdict
from typing import Optional, Sequence

import pandas as pd

from .integrator import IntegratorResult
from .types import Vector3D

HISTORY_COLUMNS = [
    "iteration",
    "total_energy",
    "max_energy",
    "active_constraints",
    "beta",
    "step",
]


def history_to_dataframe(result: IntegratorResult) -> pd.DataFrame:
    """One row per integrator iteration.

    Step-level information (``converged``, ``iterations``, final ``beta``) is
    stored in ``df.attrs``.
    """
    df = pd.DataFrame([asdict(record) for record in result.history], columns=HISTORY_COLUMNS)
    df.attrs["converged"] = result.converged
    df.attrs["iterations"] = result.iterations
    df.attrs["beta"] = result.beta
    return df


def dofs_to_dataframe(
    positions: Sequence[Vector3D], velocities: Optional[Sequence[Vector3D]] = None
) -> pd.DataFrame:
    """Positions (and velocities) per DOF, indexed by DOF number."""
    rows = []
    for dof, position in enumerate(positions):
        row = {"dof": dof, "x": position.x, "y": position.y, "z": position.z}
        if velocities is not None:
            velocity = velocities[dof]
            row.update({"vx": velocity.x, "vy": velocity.y, "vz": velocity.z})
        rows.append(row)
    columns = ["dof", "x", "y", "z"]
    if velocities is not None:
        columns += ["vx", "vy", "vz"]
    return pd.DataFrame(rows, columns=columns).set_index("dof")
