from __future__ import annotations

import logging
from dataclasses import replace

import numpy as np
import pytest

from fold_kernel.core.barriers import CubicBarrier
from fold_kernel.core.errors import InvalidInput
from fold_kernel.core.integrator import FoldIntegratorState, step_inexact_newton
from fold_kernel.core.results import dofs_to_dataframe, history_to_dataframe
from fold_kernel.core.types import FoldConstraintState, FoldSolverSettings, Vector3D

# 5 halvings of the default line-search scale
STEP = 1.25 / 32.0


def _penetrating_state(gap: float = -0.1) -> FoldConstraintState:
    return FoldConstraintState(
        gap=gap, max_gap=0.0, stiffness=0.0, direction=Vector3D(0.0, 0.0, 1.0)
    )


def _dofs(n: int):
    return [Vector3D() for _ in range(n)], [Vector3D() for _ in range(n)]


def test_no_constraints_converges_immediately() -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(positions, velocities, constraints=[], beta=0.3)
    result = step_inexact_newton(state, delta_time=0.01)

    assert result.iterations == 0
    assert result.converged
    assert result.beta == 0.3
    assert result.positions is positions


def test_zero_budget_returns_unconverged() -> None:
    positions, velocities = _dofs(1)
    state = FoldIntegratorState(
        positions, velocities, constraints=[], settings=FoldSolverSettings(max_iterations=0)
    )
    result = step_inexact_newton(state, delta_time=0.01)
    assert result.iterations == 0
    assert not result.converged
    assert result.history == []


def test_neutral_state_leaves_barriers_inactive() -> None:
    positions, velocities = _dofs(1)
    state = FoldIntegratorState(positions, velocities, [CubicBarrier(stiffness_override=20.0)])
    result = step_inexact_newton(state, delta_time=0.01)
    assert result.converged and result.iterations == 0


def test_beta_accumulates_over_budget() -> None:
    positions, velocities = _dofs(1)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=3),
        states=[_penetrating_state()],
        dof_map={0: [0]},
    )
    result = step_inexact_newton(state, delta_time=0.1)

    assert result.iterations == 3
    assert not result.converged
    assert result.beta == pytest.approx(0.1 * (0.5 + 0.25 + 0.125))
    betas = [record.beta for record in result.history]
    assert betas == sorted(betas)
    assert len(result.history) == 3


def test_dof_map_routes_contributions() -> None:
    positions, velocities = _dofs(3)
    velocities[1] = Vector3D(0.0, 0.0, 1.0)
    velocities[2] = Vector3D(0.0, 0.0, 1.0)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=1),
        states=[_penetrating_state()],
        dof_map={0: [1]},
    )
    result = step_inexact_newton(state, delta_time=0.1)

    # gradient (0, 0, 0.2), Hessian 4 on zz
    np.testing.assert_allclose(positions[1].as_array(), [0.0, 0.0, -STEP * 0.2], rtol=1e-12)
    assert positions[0] == Vector3D() and positions[2] == Vector3D()
    assert velocities[1].z == pytest.approx(1.0 / 1.4, rel=1e-6)
    assert velocities[2].z == 1.0
    assert result.positions is positions


def test_dof_map_accepts_constraint_ids_and_skips_unmapped() -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(id="floor", stiffness_override=20.0), CubicBarrier(id="free", stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=1),
        states=[_penetrating_state(), _penetrating_state()],
        dof_map={"floor": [0]},
    )
    step_inexact_newton(state, delta_time=0.1)
    assert positions[0].z == pytest.approx(-STEP * 0.2)
    assert positions[1] == Vector3D()


def test_dof_map_accepts_numpy_index_arrays() -> None:
    positions, velocities = _dofs(3)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=1),
        states=[_penetrating_state()],
        dof_map={0: np.array([0, 1])},
    )
    step_inexact_newton(state, delta_time=0.1)

    assert positions[0].z == pytest.approx(-STEP * 0.2)
    assert positions[1].z == pytest.approx(-STEP * 0.2)
    assert positions[2] == Vector3D()


def test_dof_map_rejects_out_of_range_numpy_index() -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        states=[_penetrating_state()],
        dof_map={0: np.array([0, 2])},
    )
    with pytest.raises(InvalidInput, match="out of range"):
        step_inexact_newton(state, delta_time=0.1)


def test_missing_dof_map_broadcasts_with_warning(caplog) -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=1),
        states=[_penetrating_state()],
    )
    with caplog.at_level(logging.WARNING, logger="fold_kernel.core.integrator"):
        step_inexact_newton(state, delta_time=0.1)

    assert "broadcasting" in caplog.text
    assert positions[0] == positions[1]
    assert positions[0].z == pytest.approx(-STEP * 0.2)


def test_state_updater_drives_convergence() -> None:
    positions = [Vector3D(0.0, 0.0, 0.1)]
    velocities = [Vector3D()]

    def ceiling_gap(index, state, current):
        # a ceiling at z = 0; points above it penetrate
        return replace(state, gap=-current[0].z)

    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=1000.0)],
        states=[_penetrating_state()],
        dof_map={0: [0]},
        state_updater=ceiling_gap,
    )
    result = step_inexact_newton(state, delta_time=0.01)

    assert result.converged
    assert result.iterations == 1
    assert positions[0].z < 0.0
    assert result.states[0].gap > 0.0
    assert result.history[0].active_constraints == 1
    assert result.history[-1].active_constraints == 0


def test_disabled_constraints_are_skipped() -> None:
    positions, velocities = _dofs(1)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0, enabled=False)],
        states=[_penetrating_state()],
        dof_map={0: [0]},
    )
    result = step_inexact_newton(state, delta_time=0.01)
    assert result.converged and result.iterations == 0


def test_full_budget_without_early_exit() -> None:
    positions, velocities = _dofs(1)
    state = FoldIntegratorState(
        positions,
        velocities,
        [],
        settings=FoldSolverSettings(max_iterations=4, allow_early_exit=False),
    )
    result = step_inexact_newton(state, delta_time=0.01)
    assert result.iterations == 4
    assert result.converged
    assert len(result.history) == 4


@pytest.mark.parametrize(
    "kwargs, delta_time",
    [
        ({"dof_map": {0: [5]}}, 0.01),
        ({"dof_map": {0: [-1]}}, 0.01),
        ({"states": []}, 0.01),
        ({"state_updater": lambda i, s, p: s}, 0.01),
        ({}, -0.01),
        ({}, float("nan")),
    ],
)
def test_invalid_input(kwargs: dict, delta_time: float) -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(positions, velocities, [CubicBarrier()], **kwargs)
    with pytest.raises(InvalidInput):
        step_inexact_newton(state, delta_time=delta_time)


def test_mismatched_dof_lists() -> None:
    state = FoldIntegratorState([Vector3D()], [], [])
    with pytest.raises(InvalidInput):
        step_inexact_newton(state, delta_time=0.01)


def test_result_tables() -> None:
    positions, velocities = _dofs(2)
    state = FoldIntegratorState(
        positions,
        velocities,
        [CubicBarrier(stiffness_override=20.0)],
        settings=FoldSolverSettings(max_iterations=2),
        states=[_penetrating_state()],
        dof_map={0: [0]},
    )
    result = step_inexact_newton(state, delta_time=0.1)

    history = history_to_dataframe(result)
    assert list(history["iteration"]) == [0, 1]
    assert history.attrs["converged"] is False
    assert history.attrs["iterations"] == 2
    assert (history["step"] > 0.0).all()

    dofs = dofs_to_dataframe(result.positions, result.velocities)
    assert list(dofs.columns) == ["x", "y", "z", "vx", "vy", "vz"]
    assert dofs.loc[0, "z"] == pytest.approx(positions[0].z)
    assert dofs.loc[1, "z"] == 0.0
