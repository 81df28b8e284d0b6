from __future__ import annotations

import math

import numpy as np
import pytest

from fold_kernel.core.barriers import StrainBarrier, strain_violations
from fold_kernel.core.errors import InvalidInput
from fold_kernel.core.friction import FrictionPotential
from fold_kernel.core.types import FoldComputationContext, FoldConstraintState, Vector3D

CTX = FoldComputationContext(delta_time=1.0e-2)


def _state(metadata: dict, **kwargs) -> FoldConstraintState:
    return FoldConstraintState(
        gap=kwargs.pop("gap", 0.0),
        max_gap=0.0,
        stiffness=0.0,
        direction=kwargs.pop("direction", Vector3D(0.0, 0.0, 1.0)),
        metadata=metadata,
        **kwargs,
    )


def test_strain_violations_measure_distance_to_band() -> None:
    violations = strain_violations([1.2, 1.0, 0.8], max_stretch=1.1, min_compression=0.9)
    np.testing.assert_allclose(violations, [0.1, 0.1], rtol=1e-9)


def test_strain_barrier_adds_violations() -> None:
    barrier = StrainBarrier(stiffness_override=30.0)
    ev = barrier.evaluate(_state({"singular_values": [1.2, 1.0, 0.8]}), CTX)

    assert ev.energy == pytest.approx(30.0 * 2 * 0.1**3 / 3.0, rel=1e-9)
    assert ev.gradient.z == pytest.approx(30.0 * 2 * 0.1**2, rel=1e-9)
    assert ev.hessian[2, 2] == pytest.approx(2.0 * 30.0 * 0.2, rel=1e-9)


def test_strain_barrier_inside_band_is_zero() -> None:
    barrier = StrainBarrier(stiffness_override=30.0)
    assert barrier.evaluate(_state({"singular_values": [0.95, 1.0, 1.05]}), CTX).is_zero()
    assert barrier.evaluate(_state({}), CTX).is_zero()


def test_strain_barrier_ignores_non_finite_values() -> None:
    barrier = StrainBarrier(stiffness_override=30.0)
    ev = barrier.evaluate(_state({"singular_values": [math.nan, 1.2, math.inf]}), CTX)
    assert ev.energy == pytest.approx(30.0 * 0.1**3 / 3.0, rel=1e-9)


def test_strain_barrier_energy_grows_with_violation() -> None:
    barrier = StrainBarrier(stiffness_override=10.0)
    energies = [
        barrier.evaluate(_state({"singular_values": [sigma]}), CTX).energy
        for sigma in (1.1, 1.15, 1.2, 1.4, 2.0)
    ]
    assert energies[0] == 0.0
    assert all(b > a for a, b in zip(energies, energies[1:]))


def test_strain_barrier_derived_stiffness_uses_total_violation() -> None:
    barrier = StrainBarrier()
    ev = barrier.evaluate(
        _state({"singular_values": [1.3]}, effective_mass=0.04),
        CTX,
    )
    # gap = -0.2 -> k = 0.04 / 0.04 = 1
    assert ev.energy == pytest.approx(0.2**3 / 3.0, rel=1e-9)


def test_strain_barrier_rejects_inverted_band() -> None:
    with pytest.raises(InvalidInput):
        StrainBarrier(max_stretch=0.8, min_compression=0.9)


def test_friction_coulomb_magnitude() -> None:
    friction = FrictionPotential(coefficient=0.8)
    tangent = np.array([0.02, 0.01, 0.0])
    ev = friction.evaluate(
        _state({"contact_force": 5.0, "tangent_displacement": tuple(tangent)}), CTX
    )

    assert ev.energy > 0.0
    assert ev.gradient.norm() == pytest.approx(4.0)
    # gradient points along the slip and H t reproduces it
    np.testing.assert_allclose(
        ev.gradient.as_array() / 4.0, tangent / np.linalg.norm(tangent), rtol=1e-12
    )
    np.testing.assert_allclose(ev.hessian @ tangent, ev.gradient.as_array(), rtol=1e-9)
    assert ev.energy == pytest.approx(0.5 * 4.0 * np.linalg.norm(tangent))


def test_friction_accepts_mapping_tangent() -> None:
    friction = FrictionPotential(coefficient=0.5)
    ev = friction.evaluate(
        _state({"contact_force": 2.0, "tangent_displacement": {"x": 0.0, "y": 0.1, "z": 0.0}}), CTX
    )
    np.testing.assert_allclose(ev.gradient.as_array(), [0.0, 1.0, 0.0], atol=1e-12)


@pytest.mark.parametrize(
    "metadata",
    [
        {},
        {"contact_force": 5.0},
        {"tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": -1.0, "tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": "heavy", "tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": True, "tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": "5.0", "tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": math.inf, "tangent_displacement": (0.02, 0.0, 0.0)},
        {"contact_force": 5.0, "tangent_displacement": (math.nan, 0.0, 0.0)},
        {"contact_force": 5.0, "tangent_displacement": (1.0e-9, 0.0, 0.0)},
    ],
)
def test_friction_inactive_cases(metadata: dict) -> None:
    assert FrictionPotential(coefficient=0.8).evaluate(_state(metadata), CTX).is_zero()


def test_friction_zero_coefficient() -> None:
    friction = FrictionPotential(coefficient=0.0)
    state = _state({"contact_force": 5.0, "tangent_displacement": (0.02, 0.0, 0.0)})
    assert friction.evaluate(state, CTX).is_zero()


def test_friction_accepts_numpy_contact_force() -> None:
    state = _state({"contact_force": np.float32(5.0), "tangent_displacement": (0.02, 0.0, 0.0)})
    ev = FrictionPotential(coefficient=0.8).evaluate(state, CTX)
    np.testing.assert_allclose(ev.gradient.as_array(), [4.0, 0.0, 0.0], rtol=1e-6)
