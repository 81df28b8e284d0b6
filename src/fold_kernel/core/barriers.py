"""Cubic barrier potentials and the barriers composed on top of them.

Every barrier penalises a violation ``v = max(0, max_gap - gap)`` with the C¹
cubic potential

    E = k v³ / 3,    ∇E = k v² u,    ∇²E = 2 k v (u ⊗ u)

along the unit constraint axis ``u``. Wall, pin and strain barriers delegate
the evaluation to a :class:`CubicBarrier` they own and differ only in how the
gap, axis and stiffness are obtained.

Available Barriers
------------------
- **cubic-barrier**: base penetration penalty, stiffness taken from the state
- **wall-barrier**: gap projected on a plane, stiffness derived from mass/curvature
- **pin-barrier**: anchors a point along an axis, stiffness derived
- **strain-barrier**: bounds the singular values of a local deformation

Inactive barriers (no violation, non-positive stiffness, degenerate axis)
return :meth:`FoldConstraintEvaluation.zero`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import ClassVar, Iterable, List, Optional

import numpy as np

from .errors import InvalidInput
from .linalg import normalize, outer_scaled
from .stiffness import derive_state_stiffness
from .types import (
    FoldComputationContext,
    FoldConstraint,
    FoldConstraintEvaluation,
    FoldConstraintState,
    Vector3D,
    as_vector3,
)

DEFAULT_MAX_STRETCH = 1.1
DEFAULT_MIN_COMPRESSION = 0.9


def cubic_evaluation(
    unit: np.ndarray, stiffness: float, violations: Iterable[float]
) -> FoldConstraintEvaluation:
    """Sum of cubic penalties of several violations sharing one axis.

    Each violation is assumed to grow one-to-one with displacement along
    ``unit``, so the gradient and Hessian magnitudes are the first and second
    derivatives of the summed energy.
    """
    values = [v for v in violations if v > 0.0]
    if not values:
        return FoldConstraintEvaluation.zero()
    energy = stiffness * sum(v**3 for v in values) / 3.0
    gradient_magnitude = stiffness * sum(v**2 for v in values)
    hessian_magnitude = 2.0 * stiffness * sum(values)
    return FoldConstraintEvaluation(
        energy=float(energy),
        gradient=Vector3D.from_array(unit * gradient_magnitude),
        hessian=outer_scaled(unit, hessian_magnitude),
    )


def check_state(state: FoldConstraintState) -> None:
    """Reject states whose scalar fields are not finite."""
    for name in ("gap", "max_gap", "stiffness"):
        value = getattr(state, name)
        if not math.isfinite(value):
            raise InvalidInput(f"constraint state field '{name}' must be finite, got {value!r}")


def _optional_vector(value, name: str) -> Optional[Vector3D]:
    return None if value is None else as_vector3(value, name=name)


@dataclass
class CubicBarrier(FoldConstraint):
    """Base penetration penalty.

    Parameters
    ----------
    id : str, optional
        Constraint identifier.
    stiffness_override : float, optional
        Replaces ``state.stiffness``.
    max_gap : float, optional
        Replaces ``state.max_gap``.
    direction : Vector3D, optional
        Replaces ``state.direction``.

    Examples
    --------
    >>> barrier = CubicBarrier(stiffness_override=20.0)
    >>> state = FoldConstraintState(gap=-0.1, max_gap=0.0, stiffness=0.0,
    ...                             direction=Vector3D(0.0, 0.0, 1.0))
    >>> round(barrier.evaluate(state, FoldComputationContext(1e-2)).energy, 4)
    0.0067
    """

    type: ClassVar[str] = "cubic-barrier"

    id: Optional[str] = None
    stiffness_override: Optional[float] = None
    max_gap: Optional[float] = None
    direction: Optional[Vector3D] = None
    enabled: bool = True

    def __post_init__(self) -> None:
        self.direction = _optional_vector(self.direction, "direction")

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        check_state(state)
        max_gap = self.max_gap if self.max_gap is not None else state.max_gap
        stiffness = self.stiffness_override if self.stiffness_override is not None else state.stiffness
        direction = self.direction if self.direction is not None else state.direction

        if not stiffness > 0.0:
            return FoldConstraintEvaluation.zero()

        violation = max(0.0, max_gap - state.gap)
        if violation <= 0.0:
            return FoldConstraintEvaluation.zero()

        unit = normalize(direction)
        if unit is None:
            return FoldConstraintEvaluation.zero()

        return cubic_evaluation(unit, stiffness, (violation,))


@dataclass
class WallBarrier(FoldConstraint):
    """Half-space barrier against a plane.

    The wall normal is ``normal`` when configured, else the state direction
    (normalised; degenerate -> zero evaluation). It is used both for the
    signed plane distance and as the axis of the underlying cubic barrier.

    When a ``plane_point`` is configured and the state carries
    ``metadata['position']``, the gap becomes the smaller of the state's gap
    and the signed distance ``(position - plane_point) · normal``.
    """

    type: ClassVar[str] = "wall-barrier"

    id: Optional[str] = None
    stiffness_override: Optional[float] = None
    max_gap: Optional[float] = None
    normal: Optional[Vector3D] = None
    plane_point: Optional[Vector3D] = None
    enabled: bool = True
    base: CubicBarrier = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.normal = _optional_vector(self.normal, "normal")
        self.plane_point = _optional_vector(self.plane_point, "plane_point")
        self.base = CubicBarrier(id=self.id, max_gap=self.max_gap, direction=self.normal)

    def wall_normal(self, state: FoldConstraintState) -> Optional[np.ndarray]:
        return normalize(self.normal if self.normal is not None else state.direction)

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        check_state(state)
        unit = self.wall_normal(state)
        if unit is None:
            return FoldConstraintEvaluation.zero()

        gap = self.projected_gap(state, unit)
        stiffness = (
            self.stiffness_override
            if self.stiffness_override is not None
            else derive_state_stiffness(state, gap, unit)
        )
        if not stiffness > 0.0:
            return FoldConstraintEvaluation.zero()

        return self.base.evaluate(
            replace(
                state,
                gap=gap,
                direction=Vector3D.from_array(unit),
                stiffness=stiffness,
                max_gap=self.max_gap if self.max_gap is not None else state.max_gap,
            ),
            context,
        )

    def projected_gap(self, state: FoldConstraintState, unit: np.ndarray) -> float:
        if self.plane_point is None:
            return state.gap
        position = state.metadata.get("position") if state.metadata else None
        if position is None:
            return state.gap
        position = as_vector3(position, name="metadata['position']")
        signed_distance = float((position - self.plane_point).as_array() @ unit)
        return min(state.gap, signed_distance)


@dataclass
class PinBarrier(FoldConstraint):
    """Anchors a point along an axis; no plane projection."""

    type: ClassVar[str] = "pin-barrier"

    id: Optional[str] = None
    stiffness_override: Optional[float] = None
    max_gap: Optional[float] = None
    direction: Optional[Vector3D] = None
    enabled: bool = True
    base: CubicBarrier = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.direction = _optional_vector(self.direction, "direction")
        self.base = CubicBarrier(id=self.id, max_gap=self.max_gap, direction=self.direction)

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        check_state(state)
        direction = self.direction if self.direction is not None else state.direction
        if normalize(direction) is None:
            return FoldConstraintEvaluation.zero()

        stiffness = (
            self.stiffness_override
            if self.stiffness_override is not None
            else derive_state_stiffness(state, state.gap, direction)
        )
        if not stiffness > 0.0:
            return FoldConstraintEvaluation.zero()

        return self.base.evaluate(
            replace(
                state,
                stiffness=stiffness,
                direction=direction,
                max_gap=self.max_gap if self.max_gap is not None else state.max_gap,
            ),
            context,
        )


@dataclass
class StrainBarrier(FoldConstraint):
    """Keeps deformation singular values inside ``[min_compression, max_stretch]``.

    Reads ``metadata['singular_values']``. Every value outside the band
    contributes its distance to the nearest bound as a separate cubic term
    along the constraint axis; the terms are added.
    """

    type: ClassVar[str] = "strain-barrier"

    id: Optional[str] = None
    stiffness_override: Optional[float] = None
    max_stretch: float = DEFAULT_MAX_STRETCH
    min_compression: float = DEFAULT_MIN_COMPRESSION
    direction: Optional[Vector3D] = None
    enabled: bool = True

    def __post_init__(self) -> None:
        self.direction = _optional_vector(self.direction, "direction")
        if self.min_compression > self.max_stretch:
            raise InvalidInput(
                f"min_compression ({self.min_compression}) must not exceed "
                f"max_stretch ({self.max_stretch})"
            )

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        values = self.singular_values(state)
        violations = strain_violations(values, self.max_stretch, self.min_compression)
        if not violations:
            return FoldConstraintEvaluation.zero()

        unit = normalize(self.direction if self.direction is not None else state.direction)
        if unit is None:
            return FoldConstraintEvaluation.zero()

        total = sum(violations)
        stiffness = (
            self.stiffness_override
            if self.stiffness_override is not None
            else derive_state_stiffness(state, -total, unit)
        )
        if not stiffness > 0.0:
            return FoldConstraintEvaluation.zero()

        return cubic_evaluation(unit, stiffness, violations)

    @staticmethod
    def singular_values(state: FoldConstraintState) -> List[float]:
        raw = state.metadata.get("singular_values") if state.metadata else None
        if raw is None:
            return []
        try:
            values = [float(value) for value in raw]
        except (TypeError, ValueError):
            return []
        return [value for value in values if math.isfinite(value)]


def strain_violations(
    values: Iterable[float], max_stretch: float, min_compression: float
) -> List[float]:
    """Distance of every out-of-band value to its nearest bound."""
    violations: List[float] = []
    for sigma in values:
        if sigma > max_stretch:
            violations.append(sigma - max_stretch)
        elif sigma < min_compression:
            violations.append(min_compression - sigma)
    return violations
