"""Regularised Coulomb friction potential.

The tangential slip ``t`` accumulated during a step is penalised with a secant
stiffness ``k = μ N / |t|``:

    E = ½ k |t|² = ½ μ N |t|,    ∇E = μ N t̂,    ∇²E = k (t̂ ⊗ t̂)

so the friction force has the constant Coulomb magnitude ``μ N`` along the
slip direction. Slips shorter than ``epsilon`` are treated as sticking and
produce no potential.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Any, ClassVar, Optional

from .linalg import outer_scaled
from .types import (
    FoldComputationContext,
    FoldConstraint,
    FoldConstraintEvaluation,
    FoldConstraintState,
    Vector3D,
    coerce_vector3,
)


@dataclass
class FrictionPotential(FoldConstraint):
    """Friction from ``metadata['contact_force']`` and ``metadata['tangent_displacement']``.

    Examples
    --------
    >>> friction = FrictionPotential(coefficient=0.8)
    >>> state = FoldConstraintState(
    ...     gap=0.0, max_gap=0.0, stiffness=0.0, direction=Vector3D(0.0, 0.0, 1.0),
    ...     metadata={"contact_force": 5.0, "tangent_displacement": (0.02, 0.01, 0.0)},
    ... )
    >>> round(friction.evaluate(state, FoldComputationContext(1e-2)).gradient.norm(), 6)
    4.0
    """

    type: ClassVar[str] = "friction"

    id: Optional[str] = None
    coefficient: float = 0.5
    epsilon: float = 1e-6
    enabled: bool = True

    def evaluate(
        self, state: FoldConstraintState, context: FoldComputationContext
    ) -> FoldConstraintEvaluation:
        metadata = state.metadata or {}
        contact_force = _contact_force(metadata.get("contact_force"))
        tangent = coerce_vector3(metadata.get("tangent_displacement"))

        if tangent is None or contact_force <= 0.0 or self.coefficient <= 0.0:
            return FoldConstraintEvaluation.zero()

        magnitude = tangent.norm()
        if magnitude <= self.epsilon:
            return FoldConstraintEvaluation.zero()

        unit = tangent.as_array() / magnitude
        coulomb_force = self.coefficient * contact_force
        stiffness = coulomb_force / magnitude
        return FoldConstraintEvaluation(
            energy=0.5 * stiffness * magnitude * magnitude,
            gradient=Vector3D.from_array(unit * coulomb_force),
            hessian=outer_scaled(unit, stiffness),
        )


def _contact_force(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return 0.0
    force = float(value)
    return force if math.isfinite(force) else 0.0
