"""Frozen stiffness design for barrier potentials.

The effective stiffness of a contact combines an inertial term, which keeps
the barrier strong enough to stop the local mass within one gap, and the
curvature of the elastic energy projected on the contact axis:

    k = m / gap² + uᵀ·H·u

Optional ``min_stiffness``/``max_stiffness`` bounds clamp the result; the
upper bound saturates the otherwise divergent ``gap → 0`` limit.
"""

from __future__ import annotations

import math
from typing import Any, Optional

from .errors import InvalidInput
from .linalg import normalize, project_hessian
from .types import FoldConstraintState, as_matrix3, as_vector3, metadata_hessian

DEFAULT_EPSILON = 1e-8


def compute_frozen_stiffness(
    gap: float,
    effective_mass: float,
    direction: Any,
    hessian: Any,
    *,
    epsilon: float = DEFAULT_EPSILON,
    min_stiffness: Optional[float] = None,
    max_stiffness: Optional[float] = None,
) -> float:
    """Estimate the stiffness of a constraint from mass, gap and curvature.

    Parameters
    ----------
    gap : float
        Signed gap; only its magnitude enters, floored at ``epsilon``.
    effective_mass : float
        Mass-like term of the constrained point(s).
    direction : Vector3D or sequence
        Constraint axis, normalised internally. A zero-length axis drops the
        curvature term.
    hessian : array_like
        3x3 elastic Hessian at the contact point.
    epsilon : float
        Lower bound of ``|gap|``.
    min_stiffness, max_stiffness : float, optional
        Clamp bounds.

    Returns
    -------
    float
        Effective stiffness.

    Raises
    ------
    InvalidInput
        If gap, mass or direction is not finite.
    InvalidMatrixShape
        If ``hessian`` is not a finite 3x3 matrix.
    """
    if not _is_finite_number(gap):
        raise InvalidInput("gap must be a finite number")
    if not _is_finite_number(effective_mass):
        raise InvalidInput("effective_mass must be a finite number")
    as_vector3(direction, name="direction")
    matrix = as_matrix3(hessian, name="hessian")

    gap_magnitude = max(abs(float(gap)), epsilon)
    mass_contribution = float(effective_mass) / (gap_magnitude * gap_magnitude)

    unit = normalize(direction)
    if unit is None:
        return _clamp(mass_contribution, min_stiffness, max_stiffness)

    return _clamp(mass_contribution + project_hessian(unit, matrix), min_stiffness, max_stiffness)


def derive_state_stiffness(state: FoldConstraintState, gap: float, direction: Any) -> float:
    """Stiffness of a barrier that was not given an explicit override.

    Uses the state's effective mass (0 when absent) and the ``hessian``
    metadata seed (zero matrix when absent), bounded below at 0.
    """
    return compute_frozen_stiffness(
        gap,
        state.effective_mass if state.effective_mass is not None else 0.0,
        direction,
        metadata_hessian(state),
        min_stiffness=0.0,
    )


def _clamp(value: float, lower: Optional[float], upper: Optional[float]) -> float:
    result = value
    if lower is not None:
        result = max(result, lower)
    if upper is not None:
        result = min(result, upper)
    return result


def _is_finite_number(value: Any) -> bool:
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False
