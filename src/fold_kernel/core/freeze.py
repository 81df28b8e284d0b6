"""Semi-implicit freeze schedule for constraint stiffness.

Between Newton iterations the stiffness of every constraint is relaxed towards
the curvature its latest Hessian shows along the constraint axis. Contacts
that are already stiff keep (freeze) a high stiffness on the next iteration
without a full implicit re-solve.
"""

from __future__ import annotations

import math
from dataclasses import replace

import numpy as np

from .errors import InvalidInput
from .linalg import normalize, project_hessian
from .types import FoldConstraintEvaluation, FoldConstraintState, as_matrix3


def apply_freeze_schedule(
    state: FoldConstraintState,
    evaluation: FoldConstraintEvaluation,
    *,
    damping: float = 0.95,
    min_stiffness: float = 1e-4,
    max_stiffness: float = 1e12,
) -> FoldConstraintState:
    """Return a copy of ``state`` with its stiffness moved towards the Hessian curvature.

    ``k' = damping * k + (1 - damping) * max(uᵀ·H·u, 0)``, clamped into
    ``[min_stiffness, max_stiffness]``. The curvature uses the normalised
    state direction; a degenerate direction falls back to the mean diagonal
    of ``H``. The result is never negative, non-decreasing in the curvature
    and bounded.
    """
    if not 0.0 <= damping <= 1.0:
        raise InvalidInput(f"damping must lie in [0, 1], got {damping!r}")
    if not 0.0 <= min_stiffness <= max_stiffness:
        raise InvalidInput("stiffness bounds must satisfy 0 <= min_stiffness <= max_stiffness")

    hessian = as_matrix3(evaluation.hessian, name="evaluation.hessian")
    unit = normalize(state.direction)
    if unit is None:
        curvature = float(np.trace(hessian)) / 3.0
    else:
        curvature = project_hessian(unit, hessian)
    curvature = max(curvature, 0.0)

    previous = state.stiffness if math.isfinite(state.stiffness) else 0.0
    blended = damping * max(previous, 0.0) + (1.0 - damping) * curvature
    stiffness = min(max(blended, min_stiffness), max_stiffness)
    return replace(state, stiffness=stiffness)
