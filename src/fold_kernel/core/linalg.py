"""Small 3D linear-algebra helpers shared by the barrier family."""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

from .types import coerce_vector3


def normalize(vector: Any) -> Optional[np.ndarray]:
    """Unit vector as an array, or ``None`` for missing/zero/non-finite input."""
    v = coerce_vector3(vector)
    if v is None:
        return None
    arr = v.as_array()
    length = float(np.linalg.norm(arr))
    if not np.isfinite(length) or length <= 0.0:
        return None
    return arr / length


def outer_scaled(unit: np.ndarray, scalar: float) -> np.ndarray:
    return scalar * np.outer(unit, unit)


def project_hessian(unit: np.ndarray, hessian: np.ndarray) -> float:
    """Directional curvature uᵀ·H·u."""
    return float(unit @ hessian @ unit)


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    return 0.5 * (matrix + matrix.T)
