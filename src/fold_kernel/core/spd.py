"""Symmetric positive-definite conditioning of 3x3 Hessians.

Newton-type updates are only stable when the local Hessian is SPD. Barrier
Hessians are positive semi-definite at best (rank one along the contact axis)
and user-supplied seeds can be indefinite, so every Hessian is conditioned by
a uniform diagonal shift before it enters the integrator.
"""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
from scipy import linalg

from .linalg import symmetrize
from .types import as_matrix3

logger = logging.getLogger(__name__)


def enforce_spd(
    matrix: Any,
    *,
    epsilon: float = 1e-8,
    max_iterations: int = 12,
    initial_shift: float = 0.0,
) -> np.ndarray:
    """Return an SPD version of ``matrix``.

    The input is symmetrised and tested with a Cholesky factorisation. On
    failure a uniform diagonal shift is grown: each retry doubles the previous
    shift (starting at ``epsilon``), floored at ``-min(diag) + epsilon`` when
    the symmetrised matrix has a non-positive diagonal entry.

    Parameters
    ----------
    matrix : array_like
        Finite 3x3 matrix.
    epsilon : float
        Smallest shift tried.
    max_iterations : int
        Number of Cholesky attempts.
    initial_shift : float
        Shift applied before the first attempt (negative values count as 0).

    Returns
    -------
    np.ndarray
        Symmetric positive-definite 3x3 matrix. An input that is already SPD
        comes back unshifted (up to symmetrisation).

    Raises
    ------
    InvalidMatrixShape
        If ``matrix`` is not a finite 3x3 matrix.

    Notes
    -----
    There is no failure outcome. When the doubling budget is exhausted the
    shift is raised to the one implied by the smallest eigenvalue, so the
    result is positive definite for every finite input.
    """
    base = symmetrize(as_matrix3(matrix))
    shift = max(float(initial_shift), 0.0)
    current = _add_shift(base, shift) if shift > 0.0 else base
    min_diag = float(np.min(np.diag(base)))

    for _ in range(max(int(max_iterations), 0)):
        if is_positive_definite(current):
            return current

        required = shift if min_diag > 0.0 else max(-min_diag + epsilon, shift)
        shift = max(shift * 2.0 if shift > 0.0 else epsilon, required)
        current = _add_shift(base, shift)

    result = _add_shift(base, shift if shift > 0.0 else epsilon)
    if is_positive_definite(result):
        return result

    lambda_min = float(np.linalg.eigvalsh(base)[0])
    scale = max(1.0, float(np.max(np.abs(base))))
    floor = max(epsilon, 16.0 * np.finfo(float).eps * scale)
    eigen_shift = max(shift, -lambda_min + floor)
    logger.warning(
        "SPD shift budget exhausted after %d attempt(s) (shift=%.3e); "
        "using eigenvalue shift %.3e",
        max_iterations,
        shift,
        eigen_shift,
    )
    return _add_shift(base, eigen_shift)


def is_positive_definite(matrix: np.ndarray) -> bool:
    """Cholesky test; ``True`` when the factorisation succeeds."""
    try:
        linalg.cholesky(matrix, lower=True, check_finite=False)
    except linalg.LinAlgError:
        return False
    return True


def _add_shift(matrix: np.ndarray, shift: float) -> np.ndarray:
    return matrix + shift * np.eye(3)
