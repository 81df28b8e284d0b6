"""Scalar backtracking line search over constraint energies."""

from __future__ import annotations

import math
from typing import Sequence

from .errors import InvalidInput
from .types import FoldConstraintEvaluation


def constraint_line_search(
    evaluations: Sequence[FoldConstraintEvaluation],
    *,
    max_iterations: int = 5,
    scale: float = 1.0,
    tolerance: float = 1e-6,
) -> float:
    """Halve the step until every scaled energy is within ``tolerance``.

    Starting from ``scale``, the step is halved at most ``max_iterations``
    times; the search stops as soon as ``|energy| * step <= tolerance`` holds
    for every evaluation. The result always lies in ``(0, scale]``.

    Raises
    ------
    InvalidInput
        If ``scale`` is not a positive finite number or ``tolerance`` is
        negative.
    """
    if not (math.isfinite(scale) and scale > 0.0):
        raise InvalidInput(f"line search scale must be positive and finite, got {scale!r}")
    if not tolerance >= 0.0:
        raise InvalidInput(f"line search tolerance must be >= 0, got {tolerance!r}")

    step = float(scale)
    for _ in range(max(int(max_iterations), 0)):
        if all(abs(evaluation.energy) * step <= tolerance for evaluation in evaluations):
            break
        step *= 0.5
    return step
