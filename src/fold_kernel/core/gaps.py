"""Narrow-phase gap evaluators.

These turn raw geometry into the ``gap``/``direction`` pair consumed by the
barriers. Gaps are signed along the returned normal; a degenerate normal
(collapsed triangle, coincident closest points) falls back to +z.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from .errors import InvalidInput
from .types import Vector3D, as_vector3

FALLBACK_NORMAL = Vector3D(0.0, 0.0, 1.0)
_DEGENERATE_EPS = 1e-8


@dataclass(frozen=True)
class PointTriangleGapResult:
    gap: float
    closest_point: Vector3D
    normal: Vector3D


@dataclass(frozen=True)
class EdgeEdgeGapResult:
    gap: float
    closest_point_a: Vector3D
    closest_point_b: Vector3D
    normal: Vector3D


@dataclass(frozen=True)
class PointPlaneGapResult:
    gap: float
    projected_point: Vector3D
    normal: Vector3D


def compute_point_triangle_gap(point: Any, triangle: Sequence[Any]) -> PointTriangleGapResult:
    """Signed distance of ``point`` from the plane of ``triangle``.

    The normal follows the winding ``(b - a) x (c - a)``. The closest point is
    the projection onto the plane when it falls inside the triangle and the
    nearest point on the triangle's edges otherwise.

    Raises
    ------
    InvalidInput
        Non-finite coordinates or a triangle without exactly three vertices.
    """
    p = _point(point, "point")
    a, b, c = _vertices(triangle, 3, "triangle")

    normal = _unit_or_fallback(np.cross(b - a, c - a))
    gap = float((p - a) @ normal)
    projected = p - gap * normal

    if _inside_triangle(projected, a, b, c):
        closest = projected
    else:
        candidates = [_closest_on_segment(projected, start, end) for start, end in ((a, b), (b, c), (c, a))]
        closest = min(candidates, key=lambda candidate: float(np.linalg.norm(candidate - projected)))

    return PointTriangleGapResult(
        gap=gap,
        closest_point=Vector3D.from_array(closest),
        normal=Vector3D.from_array(normal),
    )


def compute_edge_edge_gap(edge_a: Sequence[Any], edge_b: Sequence[Any]) -> EdgeEdgeGapResult:
    """Closest points between two segments and their separation.

    Segment parameters are clamped to ``[0, 1]``; degenerate (zero-length)
    segments are treated as points. The normal points from edge A to edge B,
    so the gap is the (non-negative) segment distance.
    """
    p1, q1 = _vertices(edge_a, 2, "edge_a")
    p2, q2 = _vertices(edge_b, 2, "edge_b")
    d1 = q1 - p1
    d2 = q2 - p2
    r = p1 - p2
    a = float(d1 @ d1)
    e = float(d2 @ d2)
    f = float(d2 @ r)

    if a <= _DEGENERATE_EPS and e <= _DEGENERATE_EPS:
        s = t = 0.0
    elif a <= _DEGENERATE_EPS:
        s = 0.0
        t = _clamp01(f / e)
    else:
        c = float(d1 @ r)
        if e <= _DEGENERATE_EPS:
            t = 0.0
            s = _clamp01(-c / a)
        else:
            b = float(d1 @ d2)
            denom = a * e - b * b
            s = _clamp01((b * f - c * e) / denom) if denom != 0.0 else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                t = 0.0
                s = _clamp01(-c / a)
            elif t > 1.0:
                t = 1.0
                s = _clamp01((b - c) / a)

    closest_a = p1 + s * d1
    closest_b = p2 + t * d2
    diff = closest_b - closest_a
    normal = _unit_or_fallback(diff)
    return EdgeEdgeGapResult(
        gap=float(diff @ normal),
        closest_point_a=Vector3D.from_array(closest_a),
        closest_point_b=Vector3D.from_array(closest_b),
        normal=Vector3D.from_array(normal),
    )


def compute_point_plane_gap(point: Any, plane_point: Any, plane_normal: Any) -> PointPlaneGapResult:
    p = _point(point, "point")
    origin = _point(plane_point, "plane_point")
    normal = _unit_or_fallback(_point(plane_normal, "plane_normal"))
    gap = float((p - origin) @ normal)
    return PointPlaneGapResult(
        gap=gap,
        projected_point=Vector3D.from_array(p - gap * normal),
        normal=Vector3D.from_array(normal),
    )


def _point(value: Any, name: str) -> np.ndarray:
    return as_vector3(value, name=name).as_array()


def _vertices(values: Sequence[Any], count: int, name: str) -> list:
    if values is None or len(values) != count:
        raise InvalidInput(f"{name} must contain exactly {count} points")
    return [_point(value, f"{name}[{index}]") for index, value in enumerate(values)]


def _unit_or_fallback(vector: np.ndarray) -> np.ndarray:
    length = float(np.linalg.norm(vector))
    if length == 0.0:
        return FALLBACK_NORMAL.as_array()
    return vector / length


def _inside_triangle(p: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> bool:
    v0 = b - a
    v1 = c - a
    v2 = p - a
    d00 = float(v0 @ v0)
    d01 = float(v0 @ v1)
    d11 = float(v1 @ v1)
    d20 = float(v2 @ v0)
    d21 = float(v2 @ v1)
    denom = d00 * d11 - d01 * d01
    if denom == 0.0:
        return False
    v = (d11 * d20 - d01 * d21) / denom
    w = (d00 * d21 - d01 * d20) / denom
    u = 1.0 - v - w
    return min(u, v, w) >= -_DEGENERATE_EPS


def _closest_on_segment(p: np.ndarray, start: np.ndarray, end: np.ndarray) -> np.ndarray:
    ab = end - start
    length_sq = float(ab @ ab)
    if length_sq == 0.0:
        return start
    t = _clamp01(float((p - start) @ ab) / length_sq)
    return start + t * ab


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)
