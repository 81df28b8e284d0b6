from __future__ import annotations

import math

import numpy as np
import pytest

from fold_kernel.core.errors import InvalidInput
from fold_kernel.core.gaps import (
    compute_edge_edge_gap,
    compute_point_plane_gap,
    compute_point_triangle_gap,
)
from fold_kernel.core.types import Vector3D

TRIANGLE = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0)]


def test_point_plane_gap() -> None:
    result = compute_point_plane_gap((1.0, 2.0, 3.0), (0.0, 0.0, 1.0), (0.0, 0.0, 2.0))
    assert result.gap == pytest.approx(2.0)
    assert result.projected_point == Vector3D(1.0, 2.0, 1.0)
    assert result.normal == Vector3D(0.0, 0.0, 1.0)


def test_point_plane_gap_degenerate_normal() -> None:
    result = compute_point_plane_gap((0.0, 0.0, -0.5), (0.0, 0.0, 0.0), (0.0, 0.0, 0.0))
    assert result.normal == Vector3D(0.0, 0.0, 1.0)
    assert result.gap == pytest.approx(-0.5)


def test_point_triangle_inside() -> None:
    result = compute_point_triangle_gap((0.2, 0.2, 0.5), TRIANGLE)
    assert result.gap == pytest.approx(0.5)
    np.testing.assert_allclose(result.closest_point.as_array(), [0.2, 0.2, 0.0], atol=1e-12)
    assert result.normal == Vector3D(0.0, 0.0, 1.0)


def test_point_triangle_outside_uses_nearest_edge() -> None:
    result = compute_point_triangle_gap((2.0, 2.0, -1.0), TRIANGLE)
    assert result.gap == pytest.approx(-1.0)
    np.testing.assert_allclose(result.closest_point.as_array(), [0.5, 0.5, 0.0], atol=1e-12)


def test_point_triangle_degenerate_triangle() -> None:
    flat = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (2.0, 0.0, 0.0)]
    result = compute_point_triangle_gap((0.5, 1.0, 0.25), flat)
    assert result.normal == Vector3D(0.0, 0.0, 1.0)
    assert result.gap == pytest.approx(0.25)


def test_edge_edge_crossing() -> None:
    result = compute_edge_edge_gap(
        [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)],
        [(0.5, -1.0, 1.0), (0.5, 1.0, 1.0)],
    )
    assert result.gap == pytest.approx(1.0)
    np.testing.assert_allclose(result.closest_point_a.as_array(), [0.5, 0.0, 0.0])
    np.testing.assert_allclose(result.closest_point_b.as_array(), [0.5, 0.0, 1.0])
    np.testing.assert_allclose(result.normal.as_array(), [0.0, 0.0, 1.0])


def test_edge_edge_parallel() -> None:
    result = compute_edge_edge_gap(
        [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)],
        [(0.0, 1.0, 0.0), (1.0, 1.0, 0.0)],
    )
    assert result.gap == pytest.approx(1.0)
    np.testing.assert_allclose(result.normal.as_array(), [0.0, 1.0, 0.0])


def test_edge_edge_clamps_to_endpoints() -> None:
    result = compute_edge_edge_gap(
        [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)],
        [(3.0, 0.0, 0.0), (4.0, 0.0, 0.0)],
    )
    assert result.gap == pytest.approx(2.0)
    np.testing.assert_allclose(result.closest_point_a.as_array(), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(result.closest_point_b.as_array(), [3.0, 0.0, 0.0])


def test_edge_edge_intersecting_falls_back_to_z() -> None:
    result = compute_edge_edge_gap(
        [(-1.0, 0.0, 0.0), (1.0, 0.0, 0.0)],
        [(0.0, -1.0, 0.0), (0.0, 1.0, 0.0)],
    )
    assert result.gap == pytest.approx(0.0)
    assert result.normal == Vector3D(0.0, 0.0, 1.0)


def test_edge_edge_point_segments() -> None:
    result = compute_edge_edge_gap(
        [(0.0, 0.0, 0.0), (0.0, 0.0, 0.0)],
        [(0.0, 3.0, 4.0), (0.0, 3.0, 4.0)],
    )
    assert result.gap == pytest.approx(5.0)


def test_gap_evaluators_reject_bad_input() -> None:
    with pytest.raises(InvalidInput):
        compute_point_plane_gap((math.nan, 0.0, 0.0), (0.0, 0.0, 0.0), (0.0, 0.0, 1.0))
    with pytest.raises(InvalidInput):
        compute_point_triangle_gap((0.0, 0.0, 0.0), TRIANGLE[:2])
    with pytest.raises(InvalidInput):
        compute_edge_edge_gap([(0.0, 0.0, 0.0), (1.0, math.inf, 0.0)], [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0)])
