"""
Lasso polygon membership tests.

The lasso is an open list of screen points; the edge from the last point back
to the first is implied. Membership uses the ray-casting parity rule, so on an
axis-aligned square the left/bottom edges count as inside and the right/top
edges as outside.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class BoundingBox2D:
    min_x: float
    min_y: float
    max_x: float
    max_y: float


@dataclass
class LassoPolygon:
    """
    라쏘 다각형

    Attributes:
        view_id: id of the view whose screen space the points live in
        points: ordered screen points (open; closed implicitly)
    """
    view_id: str
    points: list[tuple[float, float]] = field(default_factory=list)

    def add_point(self, x: float, y: float) -> None:
        self.points.append((float(x), float(y)))

    @property
    def is_closable(self) -> bool:
        return len(self.points) >= 3

    def as_array(self) -> np.ndarray:
        return as_polygon(self.points)


def as_polygon(points: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.zeros((0, 2), dtype=np.float64)
    arr = arr.reshape(-1, arr.shape[-1])
    if arr.shape[1] < 2:
        raise ValueError(f"Polygon points need 2 coordinates, got shape {arr.shape}")
    return arr[:, :2]


def point_in_polygon(point: Sequence[float], polygon: Sequence[Sequence[float]] | np.ndarray) -> bool:
    """Ray-casting parity test; the polygon is closed implicitly."""
    poly = as_polygon(polygon)
    n = len(poly)
    if n < 3:
        return False

    px, py = float(point[0]), float(point[1])
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = poly[i]
        xj, yj = poly[j]
        if (yi > py) != (yj > py) and px < (xj - xi) * (py - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def points_in_polygon(points: np.ndarray, polygon: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Vectorized `point_in_polygon` over (N, 2) points; same edge rule."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    poly = as_polygon(polygon)
    inside = np.zeros(len(pts), dtype=bool)
    if len(poly) < 3 or len(pts) == 0:
        return inside

    px = pts[:, 0]
    py = pts[:, 1]
    prev = np.roll(poly, 1, axis=0)
    for (xi, yi), (xj, yj) in zip(poly, prev):
        straddles = (yi > py) != (yj > py)
        if not np.any(straddles):
            continue
        # yi != yj wherever straddles holds, so the division is safe there.
        x_cross = (xj - xi) * (py[straddles] - yi) / (yj - yi) + xi
        hit = np.zeros_like(straddles)
        hit[straddles] = px[straddles] < x_cross
        inside ^= hit
    return inside


def bounding_box_of(polygon: Sequence[Sequence[float]] | np.ndarray) -> Optional[BoundingBox2D]:
    poly = as_polygon(polygon)
    if len(poly) == 0:
        return None
    mins = poly.min(axis=0)
    maxs = poly.max(axis=0)
    return BoundingBox2D(float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))


def point_in_bounding_box(point: Sequence[float], bbox: Optional[BoundingBox2D]) -> bool:
    """Inclusive box test; a missing box accepts every point."""
    if bbox is None:
        return True
    x, y = float(point[0]), float(point[1])
    return bbox.min_x <= x <= bbox.max_x and bbox.min_y <= y <= bbox.max_y


def points_in_bounding_box(points: np.ndarray, bbox: Optional[BoundingBox2D]) -> np.ndarray:
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if bbox is None:
        return np.ones(len(pts), dtype=bool)
    return (
        (pts[:, 0] >= bbox.min_x)
        & (pts[:, 0] <= bbox.max_x)
        & (pts[:, 1] >= bbox.min_y)
        & (pts[:, 1] <= bbox.max_y)
    )


def classify_points(points: np.ndarray, valid: np.ndarray, polygon: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """
    Inside mask for projected points.

    Points whose projection failed (`valid` False) are outside; the bounding
    box gate runs before the polygon test.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    inside = np.asarray(valid, dtype=bool).copy()
    if not np.any(inside):
        return inside

    inside &= points_in_bounding_box(pts, bounding_box_of(polygon))
    if np.any(inside):
        candidates = np.flatnonzero(inside)
        inside[candidates] = points_in_polygon(pts[candidates], polygon)
    return inside
