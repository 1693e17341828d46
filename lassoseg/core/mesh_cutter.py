"""
Mesh Region Cutter Module
메쉬 영역 제거 - 라쏘 안에 걸친 삼각형 삭제

The cut is conservative: a triangle with any vertex projecting inside the lasso
is removed as a whole. Triangles are never split.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
import logging

import numpy as np
from scipy.spatial import cKDTree

from .history import EditHistory
from .mesh_data import LabelMesh
from .polygon import LassoPolygon, as_polygon, classify_points
from .runtime_defaults import DEFAULTS
from .views import View, ViewKind, project_points

_LOGGER = logging.getLogger(__name__)


class UnsupportedMeshError(ValueError):
    pass


class UnsupportedViewError(ValueError):
    pass


@dataclass
class CutResult:
    """
    메쉬 절단 결과

    Attributes:
        removed_vertices: (K, 3) unique positions of vertices found inside the lasso
        faces_before: triangle count before the cut
        faces_after: triangle count after the cut
    """
    removed_vertices: np.ndarray
    faces_before: int
    faces_after: int

    @property
    def faces_removed(self) -> int:
        return self.faces_before - self.faces_after


def dedupe_vertices(points: np.ndarray, tolerance: float = DEFAULTS.dedup_tolerance) -> np.ndarray:
    """
    Drop points within `tolerance` of an earlier kept point.

    Order is preserved and the first occurrence wins. Points exactly
    `tolerance` apart are both kept.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(pts) < 2 or tolerance <= 0:
        return pts.copy()

    # query_ball_point is inclusive; step below the radius for a strict test.
    radius = float(np.nextafter(float(tolerance), 0.0))
    tree = cKDTree(pts)
    suppressed = np.zeros(len(pts), dtype=bool)
    keep = []
    for i in range(len(pts)):
        if suppressed[i]:
            continue
        keep.append(i)
        for j in tree.query_ball_point(pts[i], r=radius):
            if j > i:
                suppressed[j] = True
    return pts[np.asarray(keep, dtype=np.int64)]


class MeshRegionCutter:
    """
    라쏘 기반 메쉬 절단기

    Only the perspective mesh scene is supported as the drawing view.
    """

    def __init__(self, history: Optional[EditHistory] = None, tolerance: float = DEFAULTS.dedup_tolerance):
        self.history = history if history is not None else EditHistory()
        self.tolerance = float(tolerance)

    def cut(
        self,
        mesh: LabelMesh,
        polygon: LassoPolygon | Sequence[Sequence[float]] | np.ndarray,
        view: View,
    ) -> CutResult:
        """
        Remove every triangle touching the lasso.

        Args:
            mesh: plain mesh, geometry replaced in place
            polygon: lasso in `view` screen coordinates
            view: drawing view (must be the mesh scene)

        Raises:
            UnsupportedMeshError: for group meshes
            UnsupportedViewError: for views other than the mesh scene
        """
        if mesh.is_group:
            raise UnsupportedMeshError(f"Cannot cut group {mesh.name!r}; select one of its meshes")
        if getattr(view, "kind", None) != ViewKind.SCENE:
            raise UnsupportedViewError(
                f"Mesh cuts need the scene view, got {getattr(view, 'kind', None)!r}"
            )

        self.history.push(mesh)

        poly = polygon.as_array() if isinstance(polygon, LassoPolygon) else as_polygon(polygon)
        faces = mesh.faces
        faces_before = int(len(faces))

        inside = np.zeros(mesh.n_vertices, dtype=bool)
        if faces_before:
            referenced = np.unique(faces.reshape(-1))
            screen, valid = project_points(mesh.vertices[referenced], view)
            inside[referenced] = classify_points(screen, valid, poly)

        face_hit = inside[faces].any(axis=1) if faces_before else np.zeros(0, dtype=bool)
        if not np.any(face_hit):
            _LOGGER.info("Lasso touched no triangle of %r", mesh.name)
            return CutResult(np.zeros((0, 3), dtype=np.float64), faces_before, faces_before)

        # Inside corners of removed triangles, in triangle order.
        hit_corners = faces[face_hit].reshape(-1)
        hit_corners = hit_corners[inside[hit_corners]]
        removed = dedupe_vertices(mesh.vertices[hit_corners], self.tolerance)

        kept_faces = faces[~face_hit]
        used = np.unique(kept_faces.reshape(-1))
        remap = np.full(mesh.n_vertices, -1, dtype=np.int64)
        remap[used] = np.arange(len(used), dtype=np.int64)

        mesh.replace_geometry(mesh.vertices[used], remap[kept_faces])
        mesh.compute_normals()

        result = CutResult(removed_vertices=removed, faces_before=faces_before, faces_after=mesh.n_faces)
        _LOGGER.info(
            "Cut %r: %d -> %d faces, %d unique vertices inside lasso",
            mesh.name,
            result.faces_before,
            result.faces_after,
            len(removed),
        )
        return result
