import unittest

import numpy as np

from lassoseg.core.history import EditHistory
from lassoseg.core.label_volume import LabelVolume
from lassoseg.core.mesh_cutter import (
    MeshRegionCutter,
    UnsupportedMeshError,
    UnsupportedViewError,
    dedupe_vertices,
)
from lassoseg.core.mesh_data import GROUP_KIND, LabelMesh
from lassoseg.core.views import SceneView, SliceView

# Screen position of world (x, y, 0) is (50 + 5x, 50 - 5y).
LASSO = [(47.0, 47.0), (53.0, 47.0), (53.0, 53.0), (47.0, 53.0)]


def _two_triangles() -> LabelMesh:
    vertices = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [5.0, 5.0, 0.0],
            [6.0, 5.0, 0.0],
            [5.0, 6.0, 0.0],
        ]
    )
    return LabelMesh(vertices=vertices, faces=[[0, 1, 2], [3, 4, 5]], label=3, name="organ")


class TestMeshRegionCutter(unittest.TestCase):
    def setUp(self):
        self.view = SceneView.from_camera((0, 0, 10), (0, 0, 0), width=100, height=100, fov_deg=90.0)
        self.history = EditHistory(capacity=10)
        self.cutter = MeshRegionCutter(self.history, tolerance=0.01)

    def test_removes_triangles_touching_lasso(self):
        mesh = _two_triangles()
        result = self.cutter.cut(mesh, LASSO, self.view)

        self.assertEqual(result.faces_before, 2)
        self.assertEqual(result.faces_after, 1)
        np.testing.assert_allclose(result.removed_vertices, [[0.0, 0.0, 0.0]])

        self.assertEqual(mesh.n_faces, 1)
        np.testing.assert_allclose(mesh.vertices[mesh.faces[0]], [[5, 5, 0], [6, 5, 0], [5, 6, 0]])
        self.assertEqual(mesh.normals.shape, (3, 3))
        self.assertEqual(len(self.history), 1)

    def test_undo_restores_geometry(self):
        mesh = _two_triangles()
        self.cutter.cut(mesh, LASSO, self.view)
        self.assertTrue(self.history.undo(mesh))

        self.assertEqual(mesh.n_faces, 2)
        self.assertEqual(mesh.n_vertices, 6)

    def test_lasso_outside_mesh_keeps_all_faces(self):
        mesh = _two_triangles()
        result = self.cutter.cut(mesh, [(0, 90), (5, 90), (5, 99)], self.view)

        self.assertEqual(result.faces_removed, 0)
        self.assertEqual(len(result.removed_vertices), 0)
        self.assertEqual(mesh.n_faces, 2)

    def test_group_is_rejected_without_snapshot(self):
        group = LabelMesh(
            vertices=np.zeros((0, 3)),
            faces=np.zeros((0, 3), dtype=np.int64),
            kind=GROUP_KIND,
            children=[_two_triangles()],
        )
        with self.assertRaises(UnsupportedMeshError):
            self.cutter.cut(group, LASSO, self.view)
        self.assertEqual(len(self.history), 0)

    def test_non_scene_view_is_rejected(self):
        mesh = _two_triangles()
        volume = LabelVolume(img=np.zeros(8, dtype=np.uint8), dims=(2, 2, 2))
        slice_view = SliceView.for_volume(volume, width=100, height=100)

        with self.assertRaises(UnsupportedViewError):
            self.cutter.cut(mesh, LASSO, slice_view)
        self.assertEqual(mesh.n_faces, 2)
        self.assertEqual(len(self.history), 0)

    def test_shared_inside_vertex_reported_once(self):
        vertices = np.array(
            [
                [0.0, 0.0, 0.0],
                [1.0, 0.0, 0.0],
                [0.0, 1.0, 0.0],
                [-1.0, 0.0, 0.0],
            ]
        )
        mesh = LabelMesh(vertices=vertices, faces=[[0, 1, 2], [0, 2, 3]])
        result = self.cutter.cut(mesh, LASSO, self.view)

        self.assertEqual(result.faces_after, 0)
        np.testing.assert_allclose(result.removed_vertices, [[0.0, 0.0, 0.0]])


class TestDedupeVertices(unittest.TestCase):
    def test_first_occurrence_wins(self):
        pts = np.array([[0.0, 0.0, 0.0], [0.005, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 0.0, 0.0]])
        out = dedupe_vertices(pts, tolerance=0.01)
        np.testing.assert_allclose(out, [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])

    def test_chain_keeps_points_beyond_tolerance_of_kept_ones(self):
        # The middle point is suppressed, so the third is compared only to the first.
        pts = np.array([[0.0, 0.0, 0.0], [0.008, 0.0, 0.0], [0.016, 0.0, 0.0]])
        out = dedupe_vertices(pts, tolerance=0.01)
        np.testing.assert_allclose(out, [[0.0, 0.0, 0.0], [0.016, 0.0, 0.0]])

    def test_points_exactly_tolerance_apart_are_kept(self):
        pts = np.array([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0]])
        out = dedupe_vertices(pts, tolerance=0.5)
        np.testing.assert_allclose(out, pts)


if __name__ == "__main__":
    unittest.main()
