import tempfile
import unittest
from pathlib import Path

import numpy as np
import trimesh

from lassoseg.core.mesh_data import GROUP_KIND, LabelMesh, load_label_meshes


class TestLabelMesh(unittest.TestCase):
    def test_missing_faces_means_sequential(self):
        mesh = LabelMesh(vertices=np.zeros((6, 3)))
        np.testing.assert_array_equal(mesh.faces, [[0, 1, 2], [3, 4, 5]])

    def test_face_index_out_of_range_raises(self):
        with self.assertRaises(ValueError):
            LabelMesh(vertices=np.zeros((3, 3)), faces=[[0, 1, 3]])

    def test_expected_label_sources(self):
        verts = np.zeros((3, 3))
        self.assertEqual(LabelMesh(vertices=verts, label=5, label_name="label_2").expected_label(), 5)
        self.assertEqual(LabelMesh(vertices=verts, label_name="label_3").expected_label(), 3)
        self.assertEqual(LabelMesh(vertices=verts, name="Liver label-7 v2").expected_label(), 7)
        self.assertEqual(LabelMesh(vertices=verts, name="kidney_12").expected_label(), 12)
        self.assertEqual(LabelMesh(vertices=verts, name="organ").expected_label(), 1)

    def test_compute_normals_for_flat_triangle(self):
        mesh = LabelMesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]], faces=[[0, 1, 2]])
        mesh.compute_normals()
        np.testing.assert_allclose(mesh.normals, [[0, 0, 1]] * 3)

    def test_clone_is_independent(self):
        mesh = LabelMesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]], faces=[[0, 1, 2]], label=2)
        copy = mesh.clone()
        copy.vertices[0] = [9, 9, 9]
        self.assertEqual(float(mesh.vertices[0, 0]), 0.0)
        self.assertEqual(copy.label, 2)

    def test_merged_group_inherits_single_child_label(self):
        a = LabelMesh.from_trimesh(trimesh.creation.box(), label=4, name="a")
        shifted = trimesh.creation.box()
        shifted.apply_translation((5, 0, 0))
        b = LabelMesh.from_trimesh(shifted, label=4, name="b")
        group = LabelMesh(vertices=np.zeros((0, 3)), faces=np.zeros((0, 3)), kind=GROUP_KIND, children=[a, b])

        flat = group.merged()

        self.assertFalse(flat.is_group)
        self.assertEqual(flat.n_faces, a.n_faces + b.n_faces)
        self.assertEqual(flat.label, 4)
        np.testing.assert_allclose(group.bounds, flat.bounds)

    def test_load_single_mesh_file(self):
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "label_6.ply"
            trimesh.creation.box().export(str(path))
            mesh = load_label_meshes(path)

        self.assertFalse(mesh.is_group)
        self.assertEqual(mesh.n_faces, 12)
        self.assertEqual(mesh.expected_label(), 6)

    def test_load_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_label_meshes("does/not/exist.obj")


if __name__ == "__main__":
    unittest.main()
