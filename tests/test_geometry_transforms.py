import unittest

import numpy as np

from lassoseg.core.geometry import affine_from_flat, invert_affine, round_half_up
from lassoseg.core.label_volume import LabelVolume
from lassoseg.core.logging_utils import reset_log_once
from lassoseg.core.transforms import (
    AlignmentCorrection,
    clamp_voxel,
    voxel_to_world,
    voxels_to_world,
    world_to_voxel,
    world_to_voxels,
)


def _rotation_z(deg: float) -> np.ndarray:
    a = np.radians(deg)
    c, s = np.cos(a), np.sin(a)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)


def _affine_volume() -> LabelVolume:
    mat = np.eye(4, dtype=np.float64)
    mat[:3, :3] = _rotation_z(30.0) @ np.diag([0.8, 0.8, 2.5])
    mat[:3, 3] = [-40.0, 12.5, 100.0]
    return LabelVolume(
        img=np.zeros(20 * 16 * 8, dtype=np.uint8),
        dims=(20, 16, 8),
        pix_dims=(0.8, 0.8, 2.5),
        mm_center=(0.0, 0.0, 0.0),
        mat_ras=mat,
    )


def _spacing_volume() -> LabelVolume:
    return LabelVolume(
        img=np.zeros(10 * 10 * 5, dtype=np.uint8),
        dims=(10, 10, 5),
        pix_dims=(0.5, 0.5, 2.0),
        mm_center=(1.0, 2.0, 3.0),
    )


class TestGeometry(unittest.TestCase):
    def test_affine_from_flat_forces_bottom_row(self):
        values = list(range(1, 13)) + [9.0, 9.0, 9.0, 9.0]
        mat = affine_from_flat(values)

        np.testing.assert_allclose(mat[3], [0.0, 0.0, 0.0, 1.0])
        np.testing.assert_allclose(mat[0], [1.0, 2.0, 3.0, 4.0])

    def test_invert_affine_rejects_singular(self):
        mat = np.eye(4)
        mat[2, 2] = 0.0
        with self.assertRaises(np.linalg.LinAlgError):
            invert_affine(mat)

    def test_invert_affine_rejects_nan(self):
        mat = np.eye(4)
        mat[0, 3] = np.nan
        with self.assertRaises(np.linalg.LinAlgError):
            invert_affine(mat)

    def test_round_half_up(self):
        out = round_half_up(np.array([0.5, 1.5, 2.5, -0.5, -1.5, 2.49]))
        np.testing.assert_array_equal(out, [1, 2, 3, 0, -1, 2])


class TestVoxelWorldTransforms(unittest.TestCase):
    def setUp(self):
        reset_log_once("transforms.")

    def test_fallback_forward_formula(self):
        volume = _spacing_volume()
        world = voxel_to_world(0, 0, 0, volume)

        # (idx - dims/2) * pix + center
        np.testing.assert_allclose(world, [-2.5 + 1.0, -2.5 + 2.0, -5.0 + 3.0])

    def test_affine_round_trip(self):
        volume = _affine_volume()
        for ijk in [(0, 0, 0), (3, 4, 2), (19, 15, 7), (25, -3, 9)]:
            world = voxel_to_world(*ijk, volume)
            index = world_to_voxel(world, volume)
            self.assertEqual(index.as_tuple(), ijk)
            self.assertFalse(index.degraded)

    def test_fallback_round_trip(self):
        volume = _spacing_volume()
        ijk = np.array([[0, 0, 0], [9, 9, 4], [4, 7, 1]], dtype=np.float64)
        world = voxels_to_world(ijk, volume)
        back, degraded = world_to_voxels(world, volume)

        np.testing.assert_array_equal(back, ijk.astype(np.int64))
        self.assertFalse(degraded)

    def test_round_trip_with_flip_and_offset(self):
        correction = AlignmentCorrection(offset=(12.0, -7.5, 3.25), axis_flip=True)
        for volume in (_affine_volume(), _spacing_volume()):
            world = voxel_to_world(4, 6, 3, volume, correction)
            index = world_to_voxel(world, volume, correction)
            self.assertEqual(index.as_tuple(), (4, 6, 3))

    def test_correction_is_applied_after_mapping(self):
        volume = _spacing_volume()
        raw = voxel_to_world(2, 3, 1, volume)
        correction = AlignmentCorrection(offset=(1.0, 2.0, 3.0), axis_flip=True)
        corrected = voxel_to_world(2, 3, 1, volume, correction)

        expected = raw * np.array([-1.0, -1.0, 1.0]) - np.array([1.0, 2.0, 3.0])
        np.testing.assert_allclose(corrected, expected)

    def test_singular_affine_degrades_to_spacing(self):
        volume = _spacing_volume()
        singular = np.zeros((4, 4))
        singular[:3, 3] = [5.0, 5.0, 5.0]
        volume.mat_ras = singular

        world = np.array([1.0, 2.0, 3.0])
        index = world_to_voxel(world, volume)

        self.assertTrue(index.degraded)
        # Spacing fallback puts the center at dims / 2.
        self.assertEqual(index.as_tuple(), (5, 5, 3))

    def test_clamp_voxel(self):
        volume = _spacing_volume()
        self.assertEqual(clamp_voxel((-4, 3, 99), volume), (0, 3, 4))
        self.assertEqual(clamp_voxel(world_to_voxel((1000.0, 2.0, 3.0), volume), volume), (9, 5, 3))


if __name__ == "__main__":
    unittest.main()
