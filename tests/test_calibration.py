import unittest

import numpy as np
import trimesh

from lassoseg.core.calibration import (
    MODE_AXIS_FLIP,
    MODE_IDENTITY,
    MODE_NO_LABEL,
    MODE_OFFSET,
    AlignmentCalibrator,
    find_label_voxels,
    select_correction,
)
from lassoseg.core.label_volume import LabelVolume
from lassoseg.core.mesh_data import LabelMesh
from lassoseg.core.transforms import voxel_to_world


def _box_mesh(center, *, label=None, name="") -> LabelMesh:
    box = trimesh.creation.box(extents=(2.0, 2.0, 2.0))
    box.apply_translation(center)
    return LabelMesh.from_trimesh(box, name=name, label=label)


class TestSelectCorrection(unittest.TestCase):
    def test_within_threshold_is_identity(self):
        correction, mode, d0, d1 = select_correction((0, 0, 0), (10, 0, 0), threshold=50.0)
        self.assertEqual(mode, MODE_IDENTITY)
        self.assertTrue(correction.is_identity)
        self.assertAlmostEqual(d0, 10.0)
        self.assertIsNone(d1)

    def test_mirrored_centroids_select_axis_flip(self):
        correction, mode, _, d1 = select_correction((100, 100, 50), (-100, -100, 50))
        self.assertEqual(mode, MODE_AXIS_FLIP)
        self.assertTrue(correction.axis_flip)
        np.testing.assert_allclose(correction.offset, [0.0, 0.0, 0.0])
        self.assertAlmostEqual(d1, 0.0)

    def test_plain_shift_selects_offset(self):
        correction, mode, _, _ = select_correction((100, 0, 0), (0, 0, 0))
        self.assertEqual(mode, MODE_OFFSET)
        self.assertFalse(correction.axis_flip)
        np.testing.assert_allclose(correction.offset, [100.0, 0.0, 0.0])


class TestAlignmentCalibrator(unittest.TestCase):
    def _shifted_volume(self) -> LabelVolume:
        mat = np.eye(4)
        mat[:3, 3] = [100.0, 100.0, 50.0]
        img = np.zeros(4 * 4 * 4, dtype=np.uint8)
        img[0] = 3
        return LabelVolume(img=img, dims=(4, 4, 4), mat_ras=mat)

    def test_flipped_mesh_is_brought_onto_label(self):
        volume = self._shifted_volume()
        mesh = _box_mesh((-100.0, -100.0, 50.0), label=3)

        report = AlignmentCalibrator().calibrate(volume, mesh)

        self.assertEqual(report.mode, MODE_AXIS_FLIP)
        self.assertEqual(report.samples, 1)
        corrected = voxel_to_world(0, 0, 0, volume, report.correction)
        np.testing.assert_allclose(corrected, mesh.bbox_center, atol=1e-9)

    def test_missing_label_clears_correction(self):
        volume = self._shifted_volume()
        mesh = _box_mesh((0.0, 0.0, 0.0), name="label_9")

        report = AlignmentCalibrator().calibrate(volume, mesh)

        self.assertEqual(report.mode, MODE_NO_LABEL)
        self.assertEqual(report.label, 9)
        self.assertTrue(report.correction.is_identity)

    def test_find_label_voxels_scans_in_index_order(self):
        img = np.zeros(3 * 2 * 2, dtype=np.uint8)
        # flat index = x + y*3 + z*6
        img[[1, 5, 7, 11]] = 4
        volume = LabelVolume(img=img, dims=(3, 2, 2))

        found = find_label_voxels(volume, 4, limit=3)
        np.testing.assert_array_equal(found, [[1, 0, 0], [2, 1, 0], [1, 0, 1]])

    def test_find_label_voxels_outside_byte_range_is_empty(self):
        volume = LabelVolume(img=np.zeros(8, dtype=np.uint8), dims=(2, 2, 2))

        self.assertEqual(find_label_voxels(volume, 300).shape, (0, 3))
        self.assertEqual(find_label_voxels(volume, -1).shape, (0, 3))

    def test_measure_alignment(self):
        volume = LabelVolume(img=np.full(10 * 10 * 10, 2, dtype=np.uint8), dims=(10, 10, 10))
        calibrator = AlignmentCalibrator()

        check = calibrator.measure_alignment(volume, _box_mesh((0.0, 0.0, 0.0), label=2))
        self.assertEqual(check.rate, 1.0)
        self.assertEqual(check.total, 8)

        far = calibrator.measure_alignment(volume, _box_mesh((500.0, 0.0, 0.0), label=2))
        self.assertEqual(far.total, 0)
        self.assertEqual(far.rate, 0.0)
        self.assertEqual(far.overlap[0], 0.0)


if __name__ == "__main__":
    unittest.main()
