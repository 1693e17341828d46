import tempfile
import unittest
from pathlib import Path

import numpy as np

from lassoseg.core.label_volume import LabelVolume, VolumeFormatError, apply_label_colors


def _payload(**overrides):
    payload = {
        "img": np.arange(24, dtype=np.uint8) % 3,
        "hdr": {"dims": [3, 4, 3, 2], "pixDims": [1, 0.5, 0.5, 2.0]},
        "mmCenter": [1.0, 2.0, 3.0],
    }
    payload.update(overrides)
    return payload


class TestLabelVolume(unittest.TestCase):
    def test_from_provider_reads_nifti_style_header(self):
        volume = LabelVolume.from_provider(_payload(matRAS=list(np.eye(4).reshape(-1))))

        self.assertEqual(volume.dims, (4, 3, 2))
        np.testing.assert_allclose(volume.pix_dims, [0.5, 0.5, 2.0])
        np.testing.assert_allclose(volume.mm_center, [1.0, 2.0, 3.0])
        self.assertTrue(volume.has_affine)

    def test_short_mat_ras_is_ignored(self):
        volume = LabelVolume.from_provider(_payload(matRAS=[1, 0, 0, 0]))
        self.assertFalse(volume.has_affine)

    def test_missing_header_raises(self):
        with self.assertRaises(VolumeFormatError):
            LabelVolume.from_provider({"img": np.zeros(8, dtype=np.uint8)})

    def test_buffer_size_must_match_dims(self):
        with self.assertRaises(VolumeFormatError):
            LabelVolume(img=np.zeros(7, dtype=np.uint8), dims=(2, 2, 2))

    def test_voxel_indexing(self):
        volume = LabelVolume.from_provider(_payload())
        self.assertEqual(volume.index_of(1, 2, 1), 1 + 2 * 4 + 1 * 12)
        self.assertEqual(volume.label_at(1, 2, 1), 21 % 3)
        self.assertIsNone(volume.label_at(4, 0, 0))

    def test_slab_view_writes_through(self):
        volume = LabelVolume(img=np.zeros(2 * 2 * 3, dtype=np.uint8), dims=(2, 2, 3))
        slab = volume.slab_view(1, 2)
        self.assertEqual(slab.shape, (2, 2, 2))
        slab[0, 1, 0] = 9
        self.assertEqual(volume.label_at(0, 1, 1), 9)

    def test_restore_is_in_place(self):
        volume = LabelVolume(img=np.zeros(8, dtype=np.uint8), dims=(2, 2, 2))
        buffer = volume.img
        snapshot = volume.snapshot()
        volume.img[:] = 5

        volume.restore(snapshot)

        self.assertIs(volume.img, buffer)
        self.assertEqual(volume.label_histogram(), {0: 8})

    def test_npz_round_trip(self):
        volume = LabelVolume.from_provider(_payload(matRAS=list(np.eye(4).reshape(-1))))
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "case.npz"
            volume.save_npz(path)
            loaded = LabelVolume.load_npz(path)

        self.assertEqual(loaded.dims, volume.dims)
        np.testing.assert_array_equal(loaded.img, volume.img)
        np.testing.assert_allclose(loaded.mat_ras, volume.mat_ras)
        self.assertEqual(loaded.name, "case")

    def test_apply_label_colors_grows_lut(self):
        volume = LabelVolume(img=np.zeros(8, dtype=np.uint8), dims=(2, 2, 2), lut=np.full(8, 7, dtype=np.uint8))

        written = apply_label_colors(volume, {3: (10, 20, 30)})

        self.assertEqual(written, 1)
        self.assertEqual(volume.lut.size, 16)
        np.testing.assert_array_equal(volume.lut[:8], [7] * 8)
        np.testing.assert_array_equal(volume.lut[12:16], [10, 20, 30, 255])


if __name__ == "__main__":
    unittest.main()
