import unittest

import numpy as np

from lassoseg.core.label_volume import LabelVolume
from lassoseg.core.views import (
    RenderView,
    SceneView,
    SliceView,
    project_points,
    screen_to_world,
    world_to_screen,
)


def _volume() -> LabelVolume:
    return LabelVolume(img=np.zeros(10 * 10 * 5, dtype=np.uint8), dims=(10, 10, 5))


class TestSceneView(unittest.TestCase):
    def setUp(self):
        # At z = 0 the visible half-height is 10 units over 50 pixels.
        self.view = SceneView.from_camera((0, 0, 10), (0, 0, 0), width=100, height=100, fov_deg=90.0)

    def test_projection_flips_y(self):
        np.testing.assert_allclose(world_to_screen((0, 0, 0), self.view), [50.0, 50.0], atol=1e-9)
        np.testing.assert_allclose(world_to_screen((2, 0, 0), self.view), [60.0, 50.0], atol=1e-9)
        np.testing.assert_allclose(world_to_screen((0, 2, 0), self.view), [50.0, 40.0], atol=1e-9)

    def test_uninitialized_view_projects_nothing(self):
        view = SceneView(width=100, height=100)
        self.assertIsNone(world_to_screen((0, 0, 0), view))
        screen, valid = project_points(np.zeros((3, 3)), view)
        self.assertFalse(valid.any())
        self.assertTrue(np.isnan(screen).all())

    def test_zero_size_view_projects_nothing(self):
        self.view.width = 0
        self.assertIsNone(world_to_screen((0, 0, 0), self.view))

    def test_point_on_camera_plane_is_invalid(self):
        self.assertIsNone(world_to_screen((1, 1, 10), self.view))

    def test_screen_to_world_on_target_plane(self):
        world = screen_to_world((55.0, 50.0), self.view)
        np.testing.assert_allclose(world, [1.0, 0.0, 0.0], atol=1e-6)


class TestRenderView(unittest.TestCase):
    def test_uses_aspect_of_screen_rectangle(self):
        view = RenderView(width=200, height=100, eye=(0, 0, 10), target=(0, 0, 0), fov_deg=90.0)
        np.testing.assert_allclose(world_to_screen((2, 0, 0), view), [110.0, 50.0], atol=1e-9)

    def test_missing_camera_projects_nothing(self):
        view = RenderView(width=200, height=100)
        self.assertIsNone(world_to_screen((0, 0, 0), view))


class TestSliceView(unittest.TestCase):
    def setUp(self):
        self.view = SliceView.for_volume(_volume(), width=200, height=200)

    def test_tile_mapping(self):
        # Voxel i sits at world i - 5 and at screen 10 * i.
        np.testing.assert_allclose(world_to_screen((-2.0, 1.0, 0.0), self.view), [30.0, 60.0])

    def test_current_slice_rounds_half_up_and_clamps(self):
        self.assertEqual(self.view.current_slice(), 3)
        self.view.crosshair = np.array([0.5, 0.5, 1.0])
        self.assertEqual(self.view.current_slice(), 4)
        self.view.crosshair = np.array([0.5, 0.5, 0.0])
        self.assertEqual(self.view.current_slice(), 0)

    def test_screen_to_world_uses_slice_depth(self):
        self.view.crosshair = np.array([0.5, 0.5, 0.7])
        world = screen_to_world((30.0, 60.0), self.view)
        np.testing.assert_allclose(world, [-2.0, 1.0, 0.2 * 5.0])

    def test_tile_origin_offsets_screen(self):
        view = SliceView.for_volume(_volume(), width=200, height=200, tile_origin=(100.0, 0.0))
        np.testing.assert_allclose(world_to_screen((0.0, 0.0, 0.0), view), [150.0, 50.0])


if __name__ == "__main__":
    unittest.main()
