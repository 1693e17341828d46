"""
View Projection Module
뷰별 월드 -> 스크린 투영

Three view kinds share one call site:

- ``SCENE``: the perspective 3D mesh scene (camera view + projection matrix)
- ``RENDER``: the volumetric render view (eye / target / up camera)
- ``SLICE``: the multiplanar slice view (crosshair + volume grid layout)

`project_points` dispatches on ``view.kind``. A view that is not initialized
(no camera yet, zero-size screen) projects nothing: every point comes back
invalid and callers must treat it as outside the lasso.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, Union

import numpy as np

from .geometry import (
    as_points,
    as_vec3,
    look_at_matrix,
    perspective_matrix,
    round_half_up,
    transform_points,
)
from .label_volume import LabelVolume

_W_EPS = 1e-12


class ViewKind(str, Enum):
    SCENE = "scene"
    RENDER = "render"
    SLICE = "slice"


@dataclass
class SceneView:
    """
    Perspective mesh scene.

    `view_matrix` is world -> camera, `projection_matrix` camera -> clip,
    both in the OpenGL convention.
    """
    width: float
    height: float
    view_matrix: Optional[np.ndarray] = None
    projection_matrix: Optional[np.ndarray] = None
    target: Optional[np.ndarray] = None
    kind: ViewKind = field(default=ViewKind.SCENE, init=False)

    @classmethod
    def from_camera(
        cls,
        eye: Sequence[float],
        target: Sequence[float],
        up: Sequence[float] = (0.0, 1.0, 0.0),
        *,
        width: float,
        height: float,
        fov_deg: float = 45.0,
        near: float = 0.1,
        far: float = 2000.0,
    ) -> "SceneView":
        return cls(
            width=width,
            height=height,
            view_matrix=look_at_matrix(eye, target, up),
            projection_matrix=perspective_matrix(fov_deg, float(width) / float(height), near, far),
            target=as_vec3(target),
        )

    def view_projection(self) -> Optional[np.ndarray]:
        if self.view_matrix is None or self.projection_matrix is None:
            return None
        if self.width <= 0 or self.height <= 0:
            return None
        return np.asarray(self.projection_matrix, dtype=np.float64) @ np.asarray(self.view_matrix, dtype=np.float64)


@dataclass
class RenderView:
    """
    Volumetric render view.

    Only the viewer's camera state is read; the projection is rebuilt from it
    with the aspect ratio of the current screen rectangle.
    """
    width: float
    height: float
    eye: Optional[np.ndarray] = None
    target: Optional[np.ndarray] = None
    up: np.ndarray = field(default_factory=lambda: np.array([0.0, 1.0, 0.0]))
    fov_deg: float = 45.0
    near: float = 0.1
    far: float = 1000.0
    kind: ViewKind = field(default=ViewKind.RENDER, init=False)

    def __post_init__(self):
        if self.eye is not None:
            self.eye = as_vec3(self.eye)
        if self.target is not None:
            self.target = as_vec3(self.target)
        self.up = as_vec3(self.up)

    def view_projection(self) -> Optional[np.ndarray]:
        if self.eye is None or self.target is None:
            return None
        if self.width <= 0 or self.height <= 0:
            return None
        if np.allclose(self.eye, self.target):
            return None
        view = look_at_matrix(self.eye, self.target, self.up)
        proj = perspective_matrix(self.fov_deg, float(self.width) / float(self.height), self.near, self.far)
        return proj @ view


@dataclass
class SliceView:
    """
    Multiplanar slice view.

    The axial tile is laid out at `tile_origin` with `tile_scale` of the
    canvas; world X/Y map linearly across the grid extent of the displayed
    volume. `crosshair` is the normalized (0..1) crosshair position.
    """
    width: float
    height: float
    dims: tuple[int, int, int]
    pix_dims: np.ndarray
    mm_center: np.ndarray
    crosshair: np.ndarray = field(default_factory=lambda: np.array([0.5, 0.5, 0.5]))
    tile_scale: float = 0.5
    tile_origin: tuple[float, float] = (0.0, 0.0)
    kind: ViewKind = field(default=ViewKind.SLICE, init=False)

    def __post_init__(self):
        self.dims = tuple(int(d) for d in self.dims)  # type: ignore[assignment]
        self.pix_dims = as_vec3(self.pix_dims)
        self.mm_center = as_vec3(self.mm_center)
        self.crosshair = as_vec3(self.crosshair)

    @classmethod
    def for_volume(
        cls,
        volume: LabelVolume,
        *,
        width: float,
        height: float,
        crosshair: Sequence[float] = (0.5, 0.5, 0.5),
        tile_scale: float = 0.5,
        tile_origin: tuple[float, float] = (0.0, 0.0),
    ) -> "SliceView":
        return cls(
            width=width,
            height=height,
            dims=volume.dims,
            pix_dims=volume.pix_dims.copy(),
            mm_center=volume.mm_center.copy(),
            crosshair=np.asarray(crosshair, dtype=np.float64),
            tile_scale=tile_scale,
            tile_origin=tile_origin,
        )

    @property
    def extent(self) -> np.ndarray:
        return np.asarray(self.dims, dtype=np.float64) * self.pix_dims

    @property
    def tile_size(self) -> np.ndarray:
        return np.array([self.width * self.tile_scale, self.height * self.tile_scale], dtype=np.float64)

    @property
    def is_initialized(self) -> bool:
        return (
            self.width > 0
            and self.height > 0
            and bool(np.all(self.extent[:2] != 0))
            and bool(np.all(np.isfinite(self.crosshair)))
        )

    def current_slice(self) -> int:
        """Displayed axial slice index from the crosshair, clamped to the grid."""
        nz = int(self.dims[2])
        z = int(round_half_up(np.array([self.crosshair[2] * nz]))[0])
        return max(0, min(nz - 1, z))

    def slice_world_z(self) -> float:
        return float(self.mm_center[2] + (self.crosshair[2] - 0.5) * self.extent[2])


View = Union[SceneView, RenderView, SliceView]


def _ndc_to_screen(ndc: np.ndarray, width: float, height: float) -> np.ndarray:
    sx = (ndc[:, 0] + 1.0) / 2.0 * width
    # Device Y points up, screen Y points down.
    sy = (1.0 - ndc[:, 1]) / 2.0 * height
    return np.column_stack([sx, sy])


def _project_perspective(points: np.ndarray, view: SceneView | RenderView) -> tuple[np.ndarray, np.ndarray]:
    n = len(points)
    vp = view.view_projection()
    if vp is None:
        return np.full((n, 2), np.nan), np.zeros(n, dtype=bool)

    xyz, w = transform_points(vp, points)
    valid = np.isfinite(w) & (np.abs(w) > _W_EPS)
    safe_w = np.where(valid, w, 1.0)
    ndc = xyz / safe_w[:, None]
    screen = _ndc_to_screen(ndc, view.width, view.height)
    valid &= np.all(np.isfinite(screen), axis=1)
    screen[~valid] = np.nan
    return screen, valid


def _project_slice(points: np.ndarray, view: SliceView) -> tuple[np.ndarray, np.ndarray]:
    n = len(points)
    if not view.is_initialized:
        return np.full((n, 2), np.nan), np.zeros(n, dtype=bool)

    extent = view.extent[:2]
    normalized = (points[:, :2] - view.mm_center[:2]) / extent + 0.5
    screen = np.asarray(view.tile_origin, dtype=np.float64) + normalized * view.tile_size
    valid = np.all(np.isfinite(screen), axis=1)
    screen[~valid] = np.nan
    return screen, valid


_PROJECTORS: dict[ViewKind, Callable[[np.ndarray, View], tuple[np.ndarray, np.ndarray]]] = {
    ViewKind.SCENE: _project_perspective,  # type: ignore[dict-item]
    ViewKind.RENDER: _project_perspective,  # type: ignore[dict-item]
    ViewKind.SLICE: _project_slice,  # type: ignore[dict-item]
}


def project_points(points: np.ndarray | Sequence[Sequence[float]], view: View) -> tuple[np.ndarray, np.ndarray]:
    """
    Project world points into the view's screen space.

    Returns:
        (screen, valid): (N, 2) pixel coordinates (NaN where invalid) and an
        (N,) mask of points that could be projected.
    """
    pts = as_points(points)
    try:
        projector = _PROJECTORS[ViewKind(view.kind)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unsupported view kind: {getattr(view, 'kind', None)!r}") from e
    return projector(pts, view)


def world_to_screen(world: Sequence[float] | np.ndarray, view: View) -> Optional[np.ndarray]:
    """Single-point projection; None when the point cannot be tested."""
    screen, valid = project_points(as_vec3(world).reshape(1, 3), view)
    if not valid[0]:
        return None
    return screen[0]


def screen_to_world(
    screen: Sequence[float],
    view: View,
    *,
    ndc_depth: Optional[float] = None,
) -> Optional[np.ndarray]:
    """
    Approximate inverse of `world_to_screen`.

    Perspective views unproject at `ndc_depth` (default: the depth of the
    camera target); the slice view returns the point on the displayed axial
    slice. None when the view is not initialized.
    """
    sx, sy = float(screen[0]), float(screen[1])

    if view.kind == ViewKind.SLICE:
        assert isinstance(view, SliceView)
        if not view.is_initialized:
            return None
        normalized = (np.array([sx, sy]) - np.asarray(view.tile_origin, dtype=np.float64)) / view.tile_size
        xy = (normalized - 0.5) * view.extent[:2] + view.mm_center[:2]
        return np.array([xy[0], xy[1], view.slice_world_z()], dtype=np.float64)

    assert isinstance(view, (SceneView, RenderView))
    vp = view.view_projection()
    if vp is None:
        return None
    try:
        inv = np.linalg.inv(vp)
    except np.linalg.LinAlgError:
        return None

    if ndc_depth is None:
        ndc_depth = 0.0
        target = view.target
        if target is not None:
            xyz, w = transform_points(vp, target.reshape(1, 3))
            if abs(float(w[0])) > _W_EPS:
                ndc_depth = float(xyz[0, 2] / w[0])

    ndc = np.array([sx / view.width * 2.0 - 1.0, 1.0 - sy / view.height * 2.0, float(ndc_depth), 1.0])
    out = inv @ ndc
    if abs(float(out[3])) <= _W_EPS:
        return None
    return out[:3] / out[3]
