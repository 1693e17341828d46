"""
Voxel <-> world coordinate transforms.

Forward mapping (voxel index -> world):

1. ``matRAS @ [x, y, z, 1]`` when the volume carries an affine, otherwise
   ``(idx - dims/2) * pixDims + center``;
2. negate X and Y when the active correction is in axis-flip mode;
3. subtract the correction offset.

`world_to_voxel` undoes the three steps in reverse order. A singular affine or
missing spacing never raises: the spacing formula is used instead and the
result is marked ``degraded``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence
import logging

import numpy as np

from .geometry import as_points, as_vec3, invert_affine, round_half_up
from .label_volume import LabelVolume
from .logging_utils import log_once

_LOGGER = logging.getLogger(__name__)

_FLIP_XY = np.array([-1.0, -1.0, 1.0], dtype=np.float64)


@dataclass
class AlignmentCorrection:
    """
    Mesh/volume alignment correction.

    Attributes:
        offset: world-space offset subtracted after the voxel -> world mapping
        axis_flip: negate X and Y (LPS <-> RAS) before the offset
    """
    offset: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    axis_flip: bool = False

    def __post_init__(self):
        self.offset = as_vec3(self.offset)
        self.axis_flip = bool(self.axis_flip)

    @classmethod
    def identity(cls) -> "AlignmentCorrection":
        return cls()

    @property
    def is_identity(self) -> bool:
        return (not self.axis_flip) and not np.any(self.offset)

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Uncorrected world -> corrected world (N, 3)."""
        out = as_points(points).copy()
        if self.axis_flip:
            out *= _FLIP_XY
        return out - self.offset

    def revert(self, points: np.ndarray) -> np.ndarray:
        """Corrected world -> uncorrected world (N, 3)."""
        out = as_points(points) + self.offset
        if self.axis_flip:
            out = out * _FLIP_XY
        return out


@dataclass(frozen=True)
class VoxelIndex:
    """Rounded voxel index; may lie outside the grid (callers clamp or reject)."""
    x: int
    y: int
    z: int
    degraded: bool = False

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.x, self.y, self.z)


def _correction_or_identity(correction: AlignmentCorrection | None) -> AlignmentCorrection:
    return correction if correction is not None else AlignmentCorrection.identity()


def _spacing_is_usable(volume: LabelVolume) -> bool:
    pix = volume.pix_dims
    return bool(np.all(np.isfinite(pix)) and np.all(pix != 0) and np.all(np.isfinite(volume.mm_center)))


def _safe_spacing(volume: LabelVolume) -> np.ndarray:
    pix = np.where(np.isfinite(volume.pix_dims) & (volume.pix_dims != 0), volume.pix_dims, 1.0)
    return pix.astype(np.float64)


def _safe_center(volume: LabelVolume) -> np.ndarray:
    return np.where(np.isfinite(volume.mm_center), volume.mm_center, 0.0).astype(np.float64)


def voxels_to_world(
    ijk: np.ndarray | Sequence[Sequence[float]],
    volume: LabelVolume,
    correction: AlignmentCorrection | None = None,
) -> np.ndarray:
    """Vectorized voxel index -> corrected world, (N, 3) in and out."""
    idx = as_points(ijk)
    if volume.mat_ras is not None:
        mat = volume.mat_ras
        world = idx @ mat[:3, :3].T + mat[:3, 3]
    else:
        dims = np.asarray(volume.dims, dtype=np.float64)
        world = (idx - dims / 2.0) * volume.pix_dims + volume.mm_center
    return _correction_or_identity(correction).apply(world)


def voxel_to_world(
    x: float,
    y: float,
    z: float,
    volume: LabelVolume,
    correction: AlignmentCorrection | None = None,
) -> np.ndarray:
    """Voxel index (x, y, z) -> corrected world point (3,)."""
    return voxels_to_world(np.array([[x, y, z]], dtype=np.float64), volume, correction)[0]


def _fallback_world_to_voxel(world: np.ndarray, volume: LabelVolume) -> np.ndarray:
    dims = np.asarray(volume.dims, dtype=np.float64)
    return (world - _safe_center(volume)) / _safe_spacing(volume) + dims / 2.0


def world_to_voxels_continuous(
    world: np.ndarray | Sequence[Sequence[float]],
    volume: LabelVolume,
    correction: AlignmentCorrection | None = None,
) -> tuple[np.ndarray, bool]:
    """
    Corrected world -> fractional voxel coordinates.

    Returns:
        (ijk, degraded): (N, 3) float array and whether the spacing fallback
        had to replace the affine (or the header was incomplete).
    """
    raw = _correction_or_identity(correction).revert(world)

    if volume.mat_ras is not None:
        try:
            inv = invert_affine(volume.mat_ras)
        except np.linalg.LinAlgError as e:
            log_once(
                _LOGGER,
                f"transforms.singular:{volume.name}",
                logging.WARNING,
                "Voxel affine of %s cannot be inverted (%s); using spacing fallback",
                volume.name,
                e,
            )
        else:
            ijk = raw @ inv[:3, :3].T + inv[:3, 3]
            if np.all(np.isfinite(ijk)):
                return ijk, False
            log_once(
                _LOGGER,
                f"transforms.nonfinite:{volume.name}",
                logging.WARNING,
                "Inverse affine of %s produced non-finite voxels; using spacing fallback",
                volume.name,
            )
        return _fallback_world_to_voxel(raw, volume), True

    degraded = not _spacing_is_usable(volume)
    if degraded:
        log_once(
            _LOGGER,
            f"transforms.header:{volume.name}",
            logging.WARNING,
            "Volume %s has incomplete spacing/center header; voxel lookups are approximate",
            volume.name,
        )
    return _fallback_world_to_voxel(raw, volume), degraded


def world_to_voxels(
    world: np.ndarray | Sequence[Sequence[float]],
    volume: LabelVolume,
    correction: AlignmentCorrection | None = None,
) -> tuple[np.ndarray, bool]:
    """Vectorized corrected world -> rounded voxel indices ((N, 3) int64, degraded)."""
    ijk, degraded = world_to_voxels_continuous(world, volume, correction)
    return round_half_up(ijk), degraded


def world_to_voxel(
    world: np.ndarray | Sequence[float],
    volume: LabelVolume,
    correction: AlignmentCorrection | None = None,
) -> VoxelIndex:
    ijk, degraded = world_to_voxels(as_vec3(world).reshape(1, 3), volume, correction)
    x, y, z = (int(v) for v in ijk[0])
    return VoxelIndex(x, y, z, degraded)


def clamp_voxel(index: VoxelIndex | Sequence[int], volume: LabelVolume) -> tuple[int, int, int]:
    """Clamp a voxel index into [0, dims - 1] on every axis."""
    if isinstance(index, VoxelIndex):
        values = index.as_tuple()
    else:
        values = tuple(int(v) for v in index)
    nx, ny, nz = volume.dims
    return (
        max(0, min(nx - 1, values[0])),
        max(0, min(ny - 1, values[1])),
        max(0, min(nz - 1, values[2])),
    )
