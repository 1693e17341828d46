"""
Alignment Calibrator Module
메쉬-볼륨 좌표 정렬 보정

Meshes produced by the external pipeline can sit in a different handedness
(LPS vs RAS) or be shifted relative to the label volume. On every mesh
selection the calibrator compares the centroid of a few label voxels with the
mesh bounding-box center and picks one of:

- identity (centroids already within the threshold),
- axis-flip-then-offset (negating X/Y of the label centroid brings it at
  least twice as close),
- offset only.

This is a best-effort heuristic, not a registration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
import logging

import numpy as np

from .geometry import as_vec3, distance
from .label_volume import LabelVolume
from .mesh_data import LabelMesh
from .runtime_defaults import DEFAULTS
from .transforms import AlignmentCorrection, voxels_to_world, world_to_voxels

_LOGGER = logging.getLogger(__name__)

MODE_IDENTITY = "identity"
MODE_OFFSET = "offset"
MODE_AXIS_FLIP = "axis_flip"
MODE_NO_LABEL = "no_label"


@dataclass
class CalibrationReport:
    """
    보정 결과

    Attributes:
        correction: correction to apply until the next selection
        mode: identity / offset / axis_flip / no_label
        label: expected mesh label
        label_centroid: mean world position of the sampled label voxels
        mesh_centroid: mesh bounding-box center
        distance: centroid distance before correction (d0)
        flipped_distance: distance of the X/Y-negated candidate (d1), if computed
        samples: number of label voxels averaged
    """
    correction: AlignmentCorrection
    mode: str
    label: int
    label_centroid: Optional[np.ndarray] = None
    mesh_centroid: Optional[np.ndarray] = None
    distance: Optional[float] = None
    flipped_distance: Optional[float] = None
    samples: int = 0


@dataclass
class AlignmentCheck:
    """Fraction of sampled mesh vertices that land on their own label."""
    aligned: int
    total: int
    overlap: np.ndarray = field(default_factory=lambda: np.zeros(3))

    @property
    def rate(self) -> float:
        return self.aligned / self.total if self.total else 0.0


def select_correction(
    label_centroid: np.ndarray,
    mesh_centroid: np.ndarray,
    threshold: float = DEFAULTS.calibration_threshold_mm,
) -> tuple[AlignmentCorrection, str, float, Optional[float]]:
    """
    Pick the correction mode from the two centroids.

    Returns:
        (correction, mode, d0, d1) where d1 is None when d0 is within the
        threshold.
    """
    label_c = as_vec3(label_centroid)
    mesh_c = as_vec3(mesh_centroid)
    d0 = distance(label_c, mesh_c)
    if d0 <= float(threshold):
        return AlignmentCorrection.identity(), MODE_IDENTITY, d0, None

    candidate = label_c * np.array([-1.0, -1.0, 1.0])
    d1 = distance(candidate, mesh_c)
    if d1 < d0 * 0.5:
        return AlignmentCorrection(offset=candidate - mesh_c, axis_flip=True), MODE_AXIS_FLIP, d0, d1
    return AlignmentCorrection(offset=label_c - mesh_c, axis_flip=False), MODE_OFFSET, d0, d1


def find_label_voxels(volume: LabelVolume, label: int, limit: int = DEFAULTS.calibration_samples) -> np.ndarray:
    """
    First `limit` voxels carrying `label`, in buffer order (x fastest).

    Returns:
        (K, 3) int array of (x, y, z) indices, K <= limit.
    """
    if not 0 <= int(label) <= 255:
        return np.zeros((0, 3), dtype=np.int64)
    nx, ny, _ = volume.dims
    hits = np.flatnonzero(volume.img == int(label))[: max(0, int(limit))]
    if hits.size == 0:
        return np.zeros((0, 3), dtype=np.int64)
    z, rem = np.divmod(hits, nx * ny)
    y, x = np.divmod(rem, nx)
    return np.column_stack([x, y, z]).astype(np.int64)


class AlignmentCalibrator:
    """
    메쉬 선택 시 정렬 보정값 계산기
    """

    def __init__(
        self,
        threshold_mm: float = DEFAULTS.calibration_threshold_mm,
        sample_limit: int = DEFAULTS.calibration_samples,
    ):
        self.threshold_mm = float(threshold_mm)
        self.sample_limit = int(sample_limit)

    def calibrate(self, volume: LabelVolume, mesh: LabelMesh) -> CalibrationReport:
        """
        Derive the correction for a newly selected mesh.

        Args:
            volume: label volume (read only)
            mesh: selected mesh

        Returns:
            CalibrationReport; `correction` is the identity when no voxel of
            the mesh label exists.
        """
        label = mesh.expected_label()
        voxels = find_label_voxels(volume, label, self.sample_limit)
        if len(voxels) == 0:
            _LOGGER.warning("No voxel with label %d in %s; alignment correction cleared", label, volume.name)
            return CalibrationReport(
                correction=AlignmentCorrection.identity(),
                mode=MODE_NO_LABEL,
                label=label,
                mesh_centroid=mesh.bbox_center,
            )

        label_centroid = voxels_to_world(voxels, volume, None).mean(axis=0)
        mesh_centroid = mesh.bbox_center
        correction, mode, d0, d1 = select_correction(label_centroid, mesh_centroid, self.threshold_mm)

        if mode == MODE_IDENTITY:
            _LOGGER.info("Mesh %r and label %d agree (%.1fmm apart); no correction", mesh.name, label, d0)
        else:
            _LOGGER.warning(
                "Mesh %r is %.1fmm from label %d (flipped: %.1fmm); applying %s correction offset=(%.1f, %.1f, %.1f)",
                mesh.name,
                d0,
                label,
                d1 if d1 is not None else float("nan"),
                mode,
                *correction.offset,
            )

        return CalibrationReport(
            correction=correction,
            mode=mode,
            label=label,
            label_centroid=label_centroid,
            mesh_centroid=mesh_centroid,
            distance=d0,
            flipped_distance=d1,
            samples=len(voxels),
        )

    def measure_alignment(
        self,
        volume: LabelVolume,
        mesh: LabelMesh,
        correction: AlignmentCorrection | None = None,
        *,
        sample_count: int = 20,
    ) -> AlignmentCheck:
        """
        Sample evenly spaced mesh vertices and count those whose voxel holds
        the mesh label.

        Out-of-grid samples are not counted. Below 50% the bounding-box
        overlap between mesh and volume is logged to help diagnose the cause.
        """
        label = mesh.expected_label()
        n = mesh.n_vertices
        overlap = misalignment_overlap(volume, mesh)
        if n == 0:
            return AlignmentCheck(aligned=0, total=0, overlap=overlap)

        count = min(int(sample_count), n)
        picks = (np.arange(count) * n) // count
        ijk, _ = world_to_voxels(mesh.vertices[picks], volume, correction)

        nx, ny, nz = volume.dims
        inside = (
            (ijk[:, 0] >= 0) & (ijk[:, 0] < nx)
            & (ijk[:, 1] >= 0) & (ijk[:, 1] < ny)
            & (ijk[:, 2] >= 0) & (ijk[:, 2] < nz)
        )
        ijk = ijk[inside]
        flat = ijk[:, 0] + ijk[:, 1] * nx + ijk[:, 2] * nx * ny
        aligned = int(np.count_nonzero(volume.img[flat] == label))
        check = AlignmentCheck(aligned=aligned, total=int(len(ijk)), overlap=overlap)

        if check.rate < 0.5:
            _LOGGER.warning(
                "Mesh %r alignment %.0f%% (%d/%d); bbox overlap x=%.1f y=%.1f z=%.1f",
                mesh.name,
                check.rate * 100.0,
                check.aligned,
                check.total,
                *overlap,
            )
            if np.any(overlap == 0):
                _LOGGER.error("Mesh %r and volume %s do not overlap; coordinate systems differ", mesh.name, volume.name)
        else:
            _LOGGER.info("Mesh %r alignment %.0f%% (%d/%d)", mesh.name, check.rate * 100.0, check.aligned, check.total)
        return check


def misalignment_overlap(volume: LabelVolume, mesh: LabelMesh) -> np.ndarray:
    """Per-axis overlap length between the mesh bbox and the volume spacing/center box."""
    mesh_b = mesh.bounds
    vol_b = volume.bounds
    return np.maximum(0.0, np.minimum(mesh_b[1], vol_b[1]) - np.maximum(mesh_b[0], vol_b[0]))
