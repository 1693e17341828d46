"""
Volume Label Editor Module
볼륨 라벨 편집 - 라쏘 영역 안의 복셀에 라벨 적용

Voxels in a slab around the displayed axial slice are projected into the view
the lasso was drawn in; those landing inside the polygon receive the target
label. Only background (0) and voxels already carrying the target label are
eligible, so neighbouring structures are never overwritten.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
import logging

import numpy as np

from .geometry import round_half_up
from .label_volume import LabelVolume
from .polygon import LassoPolygon, as_polygon, classify_points
from .runtime_defaults import DEFAULTS
from .transforms import AlignmentCorrection, voxels_to_world
from .views import SliceView, View, ViewKind, project_points

_LOGGER = logging.getLogger(__name__)

MIN_MARGIN = 1
MAX_MARGIN = 10
MIN_LABEL = 1
MAX_LABEL = 255
DIAGNOSE_SAMPLES = 1000


@dataclass
class VolumeEditResult:
    """
    볼륨 편집 결과

    Attributes:
        changed: voxels whose label actually changed
        slab: inclusive (z_min, z_max) range that was scanned
        candidates: eligible voxels (background or target) in the slab
    """
    changed: int
    slab: tuple[int, int]
    candidates: int = 0


@dataclass
class VolumeEditDiagnosis:
    """Random-sample summary used to explain an edit that changed nothing."""
    sampled: int
    with_label: int
    inside: int
    invalid_projection: int


def _polygon_points(polygon: LassoPolygon | Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    if isinstance(polygon, LassoPolygon):
        return polygon.as_array()
    return as_polygon(polygon)


class VolumeLabelEditor:
    """
    라쏘 기반 볼륨 라벨 편집기

    Args:
        margin: number of slices above and below the displayed slice to edit
        chunk_size: voxels projected per batch
    """

    def __init__(self, margin: int = DEFAULTS.slice_margin, chunk_size: int = 1 << 18):
        self.margin = MIN_MARGIN
        self.set_margin(margin)
        self.chunk_size = max(1, int(chunk_size))

    def set_margin(self, margin: int) -> int:
        value = max(MIN_MARGIN, min(MAX_MARGIN, int(margin)))
        if value != int(margin):
            _LOGGER.info("Slice margin %s clamped to %d", margin, value)
        self.margin = value
        return value

    def slab_range(self, volume: LabelVolume, slice_view: Optional[SliceView] = None) -> tuple[int, int]:
        """
        Inclusive Z range to edit.

        The displayed slice comes from the slice view crosshair; without a
        slice view the whole volume depth is used.
        """
        nz = volume.dims[2]
        if slice_view is None or slice_view.kind != ViewKind.SLICE or not slice_view.is_initialized:
            _LOGGER.info("No slice view available; editing all %d slices of %s", nz, volume.name)
            return 0, nz - 1

        # Only the slab ends are clamped; a crosshair at the top edge yields
        # slice nz, so the slab spans fewer slices there.
        current = int(round_half_up(np.array([slice_view.crosshair[2] * nz]))[0])
        return max(0, current - self.margin), min(nz - 1, current + self.margin)

    def _eligible_voxels(self, volume: LabelVolume, target_label: int, z_min: int, z_max: int):
        slab = volume.slab_view(z_min, z_max)
        eligible = (slab == 0) | (slab == target_label)
        zs, ys, xs = np.nonzero(eligible)
        return slab, xs, ys, zs

    def _classify(
        self,
        volume: LabelVolume,
        ijk: np.ndarray,
        polygon: np.ndarray,
        view: View,
        correction: Optional[AlignmentCorrection],
    ) -> np.ndarray:
        inside = np.zeros(len(ijk), dtype=bool)
        for start in range(0, len(ijk), self.chunk_size):
            stop = start + self.chunk_size
            world = voxels_to_world(ijk[start:stop], volume, correction)
            screen, valid = project_points(world, view)
            inside[start:stop] = classify_points(screen, valid, polygon)
        return inside

    def apply_lasso(
        self,
        volume: LabelVolume,
        polygon: LassoPolygon | Sequence[Sequence[float]] | np.ndarray,
        view: View,
        target_label: int,
        *,
        correction: Optional[AlignmentCorrection] = None,
        slice_view: Optional[SliceView] = None,
    ) -> VolumeEditResult:
        """
        Paint `target_label` into every eligible slab voxel inside the lasso.

        Args:
            volume: label volume, mutated in place
            polygon: lasso in `view` screen coordinates
            view: view the lasso was drawn in
            target_label: label to write (1..255)
            correction: active mesh/volume alignment correction
            slice_view: slice view providing the displayed slice

        Returns:
            VolumeEditResult; ``changed == 0`` is a normal outcome.
        """
        label = int(target_label)
        if not MIN_LABEL <= label <= MAX_LABEL:
            raise ValueError(f"Target label must be in 1..255, got {target_label}")

        z_min, z_max = self.slab_range(volume, slice_view)
        poly = _polygon_points(polygon)
        if len(poly) < 3:
            _LOGGER.debug("Lasso with %d points ignored", len(poly))
            return VolumeEditResult(changed=0, slab=(z_min, z_max))

        slab, xs, ys, zs = self._eligible_voxels(volume, label, z_min, z_max)
        candidates = int(len(xs))
        if candidates == 0:
            _LOGGER.info("No background or label-%d voxels in slices %d..%d", label, z_min, z_max)
            return VolumeEditResult(changed=0, slab=(z_min, z_max), candidates=0)

        ijk = np.column_stack([xs, ys, zs + z_min]).astype(np.float64)
        inside = self._classify(volume, ijk, poly, view, correction)

        # Whole slab is classified before the first write.
        zi, yi, xi = zs[inside], ys[inside], xs[inside]
        changed = int(np.count_nonzero(slab[zi, yi, xi] != label))
        slab[zi, yi, xi] = label

        _LOGGER.info(
            "Lasso painted label %d: %d changed, %d inside, %d candidates (slices %d..%d, view=%s)",
            label,
            changed,
            int(np.count_nonzero(inside)),
            candidates,
            z_min,
            z_max,
            getattr(view.kind, "value", view.kind),
        )
        return VolumeEditResult(changed=changed, slab=(z_min, z_max), candidates=candidates)

    def diagnose(
        self,
        volume: LabelVolume,
        polygon: LassoPolygon | Sequence[Sequence[float]] | np.ndarray,
        view: View,
        label: int,
        *,
        correction: Optional[AlignmentCorrection] = None,
        slice_view: Optional[SliceView] = None,
        samples: int = DIAGNOSE_SAMPLES,
        seed: Optional[int] = None,
    ) -> VolumeEditDiagnosis:
        """
        Sample random slab voxels and report how many carry `label` and how
        many of those project inside the lasso.
        """
        z_min, z_max = self.slab_range(volume, slice_view)
        nx, ny, _ = volume.dims
        n_slab = (z_max - z_min + 1) * nx * ny
        count = min(int(samples), n_slab)
        rng = np.random.default_rng(seed)
        flat = rng.choice(n_slab, size=count, replace=False) if count < n_slab else np.arange(n_slab)

        slab = volume.slab_view(z_min, z_max).reshape(-1)
        hits = flat[slab[flat] == int(label)]
        z, rem = np.divmod(hits, nx * ny)
        y, x = np.divmod(rem, nx)
        ijk = np.column_stack([x, y, z + z_min]).astype(np.float64)

        world = voxels_to_world(ijk, volume, correction)
        screen, valid = project_points(world, view)
        inside = classify_points(screen, valid, _polygon_points(polygon))

        diagnosis = VolumeEditDiagnosis(
            sampled=int(count),
            with_label=int(len(hits)),
            inside=int(np.count_nonzero(inside)),
            invalid_projection=int(np.count_nonzero(~valid)),
        )
        _LOGGER.info(
            "Lasso diagnosis for label %d: %d/%d sampled voxels labeled, %d inside lasso, %d unprojectable",
            int(label),
            diagnosis.with_label,
            diagnosis.sampled,
            diagnosis.inside,
            diagnosis.invalid_projection,
        )
        return diagnosis
