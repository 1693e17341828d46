"""
Label Volume Module
라벨 볼륨 - 복셀마다 하나의 라벨을 가진 세그멘테이션 그리드

The volume is a flat uint8 buffer indexed as ``x + y*nx + z*nx*ny`` with a
spacing/center header and an optional voxel-to-world affine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional
import logging

import numpy as np

from .geometry import affine_from_flat

_LOGGER = logging.getLogger(__name__)


class VolumeFormatError(ValueError):
    pass


def _as_list(value: Any) -> list:
    if value is None:
        return []
    return np.asarray(value, dtype=np.float64).reshape(-1).tolist()


@dataclass
class LabelVolume:
    """
    Segmentation volume container

    Attributes:
        img: flat (nx*ny*nz,) uint8 label buffer, mutated in place by editors
        dims: grid size (nx, ny, nz)
        pix_dims: voxel spacing (dx, dy, dz) in mm
        mm_center: world-space center of the grid
        mat_ras: optional 4x4 voxel index -> world affine
        lut: optional flat RGBA lookup table (4 bytes per label)
        name: display name
    """
    img: np.ndarray
    dims: tuple[int, int, int]
    pix_dims: np.ndarray = field(default_factory=lambda: np.ones(3, dtype=np.float64))
    mm_center: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    mat_ras: Optional[np.ndarray] = None
    lut: Optional[np.ndarray] = None
    name: str = "segmentation"

    def __post_init__(self):
        dims = tuple(int(d) for d in np.asarray(self.dims).reshape(-1)[:3])
        if len(dims) != 3 or min(dims) <= 0:
            raise VolumeFormatError(f"Volume dims must be three positive integers, got {self.dims!r}")
        self.dims = (dims[0], dims[1], dims[2])

        self.img = np.ascontiguousarray(np.asarray(self.img, dtype=np.uint8).reshape(-1))
        if self.img.size != self.n_voxels:
            raise VolumeFormatError(
                f"Label buffer has {self.img.size} voxels, header expects {self.n_voxels}"
            )

        self.pix_dims = np.asarray(self.pix_dims, dtype=np.float64).reshape(-1)[:3]
        self.mm_center = np.asarray(self.mm_center, dtype=np.float64).reshape(-1)[:3]
        if self.pix_dims.size != 3 or self.mm_center.size != 3:
            raise VolumeFormatError("pix_dims and mm_center need three components")

        if self.mat_ras is not None:
            self.mat_ras = affine_from_flat(self.mat_ras)
        if self.lut is not None:
            self.lut = np.asarray(self.lut, dtype=np.uint8).reshape(-1)

    @property
    def n_voxels(self) -> int:
        nx, ny, nz = self.dims
        return nx * ny * nz

    @property
    def has_affine(self) -> bool:
        return self.mat_ras is not None

    @property
    def physical_size(self) -> np.ndarray:
        """Grid extent in mm (dims * spacing)"""
        return np.asarray(self.dims, dtype=np.float64) * self.pix_dims

    @property
    def bounds(self) -> np.ndarray:
        """Spacing/center box [[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        half = self.physical_size / 2.0
        return np.array([self.mm_center - half, self.mm_center + half])

    def index_of(self, x: int, y: int, z: int) -> int:
        nx, ny, _ = self.dims
        return int(x) + int(y) * nx + int(z) * nx * ny

    def contains_voxel(self, x: int, y: int, z: int) -> bool:
        nx, ny, nz = self.dims
        return 0 <= x < nx and 0 <= y < ny and 0 <= z < nz

    def label_at(self, x: int, y: int, z: int) -> Optional[int]:
        """Label at voxel (x, y, z); None when the index is outside the grid."""
        if not self.contains_voxel(x, y, z):
            return None
        return int(self.img[self.index_of(x, y, z)])

    def slab_view(self, z_min: int, z_max: int) -> np.ndarray:
        """
        Writable (nz_slab, ny, nx) view of slices z_min..z_max (inclusive).

        The view shares memory with `img`; writes land in the volume.
        """
        nx, ny, _ = self.dims
        grid = self.img.reshape(self.dims[2], ny, nx)
        return grid[int(z_min):int(z_max) + 1]

    def label_histogram(self) -> dict[int, int]:
        """Voxel count per label present in the volume."""
        counts = np.bincount(self.img, minlength=1)
        return {int(label): int(n) for label, n in enumerate(counts) if n > 0}

    def snapshot(self) -> np.ndarray:
        return self.img.copy()

    def restore(self, snapshot: np.ndarray) -> None:
        data = np.asarray(snapshot, dtype=np.uint8).reshape(-1)
        if data.size != self.img.size:
            raise VolumeFormatError(
                f"Snapshot has {data.size} voxels, volume has {self.img.size}"
            )
        # In place so every viewer holding this buffer sees the rollback.
        self.img[:] = data

    @classmethod
    def from_provider(cls, payload: Mapping[str, Any], *, name: str = "segmentation") -> "LabelVolume":
        """
        Build from the viewer-side volume record.

        Expected keys: ``img``, ``hdr`` with NIfTI-style ``dims`` / ``pixDims``
        (index 0 is the rank), ``mmCenter``, optional ``matRAS`` and ``lut``.
        """
        try:
            img = payload["img"]
            hdr = payload["hdr"]
        except KeyError as e:
            raise VolumeFormatError(f"Volume payload is missing {e.args[0]!r}") from e

        dims_raw = _as_list(hdr.get("dims"))
        if len(dims_raw) < 4:
            raise VolumeFormatError(f"hdr.dims needs 4 entries, got {dims_raw!r}")
        pix_raw = _as_list(hdr.get("pixDims"))
        if len(pix_raw) >= 4:
            pix_dims = np.asarray(pix_raw[1:4], dtype=np.float64)
        else:
            _LOGGER.warning("Volume %s has no pixDims; assuming 1mm isotropic spacing", name)
            pix_dims = np.ones(3, dtype=np.float64)

        mat = payload.get("matRAS")
        if mat is not None and np.asarray(mat).size < 12:
            _LOGGER.warning("Ignoring malformed matRAS (%d values)", np.asarray(mat).size)
            mat = None

        return cls(
            img=np.asarray(img),
            dims=(int(dims_raw[1]), int(dims_raw[2]), int(dims_raw[3])),
            pix_dims=pix_dims,
            mm_center=np.asarray(_as_list(payload.get("mmCenter")) or (0.0, 0.0, 0.0), dtype=np.float64),
            mat_ras=mat,
            lut=payload.get("lut"),
            name=name,
        )

    @classmethod
    def load_npz(cls, path: str | Path) -> "LabelVolume":
        """
        Load a volume saved with `save_npz`.

        Keys: ``img``, ``dims``, ``pix_dims``, ``mm_center`` and optionally
        ``mat_ras`` / ``lut``.
        """
        in_path = Path(path)
        if not in_path.exists():
            raise FileNotFoundError(str(in_path))

        with np.load(in_path, allow_pickle=False) as data:
            missing = [k for k in ("img", "dims") if k not in data.files]
            if missing:
                raise VolumeFormatError(f"{in_path.name}: missing arrays {missing}")
            return cls(
                img=data["img"],
                dims=tuple(int(v) for v in data["dims"]),
                pix_dims=data["pix_dims"] if "pix_dims" in data.files else np.ones(3),
                mm_center=data["mm_center"] if "mm_center" in data.files else np.zeros(3),
                mat_ras=data["mat_ras"] if "mat_ras" in data.files else None,
                lut=data["lut"] if "lut" in data.files else None,
                name=in_path.stem,
            )

    def save_npz(self, path: str | Path) -> str:
        out_path = Path(path)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        arrays: dict[str, np.ndarray] = {
            "img": self.img,
            "dims": np.asarray(self.dims, dtype=np.int64),
            "pix_dims": self.pix_dims,
            "mm_center": self.mm_center,
        }
        if self.mat_ras is not None:
            arrays["mat_ras"] = self.mat_ras
        if self.lut is not None:
            arrays["lut"] = self.lut
        np.savez_compressed(out_path, **arrays)
        return str(out_path)


def apply_label_colors(volume: LabelVolume, colors: Mapping[int, tuple[int, int, int]]) -> int:
    """
    Write opaque RGB colors into the volume LUT, growing it when a label does
    not fit.

    Returns:
        Number of labels written.
    """
    if not colors:
        return 0

    max_label = max(int(label) for label in colors)
    required = (max_label + 1) * 4
    lut = volume.lut if volume.lut is not None else np.zeros(0, dtype=np.uint8)
    if lut.size < required:
        _LOGGER.info("Growing LUT of %s: %d -> %d bytes", volume.name, lut.size, required)
        grown = np.zeros(required, dtype=np.uint8)
        grown[:lut.size] = lut
        lut = grown

    updated = 0
    for label, rgb in colors.items():
        idx = int(label)
        if idx < 0 or idx > 255:
            _LOGGER.warning("Skipping color for out-of-range label %s", label)
            continue
        r, g, b = (int(np.clip(round(float(c)), 0, 255)) for c in rgb)
        lut[idx * 4:idx * 4 + 4] = (r, g, b, 255)
        updated += 1

    volume.lut = lut
    return updated
