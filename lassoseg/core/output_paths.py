"""
Output path helpers for edited volumes and meshes.

Centralizes naming conventions so the CLI and host applications stay in sync.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

PathLike = Union[str, Path]

EDITED_VOLUME_SUFFIX = ".edited.npz"
EDITED_MESH_SUFFIX = ".edited.ply"


def _as_path(value: PathLike) -> Path:
    return value if isinstance(value, Path) else Path(value)


def _resolve_output_path(input_path: PathLike, output_path: Optional[PathLike], suffix: str) -> Path:
    if output_path:
        return _as_path(output_path)
    return _as_path(input_path).with_suffix(suffix)


def edited_volume_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, EDITED_VOLUME_SUFFIX)


def edited_mesh_path(input_path: PathLike, output_path: Optional[PathLike] = None) -> Path:
    return _resolve_output_path(input_path, output_path, EDITED_MESH_SUFFIX)
