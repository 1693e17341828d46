"""
Lasso request file I/O (.json)

A lasso request records the polygon, the view it was drawn in and, optionally,
the slice view that decides which slab of the volume is edited. The CLI uses
it to replay an edit without a viewer.

    {
      "format": "lassoseg_request",
      "version": 1,
      "view": {"kind": "scene", "width": 800, "height": 600,
               "eye": [0, 0, 300], "target": [0, 0, 0], "fov": 45},
      "slice": {"width": 800, "height": 800, "crosshair": [0.5, 0.5, 0.5]},
      "points": [[10, 10], [90, 10], [90, 90]],
      "label": 3
    }
"""

from __future__ import annotations

from dataclasses import dataclass
import json
from pathlib import Path
from typing import Any, Mapping, Optional

import numpy as np

from .label_volume import LabelVolume
from .polygon import LassoPolygon
from .views import RenderView, SceneView, SliceView, View, ViewKind


LASSO_FORMAT = "lassoseg_request"
LASSO_VERSION = 1


class LassoFormatError(RuntimeError):
    pass


@dataclass
class LassoRequest:
    view: View
    polygon: LassoPolygon
    slice_view: Optional[SliceView] = None
    label: Optional[int] = None


def _vec(data: Mapping[str, Any], key: str, default=None) -> Optional[np.ndarray]:
    value = data.get(key, default)
    if value is None:
        return None
    arr = np.asarray(value, dtype=np.float64).reshape(-1)
    if arr.size != 3:
        raise LassoFormatError(f"{key!r} needs 3 values, got {arr.size}")
    return arr


def view_from_dict(data: Mapping[str, Any], volume: LabelVolume) -> View:
    """Build a view from its JSON description; slice views take the grid from `volume`."""
    try:
        kind = ViewKind(str(data.get("kind", "")).strip().lower())
    except ValueError as e:
        raise LassoFormatError(f"Unknown view kind: {data.get('kind')!r}") from e

    width = float(data.get("width", 0))
    height = float(data.get("height", 0))

    if kind == ViewKind.SLICE:
        return SliceView.for_volume(
            volume,
            width=width,
            height=height,
            crosshair=tuple(_vec(data, "crosshair", (0.5, 0.5, 0.5))),
            tile_scale=float(data.get("tile_scale", 0.5)),
            tile_origin=tuple(float(v) for v in data.get("tile_origin", (0.0, 0.0))),  # type: ignore[arg-type]
        )

    eye = _vec(data, "eye")
    target = _vec(data, "target", (0.0, 0.0, 0.0))
    up = _vec(data, "up", (0.0, 1.0, 0.0))
    fov = float(data.get("fov", 45.0))

    if kind == ViewKind.RENDER:
        return RenderView(width=width, height=height, eye=eye, target=target, up=up, fov_deg=fov)

    if eye is None:
        # Camera not set up yet; projects nothing.
        return SceneView(width=width, height=height)
    return SceneView.from_camera(eye, target, up, width=width, height=height, fov_deg=fov)


def load_lasso(path: str | Path, volume: LabelVolume) -> LassoRequest:
    """
    Load a lasso request.

    Raises:
        LassoFormatError: malformed document
    """
    in_path = Path(path)
    if not in_path.exists():
        raise FileNotFoundError(str(in_path))

    raw = in_path.read_text(encoding="utf-8", errors="replace")
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as e:
        raise LassoFormatError(f"Invalid JSON: {e}") from e

    if not isinstance(doc, dict):
        raise LassoFormatError("Invalid lasso document (expected JSON object)")

    fmt = str(doc.get("format", LASSO_FORMAT)).strip()
    ver = doc.get("version", LASSO_VERSION)
    if fmt != LASSO_FORMAT:
        raise LassoFormatError(f"Unsupported lasso format: {fmt!r}")
    if ver != LASSO_VERSION:
        raise LassoFormatError(f"Unsupported lasso version: {ver!r}")

    view_doc = doc.get("view")
    if not isinstance(view_doc, dict):
        raise LassoFormatError("Invalid lasso document: missing 'view' object")
    view = view_from_dict(view_doc, volume)

    points = doc.get("points")
    if not isinstance(points, list):
        raise LassoFormatError("Invalid lasso document: missing 'points' list")
    polygon = LassoPolygon(view_id=str(view_doc.get("id") or view.kind.value))
    for p in points:
        if not isinstance(p, (list, tuple)) or len(p) < 2:
            raise LassoFormatError(f"Invalid lasso point: {p!r}")
        polygon.add_point(float(p[0]), float(p[1]))

    slice_view: Optional[SliceView] = view if isinstance(view, SliceView) else None
    slice_doc = doc.get("slice")
    if slice_view is None and isinstance(slice_doc, dict):
        slice_view = view_from_dict({**slice_doc, "kind": ViewKind.SLICE.value}, volume)  # type: ignore[assignment]

    label = doc.get("label")
    return LassoRequest(
        view=view,
        polygon=polygon,
        slice_view=slice_view,
        label=int(label) if label is not None else None,
    )


def save_lasso(path: str | Path, view: Mapping[str, Any], points, *, slice_view: Mapping[str, Any] | None = None,
               label: int | None = None) -> str:
    out_path = Path(path)
    doc: dict[str, Any] = {
        "format": LASSO_FORMAT,
        "version": LASSO_VERSION,
        "view": dict(view),
        "points": [[float(p[0]), float(p[1])] for p in points],
    }
    if slice_view is not None:
        doc["slice"] = dict(slice_view)
    if label is not None:
        doc["label"] = int(label)

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(doc, ensure_ascii=False, indent=2), encoding="utf-8")
    return str(out_path)
