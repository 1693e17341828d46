"""
Geometry primitives: 3D vectors and 4x4 homogeneous matrices.

All matrices are row-major numpy arrays that act on column vectors
(`m @ [x, y, z, 1]`), with the translation in the last column.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def as_vec3(value: np.ndarray | Sequence[float]) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64).reshape(-1)
    if arr.size < 3:
        raise ValueError("Expected at least 3 values for a 3D vector.")
    return arr[:3].copy()


def as_points(points: np.ndarray | Sequence[Sequence[float]]) -> np.ndarray:
    """Return an (N, 3) float64 array (a single point becomes (1, 3))."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    if arr.ndim != 2 or arr.shape[1] < 3:
        raise ValueError(f"Expected (N, 3) points, got shape {arr.shape}")
    return arr[:, :3]


def normalize_vector(
    value: np.ndarray | Sequence[float],
    *,
    eps: float = 1e-12,
) -> np.ndarray | None:
    """Return normalized 3D vector or None when magnitude is near zero."""
    vec = as_vec3(value)
    nrm = float(np.linalg.norm(vec))
    if (not np.isfinite(nrm)) or nrm <= float(eps):
        return None
    return vec / nrm


def affine_from_flat(values: Sequence[float] | np.ndarray) -> np.ndarray:
    """
    Build a 4x4 affine from 16 row-major values (or a 4x4 / 3x4 array).

    The bottom row is forced to [0, 0, 0, 1]; voxel-to-world headers store a
    projective row that is never meant to be applied.
    """
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape == (4, 4) or arr.shape == (3, 4):
        mat = np.eye(4, dtype=np.float64)
        mat[:3, :] = arr[:3, :]
        return mat

    flat = arr.reshape(-1)
    if flat.size < 12:
        raise ValueError(f"Affine needs at least 12 values, got {flat.size}")
    mat = np.eye(4, dtype=np.float64)
    mat[:3, :] = flat[:12].reshape(3, 4)
    return mat


def invert_affine(matrix: np.ndarray, *, eps: float = 1e-12) -> np.ndarray:
    """
    Invert a 4x4 affine.

    Raises:
        np.linalg.LinAlgError: when the linear part is (numerically) singular
            or the matrix holds non-finite values.
    """
    mat = np.asarray(matrix, dtype=np.float64)
    if mat.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got {mat.shape}")
    if not np.all(np.isfinite(mat)):
        raise np.linalg.LinAlgError("Affine contains non-finite values")

    det = float(np.linalg.det(mat[:3, :3]))
    if abs(det) <= eps:
        raise np.linalg.LinAlgError(f"Affine is singular (det={det:.3g})")
    return np.linalg.inv(mat)


def transform_points(matrix: np.ndarray, points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Apply a 4x4 matrix to (N, 3) points in homogeneous coordinates.

    Returns:
        (xyz, w): the transformed (N, 3) coordinates before perspective divide
        and the (N,) homogeneous w component.
    """
    pts = as_points(points)
    homo = np.hstack([pts, np.ones((pts.shape[0], 1), dtype=np.float64)])
    out = homo @ np.asarray(matrix, dtype=np.float64).T
    return out[:, :3], out[:, 3]


def look_at_matrix(
    eye: np.ndarray | Sequence[float],
    target: np.ndarray | Sequence[float],
    up: np.ndarray | Sequence[float] = (0.0, 1.0, 0.0),
) -> np.ndarray:
    """
    World-to-camera matrix in the gluLookAt convention (camera looks down -Z).

    Falls back to an alternative up vector when `up` is parallel to the view
    direction.
    """
    e = as_vec3(eye)
    t = as_vec3(target)
    forward = normalize_vector(t - e)
    if forward is None:
        raise ValueError("Camera eye and target coincide")

    side = normalize_vector(np.cross(forward, as_vec3(up)))
    if side is None:
        for alt in ((0.0, 0.0, 1.0), (1.0, 0.0, 0.0)):
            side = normalize_vector(np.cross(forward, np.asarray(alt)))
            if side is not None:
                break
    assert side is not None
    true_up = np.cross(side, forward)

    view = np.eye(4, dtype=np.float64)
    view[0, :3] = side
    view[1, :3] = true_up
    view[2, :3] = -forward
    view[:3, 3] = -view[:3, :3] @ e
    return view


def perspective_matrix(fov_y_deg: float, aspect: float, near: float, far: float) -> np.ndarray:
    """OpenGL-style perspective projection (clip space, w = -z_camera)."""
    if aspect <= 0 or near <= 0 or far <= near:
        raise ValueError(f"Invalid frustum: aspect={aspect}, near={near}, far={far}")
    f = 1.0 / np.tan(np.radians(float(fov_y_deg)) / 2.0)
    proj = np.zeros((4, 4), dtype=np.float64)
    proj[0, 0] = f / float(aspect)
    proj[1, 1] = f
    proj[2, 2] = (far + near) / (near - far)
    proj[2, 3] = 2.0 * far * near / (near - far)
    proj[3, 2] = -1.0
    return proj


def round_half_up(values: np.ndarray) -> np.ndarray:
    """Round to the nearest integer with .5 going up (no banker's rounding)."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5).astype(np.int64)


def distance(a: np.ndarray | Sequence[float], b: np.ndarray | Sequence[float]) -> float:
    return float(np.linalg.norm(as_vec3(a) - as_vec3(b)))
