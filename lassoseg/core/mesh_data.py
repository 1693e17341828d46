"""
Mesh Data Module
라벨 메쉬 데이터 구조 및 로딩

Surface meshes come from the external segmentation pipeline, one mesh per
label. Supports any format trimesh can read (OBJ, PLY, STL, OFF).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging
import re

import numpy as np

try:
    import trimesh
except ImportError:
    raise ImportError("trimesh is required. Install with: pip install trimesh")

_LOGGER = logging.getLogger(__name__)

MESH_KIND = "mesh"
GROUP_KIND = "group"


@dataclass
class LabelMesh:
    """
    라벨 메쉬 컨테이너

    Attributes:
        vertices: (N, 3) world-space vertex positions
        faces: (M, 3) triangle indices; None means sequential (0, 1, 2), (3, 4, 5)...
        normals: (N, 3) vertex normals (optional)
        label: segmentation label the mesh was extracted from (optional)
        label_name: human readable label name, e.g. "label_3" or "Liver"
        name: entity name in the scene
        kind: "mesh" or "group"
        children: sub-meshes of a group
    """
    vertices: np.ndarray
    faces: Optional[np.ndarray] = None
    normals: Optional[np.ndarray] = None
    label: Optional[int] = None
    label_name: Optional[str] = None
    name: str = ""
    kind: str = MESH_KIND
    children: List["LabelMesh"] = field(default_factory=list)

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        if self.faces is None:
            # Unindexed geometry: every three consecutive vertices form a triangle.
            n_tri = len(self.vertices) // 3
            self.faces = np.arange(n_tri * 3, dtype=np.int64).reshape(-1, 3)
        else:
            self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=np.float64).reshape(-1, 3)
        self._validate()

    def _validate(self) -> None:
        if self.faces.size and (self.faces.min() < 0 or self.faces.max() >= len(self.vertices)):
            raise ValueError(
                f"Mesh {self.name!r}: face index out of range for {len(self.vertices)} vertices"
            )

    @property
    def is_group(self) -> bool:
        return self.kind == GROUP_KIND

    @property
    def n_vertices(self) -> int:
        """정점 개수"""
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        """면 개수"""
        return len(self.faces)

    @property
    def bounds(self) -> np.ndarray:
        """경계 박스 [[min_x, min_y, min_z], [max_x, max_y, max_z]]"""
        verts = self.all_vertices()
        if len(verts) == 0:
            return np.zeros((2, 3), dtype=np.float64)
        return np.array([verts.min(axis=0), verts.max(axis=0)])

    @property
    def bbox_center(self) -> np.ndarray:
        """바운딩 박스 중심"""
        b = self.bounds
        return (b[0] + b[1]) / 2.0

    def all_vertices(self) -> np.ndarray:
        if not self.is_group:
            return self.vertices
        parts = [self.vertices] + [child.all_vertices() for child in self.children]
        parts = [p for p in parts if len(p)]
        if not parts:
            return np.zeros((0, 3), dtype=np.float64)
        return np.vstack(parts)

    def compute_normals(self) -> None:
        """정점 법선 = 인접 면 법선의 평균"""
        normals = np.zeros_like(self.vertices, dtype=np.float64)
        if self.n_faces == 0:
            self.normals = normals
            return

        v0 = self.vertices[self.faces[:, 0]]
        v1 = self.vertices[self.faces[:, 1]]
        v2 = self.vertices[self.faces[:, 2]]
        face_normals = np.cross(v1 - v0, v2 - v0)

        # Area-weighted accumulation (unnormalized cross products).
        np.add.at(normals, self.faces[:, 0], face_normals)
        np.add.at(normals, self.faces[:, 1], face_normals)
        np.add.at(normals, self.faces[:, 2], face_normals)

        norms = np.linalg.norm(normals, axis=1, keepdims=True)
        norms[norms == 0] = 1
        self.normals = normals / norms

    def replace_geometry(
        self,
        vertices: np.ndarray,
        faces: np.ndarray,
        normals: Optional[np.ndarray] = None,
    ) -> None:
        """Swap the whole geometry (vertex + index buffer) in place."""
        self.vertices = np.asarray(vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
        self.normals = None if normals is None else np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        self._validate()

    def clone(self) -> "LabelMesh":
        """Deep copy of geometry and metadata."""
        return LabelMesh(
            vertices=self.vertices.copy(),
            faces=self.faces.copy(),
            normals=self.normals.copy() if self.normals is not None else None,
            label=self.label,
            label_name=self.label_name,
            name=self.name,
            kind=self.kind,
            children=[child.clone() for child in self.children],
        )

    def expected_label(self, default: int = 1) -> int:
        """
        Label this mesh should correspond to in the volume.

        Order: explicit `label`, first number in `label_name`,
        ``label<N>`` or any number in `name`, then `default`.
        """
        if self.label is not None:
            return int(self.label)

        if self.label_name:
            match = re.search(r"\d+", str(self.label_name))
            if match:
                return int(match.group(0))

        if self.name:
            match = re.search(r"label[_-]?(\d+)", self.name, flags=re.IGNORECASE) or re.search(r"(\d+)", self.name)
            if match:
                return int(match.group(1))

        _LOGGER.warning("Mesh %r has no label information; using %d", self.name, default)
        return int(default)

    def merged(self) -> "LabelMesh":
        """
        Flatten a group into one plain mesh (children concatenated).

        Plain meshes are returned as a clone.
        """
        if not self.is_group:
            return self.clone()

        parts = []
        if self.n_vertices and self.n_faces:
            parts.append(trimesh.Trimesh(vertices=self.vertices, faces=self.faces, process=False))
        for child in self.children:
            flat = child.merged()
            if flat.n_vertices and flat.n_faces:
                parts.append(flat.to_trimesh())

        if parts:
            combined = trimesh.util.concatenate(parts)
            vertices, faces = combined.vertices, combined.faces
        else:
            vertices, faces = np.zeros((0, 3)), np.zeros((0, 3), dtype=np.int64)

        label = self.label
        if label is None:
            child_labels = {c.label for c in self.children if c.label is not None}
            if len(child_labels) == 1:
                label = child_labels.pop()

        return LabelMesh(
            vertices=vertices,
            faces=faces,
            label=label,
            label_name=self.label_name,
            name=self.name,
        )

    def to_trimesh(self) -> "trimesh.Trimesh":
        """trimesh 객체로 변환"""
        return trimesh.Trimesh(
            vertices=self.vertices,
            faces=self.faces,
            vertex_normals=self.normals,
            process=False,
        )

    @classmethod
    def from_trimesh(
        cls,
        mesh: "trimesh.Trimesh",
        *,
        name: str = "",
        label: Optional[int] = None,
    ) -> "LabelMesh":
        """trimesh 객체에서 생성"""
        metadata = getattr(mesh, "metadata", None) or {}
        if label is None and "label" in metadata:
            try:
                label = int(metadata["label"])
            except (TypeError, ValueError):
                label = None
        return cls(
            vertices=np.asarray(mesh.vertices),
            faces=np.asarray(mesh.faces),
            label=label,
            label_name=metadata.get("label_name"),
            name=name or str(metadata.get("name") or ""),
        )


def load_label_meshes(filepath: Union[str, Path]) -> LabelMesh:
    """
    Load a mesh file.

    Single-geometry files become a plain mesh; multi-object files (e.g. an OBJ
    with several groups) become a ``group`` whose children keep their names.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    loaded = trimesh.load(str(path), process=False)
    if isinstance(loaded, trimesh.Scene):
        children = []
        for geom_name, geom in loaded.geometry.items():
            if isinstance(geom, trimesh.Trimesh):
                children.append(LabelMesh.from_trimesh(geom, name=str(geom_name)))
        if len(children) == 1:
            only = children[0]
            only.name = only.name or path.stem
            return only
        _LOGGER.info("Loaded %s as group of %d meshes", path.name, len(children))
        return LabelMesh(
            vertices=np.zeros((0, 3)),
            faces=np.zeros((0, 3), dtype=np.int64),
            name=path.stem,
            kind=GROUP_KIND,
            children=children,
        )

    if not isinstance(loaded, trimesh.Trimesh):
        raise ValueError(f"{path.name}: unsupported geometry type {type(loaded).__name__}")
    return LabelMesh.from_trimesh(loaded, name=path.stem)
