"""
Edit history for mesh cuts (undo only).
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Optional
import logging

from .mesh_data import LabelMesh
from .runtime_defaults import DEFAULTS

_LOGGER = logging.getLogger(__name__)


class EditHistory:
    """
    메쉬 편집 취소 스택

    Stores deep geometry snapshots; the oldest entry is dropped once
    `capacity` is exceeded.
    """

    def __init__(self, capacity: int = DEFAULTS.undo_depth):
        self.capacity = max(1, int(capacity))
        self._stack: Deque[LabelMesh] = deque(maxlen=self.capacity)

    def __len__(self) -> int:
        return len(self._stack)

    def push(self, mesh: LabelMesh) -> None:
        """현재 메쉬 상태를 스택에 저장"""
        if len(self._stack) == self.capacity:
            _LOGGER.debug("Undo stack full (%d); dropping oldest state", self.capacity)
        self._stack.append(mesh.clone())

    def last_state(self) -> Optional[LabelMesh]:
        return self._stack[-1] if self._stack else None

    def undo(self, target: LabelMesh) -> bool:
        """
        Restore the newest snapshot into `target`.

        Returns:
            False when there is nothing to undo.
        """
        if not self._stack:
            _LOGGER.info("Nothing to undo")
            return False

        state = self._stack.pop()
        target.replace_geometry(state.vertices, state.faces, state.normals)
        _LOGGER.info("Restored mesh %r: %d faces (%d states left)", target.name, target.n_faces, len(self._stack))
        return True

    def clear(self) -> None:
        self._stack.clear()
