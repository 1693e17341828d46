"""
Multi-viewer Sync Module
여러 뷰어에 편집된 볼륨 반영

Viewers are duck-typed objects exposing::

    holds(volume) -> bool
    upload_volume(volume) -> None
    redraw() -> None
"""

from __future__ import annotations

from typing import Any, Callable, Protocol
import logging

from .label_volume import LabelVolume

_LOGGER = logging.getLogger(__name__)


class Viewer(Protocol):
    def holds(self, volume: LabelVolume) -> bool: ...

    def upload_volume(self, volume: LabelVolume) -> None: ...

    def redraw(self) -> None: ...


def _viewer_name(viewer: Any) -> str:
    return str(getattr(viewer, "name", None) or type(viewer).__name__)


class ViewerSync:
    """볼륨을 공유하는 뷰어 목록"""

    def __init__(self):
        self._viewers: list[Viewer] = []

    def __len__(self) -> int:
        return len(self._viewers)

    def register(self, viewer: Viewer) -> None:
        if any(v is viewer for v in self._viewers):
            return
        self._viewers.append(viewer)

    def unregister(self, viewer: Viewer) -> bool:
        for i, v in enumerate(self._viewers):
            if v is viewer:
                del self._viewers[i]
                return True
        return False

    def refresh(self, volume: LabelVolume) -> int:
        """
        Push the edited buffer to every viewer holding `volume`.

        Upload failures are logged; the viewer is redrawn regardless.

        Returns:
            Number of viewers redrawn.
        """
        redrawn = 0
        for viewer in list(self._viewers):
            name = _viewer_name(viewer)
            try:
                if not viewer.holds(volume):
                    continue
            except Exception:
                _LOGGER.warning("Viewer %s failed holds() check; skipping", name, exc_info=True)
                continue

            try:
                viewer.upload_volume(volume)
            except Exception:
                _LOGGER.warning("Viewer %s failed to upload %s", name, volume.name, exc_info=True)

            try:
                viewer.redraw()
                redrawn += 1
            except Exception:
                _LOGGER.warning("Viewer %s failed to redraw", name, exc_info=True)
        _LOGGER.debug("Refreshed %d viewer(s) for %s", redrawn, volume.name)
        return redrawn


class VolumeReadyCallbacks:
    """
    볼륨 준비 완료 시 실행할 콜백

    Callbacks are keyed to a volume instance. Announcing a volume ready fires
    its callbacks once; callbacks registered for a volume that has since been
    replaced are dropped by `discard_except`.
    """

    def __init__(self):
        self._pending: list[tuple[LabelVolume, Callable[[LabelVolume], Any]]] = []
        self._ready: list[LabelVolume] = []

    def pending_count(self, volume: LabelVolume | None = None) -> int:
        if volume is None:
            return len(self._pending)
        return sum(1 for v, _ in self._pending if v is volume)

    def is_ready(self, volume: LabelVolume) -> bool:
        return any(v is volume for v in self._ready)

    def when_ready(self, volume: LabelVolume, callback: Callable[[LabelVolume], Any]) -> bool:
        """
        Run `callback(volume)` once `volume` is ready.

        Returns:
            True when the callback ran immediately.
        """
        if self.is_ready(volume):
            callback(volume)
            return True
        self._pending.append((volume, callback))
        return False

    def mark_ready(self, volume: LabelVolume) -> int:
        """
        Fire and forget callbacks for `volume`.

        A failing callback is logged and does not stop the others.

        Returns:
            Number of callbacks that completed.
        """
        if not self.is_ready(volume):
            self._ready.append(volume)

        due = [cb for v, cb in self._pending if v is volume]
        self._pending = [(v, cb) for v, cb in self._pending if v is not volume]
        completed = 0
        for callback in due:
            try:
                callback(volume)
            except Exception:
                _LOGGER.warning("Volume-ready callback failed for %s", volume.name, exc_info=True)
                continue
            completed += 1
        return completed

    def discard_except(self, volume: LabelVolume | None) -> int:
        """Drop callbacks and ready marks of every volume other than `volume`."""
        before = len(self._pending)
        self._pending = [(v, cb) for v, cb in self._pending if v is volume]
        self._ready = [v for v in self._ready if v is volume]
        dropped = before - len(self._pending)
        if dropped:
            _LOGGER.info("Discarded %d callback(s) for replaced volumes", dropped)
        return dropped
