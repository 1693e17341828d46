"""
Edit Session Module
라쏘 편집 세션 상태

`EditSession` owns everything a lasso edit touches: the label volume, the
selected mesh, the registered views, the active lasso, the alignment
correction and the undo history. A host application forwards pointer events
as `begin_gesture` / `extend_gesture` / `end_gesture` calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional
import logging

import numpy as np

from .calibration import AlignmentCalibrator, CalibrationReport
from .history import EditHistory
from .label_volume import LabelVolume, apply_label_colors
from .logging_utils import reset_log_once
from .mesh_cutter import CutResult, MeshRegionCutter, UnsupportedMeshError, UnsupportedViewError
from .mesh_data import LabelMesh
from .polygon import LassoPolygon
from .runtime_defaults import DEFAULTS, RuntimeDefaults
from .transforms import AlignmentCorrection
from .viewer_sync import Viewer, ViewerSync, VolumeReadyCallbacks
from .views import SliceView, View, ViewKind
from .volume_editor import MAX_LABEL, MIN_LABEL, VolumeEditResult, VolumeLabelEditor

_LOGGER = logging.getLogger(__name__)

STATUS_APPLIED = "applied"
STATUS_TOO_FEW_POINTS = "too_few_points"
STATUS_NO_GESTURE = "no_gesture"
STATUS_NO_VOLUME = "no_volume"
STATUS_NO_VIEW = "no_view"
STATUS_BAD_LABEL = "bad_label"


@dataclass
class EditSettings:
    slice_margin: int = DEFAULTS.slice_margin
    undo_depth: int = DEFAULTS.undo_depth
    dedup_tolerance: float = DEFAULTS.dedup_tolerance
    calibration_threshold_mm: float = DEFAULTS.calibration_threshold_mm
    calibration_samples: int = DEFAULTS.calibration_samples

    @classmethod
    def from_defaults(cls, defaults: RuntimeDefaults = DEFAULTS) -> "EditSettings":
        return cls(
            slice_margin=defaults.slice_margin,
            undo_depth=defaults.undo_depth,
            dedup_tolerance=defaults.dedup_tolerance,
            calibration_threshold_mm=defaults.calibration_threshold_mm,
            calibration_samples=defaults.calibration_samples,
        )


@dataclass
class EditOutcome:
    """
    제스처 처리 결과

    Attributes:
        status: applied / too_few_points / no_gesture / no_volume / no_view /
            bad_label
        view_id: view the lasso was drawn in
        mesh_result: mesh cut result, None when no cut ran
        volume_result: volume edit result, None when the edit was aborted
        mesh_error: message of a rejected mesh cut
    """
    status: str
    view_id: Optional[str] = None
    mesh_result: Optional[CutResult] = None
    volume_result: Optional[VolumeEditResult] = None
    mesh_error: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.status == STATUS_APPLIED


@dataclass
class _EditModeState:
    snapshot: np.ndarray
    colors: dict[int, tuple[int, int, int]] = field(default_factory=dict)


class EditSession:
    """
    라쏘 편집 세션

    Single threaded: a gesture is fully applied before the next one starts.
    """

    def __init__(self, settings: Optional[EditSettings] = None):
        self.settings = settings or EditSettings.from_defaults()
        self.volume: Optional[LabelVolume] = None
        self.mesh: Optional[LabelMesh] = None
        self.views: dict[str, View] = {}
        self.correction = AlignmentCorrection.identity()
        self.calibration: Optional[CalibrationReport] = None

        self.history = EditHistory(self.settings.undo_depth)
        self.sync = ViewerSync()
        self.ready_callbacks = VolumeReadyCallbacks()
        self.editor = VolumeLabelEditor(margin=self.settings.slice_margin)
        self.cutter = MeshRegionCutter(self.history, tolerance=self.settings.dedup_tolerance)
        self.calibrator = AlignmentCalibrator(
            threshold_mm=self.settings.calibration_threshold_mm,
            sample_limit=self.settings.calibration_samples,
        )

        self._lasso: Optional[LassoPolygon] = None
        self._edit_mode: Optional[_EditModeState] = None
        self._busy = False

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def in_edit_mode(self) -> bool:
        return self._edit_mode is not None

    @property
    def lasso(self) -> Optional[LassoPolygon]:
        return self._lasso

    def set_volume(self, volume: Optional[LabelVolume]) -> None:
        """Replace the label volume; pending colour callbacks for the old one are dropped."""
        if volume is self.volume:
            return
        if self._edit_mode is not None:
            _LOGGER.info("Volume replaced during edit mode; previous snapshot discarded")
            self._edit_mode = None

        self.volume = volume
        self.ready_callbacks.discard_except(volume)
        reset_log_once("transforms.")

        if volume is not None and self.mesh is not None:
            self._calibrate()
        else:
            self.correction = AlignmentCorrection.identity()
            self.calibration = None

    def volume_ready(self) -> int:
        """Announce that viewers finished loading the current volume."""
        if self.volume is None:
            return 0
        due = self.ready_callbacks.pending_count(self.volume)
        ran = self.ready_callbacks.mark_ready(self.volume)
        if due:
            self.sync.refresh(self.volume)
        return ran

    def register_view(self, view_id: str, view: View) -> None:
        self.views[str(view_id)] = view

    def register_viewer(self, viewer: Viewer) -> None:
        self.sync.register(viewer)

    def slice_view(self) -> Optional[SliceView]:
        for view in self.views.values():
            if view.kind == ViewKind.SLICE:
                return view  # type: ignore[return-value]
        return None

    # ------------------------------------------------------------------
    # Edit mode
    # ------------------------------------------------------------------

    def enter_edit_mode(self, colors: Optional[Mapping[int, tuple[int, int, int]]] = None) -> bool:
        """
        Snapshot the volume for rollback and schedule the label colours.

        Colours are applied once the current volume is announced ready
        (immediately if it already is).
        """
        if self.volume is None:
            _LOGGER.warning("Cannot enter edit mode: no volume loaded")
            return False

        volume = self.volume
        state = _EditModeState(snapshot=volume.snapshot(), colors=dict(colors or {}))
        self._edit_mode = state

        histogram = volume.label_histogram()
        _LOGGER.info(
            "Edit mode on %s: %s",
            volume.name,
            ", ".join(f"{label}:{count}" for label, count in sorted(histogram.items())) or "empty",
        )

        if state.colors:
            self.ready_callbacks.when_ready(volume, lambda v: apply_label_colors(v, state.colors))
        return True

    def exit_edit_mode(self, *, keep_changes: bool = True) -> None:
        if self._edit_mode is None:
            return
        if not keep_changes:
            self.rollback_volume()
        self._edit_mode = None
        self._lasso = None
        _LOGGER.info("Edit mode off (changes %s)", "kept" if keep_changes else "discarded")

    def rollback_volume(self) -> bool:
        """Restore the volume to its state at edit-mode entry."""
        if self._edit_mode is None or self.volume is None:
            _LOGGER.info("No volume snapshot to roll back to")
            return False
        self.volume.restore(self._edit_mode.snapshot)
        self.sync.refresh(self.volume)
        _LOGGER.info("Rolled back %s to edit-mode snapshot", self.volume.name)
        return True

    # ------------------------------------------------------------------
    # Mesh
    # ------------------------------------------------------------------

    def select_mesh(self, mesh: Optional[LabelMesh]) -> Optional[CalibrationReport]:
        """Select the mesh to edit and recalibrate its alignment against the volume."""
        if mesh is not self.mesh and len(self.history):
            _LOGGER.debug("Selection changed; clearing %d undo state(s)", len(self.history))
            self.history.clear()
        self.mesh = mesh

        if mesh is None:
            self.correction = AlignmentCorrection.identity()
            self.calibration = None
            return None
        if self.volume is None:
            _LOGGER.info("Mesh %r selected without a volume; calibration deferred", mesh.name)
            self.correction = AlignmentCorrection.identity()
            self.calibration = None
            return None
        return self._calibrate()

    def _calibrate(self) -> Optional[CalibrationReport]:
        assert self.volume is not None and self.mesh is not None
        if self.mesh.is_group:
            _LOGGER.info("Group %r selected; calibrating against its merged geometry", self.mesh.name)
            report = self.calibrator.calibrate(self.volume, self.mesh.merged())
        else:
            report = self.calibrator.calibrate(self.volume, self.mesh)
        self.correction = report.correction
        self.calibration = report
        return report

    def undo_mesh(self) -> bool:
        if self.mesh is None:
            _LOGGER.info("Undo ignored: no mesh selected")
            return False
        return self.history.undo(self.mesh)

    # ------------------------------------------------------------------
    # Gesture
    # ------------------------------------------------------------------

    def begin_gesture(self, view_id: str, point: tuple[float, float]) -> bool:
        """Start a new lasso; a lasso from another view is discarded."""
        if self._busy:
            _LOGGER.debug("Gesture ignored: previous edit still running")
            return False
        view_id = str(view_id)
        if view_id not in self.views:
            _LOGGER.warning("Gesture in unknown view %r ignored", view_id)
            return False
        if self._lasso is not None and self._lasso.view_id != view_id:
            _LOGGER.debug("Discarding lasso from view %r", self._lasso.view_id)

        self._lasso = LassoPolygon(view_id=view_id)
        self._lasso.add_point(point[0], point[1])
        return True

    def extend_gesture(self, point: tuple[float, float]) -> bool:
        if self._lasso is None or self._busy:
            return False
        self._lasso.add_point(point[0], point[1])
        return True

    def end_gesture(self) -> EditOutcome:
        """
        Close the lasso and apply it.

        Mesh cut first (scene view with a selected mesh), then the volume
        edit with the mesh's expected label, then a viewer refresh.
        """
        lasso, self._lasso = self._lasso, None
        if lasso is None:
            return EditOutcome(status=STATUS_NO_GESTURE)
        if not lasso.is_closable:
            return EditOutcome(status=STATUS_TOO_FEW_POINTS, view_id=lasso.view_id)

        if self.volume is None:
            _LOGGER.warning("Lasso in %r dropped: no volume loaded", lasso.view_id)
            return EditOutcome(status=STATUS_NO_VOLUME, view_id=lasso.view_id)
        view = self.views.get(lasso.view_id)
        if view is None:
            _LOGGER.warning("Lasso dropped: view %r is no longer registered", lasso.view_id)
            return EditOutcome(status=STATUS_NO_VIEW, view_id=lasso.view_id)

        target_label = self.mesh.expected_label() if self.mesh is not None else 1
        if not MIN_LABEL <= target_label <= MAX_LABEL:
            _LOGGER.warning(
                "Lasso dropped: label %d of mesh %r is outside %d..%d",
                target_label,
                self.mesh.name if self.mesh is not None else "",
                MIN_LABEL,
                MAX_LABEL,
            )
            return EditOutcome(status=STATUS_BAD_LABEL, view_id=lasso.view_id)

        self._busy = True
        try:
            return self._apply(lasso, view, self.volume, target_label)
        finally:
            self._busy = False

    def _apply(self, lasso: LassoPolygon, view: View, volume: LabelVolume, target_label: int) -> EditOutcome:
        outcome = EditOutcome(status=STATUS_APPLIED, view_id=lasso.view_id)

        if self.mesh is not None:
            try:
                outcome.mesh_result = self.cutter.cut(self.mesh, lasso, view)
            except (UnsupportedMeshError, UnsupportedViewError) as e:
                _LOGGER.info("Mesh cut skipped: %s", e)
                outcome.mesh_error = str(e)

        outcome.volume_result = self.editor.apply_lasso(
            volume,
            lasso,
            view,
            target_label,
            correction=self.correction,
            slice_view=self.slice_view(),
        )
        if outcome.volume_result.changed == 0:
            self.editor.diagnose(
                volume,
                lasso,
                view,
                target_label,
                correction=self.correction,
                slice_view=self.slice_view(),
            )

        self.sync.refresh(volume)
        return outcome
