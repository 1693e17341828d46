"""
Core modules for LassoSeg lasso editing
"""

from .label_volume import LabelVolume, VolumeFormatError, apply_label_colors
from .mesh_data import LabelMesh, load_label_meshes
from .transforms import AlignmentCorrection, VoxelIndex, voxel_to_world, world_to_voxel, clamp_voxel
from .views import ViewKind, SceneView, RenderView, SliceView, world_to_screen, screen_to_world, project_points
from .calibration import AlignmentCalibrator, CalibrationReport, select_correction
from .polygon import LassoPolygon, point_in_polygon, bounding_box_of, point_in_bounding_box
from .volume_editor import VolumeLabelEditor, VolumeEditResult
from .mesh_cutter import MeshRegionCutter, CutResult, UnsupportedMeshError, UnsupportedViewError
from .history import EditHistory
from .viewer_sync import ViewerSync, VolumeReadyCallbacks
from .session import EditSession, EditSettings, EditOutcome

__all__ = [
    # Volume data
    'LabelVolume',
    'VolumeFormatError',
    'apply_label_colors',
    # Mesh data
    'LabelMesh',
    'load_label_meshes',
    # Voxel <-> world
    'AlignmentCorrection',
    'VoxelIndex',
    'voxel_to_world',
    'world_to_voxel',
    'clamp_voxel',
    # World <-> screen
    'ViewKind',
    'SceneView',
    'RenderView',
    'SliceView',
    'world_to_screen',
    'screen_to_world',
    'project_points',
    # Alignment calibration
    'AlignmentCalibrator',
    'CalibrationReport',
    'select_correction',
    # Polygon tests
    'LassoPolygon',
    'point_in_polygon',
    'bounding_box_of',
    'point_in_bounding_box',
    # Volume editing
    'VolumeLabelEditor',
    'VolumeEditResult',
    # Mesh cutting
    'MeshRegionCutter',
    'CutResult',
    'UnsupportedMeshError',
    'UnsupportedViewError',
    # Undo
    'EditHistory',
    # Viewer sync
    'ViewerSync',
    'VolumeReadyCallbacks',
    # Session
    'EditSession',
    'EditSettings',
    'EditOutcome',
]
