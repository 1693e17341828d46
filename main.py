"""
LassoSeg - Lasso editing for label volumes and surface meshes
라벨 볼륨 / 표면 메쉬 라쏘 편집 도구

Main entry point
"""

import sys
import logging
from pathlib import Path

# Ensure repository root is on sys.path so "lassoseg" is importable.
ROOT_DIR = Path(__file__).resolve().parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from lassoseg.core.runtime_defaults import DEFAULTS
from lassoseg.core.output_paths import edited_volume_path, edited_mesh_path

_LOGGER = logging.getLogger(__name__)


def run_cli():
    """커맨드라인 인터페이스 실행"""
    try:
        from lassoseg.core.logging_utils import setup_logging

        setup_logging()
    except Exception as e:
        _LOGGER.debug("Failed to initialize logging: %s", e, exc_info=True)

    if len(sys.argv) < 2:
        print_help()
        return

    cmd = sys.argv[1]

    if cmd == '--help' or cmd == '-h':
        print_help()
        return

    if cmd == '--info' and len(sys.argv) > 2:
        show_volume_info(sys.argv[2])
        return

    if cmd == '--mesh-info' and len(sys.argv) > 2:
        show_mesh_info(sys.argv[2])
        return

    if cmd == '--calibrate' and len(sys.argv) > 3:
        calibrate(sys.argv[2], sys.argv[3])
        return

    if cmd == '--edit' and len(sys.argv) > 3:
        edit(sys.argv[2], sys.argv[3], sys.argv[4] if len(sys.argv) > 4 else None)
        return

    print(f"Error: Unknown command or missing arguments: {cmd}")
    print("Use --help for usage information")


def print_help():
    """도움말 출력"""
    print("=" * 60)
    print("LassoSeg - Lasso editing for label volumes and meshes")
    print("라벨 볼륨 / 표면 메쉬 라쏘 편집 도구")
    print("=" * 60)
    print()
    print("Usage:")
    print("  python main.py --info <volume.npz>                    # Volume header and labels")
    print("  python main.py --mesh-info <mesh_file>                # Mesh summary and label")
    print("  python main.py --calibrate <volume.npz> <mesh_file>   # Mesh/volume alignment")
    print("  python main.py --edit <volume.npz> <lasso.json> [mesh_file]")
    print()
    print("Defaults:")
    print(f"  slice margin: {DEFAULTS.slice_margin}, undo depth: {DEFAULTS.undo_depth}")
    print(f"  calibration threshold: {DEFAULTS.calibration_threshold_mm:g} mm")
    print()
    print("Examples:")
    print("  python main.py --info case01.npz")
    print("  python main.py --edit case01.npz lasso.json liver.ply")


def show_volume_info(filepath: str):
    """볼륨 정보 표시"""
    from lassoseg.core.label_volume import LabelVolume

    print(f"\nVolume Info: {filepath}")
    print("-" * 40)

    try:
        volume = LabelVolume.load_npz(filepath)
        nx, ny, nz = volume.dims
        print(f"  dims: {nx} x {ny} x {nz}")
        print(f"  spacing: {', '.join(f'{v:g}' for v in volume.pix_dims)} mm")
        print(f"  center: {', '.join(f'{v:.2f}' for v in volume.mm_center)}")
        print(f"  affine: {'yes' if volume.has_affine else 'no (spacing/center)'}")
        for label, count in sorted(volume.label_histogram().items()):
            print(f"  label {label}: {count:,} voxels")
    except Exception as e:
        print(f"  Error: {e}")


def show_mesh_info(filepath: str):
    """메쉬 정보 표시"""
    from lassoseg.core.mesh_data import load_label_meshes

    print(f"\nMesh Info: {filepath}")
    print("-" * 40)

    try:
        mesh = load_label_meshes(filepath)
        print(f"  kind: {mesh.kind}")
        if mesh.is_group:
            for child in mesh.children:
                print(f"    {child.name}: {child.n_vertices:,} vertices, {child.n_faces:,} faces, "
                      f"label {child.expected_label()}")
        else:
            print(f"  vertices: {mesh.n_vertices:,}")
            print(f"  faces: {mesh.n_faces:,}")
            print(f"  label: {mesh.expected_label()}")
        lo, hi = mesh.bounds
        print(f"  bounds: ({lo[0]:.1f}, {lo[1]:.1f}, {lo[2]:.1f}) - ({hi[0]:.1f}, {hi[1]:.1f}, {hi[2]:.1f})")
    except Exception as e:
        print(f"  Error: {e}")


def calibrate(volume_path: str, mesh_path: str):
    """메쉬-볼륨 정렬 보정 계산"""
    from lassoseg.core.label_volume import LabelVolume
    from lassoseg.core.mesh_data import load_label_meshes
    from lassoseg.core.calibration import AlignmentCalibrator

    print(f"\nCalibrating: {mesh_path} -> {volume_path}")
    print("-" * 40)

    try:
        volume = LabelVolume.load_npz(volume_path)
        mesh = load_label_meshes(mesh_path)
        if mesh.is_group:
            mesh = mesh.merged()

        calibrator = AlignmentCalibrator(
            threshold_mm=DEFAULTS.calibration_threshold_mm,
            sample_limit=DEFAULTS.calibration_samples,
        )
        report = calibrator.calibrate(volume, mesh)
        print(f"  label: {report.label}")
        print(f"  mode: {report.mode}")
        if report.distance is not None:
            print(f"  centroid distance: {report.distance:.2f} mm")
        if report.flipped_distance is not None:
            print(f"  flipped distance: {report.flipped_distance:.2f} mm")
        off = report.correction.offset
        print(f"  offset: ({off[0]:.2f}, {off[1]:.2f}, {off[2]:.2f}), axis flip: {report.correction.axis_flip}")

        check = calibrator.measure_alignment(volume, mesh, report.correction)
        print(f"  alignment: {check.rate:.0%} ({check.aligned}/{check.total} sampled vertices)")
    except Exception as e:
        print(f"Error: {e}")
        import traceback
        traceback.print_exc()


def edit(volume_path: str, lasso_path: str, mesh_path: str | None = None):
    """라쏘 편집 적용 (볼륨 + 메쉬)"""
    from lassoseg.core.label_volume import LabelVolume
    from lassoseg.core.lasso_file import load_lasso
    from lassoseg.core.mesh_data import load_label_meshes
    from lassoseg.core.session import EditSession

    print(f"\n{'='*60}")
    print(f"Editing: {volume_path}")
    print(f"{'='*60}")

    try:
        # 1. 로드
        print("\n[1/3] Loading inputs...")
        volume = LabelVolume.load_npz(volume_path)
        request = load_lasso(lasso_path, volume)
        print(f"      Volume: {volume.dims[0]} x {volume.dims[1]} x {volume.dims[2]}")
        print(f"      Lasso: {len(request.polygon.points)} points in {request.view.kind.value} view")

        session = EditSession()
        session.set_volume(volume)
        session.register_view(request.polygon.view_id, request.view)
        if request.slice_view is not None and request.slice_view is not request.view:
            session.register_view("slice", request.slice_view)

        mesh = None
        if mesh_path:
            mesh = load_label_meshes(mesh_path)
            if request.label is not None:
                mesh.label = request.label
            report = session.select_mesh(mesh)
            print(f"      Mesh: {mesh.n_faces:,} faces, label {mesh.expected_label()}")
            if report is not None:
                print(f"      Alignment: {report.mode}")
        elif request.label is not None:
            print("      Note: 'label' is only used together with a mesh; painting label 1")

        # 2. 적용
        print("\n[2/3] Applying lasso...")
        points = request.polygon.points
        if points:
            session.begin_gesture(request.polygon.view_id, points[0])
            for p in points[1:]:
                session.extend_gesture(p)
        outcome = session.end_gesture()
        print(f"      Status: {outcome.status}")
        if outcome.mesh_result is not None:
            print(f"      Mesh faces: {outcome.mesh_result.faces_before:,} -> {outcome.mesh_result.faces_after:,}")
        elif outcome.mesh_error:
            print(f"      Mesh skipped: {outcome.mesh_error}")
        if outcome.volume_result is not None:
            z0, z1 = outcome.volume_result.slab
            print(f"      Voxels changed: {outcome.volume_result.changed:,} (slices {z0}..{z1})")

        # 3. 저장
        print("\n[3/3] Saving output...")
        out_volume = edited_volume_path(volume_path)
        volume.save_npz(out_volume)
        print(f"      Saved: {out_volume}")
        if mesh is not None and outcome.mesh_result is not None:
            out_mesh = edited_mesh_path(mesh_path)
            mesh.to_trimesh().export(str(out_mesh))
            print(f"      Saved: {out_mesh}")

        print(f"\n{'='*60}")
        print("Done!")
        print(f"{'='*60}")

    except Exception as e:
        print(f"\nError: {e}")
        import traceback
        traceback.print_exc()


if __name__ == '__main__':
    run_cli()
