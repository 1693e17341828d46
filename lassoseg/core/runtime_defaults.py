"""
Runtime defaults for lasso editing.

Values can be overridden via environment variables so the CLI and any host
application share one set of tuning knobs.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


ENV_SLICE_MARGIN = "LASSOSEG_SLICE_MARGIN"
ENV_UNDO_DEPTH = "LASSOSEG_UNDO_DEPTH"
ENV_DEDUP_TOLERANCE = "LASSOSEG_DEDUP_TOLERANCE"
ENV_CALIBRATION_THRESHOLD_MM = "LASSOSEG_CALIBRATION_THRESHOLD_MM"
ENV_CALIBRATION_SAMPLES = "LASSOSEG_CALIBRATION_SAMPLES"


@dataclass(frozen=True)
class RuntimeDefaults:
    slice_margin: int
    undo_depth: int
    dedup_tolerance: float
    calibration_threshold_mm: float
    calibration_samples: int


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_float_env(
    env_name: str,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if value != value:  # NaN
        return default
    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def load_runtime_defaults() -> RuntimeDefaults:
    return RuntimeDefaults(
        slice_margin=_read_int_env(ENV_SLICE_MARGIN, 2, min_value=1, max_value=10),
        undo_depth=_read_int_env(ENV_UNDO_DEPTH, 10, min_value=1, max_value=100),
        dedup_tolerance=_read_float_env(ENV_DEDUP_TOLERANCE, 0.01, min_value=0.0, max_value=10.0),
        calibration_threshold_mm=_read_float_env(
            ENV_CALIBRATION_THRESHOLD_MM,
            50.0,
            min_value=0.0,
            max_value=10000.0,
        ),
        calibration_samples=_read_int_env(ENV_CALIBRATION_SAMPLES, 10, min_value=1, max_value=1000),
    )


DEFAULTS = load_runtime_defaults()
