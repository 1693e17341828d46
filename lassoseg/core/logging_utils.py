"""
Logging helpers.

Edits are driven from a host viewer without a console, so the CLI and hosts
log to a file under the user state directory. Voxel scans report degraded
transforms through `log_once`; the session forgets those keys whenever the
volume changes so each new volume is reported again.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Optional

ENV_LOG_LEVEL = "LASSOSEG_LOG_LEVEL"

_LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOG_ONCE_KEYS: set[str] = set()
_LOG_ONCE_LOCK = threading.Lock()


def default_log_dir() -> Path:
    """`$XDG_STATE_HOME/lassoseg/logs`, else `~/.local/state/lassoseg/logs`."""
    state_home = os.environ.get("XDG_STATE_HOME")
    base = Path(state_home) if state_home else Path.home() / ".local" / "state"
    return base / "lassoseg" / "logs"


def _parse_log_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    value = logging.getLevelName(name) if name else logging.INFO
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    *,
    log_level: str | int = "INFO",
    log_dir: Optional[str | Path] = None,
    filename: str = "lassoseg.log",
) -> Optional[Path]:
    """
    Attach a UTF-8 file handler to the root logger.

    Calling it again reuses the handler already attached. The level comes from
    `$LASSOSEG_LOG_LEVEL` when set.

    Returns:
        Path of the log file, or None when it cannot be created.
    """
    root = logging.getLogger()
    existing = next((h for h in root.handlers if isinstance(h, logging.FileHandler)), None)
    if existing is not None:
        return Path(existing.baseFilename)

    level = _parse_log_level(os.environ.get(ENV_LOG_LEVEL) or log_level)
    log_path = (Path(log_dir) if log_dir is not None else default_log_dir()) / filename
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(str(log_path), encoding="utf-8")
    except OSError:
        return None

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_DATE_FORMAT))
    root.setLevel(level)
    root.addHandler(handler)
    root.info("Lasso edit log: %s (level=%s)", log_path, logging.getLevelName(level))
    return log_path


def log_once(
    logger: logging.Logger,
    key: str,
    level: int,
    msg: str,
    *args,
    exc_info: bool | BaseException | None = None,
) -> bool:
    """Log `msg` only the first time `key` is seen; returns whether it was logged."""
    with _LOG_ONCE_LOCK:
        if key in _LOG_ONCE_KEYS:
            return False
        _LOG_ONCE_KEYS.add(key)

    logger.log(level, msg, *args, exc_info=exc_info)
    return True


def reset_log_once(prefix: str = "") -> None:
    """Forget `log_once` keys starting with `prefix` (all keys by default)."""
    with _LOG_ONCE_LOCK:
        stale = [k for k in _LOG_ONCE_KEYS if k.startswith(prefix)]
        _LOG_ONCE_KEYS.difference_update(stale)
