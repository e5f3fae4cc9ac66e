from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

# Fallback for records emitted through the unbound logger
_ROOT_NAME = "vector_face_id"

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> "
    "<level>{level: <8}</level> "
    "<cyan>{extra[name]}</cyan>.<cyan>{function}</cyan> "
    "<level>{message}</level>"
)
_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <8} "
    "{extra[name]}.{function}:{line} {message}"
)

_VERBOSE_LEVELS = frozenset({"TRACE", "DEBUG"})

_is_setup = False


def _console_sink(level: str, json_logs: bool, colorize: bool) -> Dict[str, Any]:
    if json_logs:
        return {"sink": sys.stdout, "level": level, "serialize": True, "diagnose": False}
    return {
        "sink": sys.stdout,
        "level": level,
        "format": _CONSOLE_FORMAT,
        "colorize": colorize,
        "diagnose": level.upper() in _VERBOSE_LEVELS,
    }


def _file_sink(
    path: Path,
    level: str,
    json_logs: bool,
    rotation: str,
    retention: str,
    compression: str,
) -> Dict[str, Any]:
    path.parent.mkdir(parents=True, exist_ok=True)
    return {
        "sink": str(path),
        "level": level,
        "format": "{message}" if json_logs else _FILE_FORMAT,
        "serialize": json_logs,
        "rotation": rotation,
        "retention": retention,
        "compression": compression,
        "encoding": "utf-8",
        "diagnose": False,
    }


def setup_logger(
    level: str = "INFO",
    file_path: Optional[Path | str] = None,
    rotation: str = "10 MB",
    retention: str = "7 days",
    compression: str = "zip",
    json_logs: bool = False,
    colorize: bool = True,
) -> None:
    """
    (Re)configure loguru sinks for the whole process.

    Every existing sink is dropped first, so calling this twice leaves only
    the second configuration active. Rotation, retention and compression
    only apply to the optional file sink.
    """
    global _is_setup

    handlers = [_console_sink(level, json_logs, colorize)]
    if file_path:
        handlers.append(
            _file_sink(Path(file_path), level, json_logs, rotation, retention, compression)
        )
    logger.configure(handlers=handlers, extra={"name": _ROOT_NAME})

    _is_setup = True
    logger.debug(
        f"Logging ready: level={level} json={json_logs} "
        f"file={file_path if file_path else '-'}"
    )


def get_logger(name: str):
    """Logger with ``name`` bound, shown in place of the module path."""
    return logger.bind(name=name)


def setup_from_settings() -> None:
    """Apply ``settings.logging``; imported lazily to keep this module light."""
    from config.settings import settings

    cfg = settings.logging
    setup_logger(
        level=cfg.level,
        file_path=cfg.file_path,
        rotation=cfg.rotation,
        retention=cfg.retention,
        json_logs=cfg.json_logs,
        colorize=not settings.is_production,
    )


if not _is_setup:
    setup_logger()
