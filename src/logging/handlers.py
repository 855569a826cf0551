# src/logging/handlers.py — v3
"""File handlers: the rotating process log and the per-run log.

The per-run log sits next to the run's stage snapshots (``run.log``) and only
receives records emitted while that run's id is in the logging context, so
concurrent runs in one process do not interleave.
"""

from __future__ import annotations

import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

from docweaver.logging.context import get_context

RUN_LOG_NAME = "run.log"

_SIZE = re.compile(r"^(\d+)\s*(B|KB|MB|GB)?$", re.IGNORECASE)
_UNITS = {"B": 1, "KB": 1024, "MB": 1024**2, "GB": 1024**3}


def parse_size(size_str: str) -> int:
    """Bytes in a size like ``"10MB"``; a bare number counts bytes."""
    match = _SIZE.match(size_str.strip())
    if not match:
        raise ValueError(f"Invalid size format: {size_str!r}. Use e.g. '10MB'.")
    unit = (match.group(2) or "B").upper()
    return int(match.group(1)) * _UNITS[unit]


def create_rotating_handler(
    log_file: str | Path,
    rotation: str = "10MB",
    retention: int = 5,
) -> RotatingFileHandler:
    """Rotating handler for the process log file, creating its directory."""
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(path),
        maxBytes=parse_size(rotation),
        backupCount=retention,
        encoding="utf-8",
    )


class RunFilter(logging.Filter):
    """Pass only records logged under one run id."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        return get_context().run_id == self.run_id


def open_run_log(
    run_path: Path, run_id: str, formatter: logging.Formatter | None = None
) -> logging.FileHandler:
    """File handler writing ``run.log`` inside ``run_path`` for ``run_id`` only."""
    run_path.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(run_path / RUN_LOG_NAME, encoding="utf-8")
    handler.addFilter(RunFilter(run_id))
    if formatter is not None:
        handler.setFormatter(formatter)
    return handler
