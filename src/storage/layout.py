# src/storage/layout.py — v2
"""Snapshot directory structure.

One directory per run under the runs root, named
``<UTC ISO timestamp with ':' and '.' replaced by '-'>_<run_id>``; one JSON
record per stage inside it, named after the stage's snapshot name
(``01_intent.json`` ... ``10_final-merge.json``).
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

SNAPSHOT_SUFFIX = ".json"


def iso_timestamp(now: datetime | None = None) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def run_dir_name(run_id: str, now: datetime | None = None) -> str:
    stamp = iso_timestamp(now).replace(":", "-").replace(".", "-")
    return f"{stamp}_{run_id}"


def run_dir(runs_root: Path, run_id: str, now: datetime | None = None) -> Path:
    return runs_root / run_dir_name(run_id, now)


def snapshot_file(stage_name: str) -> str:
    return f"{stage_name}{SNAPSHOT_SUFFIX}"


def snapshot_path(run_path: Path, stage_name: str) -> Path:
    return run_path / snapshot_file(stage_name)
