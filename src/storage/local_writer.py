# src/storage/local_writer.py — v4
"""Snapshot records on the local filesystem."""

from __future__ import annotations

import os
from pathlib import Path

from docweaver.storage.base_output_writer import BaseOutputWriter


class LocalWriter(BaseOutputWriter):
    """Write snapshot records under one run directory.

    A record is written to a sibling ``.tmp`` file and moved into place, so a
    reader or a git commit never sees half a JSON document.
    """

    def __init__(self, run_path: str | Path) -> None:
        self._root = Path(run_path)

    def _resolve(self, name: str) -> Path:
        return self._root / name

    async def write(self, name: str, content: str) -> None:
        target = self._resolve(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, target)

    def local_path(self, name: str) -> str | None:
        return str(self._resolve(name))
