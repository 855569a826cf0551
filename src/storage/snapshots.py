# src/storage/snapshots.py — v1
"""Per-stage run snapshots, optionally committed to git.

Persistence is best-effort: every failure is logged and swallowed, and
``save`` reports it only by returning None.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic_core import to_jsonable_python

from docweaver.config.settings import Settings
from docweaver.storage.base_output_writer import BaseOutputWriter
from docweaver.storage.layout import iso_timestamp, run_dir, snapshot_file
from docweaver.storage.local_writer import LocalWriter

logger = logging.getLogger(__name__)


class GitCommandError(RuntimeError):
    """A git subprocess exited non-zero."""


class SnapshotStore:
    """Write ``{stage, when, payload}`` records for one run.

    Args:
        settings: Runs root and git toggle/repository.
        run_id: Run identifier, part of the directory name and commit message.
        writer: Output backend. Defaults to a LocalWriter rooted at the run directory.
        now: Run start time (directory name); current time when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        run_id: str,
        writer: BaseOutputWriter | None = None,
        now: datetime | None = None,
    ) -> None:
        self._settings = settings
        self._run_id = run_id
        self.run_path = run_dir(Path(settings.runs_dir), run_id, now)
        self._writer = writer or LocalWriter(self.run_path)
        self._git_enabled = settings.snapshot_git_enabled
        self._repo = Path(settings.snapshot_git_repo)
        self.revisions: list[str] = []

    @property
    def run_id(self) -> str:
        return self._run_id

    async def save(self, stage_name: str, payload: Any) -> str | None:
        """Persist one stage record; return the short commit id, if any."""
        name = snapshot_file(stage_name)
        record = {
            "stage": stage_name,
            "when": iso_timestamp(),
            "payload": to_jsonable_python(payload, by_alias=True, fallback=str),
        }
        try:
            await self._writer.write(name, json.dumps(record, ensure_ascii=False, indent=2))
        except Exception as exc:
            logger.warning("Snapshot %s not written: %s", stage_name, exc)
            return None

        if not self._git_enabled:
            return None
        local = self._writer.local_path(name)
        if local is None:
            return None
        try:
            revision = await self._commit(Path(local), stage_name)
        except (OSError, GitCommandError) as exc:
            logger.debug("Snapshot %s not committed: %s", stage_name, exc)
            return None
        self.revisions.append(revision)
        return revision

    async def _commit(self, file_path: Path, stage_name: str) -> str:
        repo = self._repo.resolve()
        target = file_path.resolve()
        try:
            rel = os.path.relpath(target, repo)
        except ValueError:
            rel = str(target)
        await self._git("add", "--", rel)
        await self._git("commit", "-m", f"[run:{self._run_id}] {stage_name}")
        return (await self._git("rev-parse", "--short", "HEAD")).strip()

    async def _git(self, *args: str) -> str:
        proc = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(self._repo),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise GitCommandError(
                f"git {args[0]} exited {proc.returncode}: "
                f"{stderr.decode('utf-8', 'replace').strip()}"
            )
        return stdout.decode("utf-8", "replace")
