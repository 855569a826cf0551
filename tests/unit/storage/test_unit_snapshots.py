# tests/unit/storage/test_unit_snapshots.py — v1
"""Tests for storage/snapshots.py — stage records and git commits."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from docweaver.core.models import Outline, OutlineSection
from docweaver.storage.local_writer import LocalWriter
from docweaver.storage.snapshots import SnapshotStore

START = datetime(2024, 5, 6, 7, 8, 9, 123000, tzinfo=timezone.utc)


def _proc(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b""):
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    return proc


class TestSnapshotStore:
    @pytest.mark.asyncio
    async def test_record_written(self, settings):
        store = SnapshotStore(settings, "run1", now=START)
        outline = Outline(title="T", sections=[OutlineSection(id="a", title="Intro", requires_evidence=True)])

        assert await store.save("02_outline-multi", {"outline": outline}) is None

        path = store.run_path / "02_outline-multi.json"
        record = json.loads(path.read_text(encoding="utf-8"))
        assert record["stage"] == "02_outline-multi"
        assert record["when"].endswith("Z")
        assert record["payload"]["outline"]["sections"][0]["requiresEvidence"] is True

    def test_run_directory_name(self, settings):
        store = SnapshotStore(settings, "run1", now=START)
        assert store.run_path == settings.runs_dir / "2024-05-06T07-08-09-123Z_run1"
        assert store.run_id == "run1"

    @pytest.mark.asyncio
    async def test_unserializable_values_stringified(self, settings):
        store = SnapshotStore(settings, "run1", now=START)
        await store.save("01_intent", {"obj": object()})
        record = json.loads((store.run_path / "01_intent.json").read_text(encoding="utf-8"))
        assert record["payload"]["obj"].startswith("<object object")

    @pytest.mark.asyncio
    async def test_write_failure_swallowed(self, settings):
        writer = MagicMock(spec=LocalWriter)
        writer.write = AsyncMock(side_effect=OSError("disk full"))
        store = SnapshotStore(settings, "run1", writer=writer)
        assert await store.save("01_intent", {}) is None

    @pytest.mark.asyncio
    async def test_git_disabled_never_spawns(self, settings):
        with patch("docweaver.storage.snapshots.asyncio.create_subprocess_exec") as spawn:
            await SnapshotStore(settings, "run1").save("01_intent", {})
        spawn.assert_not_called()


class TestGitCommit:
    @pytest.mark.asyncio
    async def test_commit_returns_short_revision(self, settings):
        git_settings = settings.model_copy(update={"snapshot_git_enabled": True})
        spawn = AsyncMock(side_effect=[_proc(), _proc(), _proc(stdout=b"abc1234\n")])
        store = SnapshotStore(git_settings, "run1", now=START)

        with patch("docweaver.storage.snapshots.asyncio.create_subprocess_exec", spawn):
            revision = await store.save("01_intent", {"topic": "x"})

        assert revision == "abc1234"
        assert store.revisions == ["abc1234"]
        commands = [call.args[1:] for call in spawn.await_args_list]
        assert commands[0][0] == "add"
        assert commands[0][-1].endswith("01_intent.json")
        assert commands[1] == ("commit", "-m", "[run:run1] 01_intent")
        assert commands[2] == ("rev-parse", "--short", "HEAD")
        assert spawn.await_args_list[0].kwargs["cwd"] == str(settings.snapshot_git_repo)

    @pytest.mark.asyncio
    async def test_git_failure_returns_none(self, settings):
        git_settings = settings.model_copy(update={"snapshot_git_enabled": True})
        spawn = AsyncMock(side_effect=[_proc(), _proc(returncode=1, stderr=b"nothing to commit")])
        store = SnapshotStore(git_settings, "run1")

        with patch("docweaver.storage.snapshots.asyncio.create_subprocess_exec", spawn):
            assert await store.save("01_intent", {}) is None

        assert store.revisions == []
        assert (store.run_path / "01_intent.json").exists()

    @pytest.mark.asyncio
    async def test_git_missing_returns_none(self, settings):
        git_settings = settings.model_copy(update={"snapshot_git_enabled": True})
        spawn = AsyncMock(side_effect=FileNotFoundError("git"))
        store = SnapshotStore(git_settings, "run1")

        with patch("docweaver.storage.snapshots.asyncio.create_subprocess_exec", spawn):
            assert await store.save("01_intent", {}) is None

    @pytest.mark.asyncio
    async def test_non_local_writer_skips_git(self, settings):
        git_settings = settings.model_copy(update={"snapshot_git_enabled": True})
        writer = MagicMock()
        writer.write = AsyncMock()
        writer.local_path = MagicMock(return_value=None)
        store = SnapshotStore(git_settings, "run1", writer=writer)

        with patch("docweaver.storage.snapshots.asyncio.create_subprocess_exec") as spawn:
            assert await store.save("01_intent", {}) is None
        spawn.assert_not_called()
