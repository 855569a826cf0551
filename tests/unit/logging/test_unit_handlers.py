# tests/unit/logging/test_unit_handlers.py — v2
"""Tests for logging/handlers.py — rotation and the per-run log."""

from __future__ import annotations

import logging

import pytest

from docweaver.logging.context import set_run_context
from docweaver.logging.handlers import (
    RUN_LOG_NAME,
    RunFilter,
    create_rotating_handler,
    open_run_log,
    parse_size,
)
from docweaver.logging.logger import TextFormatter


def _record(msg: str = "m") -> logging.LogRecord:
    return logging.LogRecord("docweaver.test", logging.INFO, __file__, 1, msg, None, None)


class TestParseSize:
    @pytest.mark.parametrize(
        "size, expected",
        [("10MB", 10 * 1024**2), ("512KB", 512 * 1024), ("1GB", 1024**3),
         ("10mb", 10 * 1024**2), ("2048", 2048), ("64 B", 64)],
    )
    def test_valid(self, size, expected):
        assert parse_size(size) == expected

    @pytest.mark.parametrize("size", ["10bytes", "", "MB", "1.5MB"])
    def test_invalid(self, size):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size(size)


class TestCreateRotatingHandler:
    def test_creates_handler(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "docweaver.log", rotation="1MB", retention=3)
        try:
            assert handler.maxBytes == 1024 * 1024
            assert handler.backupCount == 3
        finally:
            handler.close()

    def test_creates_parent_dirs(self, tmp_path):
        handler = create_rotating_handler(str(tmp_path / "logs" / "deep" / "docweaver.log"))
        handler.close()
        assert (tmp_path / "logs" / "deep").is_dir()


class TestRunFilter:
    def test_passes_only_its_run(self):
        run_filter = RunFilter("run-a")
        set_run_context("run-a")
        assert run_filter.filter(_record())
        set_run_context("run-b")
        assert not run_filter.filter(_record())

    def test_no_run_in_context(self):
        assert not RunFilter("run-a").filter(_record())


class TestOpenRunLog:
    def test_writes_inside_run_dir(self, tmp_path):
        run_path = tmp_path / "2024-01-01T00-00-00-000Z_r1"
        handler = open_run_log(run_path, "r1", TextFormatter())
        try:
            set_run_context("r1")
            handler.handle(_record("kept"))
            set_run_context("r2")
            handler.handle(_record("dropped"))
        finally:
            handler.close()

        text = (run_path / RUN_LOG_NAME).read_text(encoding="utf-8")
        assert "kept" in text
        assert "dropped" not in text
