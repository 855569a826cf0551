# tests/unit/logging/test_unit_context.py — v2
"""Tests for logging/context.py — run, stage and provider context."""

from __future__ import annotations

import asyncio

import pytest

from docweaver.logging.context import (
    clear_context,
    get_context,
    set_provider_context,
    set_run_context,
    set_stage_context,
)


class TestLogContext:
    def test_initial_state(self):
        ctx = get_context()
        assert ctx.run_id is None
        assert ctx.stage is None
        assert ctx.provider is None

    def test_set_all(self):
        set_run_context("run1")
        set_stage_context("03_outline-merge")
        set_provider_context("qwen")
        ctx = get_context()
        assert (ctx.run_id, ctx.stage, ctx.provider) == ("run1", "03_outline-merge", "qwen")

    def test_as_dict_filters_none(self):
        set_run_context("run1")
        assert get_context().as_dict() == {"run_id": "run1"}

    def test_clear(self):
        set_run_context("run1")
        set_provider_context("kimi")
        clear_context()
        assert get_context().as_dict() == {}

    @pytest.mark.asyncio
    async def test_provider_isolated_per_task(self):
        set_run_context("run1")
        seen: dict[str, str | None] = {}

        async def call(name: str) -> None:
            set_provider_context(name)
            await asyncio.sleep(0)
            seen[name] = get_context().provider

        await asyncio.gather(call("kimi"), call("qwen"))
        assert seen == {"kimi": "kimi", "qwen": "qwen"}
        assert get_context().provider is None
