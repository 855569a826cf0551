# tests/unit/pipeline/test_unit_fanout.py — v2
"""Tests for pipeline/fanout.py — strategies, shape checks and local defaults."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from docweaver.core.models import Intent, Outline, OutlineSection
from docweaver.llm.models import Message
from docweaver.pipeline.fanout import (
    FACT_CHECK_DISABLED_NOTE,
    PLACEHOLDER_BODY,
    ask_json,
    ask_text,
    fan_out,
    first_success,
    is_image_prompt_list,
    is_nonempty_mapping,
    is_nonempty_text,
    is_outline_like,
    is_valid_outline,
    is_review_like,
    merge_fallback,
    placeholder_draft,
    placeholder_outline,
    placeholder_outlines,
    round_robin,
    to_outline,
    unverified_fact_check,
)

MESSAGES = [Message(role="user", content="hi")]


async def _value(v):
    return v


async def _boom():
    raise RuntimeError("boom")


# === SINGLE CANDIDATE ===


class TestAsk:
    @pytest.mark.asyncio
    async def test_ask_json(self, fake_client):
        client = fake_client("kimi", reply={"a": 1})
        assert await ask_json(client, "m", MESSAGES) == {"a": 1}

    @pytest.mark.asyncio
    async def test_ask_json_failure(self, fake_client):
        client = fake_client("kimi", reply="not json")
        assert await ask_json(client, "m", MESSAGES) is None

    @pytest.mark.asyncio
    async def test_ask_text(self, fake_client):
        assert await ask_text(fake_client("qwen", reply="# Doc"), "m", MESSAGES) == "# Doc"

    @pytest.mark.asyncio
    async def test_ask_text_error(self, fake_client):
        client = fake_client("qwen", reply=RuntimeError("down"))
        assert await ask_text(client, "m", MESSAGES) is None


# === STRATEGIES ===


class TestFanOut:
    @pytest.mark.asyncio
    async def test_keeps_successes_in_order(self):
        result = await fan_out([_value(1), _boom(), _value(None), _value(3)])
        assert result == [1, 3]

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await fan_out([]) == []

    @pytest.mark.asyncio
    async def test_runs_concurrently(self):
        started = []

        async def call(n):
            started.append(n)
            await asyncio.sleep(0.01)
            return n

        assert await fan_out([call(1), call(2)]) == [1, 2]
        assert started == [1, 2]


class TestFirstSuccess:
    @pytest.mark.asyncio
    async def test_stops_at_first_accepted(self):
        attempt = AsyncMock(side_effect=[None, {"x": 1}, {"x": 2}])
        result = await first_success(["a", "b", "c"], attempt)
        assert result == {"x": 1}
        assert [c.args[0] for c in attempt.await_args_list] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_rejected_shape_moves_on(self):
        attempt = AsyncMock(side_effect=["", "text"])
        assert await first_success(["a", "b"], attempt, is_nonempty_text) == "text"

    @pytest.mark.asyncio
    async def test_exception_moves_on(self):
        attempt = AsyncMock(side_effect=[RuntimeError("x"), "ok"])
        assert await first_success(["a", "b"], attempt) == "ok"

    @pytest.mark.asyncio
    async def test_all_fail(self):
        attempt = AsyncMock(return_value=None)
        assert await first_success(["a", "b"], attempt) is None
        assert await first_success([], attempt) is None


class TestRoundRobin:
    def test_cycles(self):
        assert round_robin(["s1", "s2", "s3"], ["p", "q"]) == [
            ("s1", "p"), ("s2", "q"), ("s3", "p"),
        ]

    def test_no_providers(self):
        assert round_robin(["s1"], []) == []


# === SHAPE PREDICATES ===


class TestPredicates:
    def test_outline_like(self):
        assert is_outline_like({"sections": [{"title": "A"}]})
        assert is_outline_like(Outline(sections=[OutlineSection(title="A")]))
        assert not is_outline_like({"sections": []})
        assert not is_outline_like({"sections": [{"title": " "}]})
        assert not is_outline_like({"sections": [{"id": "x"}]})
        assert not is_outline_like(["A"])

    def test_valid_outline_needs_model_acceptance(self):
        bad_bullets = {"sections": [{"title": "Only", "bullets": "not-a-list"}]}
        assert is_outline_like(bad_bullets)
        assert not is_valid_outline(bad_bullets)
        assert is_valid_outline({"sections": [{"title": "A", "bullets": ["x"]}]})

    def test_review_like(self):
        assert is_review_like({"issues": []})
        assert not is_review_like({"issues": "none"})

    def test_text_and_mapping(self):
        assert is_nonempty_text("x")
        assert not is_nonempty_text("  ")
        assert is_nonempty_mapping({"verified": True})
        assert not is_nonempty_mapping({})

    def test_image_prompt_list(self):
        assert is_image_prompt_list({"images": [{"prompt": "p"}]})
        assert not is_image_prompt_list({"images": []})
        assert not is_image_prompt_list({"images": [{"prompt": ""}]})

    def test_to_outline(self):
        outline = to_outline({"title": "T", "sections": [{"id": 3, "title": "A"}]})
        assert outline.title == "T"
        assert outline.sections[0].id == "3"
        assert to_outline({"sections": []}) is None


# === LOCAL DEFAULTS ===


class TestDefaults:
    def test_placeholder_outline(self):
        outline = placeholder_outline(Intent(topic="Bees"))
        assert outline.title == "Bees"
        assert [s.title for s in outline.sections] == [f"Section {n}" for n in range(1, 6)]
        assert outline.sections[0].bullets == ["Point A", "Point B"]
        assert len({s.id for s in outline.sections}) == 5

    def test_placeholder_outline_untitled(self):
        assert placeholder_outline(Intent()).title == "Untitled topic"

    def test_placeholder_outlines(self):
        assert len(placeholder_outlines(Intent())) == 3

    def test_merge_fallback_concatenates(self):
        first = Outline(title="One", sections=[OutlineSection(title=f"A{n}") for n in range(3)])
        second = Outline(title="Two", sections=[OutlineSection(title=f"B{n}") for n in range(3)])
        merged = merge_fallback([first, second], Intent())
        assert merged.title == "One"
        assert [s.title for s in merged.sections] == ["A0", "A1", "A2", "B0", "B1"]

    def test_merge_fallback_without_candidates(self):
        merged = merge_fallback([], Intent(topic="Bees"))
        assert merged.title == "Bees"
        assert len(merged.sections) == 5

    def test_placeholder_draft(self):
        draft = placeholder_draft(OutlineSection(id="s1", title="Intro"))
        assert draft.section_id == "s1"
        assert draft.markdown == f"# Intro\n\n{PLACEHOLDER_BODY}"

    def test_unverified_fact_check(self):
        assert unverified_fact_check() == {
            "verified": False,
            "notes": [FACT_CHECK_DISABLED_NOTE],
        }
