# src/pipeline/fanout.py — v2
"""Fan-out / fallback execution over candidate backends.

Two strategies:
  - fan_out: query several candidates concurrently, keep every usable answer.
  - first_success: try candidates in strict priority order, stop at the
    first accepted answer.

A candidate failure (error result, exception, rejected shape) is never
fatal: it is dropped here and the caller substitutes a local default when
nothing usable remains.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from pydantic import ValidationError

from docweaver.core.models import DraftSection, Intent, Outline, OutlineSection, Review
from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.models import ChatRequest, Message

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S")

PLACEHOLDER_SECTIONS = 5
FALLBACK_OUTLINE_COUNT = 3
MERGE_SECTION_LIMIT = 5
UNTITLED_TOPIC = "Untitled topic"
PLACEHOLDER_BODY = "Placeholder content."
FACT_CHECK_DISABLED_NOTE = "Placeholder: online fact verification not available"


# === SINGLE CANDIDATE ===


async def ask_json(client: BaseChatClient, model: str, messages: list[Message]) -> Any | None:
    """One JSON call; None on any failure."""
    try:
        result = await client.chat(ChatRequest(messages=messages, model=model, json_mode=True))
    except Exception as exc:
        logger.debug("JSON candidate %s raised: %s", client.provider_name, exc)
        return None
    if not result.ok:
        logger.debug("JSON candidate %s failed: %s", client.provider_name, result.error)
        return None
    return result.data


async def ask_text(client: BaseChatClient, model: str, messages: list[Message]) -> str | None:
    """One text call; None on failure or when the answer is not a string."""
    try:
        result = await client.chat(ChatRequest(messages=messages, model=model))
    except Exception as exc:
        logger.debug("Text candidate %s raised: %s", client.provider_name, exc)
        return None
    if not result.ok:
        logger.debug("Text candidate %s failed: %s", client.provider_name, result.error)
        return None
    return result.data if isinstance(result.data, str) else None


# === STRATEGIES ===


async def fan_out(calls: Iterable[Awaitable[T | None]]) -> list[T]:
    """Await all calls jointly; keep successful non-None results in call order."""
    results = await asyncio.gather(*calls, return_exceptions=True)
    kept: list[T] = []
    for res in results:
        if isinstance(res, BaseException):
            logger.debug("Fan-out candidate raised: %s", res)
            continue
        if res is not None:
            kept.append(res)
    return kept


async def first_success(
    providers: Sequence[str],
    attempt: Callable[[str], Awaitable[T | None]],
    accept: Callable[[Any], bool] = lambda value: value is not None,
) -> T | None:
    """Try providers sequentially; return the first accepted result or None."""
    for provider in providers:
        try:
            value = await attempt(provider)
        except Exception as exc:
            logger.debug("Candidate %s raised: %s", provider, exc)
            continue
        if value is not None and accept(value):
            logger.debug("Candidate %s accepted", provider)
            return value
        logger.debug("Candidate %s rejected", provider)
    return None


def round_robin(items: Sequence[S], providers: Sequence[str]) -> list[tuple[S, str]]:
    """Pair item i with providers[i mod len(providers)]. Empty when no providers."""
    if not providers:
        return []
    return [(item, providers[idx % len(providers)]) for idx, item in enumerate(items)]


# === SHAPE PREDICATES ===


def _field(value: Any, name: str) -> Any:
    if isinstance(value, Mapping):
        return value.get(name)
    return getattr(value, name, None)


def is_outline_like(value: Any) -> bool:
    """Non-empty ``sections`` list whose entries each carry a title."""
    sections = _field(value, "sections")
    if not isinstance(sections, list) or not sections:
        return False
    for section in sections:
        title = _field(section, "title")
        if not isinstance(title, str) or not title.strip():
            return False
    return True


def is_review_like(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("issues"), list)


def is_nonempty_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_nonempty_mapping(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value)


def is_image_prompt_list(value: Any) -> bool:
    """``{"images": [{"prompt": ...}, ...]}`` with at least one prompt."""
    images = _field(value, "images")
    if not isinstance(images, list) or not images:
        return False
    return all(
        isinstance(_field(item, "prompt"), str) and _field(item, "prompt").strip()
        for item in images
    )


def to_outline(value: Any) -> Outline | None:
    """Validate an outline-like answer into an Outline (None if it does not fit)."""
    if isinstance(value, Outline):
        return value
    if not is_outline_like(value):
        return None
    try:
        return Outline.model_validate(value)
    except ValidationError as exc:
        logger.debug("Outline candidate rejected: %s", exc)
        return None


def is_valid_outline(value: Any) -> bool:
    """Outline-like and accepted by the Outline model."""
    return to_outline(value) is not None


# === LOCAL DEFAULTS ===


def placeholder_outline(intent: Intent) -> Outline:
    return Outline(
        title=intent.topic or UNTITLED_TOPIC,
        sections=[
            OutlineSection(
                id=str(uuid.uuid4()),
                title=f"Section {n}",
                bullets=["Point A", "Point B"],
            )
            for n in range(1, PLACEHOLDER_SECTIONS + 1)
        ],
    )


def placeholder_outlines(intent: Intent) -> list[Outline]:
    return [placeholder_outline(intent) for _ in range(FALLBACK_OUTLINE_COUNT)]


def merge_fallback(outlines: Sequence[Outline], intent: Intent) -> Outline:
    """First candidate's title plus the first sections across all candidates."""
    if outlines and is_outline_like(outlines[0]):
        sections = [s for outline in outlines for s in outline.sections][:MERGE_SECTION_LIMIT]
        return Outline(title=outlines[0].title, sections=sections)
    return placeholder_outline(intent)


def placeholder_draft(section: OutlineSection) -> DraftSection:
    return DraftSection(
        section_id=section.id,
        markdown=f"# {section.title}\n\n{PLACEHOLDER_BODY}",
    )


def empty_review() -> Review:
    return Review(issues=[])


def unverified_fact_check() -> dict[str, Any]:
    return {"verified": False, "notes": [FACT_CHECK_DISABLED_NOTE]}
