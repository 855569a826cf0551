# src/prompts/store.py — v1
"""Prompt templates per stage, editable at runtime and persisted to JSON.

Templates use ``{field}`` placeholders filled from the intent
(``render_prompt``); unknown placeholders are left untouched.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from pathlib import Path
from typing import Any

from docweaver.config.stages import PROMPT_KEYS

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS: dict[str, str] = {
    "intent": (
        "You are a writing-intent analyst. Distil a structured intent (JSON) from:\n"
        "- Topic: {topic}\n- Audience: {audience}\n- Style: {style}\n"
        "- Goals: {goals}\n- Constraints: {constraints}\n- References: {references}\n"
        "Output: intent: { topic, audience, style, goals[], constraints[], references[] }."
    ),
    "outline-multi": (
        "You are an outlining expert. Produce a structured outline for \"{topic}\" "
        "for the audience \"{audience}\" in the style \"{style}\". Output JSON: "
        "{ title, sections: [{ id, title, bullets[], requiresEvidence? }] }."
    ),
    "outline-merge": (
        "You merge outlines. Given several outlines, deduplicate and combine them "
        "into one clear, comprehensive outline. Output the same JSON shape with at "
        "most 8 sections."
    ),
    "write-sections": (
        "You are a section writer. Write the Markdown body for the given outline "
        "section in a consistent \"{style}\" style. State facts carefully and mark "
        "placeholder citations where a source is needed."
    ),
    "image-prompts": (
        "You design image prompts. For each outline section write one prompt that "
        "names the subject, scene, style, lighting and composition, with no text or "
        "watermarks and nothing violent or sensitive. Output JSON: "
        "{ images: [{ sectionId, title, prompt }] }."
    ),
    "merge-assembly": (
        "You assemble documents. Merge the section drafts into one Markdown document, "
        "unify terminology, add transitions and a fitting title."
    ),
    "expert-review": (
        "You are a domain expert reviewer. Report problems and suggested fixes as JSON "
        "issues[{locationId, severity, suggestion, rationale}], focusing on accuracy, "
        "logic and structure."
    ),
    "fact-check": (
        "You verify facts. Check the key claims one by one and return evidence as JSON "
        "sources[{url, snippet, confidence}]."
    ),
    "final-merge": (
        "Produce a publish-ready Markdown document.\n"
        "1) Structure: one '# Title'; a table of contents; numbered sections "
        "('## 1. Overview', '## 2. ...') with '###' subsections; a conclusion; "
        "a '## References' section.\n"
        "2) Writing: specific, non-repeating headings; complete paragraphs; no "
        "placeholder sentences.\n"
        "3) Images: when imagePrompts are given, reference them where they fit.\n"
        "Input: { doc, review, intent, imagePrompts? }. Output Markdown only."
    ),
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


def render_prompt(template: str, values: dict[str, Any]) -> str:
    """Fill ``{name}`` placeholders; lists are joined, missing keys kept as-is."""

    def _sub(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        value = values[key]
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return ", ".join(str(v) for v in value)
        return str(value)

    return _PLACEHOLDER.sub(_sub, template)


class PromptStore:
    """Editable prompt templates.

    Args:
        path: JSON file for persistence. None = memory only. The file is
            read lazily on first access.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._prompts = dict(DEFAULT_PROMPTS)
        self._loaded = path is None

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable prompts file %s: %s", self._path, exc)
            return
        if isinstance(raw, dict):
            self._prompts.update(
                {k: v for k, v in raw.items() if k in PROMPT_KEYS and isinstance(v, str)}
            )

    def get_prompts(self) -> dict[str, str]:
        with self._lock:
            self._ensure_loaded()
            return dict(self._prompts)

    def get_prompt(self, key: str) -> str:
        return self.get_prompts()[key]

    def set_prompts(self, patch: dict[str, str]) -> dict[str, str]:
        """Overwrite the given templates. Unknown keys raise ValueError."""
        unknown = sorted(set(patch) - set(PROMPT_KEYS))
        if unknown:
            raise ValueError(f"Unknown prompt keys: {', '.join(unknown)}")
        with self._lock:
            self._ensure_loaded()
            self._prompts.update(patch)
            snapshot = dict(self._prompts)
        self._save(snapshot)
        return snapshot

    def reset_prompts(self) -> dict[str, str]:
        with self._lock:
            self._loaded = True
            self._prompts = dict(DEFAULT_PROMPTS)
            snapshot = dict(self._prompts)
        self._save(snapshot)
        return snapshot

    def _save(self, prompts: dict[str, str]) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(
                json.dumps(prompts, indent=2, ensure_ascii=False), encoding="utf-8"
            )
        except OSError as exc:
            logger.warning("Could not persist prompts to %s: %s", self._path, exc)
