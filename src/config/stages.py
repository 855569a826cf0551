# src/config/stages.py — v1
"""Declarative stage configuration.

Lists the ten content stages in execution order, the two bookkeeping node
kinds appended after them, and the snapshot record name of every stage.
"""

from __future__ import annotations

from typing import Literal

StageKey = Literal[
    "intent",
    "outline-multi",
    "outline-merge",
    "write-sections",
    "image-prompts",
    "image-generation",
    "merge-assembly",
    "expert-review",
    "fact-check",
    "final-merge",
]

NodeKind = Literal[
    "intent",
    "outline-multi",
    "outline-merge",
    "write-sections",
    "image-prompts",
    "image-generation",
    "merge-assembly",
    "expert-review",
    "fact-check",
    "final-merge",
    "snapshot-commit",
    "narration-marker",
]

STAGE_ORDER: list[str] = [
    "intent",
    "outline-multi",
    "outline-merge",
    "write-sections",
    "image-prompts",
    "image-generation",
    "merge-assembly",
    "expert-review",
    "fact-check",
    "final-merge",
]

BOOKKEEPING_NODES: list[str] = ["snapshot-commit", "narration-marker"]

# Snapshot file stem per stage: "<nn>_<stage>".
SNAPSHOT_NAMES: dict[str, str] = {
    stage: f"{idx:02d}_{stage}" for idx, stage in enumerate(STAGE_ORDER, start=1)
}

# Stages that take a prompt template (image-generation has none).
PROMPT_KEYS: list[str] = [s for s in STAGE_ORDER if s != "image-generation"]

TEXT_PROVIDERS: list[str] = [
    "kimi", "qwen", "glm", "deepseek", "openai", "anthropic", "gemini",
]
IMAGE_PROVIDERS: list[str] = ["keling", "paiwo", "jimeng", "nanobanana"]
