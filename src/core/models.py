# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types, all imports come from core.models.
Field names are snake_case in Python and camelCase on the wire
(``sectionId``, ``locationId``...); both spellings are accepted on input.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from docweaver.config.stages import NodeKind


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys, unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# === INPUT ===


class Intent(WireModel):
    """User-supplied generation brief. Read-only for the whole run."""

    topic: str | None = None
    audience: str | None = None
    style: str | None = None
    goals: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)


class UploadedFile(WireModel):
    """Reference material attached to a request (passed through untouched)."""

    filename: str
    path: str
    mime: str | None = None
    size: int | None = None


# === OUTLINE + DRAFTS ===


class OutlineSection(WireModel):
    """One section of an outline."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    goals: list[str] | None = None
    bullets: list[str] | None = None
    requires_evidence: bool | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> str:
        if v is None or (isinstance(v, str) and not v.strip()):
            return str(uuid.uuid4())
        return str(v)


class Outline(WireModel):
    """Document title plus ordered sections."""

    title: str = ""
    sections: list[OutlineSection] = Field(default_factory=list)


class Citation(WireModel):
    url: str | None = None
    snippet: str | None = None
    confidence: float | None = None


class DraftSection(WireModel):
    """Generated markdown body for one outline section, referenced by id."""

    section_id: str
    markdown: str
    citations: list[Citation] | None = None
    risks: list[str] | None = None


# === IMAGES ===


class ImagePrompt(WireModel):
    section_id: str
    title: str
    prompt: str


class GeneratedImage(WireModel):
    """Resolved image for a section: HTTP URL or embedded data URL."""

    section_id: str
    title: str
    prompt: str
    url: str


# === REVIEW + OUTPUT ===


class ReviewIssue(WireModel):
    location_id: str = ""
    severity: Literal["low", "medium", "high"] = "low"
    suggestion: str = ""
    rationale: str | None = None


class Review(WireModel):
    issues: list[ReviewIssue] = Field(default_factory=list)


class FinalDoc(WireModel):
    """Final document. Only ``markdown`` is guaranteed."""

    markdown: str
    toc: list[str] | None = None
    references: list[str] | None = None


# === RUN STATE ===

NodeStatus = Literal["idle", "running", "done", "error"]


def now_ms() -> int:
    return int(time.time() * 1000)


class StageNode(WireModel):
    """One pipeline stage instance.

    Status moves idle -> running -> done|error exactly once.
    """

    id: str
    type: NodeKind
    status: NodeStatus = "idle"
    started_at: int | None = None
    ended_at: int | None = None
    data: Any = None

    def start(self) -> None:
        if self.status != "idle":
            raise ValueError(f"Node '{self.id}' cannot start from status '{self.status}'")
        self.status = "running"
        self.started_at = now_ms()

    def finish(self, data: Any = None) -> None:
        if self.status != "running":
            raise ValueError(f"Node '{self.id}' cannot finish from status '{self.status}'")
        if data is not None:
            self.data = data
        self.status = "done"
        self.ended_at = now_ms()

    def fail(self, error: str) -> None:
        if self.status != "running":
            raise ValueError(f"Node '{self.id}' cannot fail from status '{self.status}'")
        self.data = {"error": error}
        self.status = "error"
        self.ended_at = now_ms()


class RunState(WireModel):
    """Mutable state of one document-generation run, owned by the orchestrator."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    nodes: list[StageNode] = Field(default_factory=list)
    outline: Outline | None = None
    draft_sections: list[DraftSection] | None = None
    final: FinalDoc | None = None

    def add_node(self, kind: NodeKind) -> StageNode:
        node = StageNode(id=kind, type=kind)
        self.nodes.append(node)
        return node

    def node(self, kind: str) -> StageNode | None:
        for n in self.nodes:
            if n.type == kind:
                return n
        return None

    def snapshot(self) -> RunState:
        """Deep copy safe to hand to progress consumers."""
        return self.model_copy(deep=True)
