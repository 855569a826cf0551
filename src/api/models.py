# src/api/models.py — v2
"""API-level models: GenerateRequest and the streamed RunEvent envelope."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from docweaver.core.models import Intent, UploadedFile, WireModel


class GenerateRequest(WireModel):
    """Body of a generation request: an intent brief plus optional attachments."""

    intent: Intent = Field(default_factory=Intent)
    files: list[UploadedFile] = Field(default_factory=list)


class RunEvent(WireModel):
    """One line of a streamed run: progress update, terminal outcome or error."""

    type: Literal["update", "done", "aborted", "error"]
    run: dict[str, Any] | None = None
    message: str | None = None
