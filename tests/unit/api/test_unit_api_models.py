# tests/unit/api/test_unit_api_models.py — v2
"""Tests for api/models.py — request body and streamed events."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from docweaver.api.models import GenerateRequest, RunEvent


class TestGenerateRequest:
    def test_defaults(self):
        request = GenerateRequest()
        assert request.intent.topic is None
        assert request.files == []

    def test_from_wire(self):
        request = GenerateRequest.model_validate(
            {
                "intent": {"topic": "Composting", "goals": ["start a bin"]},
                "files": [{"filename": "notes.md", "path": "/tmp/notes.md", "mime": "text/markdown"}],
            }
        )
        assert request.intent.goals == ["start a bin"]
        assert request.files[0].filename == "notes.md"

    def test_file_requires_path(self):
        with pytest.raises(ValidationError):
            GenerateRequest.model_validate({"files": [{"filename": "notes.md"}]})


class TestRunEvent:
    def test_wire_drops_unset(self):
        assert RunEvent(type="aborted", message="stop").to_wire() == {
            "type": "aborted",
            "message": "stop",
        }

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            RunEvent(type="progress")
