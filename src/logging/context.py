# src/logging/context.py — v2
"""Contextual logging support: attach run_id, stage and provider to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set per pipeline run / stage / backend call. Concurrent fan-out calls run
# in their own tasks, so each sees its own provider value.
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_provider: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "provider", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    stage: str | None = None
    provider: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        stage=_stage.get(),
        provider=_provider.get(),
    )


def set_run_context(run_id: str) -> None:
    """Set run-level context (called once per pipeline run)."""
    _run_id.set(run_id)


def set_stage_context(stage: str | None) -> None:
    _stage.set(stage)


def set_provider_context(provider: str | None) -> None:
    _provider.set(provider)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _stage.set(None)
    _provider.set(None)
