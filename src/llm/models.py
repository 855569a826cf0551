# src/llm/models.py — v2
"""Chat capability types: Message, ChatRequest, ChatResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal

from pydantic import BaseModel


class Message(BaseModel):
    """Single message in a conversation."""

    role: Literal["user", "assistant", "system"]
    content: str


TokenCallback = Callable[[str], None]


@dataclass
class ChatRequest:
    """One chat call.

    ``json_mode`` asks for a structured value in ``ChatResult.data``.
    ``stream`` asks for token streaming; ``on_token`` then fires once per
    increment (only on backends that support streaming).
    """

    messages: list[Message]
    model: str = ""
    json_mode: bool = False
    stream: bool = False
    on_token: TokenCallback | None = None


@dataclass
class ChatResult:
    """Outcome of a chat call: either ``data`` or ``error``."""

    ok: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def success(cls, data: Any) -> ChatResult:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: str) -> ChatResult:
        return cls(ok=False, error=error)
