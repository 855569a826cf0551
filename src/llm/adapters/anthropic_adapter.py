# src/llm/adapters/anthropic_adapter.py — v3
"""Anthropic Claude adapter implementing BaseChatClient.

Uses the official anthropic SDK Messages API. The system message is lifted
out of the conversation; JSON mode is requested through the system prompt.
No token streaming.
"""

from __future__ import annotations

import logging
from typing import Any

from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.models import Message

logger = logging.getLogger(__name__)

_JSON_INSTRUCTION = "Respond with a single valid JSON value and nothing else."


class AnthropicAdapter(BaseChatClient):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-3-5-sonnet-latest",
        api_key: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
        timeout_s: float = 120.0,
        **kwargs: Any,
    ) -> None:
        super().__init__(model=model, api_key=api_key, **kwargs)
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout_s = timeout_s
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            try:
                import anthropic
            except ImportError as e:
                raise ImportError(
                    "anthropic package required: pip install anthropic"
                ) from e
            self.__client = anthropic.AsyncAnthropic(
                api_key=self._api_key, timeout=self._timeout_s,
            )
        return self.__client

    @property
    def provider_name(self) -> str:
        return "anthropic"

    async def _complete(self, messages: list[Message], model: str, json_mode: bool) -> str:
        system_parts = [m.content for m in messages if m.role == "system"]
        if json_mode:
            system_parts.append(_JSON_INSTRUCTION)

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "messages": [
                {"role": m.role, "content": [{"type": "text", "text": m.content}]}
                for m in messages
                if m.role != "system"
            ],
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)

        response = await self._client.messages.create(**kwargs)
        texts = [
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        ]
        return "".join(texts)
