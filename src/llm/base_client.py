# src/llm/base_client.py — v3
"""Abstract chat client: the uniform ``chat`` capability of every text backend.

``chat`` never raises. Missing credentials, transport errors, exhausted
retries and unparsable JSON all come back as ``ChatResult.failure``.
Subclasses implement ``_complete`` (whole response) and optionally
``_stream`` (token increments).
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any

from docweaver.llm.limiter import MAX_PER_BACKEND, limiter_for
from docweaver.llm.models import ChatRequest, ChatResult, Message, TokenCallback
from docweaver.llm.retry import DEFAULT_BACKOFF, Backoff, call_with_backoff
from docweaver.logging.context import set_provider_context

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)


def parse_json_text(text: str) -> Any:
    """Parse a model's JSON answer, tolerating a surrounding ``` fence.

    Raises:
        ValueError: If the text is not valid JSON.
    """
    match = _FENCE.match(text)
    if match:
        text = match.group(1)
    return json.loads(text)


class BaseChatClient(ABC):
    """Unified interface for all text-generation backends.

    Args:
        model: Default model name (a request may override it).
        api_key: Backend API key. Empty = backend unusable.
        max_concurrency: Cap for the shared per-backend limiter.
        backoff: Retry policy for whole-response calls, per failure kind.
    """

    def __init__(
        self,
        model: str = "",
        api_key: str | None = None,
        max_concurrency: int = MAX_PER_BACKEND,
        backoff: dict[str, Backoff] | None = None,
        **kwargs: Any,
    ) -> None:
        self._model = model
        self._api_key = api_key or ""
        self._max_concurrency = max_concurrency
        self._backoff = DEFAULT_BACKOFF if backoff is None else backoff

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Backend identifier (kimi, qwen, openai, anthropic...)."""

    @property
    def supports_streaming(self) -> bool:
        """Whether ``_stream`` delivers token increments."""
        return False

    @property
    def requires_api_key(self) -> bool:
        return True

    @abstractmethod
    async def _complete(self, messages: list[Message], model: str, json_mode: bool) -> str:
        """Return the full response text."""

    async def _stream(
        self,
        messages: list[Message],
        model: str,
        json_mode: bool,
        on_token: TokenCallback,
    ) -> str:
        """Emit increments through ``on_token`` and return the full text."""
        raise NotImplementedError(f"{self.provider_name} does not stream")

    async def chat(self, request: ChatRequest) -> ChatResult:
        """Run one chat request against this backend."""
        if self.requires_api_key and not self._api_key:
            return ChatResult.failure("Missing API key")

        set_provider_context(self.provider_name)
        model = request.model or self._model
        streaming = request.stream and self.supports_streaming

        try:
            async with limiter_for(self.provider_name, self._max_concurrency):
                if streaming:
                    # No retry: increments already delivered cannot be taken back
                    text = await self._stream(
                        request.messages, model, request.json_mode,
                        request.on_token or (lambda _chunk: None),
                    )
                else:
                    text = await call_with_backoff(
                        self._complete, request.messages, model, request.json_mode,
                        provider=self.provider_name,
                        policy=self._backoff,
                    )
        except Exception as exc:
            logger.warning("Chat call to %s failed: %s", self.provider_name, exc)
            return ChatResult.failure(str(exc))
        finally:
            set_provider_context(None)

        if request.json_mode:
            try:
                return ChatResult.success(parse_json_text(text))
            except ValueError as exc:
                return ChatResult.failure(f"JSON parse failed: {exc}")
        return ChatResult.success(text)
