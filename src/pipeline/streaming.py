# src/pipeline/streaming.py — v1
"""Streaming aggregation for the terminal stage.

The aggregator owns the text buffer (an explicit fold over increments) and
publishes an immutable snapshot after every increment. Fallback between
backends starts each attempt from an empty buffer.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Sequence

from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.models import ChatRequest, Message

logger = logging.getLogger(__name__)

Publisher = Callable[[Any], "Awaitable[None] | None"]
SnapshotBuilder = Callable[[str], Any]


class StreamAggregator:
    """Fold text increments into a buffer and publish a snapshot per increment.

    Args:
        publish: Progress sink (sync or async). Errors are logged, never raised.
        build_snapshot: Builds the published value from the current text.
    """

    def __init__(self, publish: Publisher | None, build_snapshot: SnapshotBuilder) -> None:
        self._publish = publish
        self._build_snapshot = build_snapshot
        self._text = ""
        self._pending: set[asyncio.Task[Any]] = set()
        self.publications = 0

    @property
    def text(self) -> str:
        return self._text

    def feed(self, chunk: str) -> None:
        """Append one increment and schedule its publication."""
        if not chunk:
            return
        self._text += chunk
        self._schedule()

    def complete(self, text: str) -> None:
        """Whole-response path: replace the buffer and publish once."""
        self._text = text
        self._schedule()

    def reset(self) -> None:
        """Discard partial text from an abandoned attempt."""
        self._text = ""

    async def drain(self) -> None:
        """Wait for every scheduled publication."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self) -> None:
        if self._publish is None:
            return
        self.publications += 1
        try:
            result = self._publish(self._build_snapshot(self._text))
        except Exception as exc:
            logger.warning("Progress sink failed: %s", exc)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._pending.add(task)
            task.add_done_callback(self._on_published)

    def _on_published(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Progress sink failed: %s", task.exception())


async def stream_first_success(
    providers: Sequence[str],
    client_for: Callable[[str], BaseChatClient | None],
    model_of: Callable[[str], str],
    messages: list[Message],
    aggregator: StreamAggregator,
) -> str | None:
    """Try each backend in order, streaming where supported.

    Returns the first non-empty full text, or None when every backend failed.
    """
    for provider in providers:
        client = client_for(provider)
        if client is None:
            continue
        aggregator.reset()
        streaming = client.supports_streaming
        request = ChatRequest(
            messages=messages,
            model=model_of(provider),
            stream=streaming,
            on_token=aggregator.feed if streaming else None,
        )
        try:
            result = await client.chat(request)
        except Exception as exc:
            logger.debug("Final-stage candidate %s raised: %s", provider, exc)
            continue
        text = result.data if result.ok and isinstance(result.data, str) else ""
        if not text.strip():
            logger.debug("Final-stage candidate %s gave no text: %s", provider, result.error)
            continue
        if not streaming:
            aggregator.complete(text)
        await aggregator.drain()
        return text

    aggregator.reset()
    await aggregator.drain()
    return None
