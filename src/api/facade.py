# src/api/facade.py — v2
"""Public API facade — single entry point for document generation.

Usage:
    from docweaver.api.facade import generate_document
    run = await generate_document(GenerateRequest(intent=Intent(topic="...")))

    async for event in stream_run(request):
        ...  # {"type": "update" | "done" | "aborted" | "error", ...}
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, AsyncIterator

from docweaver.api.models import GenerateRequest, RunEvent
from docweaver.config.app_config import ConfigStore
from docweaver.config.settings import Settings, load_settings
from docweaver.core.models import RunState
from docweaver.pipeline.orchestrator import (
    CancelSignal,
    PipelineAborted,
    PipelineOrchestrator,
    ProgressSink,
)
from docweaver.prompts.store import PromptStore

logger = logging.getLogger(__name__)


async def generate_document(
    request: GenerateRequest,
    settings: Settings | None = None,
    config_store: ConfigStore | None = None,
    prompt_store: PromptStore | None = None,
    on_update: ProgressSink | None = None,
    cancel_event: CancelSignal | None = None,
    **orchestrator_kwargs: Any,
) -> RunState:
    """Generate a document end-to-end and return the completed run.

    Configuration and prompts are snapshotted once, at call time.

    Args:
        request: Validated intent + files.
        settings: Deployment settings. Loaded from .env if None.
        config_store: Backend configuration source. Defaults to the data dir file.
        prompt_store: Prompt template source. Defaults to the data dir file.
        on_update: Optional progress sink receiving deep-copied run states.
        cancel_event: Optional cancellation signal checked between stages.
        **orchestrator_kwargs: Forwarded to PipelineOrchestrator (client_factory...).

    Raises:
        PipelineAborted: If cancelled at a stage boundary.
    """
    settings = settings or load_settings()
    config_store = config_store or ConfigStore(settings.config_file)
    prompt_store = prompt_store or PromptStore(settings.prompts_file)

    orchestrator = PipelineOrchestrator(
        settings,
        config_store.get_config(),
        prompt_store.get_prompts(),
        **orchestrator_kwargs,
    )
    return await orchestrator.run(
        request.intent, request.files, on_update=on_update, cancel_event=cancel_event
    )


async def stream_run(
    request: GenerateRequest,
    settings: Settings | None = None,
    config_store: ConfigStore | None = None,
    prompt_store: PromptStore | None = None,
    **orchestrator_kwargs: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Run the pipeline, yielding one event dict per progress snapshot.

    Closing the generator early requests cancellation; the run then stops
    at the next stage boundary.
    """
    queue: asyncio.Queue[RunEvent | None] = asyncio.Queue()
    cancel_event = asyncio.Event()

    async def on_update(state: RunState) -> None:
        await queue.put(RunEvent(type="update", run=state.to_wire()))

    async def drive() -> None:
        try:
            run = await generate_document(
                request, settings, config_store, prompt_store,
                on_update=on_update, cancel_event=cancel_event, **orchestrator_kwargs,
            )
            await queue.put(RunEvent(type="done", run=run.to_wire()))
        except PipelineAborted as exc:
            await queue.put(RunEvent(type="aborted", message=str(exc)))
        except Exception as exc:
            logger.exception("Streamed run failed")
            await queue.put(RunEvent(type="error", message=str(exc)))
        finally:
            await queue.put(None)

    task = asyncio.create_task(drive())
    try:
        while True:
            event = await queue.get()
            if event is None:
                break
            yield event.to_wire()
    finally:
        if not task.done():
            cancel_event.set()
            with contextlib.suppress(PipelineAborted):
                await task
