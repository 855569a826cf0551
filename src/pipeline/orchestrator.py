# src/pipeline/orchestrator.py — v3
"""Pipeline orchestrator: sequences the ten document stages.

Each stage runs the same boundary protocol:
  append node -> running -> compute -> done -> emit progress snapshot
  -> persist stage snapshot -> cancellation check.

Backend failures never abort a run; every stage has a local default.
The only early exit is cancellation, raised as PipelineAborted at a
stage boundary.
"""

from __future__ import annotations

import inspect
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Protocol

from pydantic_core import to_jsonable_python

from docweaver.config.app_config import AppConfig
from docweaver.config.settings import Settings, load_settings
from docweaver.config.stages import SNAPSHOT_NAMES
from docweaver.core.models import (
    DraftSection,
    FinalDoc,
    GeneratedImage,
    ImagePrompt,
    Intent,
    Outline,
    OutlineSection,
    RunState,
    UploadedFile,
)
from docweaver.imaging.generator import ImageGenerationResult, ImageStage
from docweaver.imaging.placeholder import placeholder_image
from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.client_factory import create_chat_client
from docweaver.llm.limiter import limit_for
from docweaver.llm.models import Message
from docweaver.logging.context import clear_context, set_run_context, set_stage_context
from docweaver.logging.handlers import open_run_log
from docweaver.logging.logger import JsonFormatter, TextFormatter
from docweaver.pipeline import fanout
from docweaver.pipeline.assembler import assemble_document
from docweaver.pipeline.selector import selected_providers
from docweaver.pipeline.streaming import StreamAggregator, stream_first_success
from docweaver.prompts.store import DEFAULT_PROMPTS, render_prompt
from docweaver.storage.base_output_writer import BaseOutputWriter
from docweaver.storage.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

ProgressSink = Callable[[RunState], "Awaitable[None] | None"]
ClientFactory = Callable[[str], BaseChatClient]


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


class PipelineAborted(Exception):
    """Raised at a stage boundary once cancellation has been requested."""

    def __init__(self, run_id: str, stage: str) -> None:
        super().__init__(f"Run {run_id} aborted after stage '{stage}'")
        self.run_id = run_id
        self.stage = stage


def to_wire(value: Any) -> Any:
    """JSON-compatible form of payloads (camelCase models, None fields dropped)."""
    return to_jsonable_python(value, by_alias=True, exclude_none=True, fallback=str)


@dataclass
class _RunContext:
    """Per-run working state shared by the stage methods."""

    run: RunState
    intent: Intent
    files: list[UploadedFile]
    snapshots: SnapshotStore
    on_update: ProgressSink | None = None
    cancel_event: CancelSignal | None = None
    commits: list[str] = field(default_factory=list)
    outlines: list[Outline] = field(default_factory=list)
    image_prompts: list[ImagePrompt] = field(default_factory=list)
    images: list[GeneratedImage] = field(default_factory=list)
    assembled: FinalDoc | None = None
    assembled_by_backend: bool = False
    review: dict[str, Any] = field(default_factory=dict)

    @property
    def outline(self) -> Outline:
        return self.run.outline or fanout.placeholder_outline(self.intent)

    @property
    def drafts(self) -> list[DraftSection]:
        return self.run.draft_sections or []


class PipelineOrchestrator:
    """Run the full document pipeline for one intent.

    Args:
        settings: Deployment settings (snapshots, chat defaults, image backend).
        config: Backend configuration snapshot for this run (never written back).
        prompts: Prompt templates per stage. Defaults to the built-in set.
        client_factory: Backend id -> chat client. Defaults to the adapter registry.
        image_stage: Image-generation stage implementation.
        writer: Output backend for stage snapshots.
    """

    def __init__(
        self,
        settings: Settings,
        config: AppConfig,
        prompts: Mapping[str, str] | None = None,
        client_factory: ClientFactory | None = None,
        image_stage: ImageStage | None = None,
        writer: BaseOutputWriter | None = None,
    ) -> None:
        self._settings = settings
        self._config = config
        self._prompts = {**DEFAULT_PROMPTS, **(prompts or {})}
        self._client_factory = client_factory or self._default_client
        self._image_stage = image_stage or ImageStage(settings)
        self._writer = writer
        self._clients: dict[str, BaseChatClient | None] = {}

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(
        self,
        intent: Intent,
        files: list[UploadedFile] | None = None,
        on_update: ProgressSink | None = None,
        cancel_event: CancelSignal | None = None,
    ) -> RunState:
        """Execute all stages and return the completed run.

        Raises:
            PipelineAborted: If ``cancel_event`` is set at a stage boundary.
        """
        run = RunState()
        ctx = _RunContext(
            run=run,
            intent=intent,
            files=list(files or []),
            snapshots=SnapshotStore(self._settings, run.id, self._writer),
            on_update=on_update,
            cancel_event=cancel_event,
        )
        self._clients = {}
        set_run_context(run.id)
        run_log = self._attach_run_log(ctx)
        start = time.monotonic()
        logger.info("Run started: topic=%r", intent.topic)

        try:
            await self._stage(ctx, "intent", self._intent)
            await self._stage(ctx, "outline-multi", self._outline_multi)
            await self._stage(ctx, "outline-merge", self._outline_merge)
            await self._stage(ctx, "write-sections", self._write_sections)
            await self._stage(ctx, "image-prompts", self._image_prompts)
            await self._stage(ctx, "image-generation", self._image_generation)
            await self._stage(ctx, "merge-assembly", self._merge_assembly)
            await self._stage(ctx, "expert-review", self._expert_review)
            await self._stage(ctx, "fact-check", self._fact_check)
            await self._stage(ctx, "final-merge", self._final_merge)

            commit_node = run.add_node("snapshot-commit")
            commit_node.start()
            commit_node.finish({"commits": list(ctx.commits)})
            narration_node = run.add_node("narration-marker")
            narration_node.start()
            narration_node.finish({"provider": self._config.tts_provider})
            await self._emit(ctx)
            logger.info(
                "Run complete: %d nodes, %d commits, %.1fs",
                len(run.nodes), len(ctx.commits), time.monotonic() - start,
            )
        except PipelineAborted:
            logger.info("Run aborted after %.1fs", time.monotonic() - start)
            raise
        finally:
            if run_log is not None:
                logging.getLogger("docweaver").removeHandler(run_log)
                run_log.close()
            clear_context()

        return run

    def _attach_run_log(self, ctx: _RunContext) -> logging.Handler | None:
        if not self._settings.run_log_enabled:
            return None
        formatter = JsonFormatter() if self._settings.log_format == "json" else TextFormatter()
        try:
            handler = open_run_log(ctx.snapshots.run_path, ctx.run.id, formatter)
        except OSError as exc:
            logger.warning("Run log unavailable: %s", exc)
            return None
        logging.getLogger("docweaver").addHandler(handler)
        return handler

    # ------------------------------------------------------------------
    # Stage boundary protocol
    # ------------------------------------------------------------------

    async def _stage(
        self,
        ctx: _RunContext,
        kind: str,
        compute: Callable[[_RunContext], Awaitable[dict[str, Any]]],
    ) -> None:
        node = ctx.run.add_node(kind)  # type: ignore[arg-type]
        node.start()
        set_stage_context(kind)
        logger.debug("Stage %s started", kind)
        try:
            payload = await compute(ctx)
        except Exception as exc:
            logger.exception("Stage %s failed", kind)
            node.fail(str(exc))
            await self._emit(ctx)
            raise
        node.finish(to_wire(payload))
        logger.info("Stage %s done", kind)

        await self._emit(ctx)
        revision = await ctx.snapshots.save(SNAPSHOT_NAMES[kind], node.data)
        if revision:
            ctx.commits.append(revision)
        set_stage_context(None)

        if ctx.cancel_event is not None and ctx.cancel_event.is_set():
            raise PipelineAborted(ctx.run.id, kind)

    async def _emit(self, ctx: _RunContext, state: RunState | None = None) -> None:
        if ctx.on_update is None:
            return
        try:
            result = ctx.on_update(state or ctx.run.snapshot())
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning("Progress sink failed: %s", exc)

    # ------------------------------------------------------------------
    # Backend access
    # ------------------------------------------------------------------

    def _default_client(self, provider: str) -> BaseChatClient:
        return create_chat_client(
            provider,
            self._config.providers.get(provider),
            self._settings,
            max_concurrency=limit_for(self._config.concurrency),
        )

    def _client(self, provider: str) -> BaseChatClient | None:
        if provider not in self._clients:
            try:
                self._clients[provider] = self._client_factory(provider)
            except Exception as exc:
                logger.warning("No chat client for %s: %s", provider, exc)
                self._clients[provider] = None
        return self._clients[provider]

    async def _ask_json(self, provider: str, messages: list[Message]) -> Any | None:
        client = self._client(provider)
        if client is None:
            return None
        return await fanout.ask_json(client, self._config.model_of(provider), messages)

    async def _ask_text(self, provider: str, messages: list[Message]) -> str | None:
        client = self._client(provider)
        if client is None:
            return None
        return await fanout.ask_text(client, self._config.model_of(provider), messages)

    def _messages(self, ctx: _RunContext, kind: str, body: Any) -> list[Message]:
        system = render_prompt(self._prompts.get(kind, ""), ctx.intent.model_dump())
        user = json.dumps(to_wire(body), ensure_ascii=False, indent=2)
        return [Message(role="system", content=system), Message(role="user", content=user)]

    def _payload(
        self, kind: str, providers: list[str], values: Mapping[str, Any]
    ) -> dict[str, Any]:
        # Stage bookkeeping keys win over anything a backend put in values
        return {**values, "prompt": self._prompts.get(kind, ""), "providers": providers}

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _intent(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("intent", self._config)
        return self._payload("intent", providers, {"intent": ctx.intent, "files": ctx.files})

    async def _outline_multi(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("outline-multi", self._config)
        brief = {
            "topic": ctx.intent.topic,
            "audience": ctx.intent.audience,
            "style": ctx.intent.style,
        }
        messages = self._messages(ctx, "outline-multi", brief)
        answers = await fanout.fan_out(self._ask_json(p, messages) for p in providers)
        outlines = [o for o in (fanout.to_outline(a) for a in answers) if o is not None]
        if not outlines:
            logger.info("No usable outline from %d backends, using placeholders", len(providers))
            outlines = fanout.placeholder_outlines(ctx.intent)
        ctx.outlines = outlines
        return self._payload("outline-multi", providers, {"outlines": outlines})

    async def _outline_merge(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("outline-merge", self._config)
        messages = self._messages(ctx, "outline-merge", {"outlines": ctx.outlines})
        answer = await fanout.first_success(
            providers, lambda p: self._ask_json(p, messages), fanout.is_valid_outline
        )
        merged = fanout.to_outline(answer) if answer is not None else None
        if merged is None:
            merged = fanout.merge_fallback(ctx.outlines, ctx.intent)
        ctx.run.outline = merged
        return self._payload("outline-merge", providers, {"outline": merged})

    async def _write_sections(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("write-sections", self._config)
        sections = ctx.outline.sections or fanout.placeholder_outline(ctx.intent).sections

        async def write(section: OutlineSection, provider: str) -> DraftSection:
            messages = self._messages(
                ctx, "write-sections", {"section": section, "intent": ctx.intent}
            )
            markdown = await self._ask_text(provider, messages)
            if not fanout.is_nonempty_text(markdown):
                return fanout.placeholder_draft(section)
            return DraftSection(section_id=section.id, markdown=markdown)

        written = await fanout.fan_out(
            write(s, p) for s, p in fanout.round_robin(sections, providers)
        )
        by_id = {d.section_id: d for d in written}
        drafts = [by_id.get(s.id) or fanout.placeholder_draft(s) for s in sections]
        ctx.run.draft_sections = drafts
        return self._payload("write-sections", providers, {"drafts": drafts})

    async def _image_prompts(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("image-prompts", self._config)
        sections = ctx.outline.sections
        prompts: list[ImagePrompt] = []
        if providers:
            messages = self._messages(
                ctx, "image-prompts", {"outline": ctx.outline, "intent": ctx.intent}
            )
            answer = await fanout.first_success(
                providers, lambda p: self._ask_json(p, messages), fanout.is_image_prompt_list
            )
            if answer is not None:
                prompts = _parse_image_prompts(answer, sections)
        if not prompts:
            prompts = [_local_image_prompt(ctx.intent, s, n) for n, s in enumerate(sections, 1)]
        ctx.image_prompts = prompts
        return self._payload(
            "image-prompts", providers, {"imagePrompts": {"images": prompts}}
        )

    async def _image_generation(self, ctx: _RunContext) -> dict[str, Any]:
        try:
            result = await self._image_stage.generate_images(ctx.image_prompts, self._config)
        except Exception as exc:
            logger.warning("Image stage failed, using placeholders: %s", exc)
            result = ImageGenerationResult(
                images=[
                    GeneratedImage(
                        section_id=p.section_id,
                        title=p.title,
                        prompt=p.prompt,
                        url=placeholder_image(p.title),
                    )
                    for p in ctx.image_prompts
                ],
                info="image stage error; using placeholders",
            )
        ctx.images = result.images
        return result.payload()

    async def _merge_assembly(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("merge-assembly", self._config)
        messages = self._messages(ctx, "merge-assembly", {"drafts": ctx.drafts})
        markdown = await fanout.first_success(
            providers, lambda p: self._ask_text(p, messages), fanout.is_nonempty_text
        )
        ctx.assembled_by_backend = markdown is not None
        if markdown is None:
            markdown = "\n\n".join(d.markdown for d in ctx.drafts)
        ctx.assembled = FinalDoc(markdown=markdown)
        return self._payload("merge-assembly", providers, {"doc": ctx.assembled})

    async def _expert_review(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("expert-review", self._config)
        messages = self._messages(
            ctx,
            "expert-review",
            {"doc": ctx.assembled, "outline": ctx.outline, "intent": ctx.intent},
        )
        review = await fanout.first_success(
            providers, lambda p: self._ask_json(p, messages), fanout.is_review_like
        )
        ctx.review = dict(review) if review is not None else to_wire(fanout.empty_review())
        return self._payload("expert-review", providers, {"review": ctx.review})

    async def _fact_check(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("fact-check", self._config)
        messages = self._messages(ctx, "fact-check", {"doc": ctx.assembled})
        result = await fanout.first_success(
            providers, lambda p: self._ask_json(p, messages), fanout.is_nonempty_mapping
        )
        facts = dict(result) if result is not None else fanout.unverified_fact_check()
        return self._payload("fact-check", providers, facts)

    async def _final_merge(self, ctx: _RunContext) -> dict[str, Any]:
        providers = selected_providers("final-merge", self._config)
        messages = self._messages(
            ctx,
            "final-merge",
            {
                "doc": ctx.assembled or FinalDoc(markdown=""),
                "review": ctx.review,
                "intent": ctx.intent,
                "imagePrompts": {"images": ctx.image_prompts},
            },
        )

        def build_snapshot(text: str) -> RunState:
            state = ctx.run.snapshot()
            state.final = FinalDoc(markdown=text)
            node = state.node("final-merge")
            if node is not None:
                node.data = to_wire(
                    self._payload("final-merge", providers, {"final": state.final})
                )
            return state

        aggregator = StreamAggregator(
            (lambda state: self._emit(ctx, state)) if ctx.on_update else None,
            build_snapshot,
        )
        text = await stream_first_success(
            providers, self._client, self._config.model_of, messages, aggregator
        )
        if text is None:
            if ctx.assembled_by_backend and ctx.assembled is not None:
                text = ctx.assembled.markdown
            else:
                title = ctx.outline.title.strip()
                text = f"# {title}" if title else ""

        markdown = assemble_document(
            text, ctx.run.outline, ctx.drafts, ctx.image_prompts, ctx.images
        )
        ctx.run.final = FinalDoc(markdown=markdown)
        return self._payload("final-merge", providers, {"final": ctx.run.final})


# --- helpers ---


def _local_image_prompt(intent: Intent, section: OutlineSection, n: int) -> ImagePrompt:
    title = section.title or f"Part {n}"
    style = intent.style or "realistic or illustrated"
    prompt = (
        f"Illustration for \"{intent.topic or ''}\", section \"{title}\": a clear subject "
        f"in a scene that fits the content; style: {style}; balanced composition "
        "(rule of thirds or centred); natural lighting; no text, watermarks, violence "
        "or sensitive elements. One-line description."
    )
    return ImagePrompt(section_id=section.id, title=title, prompt=prompt)


def _parse_image_prompts(answer: Any, sections: list[OutlineSection]) -> list[ImagePrompt]:
    """Normalize a backend's ``{images: [...]}``; sections fill missing ids/titles."""
    prompts: list[ImagePrompt] = []
    for idx, item in enumerate(answer.get("images") or []):
        if not isinstance(item, Mapping):
            continue
        section = sections[idx] if idx < len(sections) else None
        section_id = item.get("sectionId") or item.get("section_id") or (section.id if section else "")
        title = item.get("title") or (section.title if section else f"Part {idx + 1}")
        prompts.append(
            ImagePrompt(section_id=str(section_id), title=str(title), prompt=str(item["prompt"]))
        )
    return prompts


async def run_pipeline(
    intent: Intent,
    files: list[UploadedFile] | None = None,
    *,
    settings: Settings | None = None,
    config: AppConfig | None = None,
    prompts: Mapping[str, str] | None = None,
    on_update: ProgressSink | None = None,
    cancel_event: CancelSignal | None = None,
    **kwargs: Any,
) -> RunState:
    """Convenience wrapper: build an orchestrator and run it once."""
    orchestrator = PipelineOrchestrator(
        settings or load_settings(),
        config or AppConfig(),
        prompts,
        **kwargs,
    )
    return await orchestrator.run(intent, files, on_update=on_update, cancel_event=cancel_event)
