# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides scripted fake chat backends, an AppConfig builder, sample outline
and drafts, and Settings rooted in a temp directory with git disabled.
No network access: every backend call is answered in-process.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from docweaver.config.app_config import AppConfig, ProviderConfig
from docweaver.config.settings import Settings
from docweaver.core.models import DraftSection, Outline, OutlineSection
from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.limiter import reset_limiters
from docweaver.llm.models import Message
from docweaver.llm.retry import NO_RETRY
from docweaver.logging.context import clear_context


# === FAKE BACKENDS ===


class FakeChatClient(BaseChatClient):
    """Scripted backend.

    ``reply`` is a value, an exception instance (raised), or a callable
    ``(messages) -> value``. ``chunks`` enables streaming: the chunks are
    delivered through on_token and their concatenation is the answer; a
    ``fail_after`` index raises mid-stream.
    """

    def __init__(
        self,
        name: str,
        reply: Any = "",
        chunks: list[str] | None = None,
        fail_after: int | None = None,
        delay_s: float = 0.0,
        api_key: str = "test-key",
    ) -> None:
        super().__init__(model=f"{name}-model", api_key=api_key, backoff=NO_RETRY)
        self._name = name
        self._reply = reply
        self._chunks = chunks
        self._fail_after = fail_after
        self._delay_s = delay_s
        self.calls = 0
        self.requests: list[list[Message]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def provider_name(self) -> str:
        return self._name

    @property
    def supports_streaming(self) -> bool:
        return self._chunks is not None

    async def _answer(self, messages: list[Message]) -> Any:
        self.calls += 1
        self.requests.append(messages)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._delay_s:
                await asyncio.sleep(self._delay_s)
            reply = self._reply(messages) if callable(self._reply) else self._reply
            if isinstance(reply, Exception):
                raise reply
            return reply
        finally:
            self.in_flight -= 1

    async def _complete(self, messages: list[Message], model: str, json_mode: bool) -> str:
        reply = await self._answer(messages)
        if isinstance(reply, str):
            return reply
        return json.dumps(reply)

    async def _stream(self, messages, model, json_mode, on_token) -> str:
        self.calls += 1
        self.requests.append(messages)
        text = ""
        for idx, chunk in enumerate(self._chunks or []):
            if self._fail_after is not None and idx >= self._fail_after:
                raise ConnectionError("stream dropped")
            on_token(chunk)
            text += chunk
            await asyncio.sleep(0)
        return text


class FakeClientFactory:
    """Backend id -> FakeChatClient; unknown ids raise like the real factory."""

    def __init__(self, clients: dict[str, FakeChatClient]) -> None:
        self.clients = clients
        self.created: list[str] = []

    def __call__(self, provider: str) -> FakeChatClient:
        self.created.append(provider)
        if provider not in self.clients:
            raise ValueError(f"Unsupported chat provider: {provider!r}")
        return self.clients[provider]

    def calls(self, provider: str) -> int:
        client = self.clients.get(provider)
        return client.calls if client else 0


def make_config(
    stage_providers: dict[str, list[str]] | None = None,
    enabled: list[str] | None = None,
    image_providers: dict[str, ProviderConfig] | None = None,
    image_stage: list[str] | None = None,
    concurrency: int = 3,
) -> AppConfig:
    """AppConfig with only ``enabled`` text backends on and empty stage lists by default."""
    config = AppConfig(concurrency=concurrency)
    for name, pcfg in config.providers.items():
        pcfg.enabled = name in (enabled or [])
    config.stage_providers = {stage: [] for stage in config.stage_providers}
    config.stage_providers.update(stage_providers or {})
    if image_providers is not None:
        config.image_providers.update(image_providers)
    config.image_stage_providers = {"image-generation": list(image_stage or [])}
    return config


# === FIXTURES ===


@pytest.fixture(autouse=True)
def _fresh_process_state():
    """Limiters and log context are process-wide; isolate every test."""
    reset_limiters()
    clear_context()
    yield
    reset_limiters()
    clear_context()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings rooted in tmp_path, git disabled, instant image polling."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        runs_dir=tmp_path / "runs",
        snapshot_git_enabled=False,
        snapshot_git_repo=tmp_path,
        image_poll_interval_s=0,
        image_poll_attempts=3,
        image_access_key="",
        image_secret_key="",
        image_session_token="",
    )


@pytest.fixture
def config_factory() -> Callable[..., AppConfig]:
    return make_config


@pytest.fixture
def sample_outline() -> Outline:
    return Outline(
        title="Home Composting",
        sections=[
            OutlineSection(id="a", title="Intro"),
            OutlineSection(id="b", title="Details"),
        ],
    )


@pytest.fixture
def sample_drafts() -> list[DraftSection]:
    return [
        DraftSection(section_id="a", markdown="# Intro\nbody1"),
        DraftSection(section_id="b", markdown="# Details\nbody2"),
    ]


@pytest.fixture
def fake_client() -> type[FakeChatClient]:
    """The FakeChatClient class, for building scripted backends in tests."""
    return FakeChatClient


@pytest.fixture
def fake_factory() -> type[FakeClientFactory]:
    return FakeClientFactory
