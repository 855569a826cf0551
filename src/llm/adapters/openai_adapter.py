# src/llm/adapters/openai_adapter.py — v2
"""OpenAI-compatible chat adapter implementing BaseChatClient.

Uses the official openai SDK against any endpoint that speaks the
chat-completions protocol (OpenAI, Moonshot/Kimi, DashScope/Qwen, GLM,
DeepSeek). Supports JSON mode and token streaming.
"""

from __future__ import annotations

from typing import Any

from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.models import Message, TokenCallback

# Base URL per backend id.
COMPAT_BASE_URLS: dict[str, str] = {
    "openai": "https://api.openai.com/v1",
    "kimi": "https://api.moonshot.cn/v1",
    "qwen": "https://dashscope.aliyuncs.com/compatible-mode/v1",
    "glm": "https://open.bigmodel.cn/api/paas/v4",
    "deepseek": "https://api.deepseek.com/v1",
}


class OpenAICompatAdapter(BaseChatClient):
    """Chat-completions adapter for OpenAI-compatible backends."""

    def __init__(
        self,
        provider: str = "openai",
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float = 120.0,
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> None:
        super().__init__(model=model, api_key=api_key, **kwargs)
        self._provider = provider
        self._base_url = base_url or COMPAT_BASE_URLS.get(provider, COMPAT_BASE_URLS["openai"])
        self._timeout_s = timeout_s
        self._temperature = temperature
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init AsyncOpenAI client (only on first API call)."""
        if self.__client is None:
            import openai

            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout_s,
            )
        return self.__client

    @property
    def provider_name(self) -> str:
        return self._provider

    @property
    def supports_streaming(self) -> bool:
        return True

    def _build_kwargs(self, messages: list[Message], model: str, json_mode: bool) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": self._temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs

    async def _complete(self, messages: list[Message], model: str, json_mode: bool) -> str:
        resp = await self._client.chat.completions.create(
            **self._build_kwargs(messages, model, json_mode)
        )
        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def _stream(
        self,
        messages: list[Message],
        model: str,
        json_mode: bool,
        on_token: TokenCallback,
    ) -> str:
        stream = await self._client.chat.completions.create(
            stream=True, **self._build_kwargs(messages, model, json_mode)
        )
        parts: list[str] = []
        async for chunk in stream:
            if not chunk.choices:
                continue
            token = chunk.choices[0].delta.content or ""
            if token:
                parts.append(token)
                on_token(token)
        return "".join(parts)
