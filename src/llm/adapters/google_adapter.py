# src/llm/adapters/google_adapter.py — v2
"""Google Gemini adapter implementing BaseChatClient.

Uses the google-generativeai SDK. JSON mode maps to
``response_mime_type="application/json"``. No token streaming.
"""

from __future__ import annotations

from typing import Any

from docweaver.llm.base_client import BaseChatClient
from docweaver.llm.models import Message


class GoogleAdapter(BaseChatClient):
    """Google Gemini adapter."""

    def __init__(
        self,
        model: str = "gemini-1.5-pro",
        api_key: str | None = None,
        max_tokens: int = 2048,
        temperature: float = 0.2,
        **kwargs: Any,
    ) -> None:
        super().__init__(model=model, api_key=api_key, **kwargs)
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def provider_name(self) -> str:
        return "gemini"

    async def _complete(self, messages: list[Message], model: str, json_mode: bool) -> str:
        import google.generativeai as genai

        genai.configure(api_key=self._api_key)
        system = "\n\n".join(m.content for m in messages if m.role == "system") or None
        gen_model = genai.GenerativeModel(model, system_instruction=system)

        gen_config: dict[str, Any] = {
            "max_output_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if json_mode:
            gen_config["response_mime_type"] = "application/json"

        contents = []
        for m in messages:
            if m.role == "system":
                continue
            role = "model" if m.role == "assistant" else "user"
            contents.append({"role": role, "parts": [{"text": m.content}]})

        resp = await gen_model.generate_content_async(
            contents, generation_config=gen_config,
        )
        return resp.text or ""
