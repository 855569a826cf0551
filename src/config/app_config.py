# src/config/app_config.py — v1
"""Backend selection configuration and its durable store.

AppConfig is the read-only snapshot handed to a pipeline run: which text and
image backends exist, which are enabled, and the ordered backend list per
stage. ConfigStore keeps the live copy, merges patches with last-write-wins
semantics and persists them best-effort to JSON.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class ProviderConfig(BaseModel):
    """Per-backend settings."""

    enabled: bool = False
    api_key: str | None = None
    model: str | None = None
    use_web_search: bool = False
    ak: str | None = None
    sk: str | None = None


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "kimi": ProviderConfig(enabled=True, model="kimi-k2-0711-preview", use_web_search=True),
        "qwen": ProviderConfig(enabled=True, model="qwen2.5-72b-instruct"),
        "glm": ProviderConfig(model="glm-4.5"),
        "deepseek": ProviderConfig(model="deepseek-chat"),
        "openai": ProviderConfig(model="gpt-4o-mini"),
        "anthropic": ProviderConfig(model="claude-3-5-sonnet-latest"),
        "gemini": ProviderConfig(model="gemini-1.5-pro"),
    }


def _default_image_providers() -> dict[str, ProviderConfig]:
    return {
        "keling": ProviderConfig(model="kling-image-v1"),
        "paiwo": ProviderConfig(model="paiwo-image-v1"),
        "jimeng": ProviderConfig(model="jimeng-image-v1"),
        "nanobanana": ProviderConfig(model="nanobanana-image-v1"),
    }


def _default_stage_providers() -> dict[str, list[str]]:
    return {
        "intent": ["kimi"],
        "outline-multi": ["kimi", "qwen", "glm", "deepseek", "openai", "anthropic", "gemini"],
        "outline-merge": ["qwen"],
        "write-sections": ["qwen", "deepseek", "openai", "anthropic", "gemini", "kimi", "glm"],
        "image-prompts": [],
        "image-generation": [],
        "merge-assembly": ["qwen"],
        "expert-review": ["qwen", "openai", "anthropic", "gemini"],
        "fact-check": ["kimi"],
        "final-merge": ["qwen"],
    }


class AppConfig(BaseModel):
    """Snapshot of backend configuration used by one pipeline run."""

    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    image_providers: dict[str, ProviderConfig] = Field(
        default_factory=_default_image_providers
    )
    concurrency: int = Field(default=3, ge=1, le=8)
    budget_usd: float | None = Field(default=1.0, ge=0)
    tts_provider: str | None = "web"
    stage_providers: dict[str, list[str]] = Field(default_factory=_default_stage_providers)
    image_stage_providers: dict[str, list[str]] = Field(
        default_factory=lambda: {"image-generation": []}
    )

    def model_of(self, provider: str) -> str:
        """Configured model name for a text backend ('' if unknown)."""
        pcfg = self.providers.get(provider)
        return (pcfg.model or "") if pcfg else ""

    def masked(self) -> dict[str, Any]:
        """Dump without ak/sk secrets, adding has_ak/has_sk presence flags."""
        data = self.model_dump()
        for key in ("providers", "image_providers"):
            for name, pcfg in data[key].items():
                ak = pcfg.pop("ak", None)
                sk = pcfg.pop("sk", None)
                pcfg["has_ak"] = bool(ak)
                pcfg["has_sk"] = bool(sk)
                data[key][name] = pcfg
        return data


def _merge_provider(current: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    out = dict(current)
    for key, value in incoming.items():
        if value is None:
            continue
        # Empty ak/sk from a settings form must not wipe saved secrets
        if key in ("ak", "sk") and isinstance(value, str) and not value.strip():
            continue
        out[key] = value
    return out


def _merge_provider_maps(
    current: dict[str, Any], incoming: dict[str, Any] | None
) -> dict[str, Any]:
    incoming = incoming or {}
    merged: dict[str, Any] = {}
    for name in list(current) + [n for n in incoming if n not in current]:
        merged[name] = _merge_provider(current.get(name) or {}, incoming.get(name) or {})
    return merged


def merge_config(current: AppConfig, patch: dict[str, Any]) -> AppConfig:
    """Apply a partial update onto a config; later values win per field.

    Provider maps are merged per backend and per field, stage mappings per
    stage key. Raises pydantic.ValidationError for an invalid result.
    """
    base = current.model_dump()
    merged: dict[str, Any] = {**base}
    for key in ("concurrency", "budget_usd", "tts_provider"):
        if patch.get(key) is not None:
            merged[key] = patch[key]
    merged["providers"] = _merge_provider_maps(base["providers"], patch.get("providers"))
    merged["image_providers"] = _merge_provider_maps(
        base["image_providers"], patch.get("image_providers")
    )
    merged["stage_providers"] = {**base["stage_providers"], **(patch.get("stage_providers") or {})}
    merged["image_stage_providers"] = {
        **base["image_stage_providers"],
        **(patch.get("image_stage_providers") or {}),
    }
    return AppConfig.model_validate(merged)


class ConfigStore:
    """Live AppConfig with JSON persistence.

    Args:
        path: JSON file to load from and persist to. None = memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._config = self._load()

    def _load(self) -> AppConfig:
        if self._path is None or not self._path.exists():
            return AppConfig()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            # Merge onto defaults so fields added since the file was written survive
            return merge_config(AppConfig(), raw)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", self._path, exc)
            return AppConfig()

    def get_config(self) -> AppConfig:
        """Return a deep copy of the current configuration."""
        with self._lock:
            return self._config.model_copy(deep=True)

    def set_config(self, patch: dict[str, Any]) -> AppConfig:
        """Merge a partial update and persist it. Returns the new snapshot."""
        with self._lock:
            self._config = merge_config(self._config, patch)
            snapshot = self._config.model_copy(deep=True)
        self._save(snapshot)
        return snapshot

    def _save(self, config: AppConfig) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(config.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Could not persist config to %s: %s", self._path, exc)
