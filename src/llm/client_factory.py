# src/llm/client_factory.py — v3
"""Factory: instantiate a chat client from a backend id.

Called by the orchestrator once per backend and run, using the run's
configuration snapshot for model and API key.
"""

from __future__ import annotations

import importlib
import logging

from docweaver.config.app_config import ProviderConfig
from docweaver.config.settings import Settings
from docweaver.llm.base_client import BaseChatClient

logger = logging.getLogger(__name__)

_COMPAT = "docweaver.llm.adapters.openai_adapter.OpenAICompatAdapter"

# Registry of backend id → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "kimi": _COMPAT,
    "qwen": _COMPAT,
    "glm": _COMPAT,
    "deepseek": _COMPAT,
    "openai": _COMPAT,
    "anthropic": "docweaver.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "gemini": "docweaver.llm.adapters.google_adapter.GoogleAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_chat_client(
    provider: str,
    provider_config: ProviderConfig | None = None,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseChatClient:
    """Instantiate the correct adapter for a backend id.

    Args:
        provider: Backend identifier (kimi, qwen, openai, anthropic...).
        provider_config: Model and API key from the configuration snapshot.
        settings: Deployment settings (timeouts, temperature, concurrency cap).
        **kwargs: Additional adapter-specific arguments.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported chat provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])

    init_kwargs = dict(kwargs)
    if provider_config is not None:
        if provider_config.model:
            init_kwargs.setdefault("model", provider_config.model)
        init_kwargs.setdefault("api_key", provider_config.api_key)
    if settings is not None:
        init_kwargs.setdefault("temperature", settings.chat_temperature)
        init_kwargs.setdefault("timeout_s", settings.chat_timeout_s)
        init_kwargs.setdefault("max_concurrency", settings.chat_max_concurrency)
        if provider in ("anthropic", "gemini"):
            init_kwargs.setdefault("max_tokens", settings.chat_max_tokens)
    if adapter_cls.__name__ == "OpenAICompatAdapter":
        init_kwargs.setdefault("provider", provider)

    logger.debug("Creating chat client: provider=%s, model=%s", provider, init_kwargs.get("model"))
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom backend adapter.

    Args:
        name: Backend identifier.
        class_path: Fully qualified class path implementing BaseChatClient.
    """
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered chat provider: %s → %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
