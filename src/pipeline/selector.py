# src/pipeline/selector.py — v1
"""Backend selection per stage.

Pure functions of an AppConfig snapshot. An empty result is valid and
means the stage runs on its local default.
"""

from __future__ import annotations

from docweaver.config.app_config import AppConfig

IMAGE_STAGE = "image-generation"


def selected_providers(stage: str, config: AppConfig) -> list[str]:
    """Stage's preferred text backends that are known and enabled, in order."""
    selected: list[str] = []
    for name in config.stage_providers.get(stage) or []:
        pcfg = config.providers.get(name)
        if pcfg is not None and pcfg.enabled and name not in selected:
            selected.append(name)
    return selected


def selected_image_providers(config: AppConfig) -> list[str]:
    """Enabled image backends for image-generation.

    Falls back to every enabled image backend when the stage mapping
    yields nothing.
    """
    selected: list[str] = []
    for name in config.image_stage_providers.get(IMAGE_STAGE) or []:
        pcfg = config.image_providers.get(name)
        if pcfg is not None and pcfg.enabled and name not in selected:
            selected.append(name)
    if selected:
        return selected
    return [name for name, pcfg in config.image_providers.items() if pcfg.enabled]
