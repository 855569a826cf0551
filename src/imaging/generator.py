# src/imaging/generator.py — v1
"""Image-generation stage: one image per prompt, placeholder on every miss."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from docweaver.config.app_config import AppConfig
from docweaver.config.settings import Settings
from docweaver.core.models import GeneratedImage, ImagePrompt
from docweaver.imaging.credentials import Credentials, resolve_credentials
from docweaver.imaging.jimeng import JimengImageClient
from docweaver.imaging.placeholder import placeholder_image
from docweaver.pipeline.selector import selected_image_providers

logger = logging.getLogger(__name__)

SIGNED_BACKEND = "jimeng"

ClientFactory = Callable[[Credentials], JimengImageClient]


@dataclass
class ImageGenerationResult:
    images: list[GeneratedImage] = field(default_factory=list)
    provider: str = "placeholder"
    info: str = ""

    def payload(self) -> dict:
        return {
            "images": [img.to_wire() for img in self.images],
            "provider": self.provider,
            "info": self.info,
        }


class ImageStage:
    """Resolve the image backend for a run and render every prompt.

    Args:
        settings: Image backend settings and environment credentials.
        client_factory: Builds the signed client from credentials
            (tests inject one bound to a mock transport).
    """

    def __init__(self, settings: Settings, client_factory: ClientFactory | None = None) -> None:
        self._settings = settings
        self._client_factory = client_factory or (
            lambda creds: JimengImageClient(creds, self._settings)
        )

    async def generate_images(
        self, prompts: list[ImagePrompt], config: AppConfig
    ) -> ImageGenerationResult:
        backends = selected_image_providers(config)
        credentials = None
        if SIGNED_BACKEND not in backends:
            info = f"{SIGNED_BACKEND} not selected for image-generation; using placeholders"
        else:
            credentials = resolve_credentials(
                config.image_providers.get(SIGNED_BACKEND), self._settings
            )
            if credentials is None:
                info = "missing access/secret key (configuration or environment); using placeholders"
            else:
                info = f"using {SIGNED_BACKEND} (credentials from {credentials.source}, sequential)"
        logger.info("Image generation: %s", info)

        if credentials is None:
            images = [_placeholder(p) for p in prompts]
            return ImageGenerationResult(images=images, provider="placeholder", info=info)

        client = self._client_factory(credentials)
        images = []
        # Sequential: the backend throttles concurrent tasks per key
        for prompt in prompts:
            url = await client.generate(prompt.prompt)
            if url:
                images.append(
                    GeneratedImage(
                        section_id=prompt.section_id,
                        title=prompt.title,
                        prompt=prompt.prompt,
                        url=url,
                    )
                )
            else:
                images.append(_placeholder(prompt))
        return ImageGenerationResult(images=images, provider=SIGNED_BACKEND, info=info)


def _placeholder(prompt: ImagePrompt) -> GeneratedImage:
    return GeneratedImage(
        section_id=prompt.section_id,
        title=prompt.title,
        prompt=prompt.prompt,
        url=placeholder_image(prompt.title),
    )
