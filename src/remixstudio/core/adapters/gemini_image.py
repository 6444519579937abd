"""Gemini image model backend.

This module provides the generation backend for Google's Gemini image models
(``gemini-2.5-flash-image`` by default), called through the ``google-genai``
SDK.  The model takes interleaved image and text parts and answers with one
or more candidates, each of which may carry an inline image.

Request Layout
--------------
Parts are sent in a fixed order:

1. The primary image as inline data.
2. The secondary image as inline data, when present.
3. A trailing text instruction: the template's prompt, or a generic
   instruction naming the template id when the prompt is blank.

The template's aspect ratio is sent as an ``ImageConfig`` hint.  When the
template declares none, no image config is sent at all.

Response Reconciliation
-----------------------
For each candidate, in the order the service returned them, the first part
that carries inline image data becomes one result image.  Candidates with no
such part (text-only answers, safety blocks) are dropped.  An answer with no
usable image at all is reported as a :class:`BackendError`, never as an empty
success.

Usage Example
-------------
    >>> from remixstudio.core.adapters.gemini_image import GeminiImageBackend
    >>> from remixstudio.core.config import config
    >>>
    >>> backend = GeminiImageBackend(config)
    >>> images = backend.generate(template, selfie, garment)
"""

from __future__ import annotations

import base64
import logging

from google import genai
from google.genai import types

from remixstudio.core.backends import (
    EMPTY_RESULT_MESSAGE,
    MISSING_API_KEY_MESSAGE,
    BackendConfigurationError,
    BackendError,
    GenerationBackendBase,
    backend_registry,
)
from remixstudio.core.config import RemixConfig
from remixstudio.core.models import ImageAsset, Template

logger = logging.getLogger(__name__)


def fallback_instruction(template_id: str) -> str:
    return f"Remix the provided image using template {template_id}"


def build_contents(
    template: Template,
    primary: ImageAsset,
    secondary: ImageAsset | None = None,
) -> list[types.Part]:
    """Assemble the request parts: primary, optional secondary, instruction."""
    parts = [types.Part.from_bytes(data=primary.data, mime_type=primary.mime_type)]
    if secondary is not None:
        parts.append(types.Part.from_bytes(data=secondary.data, mime_type=secondary.mime_type))

    instruction = (template.prompt or "").strip() or fallback_instruction(template.id)
    parts.append(types.Part.from_text(text=instruction))
    return parts


def build_generate_config(template: Template) -> types.GenerateContentConfig:
    """Build the request config, with an aspect ratio hint only when declared."""
    if template.aspect_ratio:
        return types.GenerateContentConfig(
            response_modalities=["IMAGE"],
            image_config=types.ImageConfig(aspect_ratio=template.aspect_ratio),
        )
    return types.GenerateContentConfig(response_modalities=["IMAGE"])


def extract_images(response) -> list[ImageAsset]:
    """Take the first inline image from each candidate, preserving order."""
    images: list[ImageAsset] = []
    for index, candidate in enumerate(getattr(response, "candidates", None) or []):
        content = getattr(candidate, "content", None)
        parts = getattr(content, "parts", None) or []
        inline = next(
            (
                p.inline_data
                for p in parts
                if getattr(p, "inline_data", None) is not None and p.inline_data.data
            ),
            None,
        )
        if inline is None:
            logger.info(
                f"Candidate {index} carried no image "
                f"(finish_reason={getattr(candidate, 'finish_reason', None)})"
            )
            continue

        data = inline.data
        if isinstance(data, str):
            data = base64.b64decode(data)
        images.append(
            ImageAsset(
                data=data,
                mime_type=inline.mime_type or "image/png",
                filename=f"candidate-{index}",
            )
        )
    return images


class GeminiImageBackend(GenerationBackendBase):
    """Generation backend backed by a Gemini image model.

    The SDK client is created lazily on the first call so that a missing API
    key only fails generation, not application startup.
    """

    name = "gemini"
    description = "Google Gemini image generation via google-genai"

    def __init__(self, config: RemixConfig, client: genai.Client | None = None) -> None:
        super().__init__(config)
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.config.gemini_api_key:
                raise BackendConfigurationError(MISSING_API_KEY_MESSAGE)
            self._client = genai.Client(api_key=self.config.gemini_api_key)
        return self._client

    def generate(
        self,
        template: Template,
        primary: ImageAsset,
        secondary: ImageAsset | None = None,
    ) -> list[ImageAsset]:
        client = self._get_client()
        contents = build_contents(template, primary, secondary)
        generate_config = build_generate_config(template)

        logger.info(
            f"Requesting {self.config.gemini_model} for template '{template.id}' "
            f"({len(contents) - 1} image part(s), aspect_ratio={template.aspect_ratio})"
        )

        try:
            response = client.models.generate_content(
                model=self.config.gemini_model,
                contents=contents,
                config=generate_config,
            )
        except Exception as e:
            logger.error(f"Gemini request failed for template '{template.id}': {e}")
            raise BackendError(str(e) or e.__class__.__name__) from e

        images = extract_images(response)
        if not images:
            logger.warning(f"Gemini returned no images for template '{template.id}'")
            raise BackendError(EMPTY_RESULT_MESSAGE)

        logger.info(f"Gemini returned {len(images)} image(s) for template '{template.id}'")
        return images


backend_registry.register(GeminiImageBackend)
