"""Concrete image adapter backed by OpenAI GPT-Image-1."""

from __future__ import annotations

from typing import List

from .....config.settings import GenerationSettings
from ....base_generator import ProviderMetadata
from ....key_gate import ApiKeyGate
from ....types import (
    GenerationContext,
    GenerationPhase,
    GenerationRequest,
    MediaItem,
    MediaKind,
    ProviderCapabilities,
)
from ...service import OpenAIImageService
from ..base_service_generator import BaseServiceImageAdapter

LANDSCAPE_SIZE = "1536x1024"
PORTRAIT_SIZE = "1024x1536"
SQUARE_SIZE = "1024x1024"

OPENAI_SIZE_BY_RATIO = {
    "16:9": LANDSCAPE_SIZE,
    "3:2": LANDSCAPE_SIZE,
    "4:3": LANDSCAPE_SIZE,
    "21:9": LANDSCAPE_SIZE,
    "9:16": PORTRAIT_SIZE,
    "2:3": PORTRAIT_SIZE,
    "3:4": PORTRAIT_SIZE,
    "4:5": PORTRAIT_SIZE,
    "5:4": PORTRAIT_SIZE,
}


def openai_size_for(aspect_ratio: str) -> str:
    return OPENAI_SIZE_BY_RATIO.get(aspect_ratio, SQUARE_SIZE)


class OpenAIImageAdapter(BaseServiceImageAdapter):
    """Text-to-image through ``OpenAIImageService``."""

    PROVIDER_ID = "openai-latest-image"

    def build_service(self, settings: GenerationSettings) -> OpenAIImageService:
        return OpenAIImageService(
            model=settings.openai_image_model,
            base_url=settings.openai_base_url,
            timeout=settings.http_timeout,
        )

    def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            id=self.PROVIDER_ID,
            name="GPT-Image-1",
            description="OpenAI GPT-Image-1 text-to-image",
            media_kind=MediaKind.IMAGE,
            capabilities=ProviderCapabilities(),
            supported_aspect_ratios=("1:1", "16:9", "9:16"),
            badge="OpenAI",
        )

    def default_key_gate(self) -> ApiKeyGate:
        return ApiKeyGate(ambient_key=self.settings.openai_api_key, label=self.metadata.name)

    async def _generate_once(
        self,
        request: GenerationRequest,
        context: GenerationContext,
        api_key: str,
    ) -> List[MediaItem]:
        size = openai_size_for(request.aspect_ratio)
        self.report(context, GenerationPhase.SUBMITTING, f"Requesting {size} image from OpenAI...")
        result = await self.service.generate(api_key=api_key, prompt=request.prompt, size=size)
        self.raise_if_cancelled(context)

        metadata = {"openaiParams": {"model": self.service.model, "size": size}}
        if result.get("revised_prompt"):
            metadata["revisedPrompt"] = result["revised_prompt"]
        return [self.image_item(result["image"], **metadata)]
