"""Concrete image adapter backed by Gemini 3 Pro Image ("Nano Banana Pro")."""

from __future__ import annotations

from typing import List

from .....config.settings import GenerationSettings
from .....errors import ProviderFailureError, StorageError
from ....base_generator import ProviderMetadata, map_aspect_ratio
from ....key_gate import ApiKeyGate
from ....types import (
    GenerationContext,
    GenerationPhase,
    GenerationRequest,
    MediaItem,
    MediaKind,
    ProviderCapabilities,
)
from ...service import GeminiImageService
from ..base_service_generator import BaseServiceImageAdapter

# Ratios Gemini does not render collapse onto the closest one it does.
GEMINI_RATIO_MAP = {
    "3:2": "4:3",
    "2:3": "3:4",
    "4:5": "3:4",
    "21:9": "16:9",
}
GEMINI_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
GEMINI_DEFAULT_RATIO = "1:1"

GEMINI_IMAGE_SIZES = {
    "1536": "2K",
    "2048": "2K",
    "2K": "2K",
    "4K": "4K",
}
GEMINI_DEFAULT_SIZE = "1K"


def gemini_image_size(resolution: str) -> str:
    return GEMINI_IMAGE_SIZES.get(resolution, GEMINI_DEFAULT_SIZE)


class GeminiImageAdapter(BaseServiceImageAdapter):
    """Text-to-image and image-to-image through ``GeminiImageService``."""

    PROVIDER_ID = "gemini-3-pro-image-preview"

    def build_service(self, settings: GenerationSettings) -> GeminiImageService:
        return GeminiImageService(
            model=settings.gemini_image_model,
            base_url=settings.gemini_base_url,
            timeout=settings.http_timeout,
        )

    def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            id=self.PROVIDER_ID,
            name="Nano Banana Pro",
            description="Gemini 3 Pro Image: text-to-image and image editing",
            media_kind=MediaKind.IMAGE,
            capabilities=ProviderCapabilities(source_image=True),
            supported_aspect_ratios=GEMINI_ASPECT_RATIOS,
            supported_resolutions=("1K", "2K", "4K"),
            badge="Gemini",
        )

    def default_key_gate(self) -> ApiKeyGate:
        return ApiKeyGate(ambient_key=self.settings.gemini_api_key, label=self.metadata.name)

    def normalize_request(self, request: GenerationRequest) -> GenerationRequest:
        return request.model_copy(
            update={
                "aspect_ratio": map_aspect_ratio(
                    request.aspect_ratio,
                    GEMINI_RATIO_MAP,
                    GEMINI_ASPECT_RATIOS,
                    GEMINI_DEFAULT_RATIO,
                ),
                "resolution": gemini_image_size(request.resolution),
            }
        )

    async def _generate_once(
        self,
        request: GenerationRequest,
        context: GenerationContext,
        api_key: str,
    ) -> List[MediaItem]:
        self.report(context, GenerationPhase.SUBMITTING, "Sending request to Gemini...")
        try:
            source = await self.load_source_image(request, context)
        except StorageError as exc:
            raise ProviderFailureError(
                "Initial image not found in storage.", provider_id=self.id
            ) from exc

        self.report(context, GenerationPhase.RENDERING, "Generating image...")
        result = await self.service.generate_content(
            api_key=api_key,
            prompt=request.prompt,
            aspect_ratio=request.aspect_ratio,
            image_size=request.resolution,
            source=source,
        )
        self.raise_if_cancelled(context)
        if not result.images:
            GeminiImageService.raise_for_empty(result)

        self.report(context, GenerationPhase.DOWNLOADING, "Decoding image...")
        return [
            self.image_item(
                blob,
                modelUsed=self.service.model,
                aspectRatio=request.aspect_ratio,
                imageSize=request.resolution,
            )
            for blob in result.images
        ]
