"""Concrete video adapter backed by Veo 3.1."""

from __future__ import annotations

import logging
from typing import List

from .....config.settings import GenerationSettings
from .....errors import StorageError
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
from ...service import VeoVideoService
from ..base_service_generator import BaseServiceVideoAdapter

logger = logging.getLogger(__name__)

VEO_PORTRAIT_RATIOS = ("9:16", "2:3", "4:5")
VEO_ASPECT_RATIOS = ("16:9", "9:16")
VEO_DURATION_SECONDS = 8
VEO_HIGH_RESOLUTIONS = ("1536", "2048", "2K", "4K")


def veo_aspect_ratio(aspect_ratio: str) -> str:
    return "9:16" if aspect_ratio in VEO_PORTRAIT_RATIOS else "16:9"


def veo_resolution(resolution: str, duration_seconds: int = VEO_DURATION_SECONDS) -> str:
    # 1080p renders are only offered for 8 second clips
    if resolution in VEO_HIGH_RESOLUTIONS and duration_seconds == 8:
        return "1080p"
    return "720p"


class VeoVideoAdapter(BaseServiceVideoAdapter):
    """Text/image-to-video through ``VeoVideoService``."""

    PROVIDER_ID = "veo-3.1-generate-preview"

    def build_service(self, settings: GenerationSettings) -> VeoVideoService:
        return VeoVideoService(
            model=settings.veo_model,
            base_url=settings.gemini_base_url,
            **self.polling_options(settings),
        )

    def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            id=self.PROVIDER_ID,
            name="Veo 3.1",
            description="Google Veo 3.1 text-to-video and image-to-video",
            media_kind=MediaKind.VIDEO,
            capabilities=ProviderCapabilities(source_image=True, negative_prompt=True),
            supported_aspect_ratios=VEO_ASPECT_RATIOS,
            badge="Gemini",
        )

    def default_key_gate(self) -> ApiKeyGate:
        return ApiKeyGate(ambient_key=self.settings.gemini_api_key, label=self.metadata.name)

    def normalize_request(self, request: GenerationRequest) -> GenerationRequest:
        return request.model_copy(
            update={
                "aspect_ratio": veo_aspect_ratio(request.aspect_ratio),
                "seconds": str(VEO_DURATION_SECONDS),
                "sora_size": None,
                "remix_video_id": None,
            }
        )

    async def _generate_once(
        self,
        request: GenerationRequest,
        context: GenerationContext,
        api_key: str,
    ) -> List[MediaItem]:
        source = None
        try:
            source = await self.load_source_image(request, context)
        except StorageError as exc:
            logger.warning("[Veo] Could not load source image, continuing text-only: %s", exc)

        resolution = veo_resolution(request.resolution)
        self.report(context, GenerationPhase.SUBMITTING, "Submitting video job to Veo...")
        operation_name = await self.service.start(
            api_key=api_key,
            prompt=request.prompt,
            aspect_ratio=request.aspect_ratio,
            resolution=resolution,
            duration_seconds=VEO_DURATION_SECONDS,
            negative_prompt=request.negative_prompt,
            source=source,
        )

        self.report(context, GenerationPhase.RENDERING, "Rendering video (this may take a few minutes)...")
        operation = await self.service.wait(
            api_key=api_key,
            name=operation_name,
            is_cancelled=self.cancel_probe(context),
        )
        uri = VeoVideoService.video_uri(operation)
        self.raise_if_cancelled(context)

        self.report(context, GenerationPhase.DOWNLOADING, "Downloading video...")
        blob = await self.service.download(api_key=api_key, uri=uri)
        return [
            self.video_item(
                blob,
                modelUsed=self.service.model,
                veoParams={
                    "aspectRatio": request.aspect_ratio,
                    "durationSeconds": VEO_DURATION_SECONDS,
                    "resolution": resolution,
                    "operation": operation_name,
                },
            )
        ]
