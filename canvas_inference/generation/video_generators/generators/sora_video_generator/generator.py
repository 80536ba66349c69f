"""Concrete video adapter backed by OpenAI Sora 2."""

from __future__ import annotations

from typing import List, Optional

from .....config.settings import GenerationSettings
from .....errors import ProviderFailureError
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
from ...service import SoraVideoService
from ..base_service_generator import BaseServiceVideoAdapter

SORA_PORTRAIT_SIZE = "720x1280"
SORA_LANDSCAPE_SIZE = "1280x720"
SORA_SIZES = (SORA_LANDSCAPE_SIZE, SORA_PORTRAIT_SIZE, "1024x1792", "1792x1024")
SORA_DEFAULT_SECONDS = "4"
SORA_SECONDS = (4, 8, 12)


def sora_size_for(aspect_ratio: str, explicit: Optional[str] = None) -> str:
    if explicit in SORA_SIZES:
        return explicit
    return SORA_PORTRAIT_SIZE if aspect_ratio == "9:16" else SORA_LANDSCAPE_SIZE


def sora_seconds_for(seconds: Optional[str]) -> str:
    """Nearest supported duration; ties go to the shorter clip."""
    if not seconds:
        return SORA_DEFAULT_SECONDS
    wanted = int(seconds)
    return str(min(SORA_SECONDS, key=lambda option: (abs(option - wanted), option)))


class SoraVideoAdapter(BaseServiceVideoAdapter):
    """Text-to-video and remix through ``SoraVideoService``."""

    PROVIDER_ID = "sora-2-video"

    def build_service(self, settings: GenerationSettings) -> SoraVideoService:
        return SoraVideoService(
            model=settings.sora_model,
            base_url=settings.openai_base_url,
            **self.polling_options(settings),
        )

    def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            id=self.PROVIDER_ID,
            name="Sora 2",
            description="OpenAI Sora 2 text-to-video with remix",
            media_kind=MediaKind.VIDEO,
            capabilities=ProviderCapabilities(),
            supported_aspect_ratios=("16:9", "9:16"),
            badge="OpenAI",
        )

    def default_key_gate(self) -> ApiKeyGate:
        return ApiKeyGate(ambient_key=self.settings.openai_api_key, label=self.metadata.name)

    def normalize_request(self, request: GenerationRequest) -> GenerationRequest:
        return request.model_copy(
            update={
                "sora_size": sora_size_for(request.aspect_ratio, request.sora_size),
                "seconds": sora_seconds_for(request.seconds),
            }
        )

    async def _generate_once(
        self,
        request: GenerationRequest,
        context: GenerationContext,
        api_key: str,
    ) -> List[MediaItem]:
        self.report(context, GenerationPhase.SUBMITTING, "Submitting video job to Sora...")
        if request.remix_video_id:
            job = await self.service.remix(
                api_key=api_key, video_id=request.remix_video_id, prompt=request.prompt
            )
        else:
            job = await self.service.create(
                api_key=api_key,
                prompt=request.prompt,
                seconds=request.seconds,
                size=request.sora_size,
            )
        video_id = job.get("id")
        if not video_id:
            raise ProviderFailureError("Sora did not return a job id.")

        self.report(context, GenerationPhase.RENDERING, "Rendering video (this may take a few minutes)...")
        job = await self.service.wait(
            api_key=api_key,
            video_id=video_id,
            is_cancelled=self.cancel_probe(context),
        )
        self.raise_if_cancelled(context)

        self.report(context, GenerationPhase.DOWNLOADING, "Downloading video...")
        blob = await self.service.download(api_key=api_key, video_id=video_id)
        metadata = {
            "externalId": video_id,
            "soraParams": {
                "model": job.get("model", self.service.model),
                "seconds": job.get("seconds", request.seconds),
                "size": job.get("size", request.sora_size),
            },
        }
        if request.remix_video_id:
            metadata["remixOf"] = request.remix_video_id
        return [self.video_item(blob, **metadata)]
