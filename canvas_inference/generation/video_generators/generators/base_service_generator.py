"""Shared base for service-backed video adapters."""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional

from ....config.settings import GenerationSettings
from ....input_processing.media_codec import MediaBlob
from ...base_generator import BaseProviderAdapter
from ...key_gate import ApiKeyGate
from ...types import GenerationContext, MediaItem, MediaKind


class BaseServiceVideoAdapter(BaseProviderAdapter):
    """Base class wiring a polling video adapter to its backend service."""

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        key_gate: Optional[ApiKeyGate] = None,
        service: Any = None,
    ) -> None:
        settings = settings or GenerationSettings()
        self._service = service or self.build_service(settings)
        super().__init__(settings, key_gate)

    @abstractmethod
    def build_service(self, settings: GenerationSettings) -> Any:
        """Create the default backend service from settings."""

    @property
    def service(self) -> Any:
        return self._service

    @staticmethod
    def polling_options(settings: GenerationSettings) -> dict:
        return {
            "timeout": settings.http_timeout,
            "poll_interval": settings.video_poll_interval,
            "max_polls": settings.video_max_polls,
        }

    @staticmethod
    def cancel_probe(context: GenerationContext):
        return lambda: context.cancelled

    @staticmethod
    def video_item(blob: MediaBlob, **metadata: Any) -> MediaItem:
        return MediaItem(blob=blob, media_kind=MediaKind.VIDEO, metadata=metadata)
