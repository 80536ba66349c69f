"""Shared base for service-backed image adapters."""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional

from ....config.settings import GenerationSettings
from ....input_processing.media_codec import MediaBlob
from ...base_generator import BaseProviderAdapter
from ...key_gate import ApiKeyGate
from ...types import MediaItem, MediaKind


class BaseServiceImageAdapter(BaseProviderAdapter):
    """Base class wiring an image adapter to its backend service."""

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
    def image_item(blob: MediaBlob, **metadata: Any) -> MediaItem:
        return MediaItem(blob=blob, media_kind=MediaKind.IMAGE, metadata=metadata)
