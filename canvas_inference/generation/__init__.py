"""Generation modules - provider adapters for images and video with a plugin registry."""

from .base_generator import BaseProviderAdapter, ProviderMetadata, map_aspect_ratio
from .key_gate import ApiKeyGate, KeySelectionHost
from .registry import ProviderRegistry, get_provider_registry
from .types import (
    ASPECT_RATIOS,
    RESOLUTIONS,
    CancellationToken,
    GenerationContext,
    GenerationOutcome,
    GenerationPhase,
    GenerationRequest,
    MediaItem,
    MediaKind,
    ProviderCapabilities,
    SourceImageRef,
)

__all__ = [
    "ASPECT_RATIOS",
    "RESOLUTIONS",
    "ApiKeyGate",
    "BaseProviderAdapter",
    "CancellationToken",
    "GenerationContext",
    "GenerationOutcome",
    "GenerationPhase",
    "GenerationRequest",
    "KeySelectionHost",
    "MediaItem",
    "MediaKind",
    "ProviderCapabilities",
    "ProviderMetadata",
    "ProviderRegistry",
    "SourceImageRef",
    "get_provider_registry",
    "map_aspect_ratio",
]
