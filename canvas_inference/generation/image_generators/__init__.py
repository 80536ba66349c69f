"""Image provider domain package."""

from .service import GeminiImageService, OpenAIImageService

__all__ = [
    "GeminiImageService",
    "OpenAIImageService",
]
