"""Video provider domain package."""

from .service import SoraVideoService, VeoVideoService

__all__ = [
    "SoraVideoService",
    "VeoVideoService",
]
