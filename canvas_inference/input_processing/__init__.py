"""Input processing - media payload encoding for provider requests."""

from .media_codec import MediaBlob, MediaCodec

__all__ = ["MediaBlob", "MediaCodec"]
