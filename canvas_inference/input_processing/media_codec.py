"""
Media Codec - Base64 / data URL transport for image and video payloads

Provider APIs are JSON based, so binary media travels as base64 (optionally
wrapped in a ``data:`` URL). This module converts in both directions and
sniffs MIME types when a provider leaves them out.
"""

from __future__ import annotations

import base64
import binascii
import io
from dataclasses import dataclass
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from ..errors import MediaDecodeError

DEFAULT_IMAGE_MIME = "image/png"
DEFAULT_VIDEO_MIME = "video/mp4"
OCTET_STREAM = "application/octet-stream"

_PIL_FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "GIF": "image/gif",
    "WEBP": "image/webp",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}

_MIME_TO_EXTENSION = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}


@dataclass(frozen=True)
class MediaBlob:
    """Binary payload together with its MIME type."""

    data: bytes
    mime_type: str = OCTET_STREAM

    @property
    def is_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def extension(self) -> str:
        return MediaCodec.extension_for(self.mime_type)

    def __len__(self) -> int:
        return len(self.data)


class MediaCodec:
    """Stateless helpers; every method is a ``staticmethod``."""

    @staticmethod
    def encode(payload: Union[MediaBlob, bytes]) -> str:
        """Return the bare base64 text for ``payload`` (no data URL prefix)."""
        data = payload.data if isinstance(payload, MediaBlob) else payload
        return base64.b64encode(data).decode("ascii")

    @staticmethod
    def to_data_url(payload: Union[MediaBlob, bytes], mime_type: Optional[str] = None) -> str:
        if isinstance(payload, MediaBlob):
            mime = mime_type or payload.mime_type
        else:
            mime = mime_type or MediaCodec.sniff_mime_type(payload)
        return f"data:{mime};base64,{MediaCodec.encode(payload)}"

    @staticmethod
    def decode(transport: str, mime_type: Optional[str] = None) -> MediaBlob:
        """
        Decode base64 text or a ``data:`` URL into a ``MediaBlob``.

        An explicit ``mime_type`` wins over the data URL header; when neither
        is available the type is sniffed from the decoded bytes.

        Raises:
            MediaDecodeError: input is not valid base64 / data URL.
        """
        if not isinstance(transport, str):
            raise MediaDecodeError(f"Expected text payload, got {type(transport).__name__}")

        text = transport.strip()
        header_mime: Optional[str] = None
        if text.startswith("data:"):
            header, sep, text = text.partition(",")
            if not sep or ";base64" not in header:
                raise MediaDecodeError("Data URL is not base64 encoded")
            header_mime = header[len("data:") :].split(";", 1)[0] or None

        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MediaDecodeError(f"Invalid base64 payload: {exc}") from exc

        mime = mime_type or header_mime or MediaCodec.sniff_mime_type(data)
        return MediaBlob(data=data, mime_type=mime)

    @staticmethod
    def sniff_mime_type(data: bytes, default: str = OCTET_STREAM) -> str:
        """Best-effort MIME detection from magic bytes."""
        if len(data) >= 12 and data[4:8] == b"ftyp":
            brand = data[8:12]
            return "video/quicktime" if brand == b"qt  " else DEFAULT_VIDEO_MIME
        if data[:4] == b"\x1a\x45\xdf\xa3":
            return "video/webm"
        try:
            with Image.open(io.BytesIO(data)) as image:
                return _PIL_FORMAT_TO_MIME.get(image.format or "", default)
        except (UnidentifiedImageError, OSError, ValueError):
            return default

    @staticmethod
    def extension_for(mime_type: str) -> str:
        if mime_type in _MIME_TO_EXTENSION:
            return _MIME_TO_EXTENSION[mime_type]
        subtype = mime_type.split("/", 1)[-1] if "/" in mime_type else ""
        return subtype or "bin"
