"""
Request / outcome types shared by every provider adapter.

``GenerationRequest`` is the immutable, provider-neutral request. Each adapter
derives its own *effective* copy (see ``BaseProviderAdapter.effective_request``)
so one adapter's coercions never leak into another's.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from ..errors import GenerationError, ProviderFailureError
from ..input_processing.media_codec import MediaBlob

logger = logging.getLogger(__name__)

AspectRatio = Literal["1:1", "3:2", "2:3", "16:9", "9:16", "4:5", "5:4", "3:4", "4:3", "21:9"]
Resolution = Literal["512", "768", "1024", "1536", "2048", "1K", "2K", "4K"]

ASPECT_RATIOS: tuple = AspectRatio.__args__
RESOLUTIONS: tuple = Resolution.__args__


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"

    @property
    def bucket(self) -> str:
        return "video" if self is MediaKind.VIDEO else "images"


class SourceImageRef(BaseModel):
    """Pointer to a stored image used as the seed of a new generation."""

    model_config = ConfigDict(frozen=True)

    path: str
    bucket: str = "images"


class GenerationRequest(BaseModel):
    """Provider-neutral generation parameters (camelCase on the wire)."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    prompt: str
    negative_prompt: Optional[str] = None
    aspect_ratio: AspectRatio = "1:1"
    resolution: Resolution = "1024"
    guidance_scale: Optional[float] = None
    steps: Optional[int] = Field(default=None, ge=1)
    seed: Optional[int] = None
    source_image: Optional[SourceImageRef] = None
    seconds: Optional[str] = None
    sora_size: Optional[str] = None
    remix_video_id: Optional[str] = None

    @field_validator("seconds", mode="before")
    @classmethod
    def _positive_seconds(cls, value: Any) -> Optional[str]:
        # Any positive whole duration; providers clamp to what they support
        if value is None or value == "":
            return None
        if isinstance(value, bool):
            raise ValueError("seconds must be a positive whole number")
        try:
            seconds = int(str(value).strip())
        except ValueError:
            raise ValueError("seconds must be a positive whole number") from None
        if seconds <= 0:
            raise ValueError("seconds must be a positive whole number")
        return str(seconds)

    def to_params(self) -> Dict[str, Any]:
        """Serialize for persistence, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class ProviderCapabilities:
    source_image: bool = False
    negative_prompt: bool = False
    guidance: bool = False
    steps: bool = False
    seed: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {
            "img2img": self.source_image,
            "negativePrompt": self.negative_prompt,
            "guidance": self.guidance,
            "steps": self.steps,
            "seed": self.seed,
        }


@dataclass
class MediaItem:
    """One produced asset plus free-form provenance."""

    blob: MediaBlob
    media_kind: MediaKind
    metadata: Dict[str, Any] = field(default_factory=dict)


class GenerationPhase(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    RENDERING = "rendering"
    DOWNLOADING = "downloading"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class GenerationOutcome:
    """
    Result of one adapter invocation: items *or* an error, never both.

    A cancelled invocation carries neither and has ``cancelled`` set.
    """

    provider_id: str
    items: List[MediaItem] = field(default_factory=list)
    error: Optional[GenerationError] = None
    cancelled: bool = False
    effective_request: Optional[GenerationRequest] = None

    @classmethod
    def success(
        cls,
        provider_id: str,
        items: List[MediaItem],
        effective_request: Optional[GenerationRequest] = None,
    ) -> "GenerationOutcome":
        if not items:
            return cls.failure(
                provider_id,
                ProviderFailureError("Provider returned no media", provider_id=provider_id),
                effective_request,
            )
        return cls(provider_id=provider_id, items=list(items), effective_request=effective_request)

    @classmethod
    def failure(
        cls,
        provider_id: str,
        error: GenerationError,
        effective_request: Optional[GenerationRequest] = None,
    ) -> "GenerationOutcome":
        if error.provider_id is None:
            error.provider_id = provider_id
        return cls(provider_id=provider_id, error=error, effective_request=effective_request)

    @classmethod
    def was_cancelled(
        cls,
        provider_id: str,
        effective_request: Optional[GenerationRequest] = None,
    ) -> "GenerationOutcome":
        return cls(provider_id=provider_id, cancelled=True, effective_request=effective_request)

    @property
    def succeeded(self) -> bool:
        return bool(self.items) and self.error is None and not self.cancelled


class CancellationToken:
    """Cooperative cancel flag, polled between stages and poll iterations."""

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


StatusObserver = Callable[[str, GenerationPhase, str], None]
SourceImageLoader = Callable[[SourceImageRef], Awaitable[MediaBlob]]


@dataclass
class GenerationContext:
    """
    External collaborators handed to an adapter for one invocation.

    Attributes:
        cancel_token:       Shared round-wide cancellation flag.
        on_status:          Advisory observer ``(provider_id, phase, text)``.
        load_source_image:  Reads a stored seed image through persistence.
    """

    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    on_status: Optional[StatusObserver] = None
    load_source_image: Optional[SourceImageLoader] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_token.cancelled

    def report(self, provider_id: str, phase: GenerationPhase, message: str) -> None:
        if self.on_status is None:
            return
        try:
            self.on_status(provider_id, phase, message)
        except Exception:
            logger.warning("Status observer failed for %s (%s)", provider_id, phase.value, exc_info=True)
