"""
Base Provider Adapter - shared contract for image and video providers

Every adapter maps the provider-neutral ``GenerationRequest`` onto one
provider's wire format, calls it, and normalizes the reply into a
``GenerationOutcome``. The base class owns the parts every provider shares:

- capability-driven request stripping (``effective_request``)
- the API-key gate with a bounded credential retry (at most two attempts)
- translating typed failures / cancellation into outcomes
- phase reporting to the caller's status observer
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.settings import GenerationSettings
from ..errors import (
    CredentialInvalidError,
    GenerationCancelled,
    GenerationError,
    ProviderFailureError,
    StorageError,
)
from ..input_processing.media_codec import MediaBlob
from .key_gate import ApiKeyGate
from .types import (
    GenerationContext,
    GenerationOutcome,
    GenerationPhase,
    GenerationRequest,
    MediaItem,
    MediaKind,
    ProviderCapabilities,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderMetadata:
    """Static identity and capabilities of one provider (routing table entry)."""

    id: str
    name: str
    description: str
    media_kind: MediaKind
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)
    supported_aspect_ratios: tuple = ()
    supported_resolutions: tuple = ()
    badge: Optional[str] = None
    version: str = "1.0.0"
    created_at: datetime = field(default_factory=datetime.now)


def map_aspect_ratio(
    aspect_ratio: str,
    ratio_map: Dict[str, str],
    allowed: tuple,
    default: str,
) -> str:
    """Collapse an aspect ratio onto what a provider accepts; never fails."""
    mapped = ratio_map.get(aspect_ratio, aspect_ratio)
    return mapped if mapped in allowed else default


class BaseProviderAdapter(ABC):
    """
    Abstract base class for all provider adapters

    Subclasses set ``PROVIDER_ID``, describe themselves in ``get_metadata()``
    and implement ``_generate_once()``. They may override
    ``normalize_request()`` to clamp fields onto the provider's supported
    values; it must be idempotent because ``generate()`` re-derives the
    effective request.

    Example:
        class MyImageAdapter(BaseProviderAdapter):
            PROVIDER_ID = "my-image"

            def get_metadata(self) -> ProviderMetadata:
                return ProviderMetadata(
                    id=self.PROVIDER_ID,
                    name="My Image",
                    description="Text-to-image via my backend",
                    media_kind=MediaKind.IMAGE,
                )

            async def _generate_once(self, request, context, api_key):
                blob = await my_backend(request.prompt, api_key)
                return [MediaItem(blob=blob, media_kind=MediaKind.IMAGE)]
    """

    PROVIDER_ID: str = ""
    MAX_CREDENTIAL_ATTEMPTS = 2

    def __init__(
        self,
        settings: Optional[GenerationSettings] = None,
        key_gate: Optional[ApiKeyGate] = None,
    ) -> None:
        self.settings = settings or GenerationSettings()
        self.metadata = self.get_metadata()
        self.key_gate = key_gate or self.default_key_gate()

    # ------------------------------------------------------------------
    # Descriptor
    # ------------------------------------------------------------------

    @abstractmethod
    def get_metadata(self) -> ProviderMetadata:
        """Return static provider metadata."""

    def default_key_gate(self) -> ApiKeyGate:
        """Non-interactive gate used when the registry supplies none."""
        return ApiKeyGate(label=self.metadata.name)

    @property
    def id(self) -> str:
        return self.metadata.id

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def media_kind(self) -> MediaKind:
        return self.metadata.media_kind

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self.metadata.capabilities

    def is_configured(self) -> bool:
        return self.key_gate.is_configured()

    def get_info(self) -> Dict[str, Any]:
        return {
            "id": self.metadata.id,
            "name": self.metadata.name,
            "description": self.metadata.description,
            "type": self.metadata.media_kind.value,
            "badge": self.metadata.badge,
            "version": self.metadata.version,
            "supports": self.metadata.capabilities.to_dict(),
            "supported_aspect_ratios": list(self.metadata.supported_aspect_ratios),
            "supported_resolutions": list(self.metadata.supported_resolutions),
            "configured": self.is_configured(),
        }

    # ------------------------------------------------------------------
    # Request derivation
    # ------------------------------------------------------------------

    def effective_request(self, request: GenerationRequest) -> GenerationRequest:
        """Adapter-specific copy of ``request``; the original is never touched."""
        caps = self.capabilities
        dropped: Dict[str, Any] = {}
        if not caps.negative_prompt:
            dropped["negative_prompt"] = None
        if not caps.source_image:
            dropped["source_image"] = None
        if not caps.guidance:
            dropped["guidance_scale"] = None
        if not caps.steps:
            dropped["steps"] = None
        if not caps.seed:
            dropped["seed"] = None
        if self.media_kind == MediaKind.IMAGE:
            dropped.update(seconds=None, sora_size=None, remix_video_id=None)
        stripped = request.model_copy(update=dropped) if dropped else request
        return self.normalize_request(stripped)

    def normalize_request(self, request: GenerationRequest) -> GenerationRequest:
        return request

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        context: Optional[GenerationContext] = None,
    ) -> GenerationOutcome:
        """
        Run one generation and return its outcome; never raises for
        provider-side failures or cancellation.
        """
        context = context or GenerationContext()
        effective = self.effective_request(request)
        try:
            items = await self._generate_with_credential_retry(effective, context)
        except GenerationCancelled:
            logger.info("[%s] Generation cancelled", self.id)
            self.report(context, GenerationPhase.CANCELLED, "Generation cancelled.")
            return GenerationOutcome.was_cancelled(self.id, effective)
        except GenerationError as exc:
            logger.error("[%s] Generation failed (%s): %s", self.id, exc.kind.value, exc.message)
            self.report(context, GenerationPhase.FAILED, exc.message)
            return GenerationOutcome.failure(self.id, exc, effective)

        outcome = GenerationOutcome.success(self.id, items, effective)
        if outcome.succeeded:
            self.report(context, GenerationPhase.SUCCEEDED, "Done!")
        else:
            self.report(context, GenerationPhase.FAILED, outcome.error.message)
        return outcome

    async def _generate_with_credential_retry(
        self,
        request: GenerationRequest,
        context: GenerationContext,
    ) -> List[MediaItem]:
        for attempt in range(1, self.MAX_CREDENTIAL_ATTEMPTS + 1):
            self.raise_if_cancelled(context)
            api_key = await self.key_gate.ensure_available()
            try:
                return await self._generate_once(request, context, api_key)
            except CredentialInvalidError:
                if attempt >= self.MAX_CREDENTIAL_ATTEMPTS or not self.key_gate.can_acquire:
                    raise
                logger.warning(
                    "[%s] Credential rejected (attempt %d/%d), re-selecting key",
                    self.id,
                    attempt,
                    self.MAX_CREDENTIAL_ATTEMPTS,
                )
                await self.key_gate.acquire()
        raise ProviderFailureError("Credential retry loop exhausted", provider_id=self.id)

    @abstractmethod
    async def _generate_once(
        self,
        request: GenerationRequest,
        context: GenerationContext,
        api_key: str,
    ) -> List[MediaItem]:
        """
        Perform a single provider round trip.

        Raises:
            CredentialInvalidError: the provider rejected ``api_key``.
            GenerationError: any other typed failure.
            GenerationCancelled: the caller cancelled mid-flight.
        """

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def report(self, context: GenerationContext, phase: GenerationPhase, message: str) -> None:
        context.report(self.id, phase, message)

    def raise_if_cancelled(self, context: GenerationContext) -> None:
        if context.cancelled:
            raise GenerationCancelled("Generation cancelled.", provider_id=self.id)

    async def load_source_image(
        self,
        request: GenerationRequest,
        context: GenerationContext,
    ) -> Optional[MediaBlob]:
        """
        Read the request's seed image, or None when it has none.

        Raises:
            StorageError: the blob could not be read.
        """
        if request.source_image is None:
            return None
        if context.load_source_image is None:
            raise StorageError("No source image loader is available")
        return await context.load_source_image(request.source_image)
