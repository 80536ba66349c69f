"""
Generation Orchestrator - fan a request out to providers and persist results

One round:

1. Resolve adapters (single provider, or every provider of a media kind).
2. Run them concurrently, each on its own effective copy of the request.
3. Collect every outcome; one adapter failing never discards another's media.
4. Persist each produced item (upload blob, then create its record).
5. Aggregate into success (with a failure count), total failure carrying the
   most specific error, or cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from canvas_inference.errors import (
    GenerationError,
    NotConfiguredError,
    ProviderFailureError,
    RetrievalFailedError,
    StorageError,
    ValidationError,
    most_specific,
)
from canvas_inference.generation.base_generator import BaseProviderAdapter
from canvas_inference.generation.registry import ProviderRegistry
from canvas_inference.generation.types import (
    CancellationToken,
    GenerationContext,
    GenerationOutcome,
    GenerationPhase,
    GenerationRequest,
    MediaItem,
    MediaKind,
    SourceImageRef,
    StatusObserver,
)
from canvas_inference.input_processing.media_codec import MediaBlob

from ..library.models import PersistedMediaRecord, SourceType, StorageLocator
from ..library.service import store_media
from ..library.storage import MediaPersistence
from .state import Action, GenerationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunMode:
    """Either ``single(provider_id)`` or ``compare_all(media_kind)``."""

    provider_id: Optional[str] = None
    media_kind: Optional[MediaKind] = None

    @classmethod
    def single(cls, provider_id: str) -> "RunMode":
        return cls(provider_id=provider_id)

    @classmethod
    def compare_all(cls, media_kind: MediaKind) -> "RunMode":
        return cls(media_kind=MediaKind(media_kind))

    @property
    def is_compare(self) -> bool:
        return self.provider_id is None


class AggregateStatus(Enum):
    SUCCESS = "partial_or_full_success"
    TOTAL_FAILURE = "total_failure"
    CANCELLED = "cancelled"


@dataclass
class AggregateResult:
    status: AggregateStatus
    records: List[PersistedMediaRecord] = field(default_factory=list)
    failed_count: int = 0
    error: Optional[GenerationError] = None
    failures: List[GenerationError] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status is AggregateStatus.SUCCESS

    def summary(self, media_kind: Optional[MediaKind] = None) -> str:
        if self.status is AggregateStatus.CANCELLED:
            return "Generation cancelled."
        if self.status is AggregateStatus.TOTAL_FAILURE:
            return self.error.message if self.error else "All generation attempts failed."
        if self.failed_count:
            return f"Generated with some errors. ({self.failed_count} failed)"
        label = "Video" if media_kind == MediaKind.VIDEO else "Image"
        return f"{label} generated successfully!"


class GenerationOrchestrator:
    """
    Runs generation rounds against a provider registry.

    Args:
        registry:    Routing table of provider adapters.
        persistence: Where produced media and records are stored.
        store:       Optional studio state; rounds dispatch start / status /
                     success / error / cancel actions into it.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        persistence: MediaPersistence,
        store: Optional[GenerationStore] = None,
    ):
        self.registry = registry
        self.persistence = persistence
        self.store = store

    # ------------------------------------------------------------------
    # Adapter resolution
    # ------------------------------------------------------------------

    def resolve_adapters(self, mode: RunMode) -> List[BaseProviderAdapter]:
        if mode.is_compare:
            adapters = self.registry.providers_for_kind(mode.media_kind)
            if not adapters:
                raise ValidationError(f"No {mode.media_kind.value} providers are registered.")
            return adapters

        adapter = self.registry.get_provider(mode.provider_id)
        if adapter is None:
            raise ValidationError(f"Unknown model '{mode.provider_id}'.")
        if not adapter.is_configured():
            raise NotConfiguredError(
                f'Model "{adapter.name}" is not configured.', provider_id=adapter.id
            )
        return [adapter]

    # ------------------------------------------------------------------
    # Round
    # ------------------------------------------------------------------

    async def run(
        self,
        request: GenerationRequest,
        mode: RunMode,
        *,
        user_id: Optional[str],
        cancel_token: Optional[CancellationToken] = None,
        on_status: Optional[StatusObserver] = None,
        store: Optional[GenerationStore] = None,
    ) -> AggregateResult:
        """
        Execute one round.

        ``store`` overrides the orchestrator-wide store for this round (the
        studio passes the calling user's store).

        Raises:
            ValidationError: no user, blank prompt or unknown provider.
            NotConfiguredError: single mode and the provider is unusable.
        """
        store = store if store is not None else self.store
        try:
            if not user_id:
                raise ValidationError("You must be logged in to generate.")
            if not request.prompt or not request.prompt.strip():
                raise ValidationError("Please enter a prompt.")
            adapters = self.resolve_adapters(mode)
        except GenerationError as e:
            if store is not None:
                store.dispatch(Action.error(e.message))
            raise

        token = cancel_token or CancellationToken()
        if store is not None:
            store.begin_round(token)

        logger.info(
            "Generation round for user %s: %s (%d provider(s))",
            user_id,
            ", ".join(a.id for a in adapters),
            len(adapters),
        )
        result = await self._run_round(request, adapters, user_id, token, on_status, store)
        self._publish(result, adapters, store)
        return result

    async def _run_round(
        self,
        request: GenerationRequest,
        adapters: List[BaseProviderAdapter],
        user_id: str,
        token: CancellationToken,
        on_status: Optional[StatusObserver],
        store: Optional[GenerationStore] = None,
    ) -> AggregateResult:
        context = GenerationContext(
            cancel_token=token,
            on_status=self._status_observer(on_status, multi=len(adapters) > 1, store=store),
            load_source_image=self._load_source_image,
        )
        settled = await asyncio.gather(
            *(adapter.generate(request, context) for adapter in adapters),
            return_exceptions=True,
        )
        outcomes = [self._as_outcome(adapter, value) for adapter, value in zip(adapters, settled)]

        if token.cancelled:
            logger.info("Round cancelled before persistence; discarding %d outcome(s)", len(outcomes))
            return AggregateResult(status=AggregateStatus.CANCELLED)

        jobs = []
        owners: List[str] = []
        for adapter, outcome in zip(adapters, outcomes):
            if not outcome.succeeded:
                continue
            for item in outcome.items:
                jobs.append(self._persist_item(adapter, outcome, item, request, user_id, token))
                owners.append(adapter.id)
        persisted = await asyncio.gather(*jobs, return_exceptions=True)

        records: List[PersistedMediaRecord] = []
        persisted_by_adapter: Dict[str, int] = {}
        storage_errors: Dict[str, GenerationError] = {}
        for owner, value in zip(owners, persisted):
            if isinstance(value, PersistedMediaRecord):
                records.append(value)
                persisted_by_adapter[owner] = persisted_by_adapter.get(owner, 0) + 1
            elif value is not None:
                logger.error("[%s] Failed to save generated media: %s", owner, value)
                storage_errors.setdefault(
                    owner,
                    RetrievalFailedError(
                        f"Generation succeeded but the result could not be saved: {value}",
                        provider_id=owner,
                    ),
                )

        if token.cancelled:
            await self._discard(records)
            return AggregateResult(status=AggregateStatus.CANCELLED)

        failures: List[GenerationError] = []
        for outcome in outcomes:
            if outcome.error is not None:
                failures.append(outcome.error)
            elif not persisted_by_adapter.get(outcome.provider_id):
                failures.append(
                    storage_errors.get(outcome.provider_id)
                    or ProviderFailureError("Provider returned no media", provider_id=outcome.provider_id)
                )

        if records:
            return AggregateResult(
                status=AggregateStatus.SUCCESS,
                records=records,
                failed_count=len(failures),
                failures=failures,
            )
        error = most_specific(failures) or ProviderFailureError("All generation attempts failed.")
        return AggregateResult(
            status=AggregateStatus.TOTAL_FAILURE,
            failed_count=len(failures),
            error=error,
            failures=failures,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _as_outcome(adapter: BaseProviderAdapter, value) -> GenerationOutcome:
        if isinstance(value, GenerationOutcome):
            return value
        if isinstance(value, GenerationError):
            return GenerationOutcome.failure(adapter.id, value)
        logger.error("[%s] Adapter raised unexpectedly: %r", adapter.id, value)
        return GenerationOutcome.failure(
            adapter.id, ProviderFailureError(str(value) or type(value).__name__, provider_id=adapter.id)
        )

    async def _persist_item(
        self,
        adapter: BaseProviderAdapter,
        outcome: GenerationOutcome,
        item: MediaItem,
        request: GenerationRequest,
        user_id: str,
        token: CancellationToken,
    ) -> Optional[PersistedMediaRecord]:
        if token.cancelled:
            return None
        effective = outcome.effective_request or request
        template = PersistedMediaRecord(
            user_id=user_id,
            model=adapter.id,
            media_kind=adapter.media_kind,
            storage=StorageLocator(bucket=adapter.media_kind.bucket, path=""),
            prompt_text_at_gen=request.prompt,
            params=effective.to_params(),
            source_type=SourceType.GENERATE,
            meta=dict(item.metadata),
        )
        return await store_media(self.persistence, item.blob, template)

    async def _discard(self, records: List[PersistedMediaRecord]) -> None:
        if not records:
            return
        logger.info("Discarding %d record(s) persisted during a cancelled round", len(records))
        for record in records:
            try:
                await self.persistence.delete_blob(record.storage)
            except StorageError as e:
                logger.warning("Failed to remove blob %s: %s", record.storage.path, e)
        try:
            await self.persistence.delete_records([r.id for r in records])
        except StorageError as e:
            logger.warning("Failed to remove cancelled records: %s", e)

    async def _load_source_image(self, ref: SourceImageRef) -> MediaBlob:
        return await self.persistence.download_blob(StorageLocator(bucket=ref.bucket, path=ref.path))

    def _status_observer(
        self,
        on_status: Optional[StatusObserver],
        multi: bool,
        store: Optional[GenerationStore] = None,
    ) -> StatusObserver:
        def observe(provider_id: str, phase: GenerationPhase, message: str) -> None:
            if on_status is not None:
                on_status(provider_id, phase, message)
            if store is not None and phase not in (GenerationPhase.FAILED, GenerationPhase.CANCELLED):
                text = f"{provider_id}: {message}" if multi else message
                store.dispatch(Action.status(text))

        return observe

    def _publish(
        self,
        result: AggregateResult,
        adapters: List[BaseProviderAdapter],
        store: Optional[GenerationStore] = None,
    ) -> None:
        media_kind = adapters[0].media_kind if adapters else None
        if result.status is AggregateStatus.CANCELLED:
            logger.info("Generation round cancelled")
        elif result.succeeded:
            logger.info(
                "Generation round finished: %d record(s), %d failed provider(s)",
                len(result.records),
                result.failed_count,
            )
        else:
            logger.error("Generation round failed: %s", result.error.message)

        if store is None:
            return
        if result.status is AggregateStatus.CANCELLED:
            if not store.state.was_cancelled:
                store.dispatch(Action.cancel())
        elif result.succeeded:
            store.dispatch(Action.success(result.records, result.summary(media_kind)))
        else:
            store.dispatch(Action.error(result.summary(media_kind)))
