# Library service - media library operations on top of a persistence backend

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from canvas_inference.errors import (
    GenerationCancelled,
    NotConfiguredError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from canvas_inference.generation.registry import ProviderRegistry
from canvas_inference.generation.types import (
    ASPECT_RATIOS,
    CancellationToken,
    GenerationContext,
    GenerationRequest,
    MediaKind,
    SourceImageRef,
)
from canvas_inference.input_processing.media_codec import MediaBlob

from .models import PersistedMediaRecord, Folder, SourceType, StorageLocator
from .signed_url import SignedUrlCache, UrlState
from .storage import MediaPersistence

logger = logging.getLogger(__name__)

SORA_PROVIDER_ID = "sora-2-video"
EDIT_PROVIDER_ID = "gemini-3-pro-image-preview"


async def store_media(
    persistence: MediaPersistence,
    blob: MediaBlob,
    record: PersistedMediaRecord,
) -> PersistedMediaRecord:
    """
    Upload ``blob`` and create its record.

    The record row is only written after the upload succeeded; if the row
    cannot be written the uploaded blob is deleted again.

    Args:
        record: Record template; its ``storage`` locator is replaced by the
            locator of the uploaded blob.
    """
    locator = await persistence.upload_blob(blob, record.user_id, record.media_kind.bucket)
    try:
        return await persistence.create_record(record.with_changes(storage=locator))
    except BaseException:
        logger.error("Record creation failed, removing orphaned blob %s/%s", locator.bucket, locator.path)
        try:
            await persistence.delete_blob(locator)
        except StorageError as cleanup_error:
            logger.warning("Failed to remove orphaned blob %s: %s", locator.path, cleanup_error)
        raise


class LibraryService:
    """
    Library operations for one persistence backend

    Handles fetching, uploading, organizing, duplicating and deleting
    library items, plus signed URL resolution, remix preparation and image
    edits. Edits need ``registry`` to reach the image editing provider.
    """

    def __init__(
        self,
        persistence: MediaPersistence,
        url_cache: Optional[SignedUrlCache] = None,
        registry: Optional[ProviderRegistry] = None,
    ):
        self.persistence = persistence
        self.url_cache = url_cache or SignedUrlCache(persistence)
        self.registry = registry

    async def fetch_library_content(self, user_id: str) -> Tuple[List[PersistedMediaRecord], List[Folder]]:
        """Records and folders of a user, both newest first"""
        records, folders = await asyncio.gather(
            self.persistence.list_records(user_id),
            self.persistence.list_folders(user_id),
        )
        return records, folders

    async def _get_owned_record(self, record_id: str, user_id: str) -> PersistedMediaRecord:
        record = await self.persistence.get_record(record_id)
        if record is None or record.user_id != user_id:
            raise NotFoundError(f"Record {record_id} not found")
        return record

    async def add_media(
        self,
        blob: MediaBlob,
        user_id: str,
        *,
        model: str,
        source_type: SourceType,
        params: Optional[Dict[str, Any]] = None,
        prompt: str = '',
        meta: Optional[Dict[str, Any]] = None,
        folder_id: Optional[str] = None,
        media_kind: Optional[MediaKind] = None,
    ) -> PersistedMediaRecord:
        """Upload a blob and create its library record"""
        kind = media_kind or (MediaKind.VIDEO if blob.is_video else MediaKind.IMAGE)
        template = PersistedMediaRecord(
            user_id=user_id,
            model=model,
            media_kind=kind,
            storage=StorageLocator(bucket=kind.bucket, path=''),
            prompt_text_at_gen=prompt,
            params=dict(params or {}),
            source_type=source_type,
            meta=dict(meta or {}),
            folder_id=folder_id,
        )
        return await store_media(self.persistence, blob, template)

    async def upload_file(
        self,
        blob: MediaBlob,
        user_id: str,
        folder_id: Optional[str] = None,
    ) -> PersistedMediaRecord:
        """Add a user-supplied file to the library"""
        if not blob.data:
            raise ValidationError('Uploaded file is empty')
        if not (blob.mime_type.startswith('image/') or blob.is_video):
            raise ValidationError(f'Unsupported file type: {blob.mime_type}')
        return await self.add_media(
            blob,
            user_id,
            model='upload',
            source_type=SourceType.UPLOAD,
            folder_id=folder_id,
        )

    async def move_to_folder(self, record_id: str, folder_id: Optional[str], user_id: str) -> PersistedMediaRecord:
        await self._get_owned_record(record_id, user_id)
        if folder_id is not None:
            folders = await self.persistence.list_folders(user_id)
            if not any(f.id == folder_id for f in folders):
                raise NotFoundError(f"Folder {folder_id} not found")
        return await self.persistence.update_record(record_id, folder_id=folder_id)

    async def toggle_star(self, record_id: str, user_id: str) -> PersistedMediaRecord:
        record = await self._get_owned_record(record_id, user_id)
        meta = dict(record.meta)
        meta['isStarred'] = not record.is_starred
        return await self.persistence.update_record(record_id, meta=meta)

    async def duplicate(self, record_id: str, user_id: str) -> PersistedMediaRecord:
        """Copy a record and its blob; the copy remembers where it came from"""
        record = await self._get_owned_record(record_id, user_id)
        blob = await self.persistence.download_blob(record.storage)
        return await self.add_media(
            blob,
            user_id,
            model=record.model,
            source_type=record.source_type,
            params=record.params,
            prompt=record.prompt_text_at_gen,
            meta={**record.meta, 'duplicatedFrom': record.id},
            folder_id=record.folder_id,
            media_kind=record.media_kind,
        )

    async def delete_records(self, record_ids: List[str], user_id: str) -> int:
        """
        Delete records and their blobs

        Blobs go first, grouped by bucket; a blob removal failure is logged
        and does not keep the rows alive. Returns the number of rows deleted.
        """
        records = []
        for record_id in dict.fromkeys(record_ids):
            record = await self.persistence.get_record(record_id)
            if record is not None and record.user_id == user_id:
                records.append(record)
        if not records:
            return 0

        paths_by_bucket: Dict[str, List[str]] = {}
        for record in records:
            paths_by_bucket.setdefault(record.storage.bucket, []).append(record.storage.path)
        for bucket, paths in paths_by_bucket.items():
            try:
                await self.persistence.delete_blobs(bucket, paths)
            except StorageError as e:
                logger.error("Failed to delete %d blob(s) from %s: %s", len(paths), bucket, e)
            for path in paths:
                self.url_cache.invalidate(StorageLocator(bucket=bucket, path=path))

        await self.persistence.delete_records([r.id for r in records])
        logger.info("Deleted %d library item(s) for user %s", len(records), user_id)
        return len(records)

    async def create_folder(self, name: str, user_id: str) -> Folder:
        name = (name or '').strip()
        if not name:
            raise ValidationError('Folder name is required')
        return await self.persistence.create_folder(user_id, name)

    async def get_signed_url(self, record_id: str, user_id: str, auth_context: Optional[str] = None) -> UrlState:
        record = await self._get_owned_record(record_id, user_id)
        return await self.url_cache.resolve(record.storage, auth_context)

    async def build_remix_request(
        self,
        record_id: str,
        user_id: str,
        prompt: Optional[str] = None,
    ) -> Tuple[GenerationRequest, Optional[str]]:
        """
        Prepare a new request seeded by an existing item

        Returns the request and the provider id it should go to when the
        remix is provider specific (Sora video remix), else None.
        """
        record = await self._get_owned_record(record_id, user_id)
        if prompt is None:
            prompt = record.prompt_text_at_gen if record.source_type != SourceType.UPLOAD else ''

        fields: Dict[str, Any] = {'prompt': prompt}
        if record.media_kind == MediaKind.IMAGE:
            fields['source_image'] = SourceImageRef(path=record.storage.path, bucket=record.storage.bucket)
        for name in ('aspectRatio', 'resolution', 'negativePrompt'):
            if record.params.get(name):
                fields[name] = record.params[name]

        provider_id = None
        external_id = record.meta.get('externalId')
        if record.media_kind == MediaKind.VIDEO and external_id:
            fields['remix_video_id'] = external_id
            provider_id = SORA_PROVIDER_ID
        if record.model == SORA_PROVIDER_ID:
            sora_params = record.meta.get('soraParams') or {}
            if sora_params.get('seconds'):
                fields['seconds'] = str(sora_params['seconds'])
            if sora_params.get('size'):
                fields['sora_size'] = sora_params['size']

        return GenerationRequest.model_validate(fields), provider_id

    async def edit_record(
        self,
        record_id: str,
        instruction: str,
        user_id: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PersistedMediaRecord:
        """
        Apply a text instruction to a stored image and save the result

        The edit runs through the Gemini image adapter with the stored image
        as its source, so it shares that adapter's key gate and its single
        re-selection retry. The new record is an ``edit`` that points back to
        its parent through ``meta.parentId`` and stays in the parent's folder.

        Raises:
            ValidationError: blank instruction, or the record is not an image.
            NotConfiguredError: no usable image editing provider.
            GenerationError: the provider failed, blocked or was cancelled.
        """
        instruction = (instruction or '').strip()
        if not instruction:
            raise ValidationError('Please enter an edit instruction.')
        record = await self._get_owned_record(record_id, user_id)
        if record.media_kind != MediaKind.IMAGE:
            raise ValidationError('Only images can be edited.')

        adapter = self.registry.get_provider(EDIT_PROVIDER_ID) if self.registry else None
        if adapter is None or not adapter.is_configured():
            raise NotConfiguredError('Image editing is not configured.', provider_id=EDIT_PROVIDER_ID)

        aspect_ratio = record.params.get('aspectRatio')
        request = GenerationRequest(
            prompt=instruction,
            aspect_ratio=aspect_ratio if aspect_ratio in ASPECT_RATIOS else '1:1',
            source_image=SourceImageRef(path=record.storage.path, bucket=record.storage.bucket),
        )
        context = GenerationContext(
            cancel_token=cancel_token or CancellationToken(),
            load_source_image=self._load_source_image,
        )
        outcome = await adapter.generate(request, context)
        if outcome.cancelled:
            raise GenerationCancelled('Edit cancelled.', provider_id=adapter.id)
        if outcome.error is not None:
            raise outcome.error

        logger.info("Edited record %s for user %s", record.id, user_id)
        return await self.add_media(
            outcome.items[0].blob,
            user_id,
            model=adapter.id,
            source_type=SourceType.EDIT,
            params={**record.params, 'prompt': instruction},
            prompt=f'Edited: {record.prompt_text_at_gen}',
            meta={**record.meta, 'parentId': record.id},
            folder_id=record.folder_id,
            media_kind=MediaKind.IMAGE,
        )

    async def _load_source_image(self, ref: SourceImageRef) -> MediaBlob:
        return await self.persistence.download_blob(StorageLocator(bucket=ref.bucket, path=ref.path))
