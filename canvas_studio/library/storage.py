# Persistence interface and in-memory storage for the media library

from abc import ABC, abstractmethod
from threading import Lock
from typing import Dict, List, Optional, Iterable, Tuple
from datetime import timedelta
import logging
import uuid

from canvas_inference.errors import NotFoundError, StorageError
from canvas_inference.input_processing.media_codec import MediaBlob

from .models import PersistedMediaRecord, Folder, StorageLocator, Template, utcnow

logger = logging.getLogger(__name__)


def new_blob_path(user_id: str, blob: MediaBlob) -> str:
    """Blob paths are ``<userId>/<uuid>.<ext>``"""
    return f"{user_id}/{uuid.uuid4()}.{blob.extension}"


class MediaPersistence(ABC):
    """
    Storage backend consumed by the orchestrator and the library service.

    Every method is a coroutine because real backends are remote. Failures
    raise ``StorageError`` (``NotFoundError`` for missing objects).
    """

    @abstractmethod
    async def upload_blob(self, blob: MediaBlob, user_id: str, bucket: str) -> StorageLocator:
        """Store ``blob`` and return where it lives"""

    @abstractmethod
    async def download_blob(self, locator: StorageLocator) -> MediaBlob:
        """Read a stored blob back"""

    @abstractmethod
    async def delete_blobs(self, bucket: str, paths: List[str]) -> None:
        """Remove several blobs from one bucket"""

    async def delete_blob(self, locator: StorageLocator) -> None:
        await self.delete_blobs(locator.bucket, [locator.path])

    @abstractmethod
    async def create_record(self, record: PersistedMediaRecord) -> PersistedMediaRecord:
        """Insert a record; returns it with ``id`` and ``created_at`` filled in"""

    @abstractmethod
    async def update_record(self, record_id: str, **changes) -> PersistedMediaRecord:
        """Apply field changes (``folder_id``, ``meta``) to one record"""

    @abstractmethod
    async def get_record(self, record_id: str) -> Optional[PersistedMediaRecord]:
        pass

    @abstractmethod
    async def list_records(self, user_id: str) -> List[PersistedMediaRecord]:
        """All records of a user, newest first"""

    @abstractmethod
    async def delete_records(self, record_ids: List[str]) -> None:
        pass

    @abstractmethod
    async def create_folder(self, user_id: str, name: str) -> Folder:
        pass

    @abstractmethod
    async def list_folders(self, user_id: str) -> List[Folder]:
        """All folders of a user, newest first"""

    @abstractmethod
    async def create_signed_url(self, locator: StorageLocator, ttl_seconds: int) -> str:
        """Mint a time-limited read URL; raises ``NotFoundError``"""

    @abstractmethod
    async def create_template(self, template: Template) -> Template:
        """Insert a template; returns it with ``id`` and ``created_at`` filled in"""

    @abstractmethod
    async def update_template(self, template_id: str, **changes) -> Template:
        pass

    @abstractmethod
    async def get_template(self, template_id: str) -> Optional[Template]:
        pass

    @abstractmethod
    async def list_templates(self, user_id: str) -> List[Template]:
        """All templates of a user, newest first"""

    @abstractmethod
    async def delete_template(self, template_id: str) -> None:
        pass


class InMemoryMediaStore(MediaPersistence):
    """
    Thread-safe in-memory persistence

    Used for local runs and tests; blobs, records and folders live in
    dictionaries guarded by a single lock.
    """

    def __init__(self):
        self.blobs: Dict[Tuple[str, str], MediaBlob] = {}
        self.records: Dict[str, PersistedMediaRecord] = {}
        self.folders: Dict[str, Folder] = {}
        self.templates: Dict[str, Template] = {}
        self.signed_url_calls = 0
        self.lock = Lock()

    # Blob operations
    async def upload_blob(self, blob: MediaBlob, user_id: str, bucket: str) -> StorageLocator:
        locator = StorageLocator(bucket=bucket, path=new_blob_path(user_id, blob))
        with self.lock:
            self.blobs[(locator.bucket, locator.path)] = blob
        return locator

    async def download_blob(self, locator: StorageLocator) -> MediaBlob:
        with self.lock:
            blob = self.blobs.get((locator.bucket, locator.path))
        if blob is None:
            raise NotFoundError(f"Object not found: {locator.bucket}/{locator.path}")
        return blob

    async def delete_blobs(self, bucket: str, paths: List[str]) -> None:
        with self.lock:
            for path in paths:
                self.blobs.pop((bucket, path), None)

    async def create_signed_url(self, locator: StorageLocator, ttl_seconds: int) -> str:
        with self.lock:
            self.signed_url_calls += 1
            exists = (locator.bucket, locator.path) in self.blobs
        if not exists:
            raise NotFoundError(f"Object not found: {locator.bucket}/{locator.path}")
        expires = int((utcnow() + timedelta(seconds=ttl_seconds)).timestamp())
        return f"memory://{locator.bucket}/{locator.path}?token={uuid.uuid4().hex}&expires={expires}"

    # Record operations
    async def create_record(self, record: PersistedMediaRecord) -> PersistedMediaRecord:
        stored = record.with_changes(
            id=record.id or str(uuid.uuid4()),
            created_at=record.created_at or utcnow(),
            params=dict(record.params),
            meta=dict(record.meta),
        )
        with self.lock:
            if stored.id in self.records:
                raise StorageError(f"Record {stored.id} already exists")
            self.records[stored.id] = stored
        return stored

    async def update_record(self, record_id: str, **changes) -> PersistedMediaRecord:
        with self.lock:
            record = self.records.get(record_id)
            if record is None:
                raise NotFoundError(f"Record {record_id} not found")
            updated = record.with_changes(**changes)
            self.records[record_id] = updated
            return updated

    async def get_record(self, record_id: str) -> Optional[PersistedMediaRecord]:
        with self.lock:
            return self.records.get(record_id)

    async def list_records(self, user_id: str) -> List[PersistedMediaRecord]:
        with self.lock:
            records = [r for r in self.records.values() if r.user_id == user_id]
        return _newest_first(records)

    async def delete_records(self, record_ids: List[str]) -> None:
        with self.lock:
            for record_id in record_ids:
                self.records.pop(record_id, None)

    # Folder operations
    async def create_folder(self, user_id: str, name: str) -> Folder:
        folder = Folder(user_id=user_id, name=name, id=str(uuid.uuid4()), created_at=utcnow())
        with self.lock:
            self.folders[folder.id] = folder
        return folder

    async def list_folders(self, user_id: str) -> List[Folder]:
        with self.lock:
            folders = [f for f in self.folders.values() if f.user_id == user_id]
        return _newest_first(folders)

    # Template operations
    async def create_template(self, template: Template) -> Template:
        stored = template.with_changes(
            id=template.id or str(uuid.uuid4()),
            created_at=template.created_at or utcnow(),
            params=dict(template.params),
        )
        with self.lock:
            if stored.id in self.templates:
                raise StorageError(f"Template {stored.id} already exists")
            self.templates[stored.id] = stored
        return stored

    async def update_template(self, template_id: str, **changes) -> Template:
        with self.lock:
            template = self.templates.get(template_id)
            if template is None:
                raise NotFoundError(f"Template {template_id} not found")
            updated = template.with_changes(**changes)
            self.templates[template_id] = updated
            return updated

    async def get_template(self, template_id: str) -> Optional[Template]:
        with self.lock:
            return self.templates.get(template_id)

    async def list_templates(self, user_id: str) -> List[Template]:
        with self.lock:
            templates = [t for t in self.templates.values() if t.user_id == user_id]
        return _newest_first(templates)

    async def delete_template(self, template_id: str) -> None:
        with self.lock:
            self.templates.pop(template_id, None)


def _newest_first(items: Iterable) -> list:
    return sorted(items, key=lambda item: item.created_at, reverse=True)
