# Data models for the media library

from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, Dict, Any

from canvas_inference.generation.types import MediaKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    return datetime.fromisoformat(text)


class SourceType(Enum):
    """How a library item came to exist"""
    GENERATE = "generate"
    UPLOAD = "upload"
    EDIT = "edit"


@dataclass(frozen=True)
class StorageLocator:
    """Opaque address of a stored blob"""
    bucket: str
    path: str


@dataclass
class PersistedMediaRecord:
    """One stored image or video plus the parameters that produced it"""
    user_id: str
    model: str
    media_kind: MediaKind
    storage: StorageLocator
    prompt_text_at_gen: str = ''
    params: Dict[str, Any] = field(default_factory=dict)
    source_type: SourceType = SourceType.GENERATE
    meta: Dict[str, Any] = field(default_factory=dict)
    folder_id: Optional[str] = None
    id: Optional[str] = None  # Assigned by the persistence layer
    created_at: Optional[datetime] = None

    @property
    def is_starred(self) -> bool:
        return bool(self.meta.get('isStarred'))

    def with_changes(self, **changes) -> 'PersistedMediaRecord':
        return replace(self, **changes)

    def to_row(self) -> Dict[str, Any]:
        """Database row using the library table's column names"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'model': self.model,
            'params': self.params,
            'promptTextAtGen': self.prompt_text_at_gen,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'storage_path': self.storage.path,
            'folder_id': self.folder_id,
            'sourceType': self.source_type.value,
            'meta': self.meta,
            'mediaType': self.media_kind.value,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'PersistedMediaRecord':
        meta = row.get('meta') or {}
        # Legacy rows predate the mediaType column
        media_kind = MediaKind(row.get('mediaType') or meta.get('mediaType') or 'image')
        return cls(
            id=row.get('id'),
            user_id=row['user_id'],
            model=row.get('model') or '',
            params=row.get('params') or {},
            prompt_text_at_gen=row.get('promptTextAtGen') or '',
            created_at=_parse_timestamp(row.get('created_at')),
            storage=StorageLocator(
                bucket=row.get('bucket') or media_kind.bucket,
                path=row['storage_path'],
            ),
            folder_id=row.get('folder_id'),
            source_type=SourceType(row.get('sourceType') or 'generate'),
            meta=meta,
            media_kind=media_kind,
        )


@dataclass
class Folder:
    """User-created grouping of library items"""
    user_id: str
    name: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Folder':
        return cls(
            id=row.get('id'),
            user_id=row['user_id'],
            name=row['name'],
            created_at=_parse_timestamp(row.get('created_at')),
        )


@dataclass
class Template:
    """Saved prompt and parameters that pre-fill a generation"""
    user_id: str
    name: str
    default_model: str
    params: Dict[str, Any] = field(default_factory=dict)
    description: str = ''
    readonly: bool = False  # Seeded built-ins
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def with_changes(self, **changes) -> 'Template':
        return replace(self, **changes)

    def to_row(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'user_id': self.user_id,
            'name': self.name,
            'description': self.description,
            'defaultModel': self.default_model,
            'params': self.params,
            'readonly': self.readonly,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Template':
        return cls(
            id=row.get('id'),
            user_id=row['user_id'],
            name=row['name'],
            description=row.get('description') or '',
            default_model=row['defaultModel'],
            params=row.get('params') or {},
            readonly=bool(row.get('readonly')),
            created_at=_parse_timestamp(row.get('created_at')),
        )
