# Media library module

from .models import Folder, PersistedMediaRecord, SourceType, StorageLocator, Template
from .service import LibraryService, store_media
from .signed_url import SignedUrlCache, UrlState, UrlStatus
from .storage import InMemoryMediaStore, MediaPersistence

__all__ = [
    'Folder',
    'InMemoryMediaStore',
    'LibraryService',
    'MediaPersistence',
    'PersistedMediaRecord',
    'SignedUrlCache',
    'SourceType',
    'StorageLocator',
    'Template',
    'UrlState',
    'UrlStatus',
    'store_media',
]
