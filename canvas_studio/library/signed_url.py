"""
Signed-URL cache for stored media.

A signed URL is only valid for a bounded window and only for the
authorization that minted it, so entries are keyed by
``(bucket, path, auth_context)`` and re-resolved shortly before expiry.
Missing objects resolve to ``NOT_FOUND`` (a terminal state for that key), never
to a permanent ``LOADING``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from canvas_inference.config.settings import SIGNED_URL_TTL_SECONDS
from canvas_inference.errors import NotFoundError, StorageError

from .models import StorageLocator
from .storage import MediaPersistence

logger = logging.getLogger(__name__)

# Re-mint this many seconds before the provider-side expiry.
REFRESH_MARGIN_SECONDS = 30

CacheKey = Tuple[str, str, Optional[str]]


class UrlStatus(Enum):
    NO_ASSET = "no_asset"
    LOADING = "loading"
    READY = "ready"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class UrlState:
    status: UrlStatus
    url: Optional[str] = None
    expires_at: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {"status": self.status.value, "url": self.url, "error": self.error}


NO_ASSET = UrlState(UrlStatus.NO_ASSET)
LOADING = UrlState(UrlStatus.LOADING)


class SignedUrlCache:
    """
    Resolves storage locators to signed URLs with a TTL cache.

    Args:
        persistence:  Backend able to mint signed URLs.
        ttl_seconds:  Validity requested for each URL (five minutes by default).
        clock:        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        persistence: MediaPersistence,
        ttl_seconds: int = SIGNED_URL_TTL_SECONDS,
        refresh_margin: float = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.persistence = persistence
        self.ttl_seconds = ttl_seconds
        self.refresh_margin = min(refresh_margin, ttl_seconds / 2)
        self.clock = clock
        self._entries: Dict[CacheKey, UrlState] = {}
        self._lock = Lock()

    @staticmethod
    def _key(locator: StorageLocator, auth_context: Optional[str]) -> CacheKey:
        return (locator.bucket, locator.path, auth_context)

    def _is_fresh(self, state: UrlState) -> bool:
        return state.expires_at is not None and self.clock() < state.expires_at - self.refresh_margin

    def peek(self, locator: Optional[StorageLocator], auth_context: Optional[str] = None) -> UrlState:
        """Current state without triggering a resolve."""
        if locator is None:
            return NO_ASSET
        with self._lock:
            state = self._entries.get(self._key(locator, auth_context))
        if state is None or not self._is_fresh(state):
            return LOADING
        return state

    async def resolve(
        self,
        locator: Optional[StorageLocator],
        auth_context: Optional[str] = None,
    ) -> UrlState:
        """
        Return a usable state for ``locator`` under ``auth_context``.

        No backend call is made when ``locator`` is None or a fresh entry
        exists for the same key.
        """
        if locator is None:
            return NO_ASSET
        key = self._key(locator, auth_context)
        with self._lock:
            cached = self._entries.get(key)
        if cached is not None and self._is_fresh(cached):
            return cached

        expires_at = self.clock() + self.ttl_seconds
        try:
            url = await self.persistence.create_signed_url(locator, self.ttl_seconds)
            state = UrlState(UrlStatus.READY, url=url, expires_at=expires_at)
        except NotFoundError as exc:
            logger.warning("Signed URL unavailable for %s/%s: %s", locator.bucket, locator.path, exc)
            state = UrlState(UrlStatus.NOT_FOUND, expires_at=expires_at, error=str(exc))
        except StorageError as exc:
            # Permission problems surface as generic storage errors on some backends
            logger.warning("Signed URL failed for %s/%s: %s", locator.bucket, locator.path, exc)
            state = UrlState(UrlStatus.NOT_FOUND, expires_at=expires_at, error=str(exc))

        with self._lock:
            self._entries[key] = state
        return state

    def invalidate(self, locator: Optional[StorageLocator] = None) -> None:
        """Drop entries for one locator (any auth context), or everything."""
        with self._lock:
            if locator is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[:2] == (locator.bucket, locator.path)]:
                del self._entries[key]
