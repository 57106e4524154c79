"""Size- and age-bounded in-memory cache for image payloads."""

import hashlib
import logging
import time
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50
DEFAULT_TTL_SECONDS = 60 * 60


def _ref_digest(photo_ref: str) -> str:
    return hashlib.sha256(photo_ref.encode("utf-8")).hexdigest()[:16]


def event_photo_key(event_id: str, photo_ref: str) -> str:
    """Cache key for a photo attached to a calendar event."""
    return f"event:{event_id}:{_ref_digest(photo_ref)}"


def bucket_item_photo_key(item_id: str, photo_ref: str) -> str:
    """Cache key for a photo attached to a bucket-list item."""
    return f"bucket:{item_id}:{_ref_digest(photo_ref)}"


def _format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} bytes"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


class KeyedBlobCache:
    """
    Maps opaque keys to image bytes, evicting the least recently accessed.

    Entries older than the TTL (measured from the last access) are treated
    as absent and dropped when read. The cache has no internal locking, so
    every call must come from one coordination context.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the cache.

        Args:
            capacity: Maximum number of entries
            ttl_seconds: Age after the last access at which an entry expires
            clock: Source of the current time in seconds
        """
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._payloads: Dict[str, bytes] = {}
        self._last_access: Dict[str, float] = {}
        self.purge_expired()

    def __len__(self) -> int:
        return len(self._payloads)

    def __contains__(self, key: str) -> bool:
        return key in self._payloads

    def put(self, key: str, payload: bytes) -> None:
        """Store a payload, evicting the oldest entry first if the cache is full."""
        if key not in self._payloads and len(self._payloads) >= self.capacity:
            self._evict_oldest()

        self._payloads[key] = payload
        self._last_access[key] = self._clock()
        logger.debug(f"Cached image for key: {key}")

    def get(self, key: str) -> Optional[bytes]:
        """Return the payload and refresh its access time, or None if absent or expired."""
        payload = self._payloads.get(key)
        if payload is None:
            return None

        now = self._clock()
        if now - self._last_access[key] > self.ttl_seconds:
            self.remove(key)
            logger.debug(f"Expired cache entry: {key}")
            return None

        self._last_access[key] = now
        return payload

    def remove(self, key: str) -> None:
        self._payloads.pop(key, None)
        self._last_access.pop(key, None)

    def clear(self) -> None:
        self._payloads.clear()
        self._last_access.clear()
        logger.info("Cleared image cache")

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [
            key for key, accessed in self._last_access.items()
            if now - accessed > self.ttl_seconds
        ]
        for key in expired:
            self.remove(key)

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    @property
    def stats(self) -> dict:
        """Entry count and approximate payload size, for diagnostics."""
        total_bytes = sum(len(payload) for payload in self._payloads.values())
        return {
            "count": len(self._payloads),
            "bytes": total_bytes,
            "memory_usage": _format_bytes(total_bytes),
        }

    def _evict_oldest(self) -> None:
        if not self._last_access:
            return
        oldest_key = min(self._last_access, key=self._last_access.get)
        self.remove(oldest_key)
        logger.debug(f"Removed oldest cache entry: {oldest_key}")
