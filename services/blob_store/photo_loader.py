"""Photo loading with the in-memory image cache in front of S3."""

import logging
from typing import Callable, List, Optional

from services.blob_store.resolver import SignedURLResolver
from services.blob_store.s3_client import BlobStore
from shared.errors import ResolutionError
from shared.image_cache import KeyedBlobCache, bucket_item_photo_key, event_photo_key
from shared.models import BucketListItem, CalendarEvent

logger = logging.getLogger(__name__)


class PhotoLoader:
    """Loads entity photos through the shared cache, downloading only on a miss."""

    def __init__(self, cache: KeyedBlobCache, blob_store: BlobStore, resolver: SignedURLResolver):
        self.cache = cache
        self.blob_store = blob_store
        self.resolver = resolver

    async def load_event_photo(self, event_id: str, photo_ref: str) -> Optional[bytes]:
        return await self._load(event_photo_key(event_id, photo_ref), photo_ref)

    async def load_bucket_item_photo(self, item_id: str, photo_ref: str) -> Optional[bytes]:
        return await self._load(bucket_item_photo_key(item_id, photo_ref), photo_ref)

    async def load_event_photos(self, event: CalendarEvent) -> List[bytes]:
        """Load every photo of an event, skipping any that cannot be fetched."""
        if not event.id:
            return []
        return await self._load_all(event.photo_urls, lambda ref: event_photo_key(event.id, ref))

    async def load_bucket_item_photos(self, item: BucketListItem) -> List[bytes]:
        return await self._load_all(item.photo_urls, lambda ref: bucket_item_photo_key(item.id, ref))

    def cache_event_photos(self, event_id: str, keys: List[str], payloads: List[bytes]) -> None:
        """Seed the cache with freshly uploaded photos so they display without a download."""
        for key, payload in zip(keys, payloads):
            self.cache.put(event_photo_key(event_id, key), payload)

    def cache_bucket_item_photos(self, item_id: str, keys: List[str], payloads: List[bytes]) -> None:
        for key, payload in zip(keys, payloads):
            self.cache.put(bucket_item_photo_key(item_id, key), payload)

    async def _load_all(self, refs, key_for: Callable[[str], str]) -> List[bytes]:
        photos = []
        for ref in refs:
            payload = await self._load(key_for(ref), ref)
            if payload is not None:
                photos.append(payload)
        return photos

    async def _load(self, cache_key: str, photo_ref: str) -> Optional[bytes]:
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            key = self.resolver.storage_key(photo_ref)
        except ResolutionError as e:
            logger.warning(f"Skipping photo {photo_ref}: {e}")
            return None

        payload = await self.blob_store.download_image(key)
        if payload is not None:
            self.cache.put(cache_key, payload)
        return payload
