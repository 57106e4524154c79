"""Bucket list manager: one document per couple holding every item."""

import logging
from typing import Iterable, List, Optional

from services.sync_manager.base import ManagerState, SyncManagerBase
from shared.errors import LimitExceededError, NotFoundError, SyncError, ValidationError
from shared.models import MAX_PHOTOS, BucketList, BucketListItem, utcnow

logger = logging.getLogger(__name__)

BUCKET_LISTS_COLLECTION = "bucketLists"
PHOTO_NAMESPACE = "bucket_list_items"


class BucketListManager(SyncManagerBase):
    """
    Mirrors a single bucket-list document.

    Items live inside the document, so every item change rewrites the
    whole document. Two partners editing at once resolve as last write wins.
    """

    def __init__(self, document_store, blob_store, snapshot_cache):
        super().__init__(document_store, blob_store, snapshot_cache)
        self.bucket_list: Optional[BucketList] = None

    @property
    def items(self) -> List[BucketListItem]:
        return list(self.bucket_list.items) if self.bucket_list else []

    @staticmethod
    def snapshot_key(bucket_list_id: str) -> str:
        return f"bucketList_{bucket_list_id}"

    async def load(self, bucket_list_id: str) -> None:
        """Publish the cached bucket list at once, then refresh it from the server."""
        async with self._lock:
            cached = self._read_snapshot(bucket_list_id)
            if cached is not None:
                self.bucket_list = cached
                self.state = ManagerState.READY
            await self._refresh(bucket_list_id)

    async def refresh(self, bucket_list_id: str) -> None:
        async with self._lock:
            await self._refresh(bucket_list_id)

    async def _refresh(self, bucket_list_id: str) -> None:
        self._clear_error()
        previous = self.state
        self.state = ManagerState.LOADING

        try:
            data = await self.document_store.get(BUCKET_LISTS_COLLECTION, bucket_list_id)
        except SyncError as e:
            self._record_failure("refresh bucket list", e)
            self.state = previous
            return

        if data is None:
            self.bucket_list = None
            self.snapshot_cache.remove(self.snapshot_key(bucket_list_id))
        else:
            self.bucket_list = BucketList.from_document(data, bucket_list_id)
            self._write_snapshot()
        self.state = ManagerState.READY

    async def add_item(self, title: str, description: str) -> BucketListItem:
        item = BucketListItem(title=title, description=description, created_at=utcnow())
        async with self._mutating("add bucket item"):
            bucket_list = self._require_loaded()
            await self._write(bucket_list.with_items(bucket_list.items + (item,)))
        return item

    async def toggle_item_completion(self, item: BucketListItem) -> BucketListItem:
        async with self._mutating("update item"):
            bucket_list = self._require_loaded()
            current = bucket_list.find_item(item.id)
            if current is None:
                raise NotFoundError(f"Item {item.id} not found")
            toggled = current.toggled()
            await self._write(self._replacing(bucket_list, toggled))
        return toggled

    async def update_item(self, item: BucketListItem) -> BucketListItem:
        """
        Replace an item in the loaded bucket list and rewrite the document.

        Raises:
            NotFoundError: If the item is not in the loaded bucket list
        """
        async with self._mutating("update bucket list item"):
            self._check_photo_cap(item)
            bucket_list = self._require_loaded()
            if bucket_list.find_item(item.id) is None:
                raise NotFoundError(f"Item {item.id} not found")
            await self._write(self._replacing(bucket_list, item))
        return item

    async def update_item_direct(self, bucket_list_id: str, item: BucketListItem) -> BucketListItem:
        """
        Update an item against the latest server copy rather than the local one.

        Raises:
            NotFoundError: If the bucket list or the item does not exist remotely
        """
        async with self._mutating("update bucket list item"):
            self._check_photo_cap(item)
            data = await self.document_store.get(BUCKET_LISTS_COLLECTION, bucket_list_id)
            if data is None:
                raise NotFoundError(f"Bucket list {bucket_list_id} not found")

            latest = BucketList.from_document(data, bucket_list_id)
            if latest.find_item(item.id) is None:
                raise NotFoundError(f"Item {item.id} not found in bucket list")

            updated = self._replacing(latest, item)
            await self.document_store.set_full_document(
                BUCKET_LISTS_COLLECTION, bucket_list_id, updated.to_document()
            )
            if self.bucket_list is not None and self.bucket_list.id == bucket_list_id:
                self.bucket_list = updated
                self._write_snapshot()
            logger.info(f"Successfully updated bucket list item: {item.title}")
        return item

    async def delete_item(self, item: BucketListItem) -> None:
        await self.delete_items([item])

    async def delete_items(self, items: Iterable[BucketListItem]) -> None:
        """
        Delete items and their photos in one document rewrite.

        Photo deletion is best effort; a failed rewrite leaves the local
        bucket list unchanged.
        """
        items = list(items)
        async with self._mutating("delete items"):
            bucket_list = self._require_loaded()
            doomed = {item.id for item in items}

            for item in items:
                if item.photo_urls:
                    await self._delete_blobs(item.photo_urls)
                    logger.info(f"Deleted photos for bucket list item: {item.title}")

            remaining = [item for item in bucket_list.items if item.id not in doomed]
            await self._write(bucket_list.with_items(remaining))

    async def upload_item_photos(self, item: BucketListItem, payloads: List[bytes]) -> BucketListItem:
        """
        Upload photos and attach their keys to the item.

        If the document rewrite fails, the new uploads are deleted again.

        Raises:
            LimitExceededError: If the item would exceed the photo cap
        """
        async with self._mutating("upload photos"):
            if len(item.photo_urls) + len(payloads) > MAX_PHOTOS:
                raise LimitExceededError(f"Bucket list items can hold at most {MAX_PHOTOS} photos")
            bucket_list = self._require_loaded()
            current = bucket_list.find_item(item.id)
            if current is None:
                raise NotFoundError(f"Item {item.id} not found")

            keys = await self.blob_store.upload(payloads, item.id, namespace=PHOTO_NAMESPACE)
            updated = current.with_photos(current.photo_urls + tuple(keys))
            try:
                await self._write(self._replacing(bucket_list, updated))
            except SyncError:
                await self.blob_store.delete_many(keys)
                raise
        return updated

    async def remove_item_photos(self, item: BucketListItem, photo_refs: List[str]) -> BucketListItem:
        """Detach photos from an item and delete them from storage."""
        async with self._mutating("remove photos"):
            bucket_list = self._require_loaded()
            current = bucket_list.find_item(item.id)
            if current is None:
                raise NotFoundError(f"Item {item.id} not found")

            removing = set(photo_refs)
            updated = current.with_photos(ref for ref in current.photo_urls if ref not in removing)
            await self._write(self._replacing(bucket_list, updated))
            await self._delete_blobs([ref for ref in current.photo_urls if ref in removing])
        return updated

    def _require_loaded(self) -> BucketList:
        if self.bucket_list is None or not self.bucket_list.id:
            raise ValidationError("Bucket list is not loaded")
        return self.bucket_list

    async def _write(self, updated: BucketList) -> None:
        await self.document_store.set_full_document(
            BUCKET_LISTS_COLLECTION, updated.id, updated.to_document()
        )
        self.bucket_list = updated
        self._write_snapshot()

    def _read_snapshot(self, bucket_list_id: str) -> Optional[BucketList]:
        cached = self.snapshot_cache.load(self.snapshot_key(bucket_list_id))
        if not isinstance(cached, dict):
            return None
        try:
            return BucketList.from_document(cached, bucket_list_id)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable bucket list snapshot: {e}")
            return None

    def _write_snapshot(self) -> None:
        if self.bucket_list is None or not self.bucket_list.id:
            return
        self.snapshot_cache.save(
            self.snapshot_key(self.bucket_list.id),
            dict(self.bucket_list.to_document(), id=self.bucket_list.id),
        )

    @staticmethod
    def _replacing(bucket_list: BucketList, item: BucketListItem) -> BucketList:
        return bucket_list.with_items(
            item if existing.id == item.id else existing for existing in bucket_list.items
        )

    @staticmethod
    def _check_photo_cap(item: BucketListItem) -> None:
        if len(item.photo_urls) > MAX_PHOTOS:
            raise LimitExceededError(f"Photo limit of {MAX_PHOTOS} exceeded")
