"""Calendar event manager."""

import logging
from typing import List

from services.sync_manager.collection_manager import CollectionSyncManager
from shared.errors import LimitExceededError
from shared.models import MAX_PHOTOS, BucketListItem, CalendarEvent, Comment, utcnow

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "events"


class EventManager(CollectionSyncManager):
    """Manages a couple's calendar events, sorted by date."""

    def __init__(self, document_store, blob_store, snapshot_cache):
        super().__init__(
            document_store,
            blob_store,
            snapshot_cache,
            collection=EVENTS_COLLECTION,
            entity_cls=CalendarEvent,
        )

    @property
    def events(self) -> List[CalendarEvent]:
        return self.entities

    async def upload_photos(self, payloads: List[bytes], event: CalendarEvent) -> List[str]:
        """
        Upload photos for an existing event.

        The returned keys still have to be saved on the event with ``update``.

        Raises:
            ValidationError: If the event has no id yet
            LimitExceededError: If the event would exceed the photo cap
        """
        async with self._mutating("upload photos"):
            self._require_id(event)
            if len(event.photo_urls) + len(payloads) > MAX_PHOTOS:
                raise LimitExceededError(f"Events can hold at most {MAX_PHOTOS} photos")
            return await self.blob_store.upload(payloads, event.id, namespace=EVENTS_COLLECTION)

    async def load_comments(self, event_id: str) -> List[Comment]:
        data = await self.document_store.get(self.collection, event_id)
        if data is None:
            return []
        return [Comment.from_document(c) for c in data.get(self.sub_entity_field) or []]

    async def create_event_from_item(self, item: BucketListItem, couple_id: str) -> CalendarEvent:
        """
        Add an event recording a completed bucket-list item.

        The event copies the item's title, description and photos and keeps
        a reference back to the item. Existing events for the same item are
        not checked, so repeated calls create repeated events.
        """
        event = CalendarEvent(
            title=item.title,
            description=item.description,
            date=item.completed_at or utcnow(),
            is_all_day=True,
            photo_urls=item.photo_urls[:MAX_PHOTOS],
            bucket_list_item_id=item.id,
        )
        created = await self.add(event, couple_id)
        logger.info(f"Created event {created.id} for bucket list item {item.id}")
        return created

    async def delete_events_for_item(self, item_id: str, couple_id: str) -> int:
        """
        Delete every event created from the given bucket-list item.

        The photos are left alone because the item still owns them. Having
        no such event is not an error.

        Returns:
            Number of events deleted
        """
        async with self._mutating("delete events for bucket list item"):
            documents = await self.document_store.query(
                self.collection,
                {CalendarEvent.PARENT_FIELD: couple_id, "bucketListItemId": item_id},
            )
            deleted = 0
            try:
                for document in documents:
                    await self.document_store.delete(self.collection, document.id)
                    self._remove(document.id)
                    deleted += 1
            finally:
                # Events removed before a failure stay removed
                if deleted:
                    self._write_snapshot()

            if deleted:
                logger.info(f"Deleted {deleted} events for bucket list item {item_id}")
            return deleted
