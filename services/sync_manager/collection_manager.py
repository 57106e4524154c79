"""Generic cache-and-reconcile manager for one remote collection."""

import logging
from typing import Any, List, Optional

from services.sync_manager.base import ManagerState, PendingMutation, SyncManagerBase
from shared.errors import LimitExceededError, SyncError, ValidationError
from shared.models import MAX_COMMENTS, MAX_PHOTOS, utcnow
from shared.snapshot_cache import collection_key

logger = logging.getLogger(__name__)


class CollectionSyncManager(SyncManagerBase):
    """
    Mirrors the entities of one collection that share a parent id.

    ``load`` shows the local snapshot at once and then replaces it with the
    server copy. Mutations write to the document store first and apply to
    the in-memory list once the store has accepted them, except
    ``optimistic_update``, which applies first and reverts on failure.
    Every successful change is written through to the snapshot cache.

    Entity classes provide ``PARENT_FIELD``, ``from_document``,
    ``to_document``, ``sort_key`` and the ``with_*`` builders.
    """

    def __init__(
        self,
        document_store,
        blob_store,
        snapshot_cache,
        collection: str,
        entity_cls,
        sub_entity_field: str = "comments"
    ):
        super().__init__(document_store, blob_store, snapshot_cache)
        self.collection = collection
        self.entity_cls = entity_cls
        self.sub_entity_field = sub_entity_field
        self.parent_id: Optional[str] = None
        self.pending: dict = {}
        self._entities: List[Any] = []

    @property
    def entities(self) -> List[Any]:
        return list(self._entities)

    def find(self, entity_id: str) -> Optional[Any]:
        for entity in self._entities:
            if entity.id == entity_id:
                return entity
        return None

    async def load(self, parent_id: str) -> None:
        """
        Publish the cached snapshot, then refresh from the server.

        A failed refresh sets ``error_message`` and keeps whatever was
        already published.
        """
        async with self._lock:
            self._clear_error()
            self.state = ManagerState.LOADING
            self.parent_id = parent_id

            cached = self._read_snapshot(parent_id)
            if cached is not None:
                self._entities = cached
            published = cached is not None

            try:
                documents = await self.document_store.query(
                    self.collection, {self.entity_cls.PARENT_FIELD: parent_id}
                )

                loaded = []
                for document in documents:
                    try:
                        loaded.append(self.entity_cls.from_document(document.data, document.id))
                    except (KeyError, TypeError, ValueError) as e:
                        logger.warning(f"Skipping malformed {self.collection} document {document.id}: {e}")

                self._entities = self._sorted(loaded)
                published = True
                self._write_snapshot()
                logger.info(f"Loaded {len(loaded)} {self.collection} for {parent_id}")
            except SyncError as e:
                self._record_failure(f"load {self.collection}", e)
            finally:
                self.state = ManagerState.READY if published else ManagerState.IDLE

    async def add(self, entity, parent_id: str):
        """
        Create ``entity`` remotely and insert the server-confirmed copy.

        Not optimistic: the entity is only addressable once the server has
        assigned its id, so local state is untouched on failure.

        Returns:
            The stored entity, carrying its new id
        """
        async with self._mutating(f"add to {self.collection}"):
            if not parent_id:
                raise ValidationError("A parent id is required to add an entity")
            self._check_caps(entity)

            new_entity = entity.with_parent(parent_id, utcnow())
            doc_id = await self.document_store.create(self.collection, new_entity.to_document())
            confirmed = new_entity.with_id(doc_id)

            if self.parent_id is None:
                self.parent_id = parent_id
            if parent_id == self.parent_id:
                self._entities = self._sorted(self._entities + [confirmed])
                self._write_snapshot()
            return confirmed

    async def update(self, entity):
        """Overwrite the whole document (last write wins), then replace the local copy."""
        async with self._mutating(f"update {self.collection}"):
            self._require_id(entity)
            self._check_caps(entity)
            await self.document_store.set_full_document(self.collection, entity.id, entity.to_document())
            if self._replace(entity):
                self._write_snapshot()
            return entity

    async def optimistic_update(self, entity) -> PendingMutation:
        """
        Apply ``entity`` locally, then write it.

        While the write is in flight the change is listed in ``pending``.
        On failure the previous value is restored, the mutation is marked
        reverted, and the error is re-raised.
        """
        async with self._mutating(f"update {self.collection}"):
            self._require_id(entity)
            self._check_caps(entity)
            previous = self.find(entity.id)
            mutation = PendingMutation(entity_id=entity.id, previous=previous, proposed=entity)
            self.pending[entity.id] = mutation
            self._upsert(entity)

            try:
                await self.document_store.set_full_document(self.collection, entity.id, entity.to_document())
            except SyncError:
                if previous is not None:
                    self._replace(previous)
                else:
                    self._remove(entity.id)
                mutation.revert()
                raise
            finally:
                self.pending.pop(entity.id, None)

            mutation.confirm()
            self._write_snapshot()
            return mutation

    async def delete(self, entity) -> None:
        """
        Delete an entity and its photos.

        Photo deletion is best effort and never blocks the document delete.
        If the document delete fails, the local list is left unchanged.
        """
        async with self._mutating(f"delete from {self.collection}"):
            self._require_id(entity)
            failed = await self._delete_blobs(entity.blob_refs)
            if failed:
                logger.warning(f"Orphaned {len(failed)} photos of {self.collection}/{entity.id}")

            await self.document_store.delete(self.collection, entity.id)
            self._remove(entity.id)
            self._write_snapshot()

    async def append_sub_entity(self, parent, sub_entity):
        """
        Append a comment with an atomic array append, not a document rewrite.

        Raises:
            LimitExceededError: If the parent already holds the maximum number of comments
        """
        async with self._mutating(f"add comment to {self.collection}"):
            self._require_id(parent)
            current = self.find(parent.id) or parent
            if len(current.sub_entities) >= MAX_COMMENTS:
                raise LimitExceededError(f"Comment limit of {MAX_COMMENTS} reached")

            await self.document_store.append_to_array_field(
                self.collection, parent.id, self.sub_entity_field, sub_entity.to_document()
            )
            updated = current.with_sub_entity(sub_entity)
            if self._replace(updated):
                self._write_snapshot()
            return updated

    def snapshot_key(self, parent_id: str) -> str:
        return collection_key(self.collection, parent_id)

    def _read_snapshot(self, parent_id: str) -> Optional[List[Any]]:
        cached = self.snapshot_cache.load(self.snapshot_key(parent_id))
        if not isinstance(cached, list):
            return None
        try:
            return [self.entity_cls.from_document(item) for item in cached]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable {self.collection} snapshot: {e}")
            return None

    def _write_snapshot(self) -> None:
        if self.parent_id is None:
            return
        self.snapshot_cache.save(
            self.snapshot_key(self.parent_id),
            [dict(entity.to_document(), id=entity.id) for entity in self._entities],
        )

    def _sorted(self, entities) -> List[Any]:
        return sorted(entities, key=lambda entity: entity.sort_key())

    def _replace(self, entity) -> bool:
        for index, existing in enumerate(self._entities):
            if existing.id == entity.id:
                entities = list(self._entities)
                entities[index] = entity
                self._entities = self._sorted(entities)
                return True
        return False

    def _upsert(self, entity) -> None:
        if not self._replace(entity):
            self._entities = self._sorted(self._entities + [entity])

    def _remove(self, entity_id: str) -> None:
        self._entities = [entity for entity in self._entities if entity.id != entity_id]

    @staticmethod
    def _require_id(entity) -> None:
        if not entity.id:
            raise ValidationError("Entity id is required")

    @staticmethod
    def _check_caps(entity) -> None:
        if len(entity.blob_refs) > MAX_PHOTOS:
            raise LimitExceededError(f"Photo limit of {MAX_PHOTOS} exceeded")
        if len(entity.sub_entities) > MAX_COMMENTS:
            raise LimitExceededError(f"Comment limit of {MAX_COMMENTS} exceeded")
