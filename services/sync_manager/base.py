"""State, error reporting and single-writer plumbing shared by the sync managers."""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional

from services.blob_store.references import storage_key_or_none
from services.blob_store.s3_client import BlobStore
from shared.document_store import DocumentStore
from shared.errors import SyncError
from shared.snapshot_cache import LocalSnapshotCache

logger = logging.getLogger(__name__)


class ManagerState(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    MUTATING = "mutating"


class MutationState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REVERTED = "reverted"


@dataclass
class PendingMutation:
    """An optimistic change applied locally before the remote write settles."""
    entity_id: str
    previous: Optional[Any]
    proposed: Any
    state: MutationState = MutationState.PENDING

    def confirm(self) -> None:
        self.state = MutationState.CONFIRMED

    def revert(self) -> None:
        self.state = MutationState.REVERTED


class SyncManagerBase:
    """
    Owns the in-memory copy of one remote collection or document.

    All operations on an instance run one at a time under ``_lock``, which
    is the single-writer context: operations issued in sequence apply in
    that order. ``error_message`` is cleared when an operation starts and
    set when a remote call fails.
    """

    def __init__(
        self,
        document_store: DocumentStore,
        blob_store: BlobStore,
        snapshot_cache: LocalSnapshotCache
    ):
        self.document_store = document_store
        self.blob_store = blob_store
        self.snapshot_cache = snapshot_cache
        self.state = ManagerState.IDLE
        self.error_message: Optional[str] = None
        self.last_error: Optional[SyncError] = None
        self._lock = asyncio.Lock()

    @property
    def is_loading(self) -> bool:
        return self.state in (ManagerState.LOADING, ManagerState.MUTATING)

    @asynccontextmanager
    async def _mutating(self, action: str):
        async with self._lock:
            previous = self.state
            self.state = ManagerState.MUTATING
            self._clear_error()
            try:
                yield
            except SyncError as e:
                self._record_failure(action, e)
                raise
            finally:
                self.state = previous

    def _clear_error(self) -> None:
        self.error_message = None
        self.last_error = None

    def _record_failure(self, action: str, error: SyncError) -> None:
        self.error_message = f"Failed to {action}: {error}"
        self.last_error = error
        logger.error(f"{type(self).__name__}: {self.error_message}")

    def _blob_keys(self, refs) -> List[str]:
        """Storage keys for an entity's photo references; unmappable legacy URLs are skipped."""
        keys = []
        for ref in refs:
            key = storage_key_or_none(ref, self.blob_store.bucket_name)
            if key is None:
                logger.warning(f"Skipping photo reference with no storage key: {ref}")
                continue
            keys.append(key)
        return keys

    async def _delete_blobs(self, refs) -> List[str]:
        """Best-effort cascading delete of photos. Returns the keys that failed."""
        keys = self._blob_keys(refs)
        if not keys:
            return []
        failed = await self.blob_store.delete_many(keys)
        logger.info(f"Deleted {len(keys) - len(failed)} of {len(keys)} photos from S3")
        return failed
