"""Resolution of stored blob references to time-limited URLs."""

import logging
from typing import List, Tuple, Union

from services.blob_store.references import BlobReference, parse_blob_reference, storage_key
from services.blob_store.s3_client import BlobStore
from shared.errors import NotFoundError, ResolutionError

logger = logging.getLogger(__name__)


class SignedURLResolver:
    """
    Turns a photo reference into a fetchable signed URL.

    Legacy full URLs are mapped to their storage key first. URLs are
    re-signed on every call; nothing is cached here.
    """

    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    def storage_key(self, ref: Union[str, BlobReference]) -> str:
        return storage_key(ref, self.blob_store.bucket_name)

    async def resolve(self, ref: Union[str, BlobReference]) -> str:
        """
        Raises:
            ResolutionError: If a legacy URL does not embed a storage key
            NotFoundError: If the key does not exist in the store
        """
        if isinstance(ref, str):
            ref = parse_blob_reference(ref)
        return await self.blob_store.get_signed_url(self.storage_key(ref))

    async def resolve_many(self, refs: List[str]) -> List[Tuple[str, str]]:
        """
        Resolve a batch, skipping references that cannot be mapped to a key.

        Returns:
            ``(ref, url)`` pairs for every reference that resolved
        """
        resolved = []
        for ref in refs:
            try:
                resolved.append((ref, await self.resolve(ref)))
            except (ResolutionError, NotFoundError) as e:
                logger.warning(f"Skipping unresolvable photo reference {ref}: {e}")
        return resolved
