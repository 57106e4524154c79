"""Blob references stored on entities: current storage keys or legacy full URLs."""

from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import unquote, urlsplit

from shared.errors import ResolutionError


@dataclass(frozen=True)
class StorageKey:
    """A bare object key in the bucket (current format)."""
    key: str


@dataclass(frozen=True)
class LegacyUrl:
    """A full object URL stored by older clients."""
    url: str

    def extract_key(self, bucket_name: str) -> str:
        """
        Extract the object key from a URL like ``https://bucket.s3.region.amazonaws.com/key``.

        Raises:
            ResolutionError: If the host does not name the bucket or the path is empty
        """
        parts = urlsplit(self.url)
        host = parts.hostname or ""
        if bucket_name not in host:
            raise ResolutionError(f"URL host {host!r} does not belong to bucket {bucket_name}")

        key = unquote(parts.path.lstrip("/"))
        if not key:
            raise ResolutionError(f"URL has no object key: {self.url}")
        return key


BlobReference = Union[StorageKey, LegacyUrl]


def parse_blob_reference(raw: str) -> BlobReference:
    if raw.startswith(("https://", "http://")):
        return LegacyUrl(raw)
    return StorageKey(raw)


def storage_key(raw: Union[str, StorageKey, LegacyUrl], bucket_name: str) -> str:
    """Map any stored reference to its object key, raising ResolutionError if impossible."""
    ref = parse_blob_reference(raw) if isinstance(raw, str) else raw
    if isinstance(ref, LegacyUrl):
        return ref.extract_key(bucket_name)
    return ref.key


def storage_key_or_none(raw: str, bucket_name: str) -> Optional[str]:
    try:
        return storage_key(raw, bucket_name)
    except ResolutionError:
        return None
