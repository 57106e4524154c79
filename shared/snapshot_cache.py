"""Local snapshot cache for instant display before a remote refresh."""

import json
import logging
from typing import Any, Optional

from shared.file_store import LocalFileStore

logger = logging.getLogger(__name__)


def collection_key(collection: str, parent_id: str) -> str:
    """Snapshot key for a whole collection scoped to a parent id."""
    return f"{collection}_{parent_id}"


class LocalSnapshotCache:
    """
    JSON snapshots of collections or single documents, keyed by name.

    The cache is an optimization and never fails its caller: write errors
    are logged, and a missing or corrupt snapshot reads as None. There is
    no expiry; the latest write wins.
    """

    def __init__(self, file_store: LocalFileStore):
        self.file_store = file_store

    def save(self, key: str, value: Any) -> bool:
        """Persist ``value`` as JSON. Returns False if it could not be written."""
        try:
            data = json.dumps(value, separators=(",", ":")).encode("utf-8")
            self.file_store.write(self._file_key(key), data)
            return True
        except (TypeError, ValueError, OSError) as e:
            logger.warning(f"Failed to write snapshot {key}: {e}")
            return False

    def load(self, key: str) -> Optional[Any]:
        try:
            raw = self.file_store.read(self._file_key(key))
        except OSError as e:
            logger.warning(f"Failed to read snapshot {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            logger.warning(f"Discarding unreadable snapshot {key}: {e}")
            return None

    def remove(self, key: str) -> None:
        try:
            self.file_store.remove(self._file_key(key))
        except OSError as e:
            logger.warning(f"Failed to remove snapshot {key}: {e}")

    @staticmethod
    def _file_key(key: str) -> str:
        return f"snapshot_{key}.json"
