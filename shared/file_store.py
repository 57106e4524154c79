"""Local persisted key-value store backed by files in one directory."""

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class LocalFileStore:
    """Stores one file per key under ``base_dir``. Writes replace the file atomically."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        if not key:
            raise ValueError("key must not be empty")
        return self.base_dir / _UNSAFE_CHARS.sub("_", key)

    def read(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def write(self, key: str, data: bytes) -> None:
        """
        Write ``data`` under ``key``.

        The bytes go to a temporary file in the same directory which then
        replaces the target, so readers see either the old or the new file.
        """
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def remove(self, key: str) -> None:
        try:
            self.path_for(key).unlink()
            logger.debug(f"Removed local file for key: {key}")
        except FileNotFoundError:
            pass
