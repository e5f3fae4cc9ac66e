# Key-value byte stores used to persist the gallery blob.
#
# The gallery only needs whole-blob get / put under a fixed key, so
# any backend that can store bytes atomically per key will do:
#
#   StorageBackend  (abstract)
#       └── InMemoryBackend: dict-backed, for tests and ephemeral use
#       └── FileBackend: one file per key, atomic replace on write

from __future__ import annotations

import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from utils.logger import get_logger

logger = get_logger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class StorageBackend(ABC):
    """Minimal get / put / delete byte store."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under *key*, or None if absent."""

    @abstractmethod
    def put(self, key: str, value: bytes) -> None:
        """Store *value* under *key*, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*. Returns True if it existed."""

    @abstractmethod
    def keys(self) -> List[str]:
        """Return every stored key."""

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class InMemoryBackend(StorageBackend):
    """Process-local dict store."""

    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

    def __repr__(self) -> str:
        return f"InMemoryBackend(keys={len(self._data)})"


class FileBackend(StorageBackend):
    """
    Stores each key as ``<directory>/<key>.json``.

    Writes go to a temporary file in the same directory followed by
    ``os.replace`` so a reader never observes a half-written blob.
    """

    suffix = ".json"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / f"{key}{self.suffix}"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def put(self, key: str, value: bytes) -> None:
        path = self._path(key)
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Blob saved → {path} ({len(value)} bytes)")

    def delete(self, key: str) -> bool:
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob(f"*{self.suffix}"))

    def __repr__(self) -> str:
        return f"FileBackend(directory={str(self.directory)!r})"
