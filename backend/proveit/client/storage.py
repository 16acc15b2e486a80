"""
Client-side key/value storage for the persisted session.

Backends may fail (disk unavailable, quota exceeded); callers are expected to
absorb those failures and keep working in memory.
"""

import aiofiles
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional


class StorageError(Exception):
    """Storage backend could not complete an operation."""


class StorageQuotaExceeded(StorageError):
    """Write refused because it would exceed the backend's quota."""


class KeyValueStorage(ABC):
    """
    Minimal async string store, the Python counterpart of browser local storage.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        pass

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        pass

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete a key; absent keys are ignored."""
        pass


class MemoryStorage(KeyValueStorage):
    """Process-local storage with an optional byte quota across all values."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(v.encode("utf-8")) for k, v in self._data.items() if k != key)
            if used + len(value.encode("utf-8")) > self.quota_bytes:
                raise StorageQuotaExceeded(f"Writing {key!r} would exceed {self.quota_bytes} bytes")
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileStorage(KeyValueStorage):
    """
    One file per key under a base directory.
    Keys are restricted to a filename-safe alphabet so they cannot escape it.
    """

    def __init__(self, base_dir: str = "~/.proveit"):
        self.base_dir = Path(base_dir).expanduser().resolve()

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.base_dir / f"{key}.json"

    async def get(self, key: str) -> Optional[str]:
        path = self._path_for(key)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def set(self, key: str, value: str) -> None:
        path = self._path_for(key)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        # Write then rename so a crash never leaves a half-written record
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(value)
        os.replace(tmp_path, path)

    async def remove(self, key: str) -> None:
        path = self._path_for(key)
        if path.exists():
            path.unlink()
