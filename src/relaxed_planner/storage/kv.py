"""Key-value stores.

The key-value store is the always-available fallback: a flat mapping of
string keys to string values. Complex values are JSON-encoded by callers
before ``set`` and decoded after ``get``.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from relaxed_planner.exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract async string key-value store."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for ``key`` or None when absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Return all keys currently stored."""


class MemoryKeyValueStore(KeyValueStore):
    """In-process store, used by tests and as a scratch store."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """Durable store backed by a single JSON object file.

    The file is loaded lazily on first access and rewritten whole on every
    mutation through a temp file and rename, so a crash never leaves a
    half-written file. Mutations are serialized by an asyncio lock; file
    I/O runs in a worker thread.
    """

    def __init__(self, path: Path):
        """Initialize the store.

        Args:
            path: JSON file to read and write. Created on first write.
        """
        self.path = path
        self._data: dict[str, str] | None = None
        self._lock = asyncio.Lock()

    def _read_file(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            # Preserve the unreadable file for manual recovery
            backup = self.path.with_suffix(self.path.suffix + ".corrupt")
            self.path.replace(backup)
            logger.error(f"Preferences file {self.path} is corrupt, moved to {backup}: {e}")
            return {}
        if not isinstance(raw, dict):
            logger.error(f"Preferences file {self.path} is not a JSON object, ignoring it")
            return {}
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in raw.items()}

    def _write_file(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp_path.replace(self.path)

    async def _load(self) -> dict[str, str]:
        if self._data is None:
            try:
                self._data = await asyncio.to_thread(self._read_file)
            except OSError as e:
                raise StorageError(
                    f"Cannot read preferences file {self.path}",
                    store="kv",
                    operation="read",
                    cause=e,
                ) from e
        return self._data

    async def _commit(self, data: dict[str, str], operation: str) -> None:
        try:
            await asyncio.to_thread(self._write_file, data)
        except OSError as e:
            raise StorageError(
                f"Cannot write preferences file {self.path}",
                store="kv",
                operation=operation,
                cause=e,
            ) from e

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await self._load()
            return data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await self._load()
            updated = {**data, key: value}
            await self._commit(updated, "set")
            self._data = updated

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await self._load()
            if key not in data:
                return
            updated = {k: v for k, v in data.items() if k != key}
            await self._commit(updated, "remove")
            self._data = updated

    async def keys(self) -> list[str]:
        async with self._lock:
            return list(await self._load())
