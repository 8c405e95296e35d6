"""
Key-value stores for persisted snapshots.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Protocol

# ═══════════════════════════════════════════════════════════════════════════════
# KeyValueStore Protocol — Users Implement This
# ═══════════════════════════════════════════════════════════════════════════════


class KeyValueStore(Protocol):
    """
    String key → string value storage.

    Implement this for custom backends (Redis, browser storage bridge, etc.)

    Example:
        class RedisStore:
            def __init__(self, client: Redis) -> None:
                self.client = client

            @property
            def name(self) -> str:
                return "redis"

            async def get(self, key: str) -> str | None:
                data = await self.client.get(key)
                return data.decode() if data else None

            async def set(self, key: str, value: str) -> None:
                await self.client.set(key, value)

            async def delete(self, key: str) -> bool:
                return await self.client.delete(key) > 0
    """

    @property
    def name(self) -> str:
        """Store name for logs."""
        ...

    async def get(self, key: str) -> str | None:
        """Get value. Returns None on miss."""
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def delete(self, key: str) -> bool:
        """Delete key. Returns True if existed."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store (Default)
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore:
    """Process-local store. Lost on exit."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    @property
    def name(self) -> str:
        return "memory"

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def __contains__(self, key: str) -> bool:
        return key in self._data


# ═══════════════════════════════════════════════════════════════════════════════
# File Store
# ═══════════════════════════════════════════════════════════════════════════════

_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


class FileStore:
    """
    One file per key under a directory. File IO runs in a worker thread.

    Example:
        store = FileStore(Path.home() / ".cache" / "cartsync")
    """

    def __init__(self, directory: Path | str) -> None:
        self._dir = Path(directory)

    @property
    def name(self) -> str:
        return "file"

    def _path(self, key: str) -> Path:
        return self._dir / f"{_UNSAFE.sub('_', key)}.json"

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, self._path(key))

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, self._path(key), value)

    async def delete(self, key: str) -> bool:
        return await asyncio.to_thread(self._unlink, self._path(key))

    # Blocking file IO, run off the event loop.

    @staticmethod
    def _read(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, path: Path, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    @staticmethod
    def _unlink(path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
)
