"""
Key-value stores backing the cache and the rate limiter.

Each get/set/delete is atomic on its own. Nothing here makes a sequence of
calls atomic.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from hashlib import sha256
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from settings import Settings


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store a JSON-compatible value, replacing any previous one."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class MemoryStore(KeyValueStore):
    """In-process store for local development and tests."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, Optional[float]]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at < self._clock():
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class JsonFileStore(KeyValueStore):
    """One JSON document per key under a directory."""

    def __init__(self, directory: str, *, clock: Callable[[], float] = time.time) -> None:
        self._directory = Path(directory)
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self._directory / f"{sha256(key.encode('utf-8')).hexdigest()}.json"

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        await asyncio.to_thread(self._write, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)

    def _read(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None

        if not isinstance(payload, dict) or payload.get("key") != key:
            return None
        expires_at = payload.get("expires_at")
        if isinstance(expires_at, (int, float)) and expires_at < self._clock():
            path.unlink(missing_ok=True)
            return None
        return payload.get("value")

    def _write(self, key: str, value: Any, ttl_seconds: Optional[int]) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "key": key,
            "value": value,
            "expires_at": self._clock() + ttl_seconds if ttl_seconds else None,
        }
        path.write_text(json.dumps(payload, ensure_ascii=True), encoding="utf-8")


def create_store(settings: Settings) -> KeyValueStore:
    if settings.store_backend == "file":
        return JsonFileStore(settings.store_dir)
    if settings.store_backend == "memory":
        return MemoryStore()
    raise ValueError(
        f"Unknown store_backend='{settings.store_backend}'. Allowed: file, memory."
    )
