"""
Key-Value Backends

String-keyed, string-valued stores the file store persists into.
Three backends are provided: process memory (tests and demos), a JSON file
on disk (local development) and Redis (deployments).
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

logger = logging.getLogger(__name__)


class StoreUnavailableError(RuntimeError):
    """The backend could not be read or written."""


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool: ...
    async def close(self) -> None: ...


class MemoryKeyValueStore:
    """In-process dictionary store.

    State lives only as long as the instance, so it does not survive a
    restart. None of the methods await, which makes each call atomic with
    respect to other coroutines on the same event loop.
    """

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        if self._data.get(key) != expected:
            return False
        self._data[key] = value
        return True

    async def close(self) -> None:
        return None


class JsonFileKeyValueStore:
    """JSON file-backed store for development persistence.

    Structure: a single JSON object mapping key -> value. The whole file is
    rewritten on every mutation; suitable for dev, not high volume.
    """

    name = "json"

    def __init__(self, file_path: Path) -> None:
        self._path = Path(file_path)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot create store directory: {e}") from e
        logger.info(f"JSON store at {self._path}")

    def _load(self) -> Dict[str, str]:
        try:
            if not self._path.exists():
                return {}
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise StoreUnavailableError(f"Cannot read store file {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreUnavailableError(f"Store file {self._path} is not a JSON object")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        # Write to a sibling file first so a crash never truncates the store
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write store file {self._path}: {e}") from e

    async def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    async def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    async def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        data = self._load()
        if data.get(key) != expected:
            return False
        data[key] = value
        self._save(data)
        return True

    async def close(self) -> None:
        return None


class RedisKeyValueStore:
    """Redis-backed store.

    Single-key get/set/delete rely on Redis' own atomicity.
    compare_and_set uses WATCH/MULTI so the write is dropped if the key
    changed after it was read.
    """

    name = "redis"

    def __init__(self, url: Optional[str] = None, client: Optional[aioredis.Redis] = None) -> None:
        if client is None:
            client = aioredis.Redis.from_url(url, decode_responses=True)
        self._client = client
        logger.info(f"Redis store initialized ({url or 'injected client'})")

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis get failed for {key}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self._client.set(key, value)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis set failed for {key}: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StoreUnavailableError(f"Redis delete failed for {key}: {e}") from e

    async def compare_and_set(self, key: str, expected: Optional[str], value: str) -> bool:
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current != expected:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(key, value)
                try:
                    await pipe.execute()
                except WatchError:
                    return False
                return True
        except RedisError as e:
            raise StoreUnavailableError(f"Redis compare-and-set failed for {key}: {e}") from e

    async def close(self) -> None:
        await self._client.aclose()


def create_store(backend: str, path: Optional[Path] = None, url: Optional[str] = None) -> KeyValueStore:
    """
    Build the configured backend.

    Raises:
        ValueError: If the backend name is unknown
    """
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "json":
        return JsonFileKeyValueStore(path)
    if backend == "redis":
        return RedisKeyValueStore(url=url)
    raise ValueError(f"Unknown store backend '{backend}'. Use 'memory', 'json' or 'redis'.")
