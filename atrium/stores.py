"""Cache store and content repository implementations.

Key classes:
- CacheKeys: Well-known cache keys.
- InMemoryCacheStore: Process-local CacheStore, used by tests and the CLI.
- RedisCacheStore: CacheStore backed by redis.asyncio.
- InMemoryContentRepository: ContentRepository over a nested mapping.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from pathlib import Path
from typing import Any

import redis.asyncio as aioredis
import yaml
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from .errors import TransientIOError

logger = logging.getLogger(__name__)


class CacheKeys:
    """Keys written by the pipeline. None of them carry a TTL."""

    MODULES_INDEX = "atrium-modules-index"
    SETTINGS = "atrium-system-settings"


class InMemoryCacheStore:
    """Dictionary-backed cache store."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._data[key] = value

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def aclose(self) -> None:
        return None

    def __contains__(self, key: str) -> bool:
        return key in self._data


class RedisCacheStore:
    """Cache store backed by Redis.

    The client is created lazily on first use so constructing the store never
    touches the network. Connection and timeout failures surface as
    TransientIOError.
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", client: Any = None):
        """Initialize the store.

        Args:
            redis_url: Redis connection URL.
            client: Optional pre-built ``redis.asyncio.Redis`` client.
        """
        self._redis_url = redis_url
        self._client = client

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = aioredis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            return await self._get_client().get(key)
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise TransientIOError(f"Cache read failed for '{key}'", exc) from exc

    async def set(self, key: str, value: str) -> None:
        try:
            await self._get_client().set(key, value)
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise TransientIOError(f"Cache write failed for '{key}'", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._get_client().delete(key)
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise TransientIOError(f"Cache delete failed for '{key}'", exc) from exc

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Closed Redis client for %s", self._redis_url)


class InMemoryContentRepository:
    """Content repository over a ``{ref_type: {ref_id: entity}}`` mapping.

    Returned entities are deep copies so callers can never mutate the store.
    """

    def __init__(self, entities: dict[str, dict[str, Any]] | None = None):
        self._entities: dict[str, dict[str, Any]] = {
            str(ref_type): {str(k): v for k, v in (items or {}).items()}
            for ref_type, items in (entities or {}).items()
        }

    @classmethod
    def from_file(cls, path: Path) -> InMemoryContentRepository:
        """Load entities from a YAML (or JSON) file.

        Args:
            path: File containing a mapping of type to id to entity.

        Returns:
            A populated repository.
        """
        with open(path, encoding="utf-8") as f:
            payload = yaml.safe_load(f) or {}
        if not isinstance(payload, dict):
            raise ValueError(f"{path}: expected a mapping of content types")
        return cls(payload)

    def add(self, ref_type: str, ref_id: str, entity: dict[str, Any]) -> None:
        self._entities.setdefault(ref_type, {})[ref_id] = entity

    async def find_by_type_and_id(
        self, ref_type: str, ref_id: str
    ) -> dict[str, Any] | None:
        entity = self._entities.get(ref_type, {}).get(ref_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def find_all(self, ref_type: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(e) for e in self._entities.get(ref_type, {}).values()]
