"""Key-value store for sessions, cache entries and API keys.

Values are JSON-encoded and written under namespaced keys (``session:``,
``cache:``, ``apikeys:``) so record types never collide. Expiry is delegated
to the backend through per-key TTLs.
"""

import logging
import re
import time
from typing import Any, Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.exceptions.base import ValidationError
from app.exceptions.storage import EncodingError, StorageUnavailableError
from app.shared.serialization import dump_json, load_json

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session:"
CACHE_PREFIX = "cache:"
API_KEYS_PREFIX = "apikeys:"

DEFAULT_SESSION_TTL = 3600
DEFAULT_CACHE_TTL = 300
DEFAULT_LIST_LIMIT = 1000


class KeyValueBackend(Protocol):
    """Raw string storage used by ``KeyValueStore``."""

    async def get(self, key: str) -> str | None:
        """Return the stored string or None."""

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Store ``value``, expiring after ``ttl`` seconds when given."""

    async def delete(self, key: str) -> None:
        """Remove ``key``; absent keys are not an error."""

    async def list(self, prefix: str, limit: int) -> list[str]:
        """Return up to ``limit`` full keys starting with ``prefix``."""

    async def close(self) -> None:
        """Release connections."""


class MemoryKeyValueBackend:
    """Process-local backend for development and tests."""

    def __init__(self, clock=time.monotonic) -> None:
        self._clock = clock
        self._items: dict[str, tuple[str, float | None]] = {}

    def _live(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            self._items.pop(key, None)
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    def _sweep(self, now: float) -> None:
        expired = [
            key
            for key, (_, expires_at) in self._items.items()
            if expires_at is not None and expires_at <= now
        ]
        for key in expired:
            del self._items[key]

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        now = self._clock()
        self._sweep(now)
        self._items[key] = (value, now + ttl if ttl else None)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def list(self, prefix: str, limit: int) -> list[str]:
        keys = [key for key in sorted(self._items) if key.startswith(prefix)]
        return [key for key in keys if self._live(key) is not None][:limit]

    async def close(self) -> None:
        return None


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


class RedisKeyValueBackend:
    """Redis backend; TTLs map onto ``SET ... EX``."""

    def __init__(self, url: str | None = None, client: aioredis.Redis | None = None) -> None:
        if client is None:
            if not url:
                raise StorageUnavailableError("REDIS_URL is not configured")
            client = aioredis.Redis.from_url(url, decode_responses=True)
        self._client = client

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as e:
            raise StorageUnavailableError("Redis read failed", details={"key": key}) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        try:
            # Redis rejects EX 0; zero means no expiry as in the memory backend
            await self._client.set(key, value, ex=ttl or None)
        except RedisError as e:
            raise StorageUnavailableError("Redis write failed", details={"key": key}) from e

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as e:
            raise StorageUnavailableError("Redis delete failed", details={"key": key}) from e

    async def list(self, prefix: str, limit: int) -> list[str]:
        pattern = _GLOB_SPECIAL.sub(r"\\\1", prefix) + "*"
        keys: list[str] = []
        try:
            async for key in self._client.scan_iter(match=pattern, count=min(limit, 1000)):
                keys.append(key.decode("utf-8") if isinstance(key, bytes) else key)
                if len(keys) >= limit:
                    break
        except RedisError as e:
            raise StorageUnavailableError("Redis scan failed", details={"prefix": prefix}) from e
        return keys

    async def close(self) -> None:
        await self._client.aclose()


class KeyValueStore:
    """Namespaced JSON storage over a ``KeyValueBackend``."""

    def __init__(
        self,
        backend: KeyValueBackend,
        prefix: str = "",
        session_ttl: int = DEFAULT_SESSION_TTL,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ) -> None:
        self.backend = backend
        self.prefix = prefix
        self.session_ttl = session_ttl
        self.cache_ttl = cache_ttl

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _strip(self, full_key: str) -> str:
        marker = f"{self.prefix}/" if self.prefix else ""
        return full_key[len(marker):] if marker and full_key.startswith(marker) else full_key

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        full_key = self._full_key(key)
        try:
            serialized = dump_json(value, what=f"value for {key}")
            await self.backend.set(full_key, serialized, ttl)
        except (EncodingError, StorageUnavailableError) as e:
            logger.error("Failed to store value %s: %s", full_key, e)
            raise
        logger.debug("Value stored successfully: %s", full_key)

    async def get(self, key: str) -> Any | None:
        full_key = self._full_key(key)
        try:
            raw = await self.backend.get(full_key)
            if raw is None:
                return None
            return load_json(raw, what=f"value for {key}")
        except (EncodingError, StorageUnavailableError) as e:
            logger.error("Failed to get value %s: %s", full_key, e)
            raise

    async def delete(self, key: str) -> None:
        full_key = self._full_key(key)
        try:
            await self.backend.delete(full_key)
        except StorageUnavailableError as e:
            logger.error("Failed to delete value %s: %s", full_key, e)
            raise
        logger.debug("Value deleted successfully: %s", full_key)

    async def list_keys(self, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT) -> list[str]:
        try:
            keys = await self.backend.list(self._full_key(prefix), limit)
        except StorageUnavailableError as e:
            logger.error("Failed to list keys with prefix %s: %s", prefix, e)
            raise
        return [self._strip(key) for key in keys]

    # ----- Sessions -----

    async def set_session(self, session_id: str, data: dict[str, Any], ttl: int | None = None) -> None:
        _require(session_id, "Session ID")
        ttl = self.session_ttl if ttl is None else ttl
        await self.set(f"{SESSION_PREFIX}{session_id}", data, ttl)

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        _require(session_id, "Session ID")
        return await self.get(f"{SESSION_PREFIX}{session_id}")

    async def delete_session(self, session_id: str) -> None:
        _require(session_id, "Session ID")
        await self.delete(f"{SESSION_PREFIX}{session_id}")

    # ----- Cache -----

    async def set_cache(self, cache_key: str, value: Any, ttl: int | None = None) -> None:
        _require(cache_key, "Cache key")
        ttl = self.cache_ttl if ttl is None else ttl
        await self.set(f"{CACHE_PREFIX}{cache_key}", value, ttl)

    async def get_cache(self, cache_key: str) -> Any | None:
        _require(cache_key, "Cache key")
        return await self.get(f"{CACHE_PREFIX}{cache_key}")

    async def delete_cache(self, cache_key: str) -> None:
        _require(cache_key, "Cache key")
        await self.delete(f"{CACHE_PREFIX}{cache_key}")

    # ----- API keys -----

    async def set_api_keys(self, user_id: str, api_keys: dict[str, str]) -> None:
        _require(user_id, "User ID")
        if not isinstance(api_keys, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in api_keys.items()
        ):
            raise ValidationError("API keys must map provider names to strings")
        await self.set(f"{API_KEYS_PREFIX}{user_id}", api_keys)

    async def get_api_keys(self, user_id: str) -> dict[str, str] | None:
        _require(user_id, "User ID")
        value = await self.get(f"{API_KEYS_PREFIX}{user_id}")
        if value is not None and not isinstance(value, dict):
            raise EncodingError("Stored API keys are not an object", details={"user_id": user_id})
        return value

    async def delete_api_keys(self, user_id: str) -> None:
        _require(user_id, "User ID")
        await self.delete(f"{API_KEYS_PREFIX}{user_id}")

    async def close(self) -> None:
        await self.backend.close()


def _require(value: str, name: str) -> None:
    if not value:
        raise ValidationError(f"{name} is required")
