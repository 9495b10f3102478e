"""Coordination context over the relational, object and key-value stores.

The context is built once by the process entry point from typed
``StorageBindings`` and handed to request handlers through dependency
injection. Its methods delegate to the owning store without adding behaviour.
"""

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import KeyValueBackendEnum, ObjectBackendEnum, Settings
from app.database import build_engine, build_sessionmaker, create_schema
from app.domains.chat.service import ChatService
from app.domains.files.service import FileManager
from app.exceptions.storage import StorageUnavailableError
from app.services.kv_store import (
    KeyValueBackend,
    KeyValueStore,
    MemoryKeyValueBackend,
    RedisKeyValueBackend,
)
from app.services.object_store import (
    LocalObjectBackend,
    ObjectBackend,
    ObjectStore,
    S3ObjectBackend,
)

logger = logging.getLogger(__name__)


@dataclass
class StorageBindings:
    """Handles for all three stores, produced once at startup."""

    engine: AsyncEngine
    kv_backend: KeyValueBackend
    object_backend: ObjectBackend
    kv_prefix: str = ""
    object_prefix: str = ""
    session_ttl: int = 3600
    cache_ttl: int = 300


def build_storage_bindings(settings: Settings) -> StorageBindings | None:
    """Build storage handles from settings.

    Returns None when no database is configured. A database without the
    matching key-value or object backend settings is a configuration error.
    """
    if not settings.storage_configured:
        logger.warning("DATABASE_URL is not set; storage is disabled")
        return None

    missing = []
    if settings.kv_backend == KeyValueBackendEnum.redis and not settings.redis_url:
        missing.append("REDIS_URL")
    if settings.object_backend == ObjectBackendEnum.s3 and not settings.s3_bucket_name:
        missing.append("S3_BUCKET_NAME")
    if missing:
        raise StorageUnavailableError(
            f"Storage is partially configured; missing {', '.join(missing)}",
            details={"missing": missing},
        )

    if settings.kv_backend == KeyValueBackendEnum.redis:
        kv_backend: KeyValueBackend = RedisKeyValueBackend(settings.redis_url)
    else:
        kv_backend = MemoryKeyValueBackend()

    if settings.object_backend == ObjectBackendEnum.s3:
        object_backend: ObjectBackend = S3ObjectBackend(
            bucket=settings.s3_bucket_name,
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
        )
    else:
        object_backend = LocalObjectBackend(settings.local_storage_dir)

    return StorageBindings(
        engine=build_engine(settings.database_url, echo=settings.debug),
        kv_backend=kv_backend,
        object_backend=object_backend,
        kv_prefix=settings.kv_prefix,
        object_prefix=settings.object_prefix,
        session_ttl=settings.session_ttl_seconds,
        cache_ttl=settings.cache_ttl_seconds,
    )


class CoordinationContext:
    """Single entry point to chat, file, session, credential and cache storage."""

    def __init__(self, engine: AsyncEngine, kv_store: KeyValueStore, object_store: ObjectStore):
        self.engine = engine
        self.kv_store = kv_store
        self.object_store = object_store

        session_factory = build_sessionmaker(engine)
        self.chats = ChatService(session_factory)
        self.file_manager = FileManager(object_store, session_factory)
        self._initialized = False

    @classmethod
    def from_bindings(cls, bindings: StorageBindings) -> "CoordinationContext":
        return cls(
            engine=bindings.engine,
            kv_store=KeyValueStore(
                bindings.kv_backend,
                prefix=bindings.kv_prefix,
                session_ttl=bindings.session_ttl,
                cache_ttl=bindings.cache_ttl,
            ),
            object_store=ObjectStore(bindings.object_backend, prefix=bindings.object_prefix),
        )

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Create the schema once; later calls return immediately."""
        if self._initialized:
            return
        try:
            await create_schema(self.engine)
        except StorageUnavailableError:
            logger.error("Failed to initialize storage context")
            raise
        self._initialized = True
        logger.debug("Storage context initialized successfully")

    async def close(self) -> None:
        await self.kv_store.close()
        await self.engine.dispose()

    # ----- Chats -----

    async def get_all_chats(self):
        return await self.chats.get_all()

    async def get_chat_messages(self, chat_id: str):
        return await self.chats.get_messages(chat_id)

    async def save_chat_messages(
        self,
        chat_id: str,
        messages,
        url_id: str | None = None,
        description: str | None = None,
        timestamp: str | None = None,
        metadata=None,
    ) -> None:
        await self.chats.set_messages(chat_id, messages, url_id, description, timestamp, metadata)

    async def delete_chat(self, chat_id: str) -> None:
        await self.chats.delete_chat(chat_id)

    async def create_chat(self, description: str, messages, metadata=None) -> str:
        return await self.chats.create_chat_from_messages(description, messages, metadata)

    async def fork_chat(self, chat_id: str, message_id: str) -> str:
        return await self.chats.fork_chat(chat_id, message_id)

    async def duplicate_chat(self, chat_id: str) -> str:
        return await self.chats.duplicate_chat(chat_id)

    async def update_chat_description(self, chat_id: str, description: str) -> None:
        await self.chats.update_chat_description(chat_id, description)

    async def update_chat_metadata(self, chat_id: str, metadata) -> None:
        await self.chats.update_chat_metadata(chat_id, metadata)

    # ----- Snapshots -----

    async def get_chat_snapshot(self, chat_id: str) -> Any | None:
        return await self.chats.get_snapshot(chat_id)

    async def save_chat_snapshot(self, chat_id: str, snapshot: Any) -> None:
        await self.chats.set_snapshot(chat_id, snapshot)

    async def delete_chat_snapshot(self, chat_id: str) -> None:
        await self.chats.delete_snapshot(chat_id)

    # ----- Files -----

    async def store_file(
        self,
        path: str,
        data,
        chat_id: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        return await self.file_manager.store_file(data, path, chat_id, content_type, metadata)

    async def get_file(self, file_id: str) -> bytes | None:
        return await self.file_manager.get_file(file_id)

    async def get_file_as_text(self, file_id: str) -> str | None:
        return await self.file_manager.get_file_as_text(file_id)

    async def delete_file(self, file_id: str) -> None:
        await self.file_manager.delete_file(file_id)

    async def get_file_metadata(self, file_id: str):
        return await self.file_manager.get_file_metadata(file_id)

    async def update_file_metadata(self, file_id: str, metadata: dict[str, str]):
        return await self.file_manager.update_file_metadata(file_id, metadata)

    async def list_files_for_chat(self, chat_id: str):
        return await self.file_manager.list_files_for_chat(chat_id)

    async def search_files_by_path(self, pattern: str):
        return await self.file_manager.search_files_by_path(pattern)

    # ----- Sessions -----

    async def store_session(self, session_id: str, data: dict[str, Any], ttl: int | None = None) -> None:
        await self.kv_store.set_session(session_id, data, ttl)

    async def get_session(self, session_id: str) -> dict[str, Any] | None:
        return await self.kv_store.get_session(session_id)

    async def delete_session(self, session_id: str) -> None:
        await self.kv_store.delete_session(session_id)

    # ----- API keys -----

    async def store_api_keys(self, user_id: str, api_keys: dict[str, str]) -> None:
        await self.kv_store.set_api_keys(user_id, api_keys)

    async def get_api_keys(self, user_id: str) -> dict[str, str] | None:
        return await self.kv_store.get_api_keys(user_id)

    async def delete_api_keys(self, user_id: str) -> None:
        await self.kv_store.delete_api_keys(user_id)

    # ----- Cache -----

    async def store_cache(self, cache_key: str, value: Any, ttl: int | None = None) -> None:
        await self.kv_store.set_cache(cache_key, value, ttl)

    async def get_cache(self, cache_key: str) -> Any | None:
        return await self.kv_store.get_cache(cache_key)

    async def delete_cache(self, cache_key: str) -> None:
        await self.kv_store.delete_cache(cache_key)
