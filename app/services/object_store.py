"""Object storage backends for file blobs.

Provides a pluggable storage interface so blobs are not tied to an ephemeral
local filesystem in containerized deployments. Every object carries a flat
string-to-string metadata map that is replaced wholesale on rewrite.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol
from urllib.parse import quote, unquote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.exceptions.base import ValidationError
from app.exceptions.storage import EncodingError, ReferentialError, StorageUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 1000
_SEPARATOR_RUN = re.compile(r"/+")
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


@dataclass
class StoredObject:
    """Blob body plus its custom metadata."""

    body: bytes
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectBackend(Protocol):
    """Storage contract used by ``ObjectStore``."""

    async def put(self, key: str, body: bytes, metadata: dict[str, str]) -> None:
        """Write ``body`` under ``key`` with ``metadata``, replacing any object."""

    async def get(self, key: str) -> StoredObject | None:
        """Return the object or None."""

    async def head(self, key: str) -> dict[str, str] | None:
        """Return the metadata without reading the body, or None."""

    async def delete(self, key: str) -> None:
        """Remove the object; absent keys are not an error."""

    async def list(self, prefix: str, limit: int) -> list[str]:
        """Return up to ``limit`` keys starting with ``prefix``."""


class LocalObjectBackend:
    """Filesystem-backed object storage.

    The blob lives at ``base_dir/<key>`` and its metadata at
    ``base_dir/.meta/<key>.json``. Keys under ``.meta/`` are reserved.
    """

    META_DIR = ".meta"

    def __init__(self, base_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)

    def _relative(self, key: str) -> str:
        relative = key.lstrip("/")
        if relative.split("/", 1)[0] == self.META_DIR:
            raise ValidationError(f"Object keys may not start with {self.META_DIR}/", details={"key": key})
        return relative

    def _inside(self, root: Path, relative: str, key: str) -> Path:
        path = (root / relative).resolve()
        base = root.resolve()
        if path != base and base not in path.parents:
            raise StorageUnavailableError("Object key escapes the storage directory", details={"key": key})
        return path

    def _path(self, key: str) -> Path:
        return self._inside(self.base_dir, self._relative(key), key)

    def _meta_path(self, key: str) -> Path:
        return self._inside(self.base_dir / self.META_DIR, self._relative(key) + ".json", key)

    def _put(self, key: str, body: bytes, metadata: dict[str, str]) -> None:
        path = self._path(key)
        meta_path = self._meta_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        meta_path.write_text(json.dumps(metadata, ensure_ascii=False), encoding="utf-8")

    def _read_meta(self, key: str) -> dict[str, str]:
        meta_path = self._meta_path(key)
        if not meta_path.exists():
            return {}
        try:
            metadata = json.loads(meta_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise EncodingError("Stored object metadata is malformed", details={"key": key}) from e
        if not isinstance(metadata, dict):
            raise EncodingError("Stored object metadata is not an object", details={"key": key})
        return metadata

    def _get(self, key: str) -> StoredObject | None:
        path = self._path(key)
        if not path.is_file():
            return None
        return StoredObject(body=path.read_bytes(), metadata=self._read_meta(key))

    def _head(self, key: str) -> dict[str, str] | None:
        if not self._path(key).is_file():
            return None
        return self._read_meta(key)

    def _delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._meta_path(key).unlink(missing_ok=True)

    def _list(self, prefix: str, limit: int) -> list[str]:
        if not self.base_dir.exists():
            return []
        meta_root = self.base_dir / self.META_DIR
        keys = []
        for path in sorted(self.base_dir.rglob("*")):
            if not path.is_file() or meta_root in path.parents:
                continue
            key = path.relative_to(self.base_dir).as_posix()
            if key.startswith(prefix):
                keys.append(key)
                if len(keys) >= limit:
                    break
        return keys

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except (OSError, ValueError) as e:
            raise StorageUnavailableError("Local object storage failed", details={"error": str(e)}) from e

    async def put(self, key: str, body: bytes, metadata: dict[str, str]) -> None:
        await self._run(self._put, key, body, metadata)

    async def get(self, key: str) -> StoredObject | None:
        return await self._run(self._get, key)

    async def head(self, key: str) -> dict[str, str] | None:
        return await self._run(self._head, key)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)

    async def list(self, prefix: str, limit: int) -> list[str]:
        return await self._run(self._list, prefix, limit)


class S3ObjectBackend:
    """S3-backed object storage for durable blob persistence.

    S3 lowercases user-metadata keys and restricts values to ASCII, so the
    whole map is stored as one URL-quoted JSON value under ``attributes``.
    """

    METADATA_FIELD = "attributes"

    def __init__(
        self,
        bucket: str,
        region_name: str | None = None,
        endpoint_url: str | None = None,
        client=None,
    ) -> None:
        self.bucket = bucket
        self.region_name = region_name
        self.endpoint_url = endpoint_url
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        self._client = boto3.client(
            "s3",
            region_name=self.region_name,
            endpoint_url=self.endpoint_url,
        )
        return self._client

    def _encode_metadata(self, metadata: dict[str, str]) -> dict[str, str]:
        return {self.METADATA_FIELD: quote(json.dumps(metadata, ensure_ascii=False), safe="")}

    def _decode_metadata(self, raw: dict[str, str] | None) -> dict[str, str]:
        value = (raw or {}).get(self.METADATA_FIELD)
        if not value:
            return dict(raw or {})
        try:
            return json.loads(unquote(value))
        except ValueError as e:
            raise EncodingError("Stored object metadata is malformed") from e

    @staticmethod
    def _is_not_found(error: ClientError) -> bool:
        code = str(error.response.get("Error", {}).get("Code", ""))
        return code in _NOT_FOUND_CODES

    async def _call(self, operation: str, key: str, **kwargs):
        client = self._get_client()
        try:
            return await asyncio.to_thread(getattr(client, operation), Bucket=self.bucket, **kwargs)
        except ClientError:
            raise
        except BotoCoreError as e:
            raise StorageUnavailableError("S3 request failed", details={"key": key, "operation": operation}) from e

    async def put(self, key: str, body: bytes, metadata: dict[str, str]) -> None:
        try:
            await self._call("put_object", key, Key=key, Body=body, Metadata=self._encode_metadata(metadata))
        except ClientError as e:
            raise StorageUnavailableError("S3 write failed", details={"key": key}) from e

    async def get(self, key: str) -> StoredObject | None:
        try:
            response = await self._call("get_object", key, Key=key)
            body = await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise StorageUnavailableError("S3 read failed", details={"key": key}) from e
        return StoredObject(body=body, metadata=self._decode_metadata(response.get("Metadata")))

    async def head(self, key: str) -> dict[str, str] | None:
        try:
            response = await self._call("head_object", key, Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return None
            raise StorageUnavailableError("S3 head failed", details={"key": key}) from e
        return self._decode_metadata(response.get("Metadata"))

    async def delete(self, key: str) -> None:
        try:
            await self._call("delete_object", key, Key=key)
        except ClientError as e:
            if self._is_not_found(e):
                return
            raise StorageUnavailableError("S3 delete failed", details={"key": key}) from e

    async def list(self, prefix: str, limit: int) -> list[str]:
        keys: list[str] = []
        token = None
        while len(keys) < limit:
            kwargs = {"Prefix": prefix, "MaxKeys": min(limit - len(keys), 1000)}
            if token:
                kwargs["ContinuationToken"] = token
            try:
                response = await self._call("list_objects_v2", prefix, **kwargs)
            except ClientError as e:
                raise StorageUnavailableError("S3 list failed", details={"prefix": prefix}) from e
            keys.extend(item["Key"] for item in response.get("Contents", []))
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
        return keys[:limit]


class ObjectStore:
    """Blob storage keyed under an optional instance prefix."""

    def __init__(self, backend: ObjectBackend, prefix: str = "") -> None:
        self.backend = backend
        self.prefix = prefix.strip("/")

    def _full_key(self, key: str) -> str:
        full_key = f"{self.prefix}/{key}" if self.prefix else key
        return _SEPARATOR_RUN.sub("/", full_key)

    def _strip(self, full_key: str) -> str:
        marker = f"{self.prefix}/" if self.prefix else ""
        return full_key[len(marker):] if marker and full_key.startswith(marker) else full_key

    async def store_file(
        self,
        key: str,
        data: str | bytes | bytearray | memoryview,
        metadata: dict[str, str] | None = None,
    ) -> str:
        full_key = self._full_key(key)
        body = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        try:
            await self.backend.put(full_key, body, dict(metadata or {}))
        except StorageUnavailableError as e:
            logger.error("Failed to store file %s: %s", full_key, e)
            raise
        logger.debug("File stored successfully: %s", full_key)
        return full_key

    async def get_file(self, key: str) -> bytes | None:
        full_key = self._full_key(key)
        try:
            stored = await self.backend.get(full_key)
        except (EncodingError, StorageUnavailableError) as e:
            logger.error("Failed to get file %s: %s", full_key, e)
            raise
        if stored is None:
            logger.debug("File not found: %s", full_key)
            return None
        return stored.body

    async def get_file_as_text(self, key: str) -> str | None:
        body = await self.get_file(key)
        if body is None:
            return None
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.error("File %s is not valid UTF-8", key)
            raise EncodingError("File is not valid UTF-8 text", details={"key": key}) from e

    async def delete_file(self, key: str) -> None:
        full_key = self._full_key(key)
        try:
            await self.backend.delete(full_key)
        except StorageUnavailableError as e:
            logger.error("Failed to delete file %s: %s", full_key, e)
            raise
        logger.debug("File deleted successfully: %s", full_key)

    async def list_files(self, prefix: str = "", limit: int = DEFAULT_LIST_LIMIT) -> list[str]:
        try:
            keys = await self.backend.list(self._full_key(prefix), limit)
        except StorageUnavailableError as e:
            logger.error("Failed to list files with prefix %s: %s", prefix, e)
            raise
        return [self._strip(key) for key in keys]

    async def get_file_metadata(self, key: str) -> dict[str, str] | None:
        full_key = self._full_key(key)
        try:
            metadata = await self.backend.head(full_key)
        except (EncodingError, StorageUnavailableError) as e:
            logger.error("Failed to get file metadata %s: %s", full_key, e)
            raise
        if metadata is None:
            logger.debug("File not found: %s", full_key)
        return metadata

    async def update_file_metadata(self, key: str, metadata: dict[str, str]) -> None:
        """Rewrite the object with ``metadata`` replacing its current map."""
        full_key = self._full_key(key)
        try:
            stored = await self.backend.get(full_key)
            if stored is None:
                logger.error("File not found for metadata update: %s", full_key)
                raise ReferentialError(f"File not found: {key}", details={"key": key})
            await self.backend.put(full_key, stored.body, dict(metadata))
        except (EncodingError, StorageUnavailableError) as e:
            logger.error("Failed to update file metadata %s: %s", full_key, e)
            raise
        logger.debug("File metadata updated successfully: %s", full_key)

    async def file_exists(self, key: str) -> bool:
        full_key = self._full_key(key)
        try:
            return await self.backend.head(full_key) is not None
        except Exception as e:
            logger.error("Failed to check if file exists %s: %s", full_key, e)
            return False
