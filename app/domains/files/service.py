"""File service layer: blobs in the object store, metadata in the database.

Every stored file is written blob-first and deleted blob-first, so a metadata
row always implies a blob. A failed row insert after a successful blob write
leaves an orphan blob, which is logged and left for a reconciliation sweep.
"""

import logging
import uuid
from datetime import UTC, datetime

from sqlalchemy import delete, desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import translate_db_errors
from app.exceptions.base import BaseAppException, ValidationError
from app.exceptions.storage import ReferentialError, StoredFileNotFoundError
from app.schemas.file import FileMetadataRecord
from app.services.object_store import ObjectStore
from app.shared.serialization import (
    decode_file_metadata,
    encode_file_metadata,
    validate_string_map,
)
from models.file import File

logger = logging.getLogger(__name__)

FileData = str | bytes | bytearray | memoryview


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _byte_size(data: FileData) -> int:
    if isinstance(data, str):
        return len(data.encode("utf-8"))
    if isinstance(data, memoryview):
        return data.nbytes
    return len(data)


def _require_id(file_id: str) -> None:
    if not file_id:
        raise ValidationError("File ID is required")


def _object_metadata(
    metadata: dict[str, str] | None,
    path: str,
    content_type: str | None,
    chat_id: str | None,
) -> dict[str, str]:
    merged = dict(metadata or {})
    merged.update({"path": path, "contentType": content_type, "chatId": chat_id})
    return {key: value for key, value in merged.items() if value is not None}


def _to_record(row: File) -> FileMetadataRecord:
    return FileMetadataRecord(
        id=row.id,
        chat_id=row.chat_id,
        path=row.path,
        content_type=row.content_type,
        size=row.size or 0,
        timestamp=row.timestamp,
        metadata=decode_file_metadata(row.metadata_),
    )


def _escape_like(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class FileManager:
    """Coordinates the object store and the ``files`` table."""

    def __init__(self, storage: ObjectStore, session_factory: async_sessionmaker[AsyncSession]):
        self.storage = storage
        self._sessions = session_factory

    async def store_file(
        self,
        data: FileData,
        path: str,
        chat_id: str | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Store a blob and record its metadata; returns the new file id."""
        if not path:
            raise ValidationError("File path is required")
        metadata = validate_string_map(metadata)

        file_id = str(uuid.uuid4())
        await self.storage.store_file(
            file_id, data, _object_metadata(metadata, path, content_type, chat_id)
        )

        row = File(
            id=file_id,
            chat_id=chat_id or None,
            path=path,
            content_type=content_type or None,
            size=_byte_size(data),
            timestamp=_now_iso(),
            metadata_=encode_file_metadata(metadata),
        )
        try:
            with translate_db_errors(
                "Store file metadata", on_integrity=ReferentialError, file_id=file_id, chat_id=chat_id
            ):
                async with self._sessions() as db:
                    db.add(row)
                    await db.commit()
        except BaseAppException:
            logger.warning("Orphan blob left in object storage: %s (%s)", file_id, path)
            raise

        logger.debug("File stored successfully: %s (%s)", file_id, path)
        return file_id

    async def get_file(self, file_id: str) -> bytes | None:
        _require_id(file_id)
        return await self.storage.get_file(file_id)

    async def get_file_as_text(self, file_id: str) -> str | None:
        _require_id(file_id)
        return await self.storage.get_file_as_text(file_id)

    async def delete_file(self, file_id: str) -> None:
        """Delete the blob, then the row; a blob failure keeps the row."""
        _require_id(file_id)
        await self.storage.delete_file(file_id)

        with translate_db_errors("Delete file metadata", file_id=file_id):
            async with self._sessions() as db:
                await db.execute(delete(File).where(File.id == file_id))
                await db.commit()
        logger.debug("File deleted successfully: %s", file_id)

    async def get_file_metadata(self, file_id: str) -> FileMetadataRecord | None:
        _require_id(file_id)
        with translate_db_errors("Get file metadata", file_id=file_id):
            async with self._sessions() as db:
                row = await db.get(File, file_id)
        return _to_record(row) if row else None

    async def update_file_metadata(self, file_id: str, metadata: dict[str, str]) -> FileMetadataRecord:
        """Replace the custom metadata of a file on both the blob and the row."""
        _require_id(file_id)
        metadata = validate_string_map(metadata) or {}

        record = await self.get_file_metadata(file_id)
        if record is None:
            raise StoredFileNotFoundError(f"File not found: {file_id}")

        await self.storage.update_file_metadata(
            file_id,
            _object_metadata(metadata, record.path, record.content_type, record.chat_id),
        )
        with translate_db_errors("Update file metadata", file_id=file_id):
            async with self._sessions() as db:
                await db.execute(
                    update(File)
                    .where(File.id == file_id)
                    .values(metadata_=encode_file_metadata(metadata))
                )
                await db.commit()
        return record.model_copy(update={"metadata": metadata})

    async def list_files_for_chat(self, chat_id: str) -> list[FileMetadataRecord]:
        """List the files of a chat, newest first."""
        with translate_db_errors("List files for chat", chat_id=chat_id):
            async with self._sessions() as db:
                result = await db.execute(
                    select(File).where(File.chat_id == chat_id).order_by(desc(File.timestamp))
                )
                rows = result.scalars().all()
        return [_to_record(row) for row in rows]

    async def search_files_by_path(self, pattern: str) -> list[FileMetadataRecord]:
        """Find files whose path contains ``pattern``, newest first."""
        with translate_db_errors("Search files by path", pattern=pattern):
            async with self._sessions() as db:
                result = await db.execute(
                    select(File)
                    .where(File.path.like(f"%{_escape_like(pattern)}%", escape="\\"))
                    .order_by(desc(File.timestamp))
                )
                rows = result.scalars().all()
        return [_to_record(row) for row in rows]
