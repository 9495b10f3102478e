"""File metadata schemas."""

from __future__ import annotations

from .base import CamelSchema


class FileMetadataRecord(CamelSchema):
    """Metadata row of a stored file."""

    id: str
    chat_id: str | None = None
    path: str
    content_type: str | None = None
    size: int
    timestamp: str
    metadata: dict[str, str] | None = None


class FileUploadResponse(CamelSchema):
    """Result of a file upload."""

    file_id: str
    file_name: str
    content_type: str | None = None
    size: int
    chat_id: str | None = None
