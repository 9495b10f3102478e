"""File API controller with FastAPI endpoints."""

import logging
import posixpath
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Path, Query, Request, UploadFile
from fastapi.responses import Response

from app.core.config import settings
from app.core.context import CoordinationContext
from app.core.dependencies import get_context
from app.exceptions.storage import FileTooLargeError, StoredFileNotFoundError
from app.schemas.base import ResponseSchema
from app.schemas.file import FileMetadataRecord, FileUploadResponse

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024

router = APIRouter(
    prefix="/api/files",
    tags=["files"],
)


def _file_payload(record: FileMetadataRecord) -> dict:
    return record.model_dump(by_alias=True, mode="json")


def _too_large(size: int, limit: int) -> FileTooLargeError:
    return FileTooLargeError(
        f"File exceeds the maximum size of {limit} bytes",
        details={"size": size, "max_file_size": limit},
    )


async def _read_limited(file: UploadFile, limit: int) -> bytes:
    """Read the upload in chunks, stopping as soon as it passes ``limit``."""
    if file.size is not None and file.size > limit:
        raise _too_large(file.size, limit)

    chunks = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise _too_large(total, limit)
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/upload", response_model=ResponseSchema, status_code=201)
async def upload_file(
    _request: Request,
    file: UploadFile = File(..., description="File to upload"),
    chat_id: str | None = Form(None, description="Owning chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Upload a file and record its metadata."""
    contents = await _read_limited(file, settings.max_file_size)

    file_name = file.filename or "upload"
    file_id = await context.store_file(
        file_name,
        contents,
        chat_id=chat_id or None,
        content_type=file.content_type,
    )
    logger.info("File uploaded: %s (%d bytes)", file_id, len(contents))

    upload = FileUploadResponse(
        file_id=file_id,
        file_name=file_name,
        content_type=file.content_type,
        size=len(contents),
        chat_id=chat_id or None,
    )
    return ResponseSchema(
        status="success",
        message="File uploaded successfully",
        data=upload.model_dump(by_alias=True),
    )


@router.get("/search", response_model=ResponseSchema)
async def search_files(
    _request: Request,
    query: str = Query(..., min_length=1, description="Substring of the file path"),
    context: CoordinationContext = Depends(get_context),
):
    """Find files whose path contains the query, newest first."""
    files = await context.search_files_by_path(query)

    return ResponseSchema(
        status="success",
        message="Files retrieved successfully",
        data={"files": [_file_payload(f) for f in files], "total": len(files)},
    )


@router.get("/chat/{chat_id}", response_model=ResponseSchema)
async def list_chat_files(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    """List the files attached to a chat, newest first."""
    files = await context.list_files_for_chat(chat_id)

    return ResponseSchema(
        status="success",
        message="Files retrieved successfully",
        data={"files": [_file_payload(f) for f in files], "total": len(files)},
    )


@router.get("/{file_id}", response_model=ResponseSchema)
async def get_file_metadata(
    _request: Request,
    file_id: str = Path(..., description="File ID"),
    context: CoordinationContext = Depends(get_context),
):
    record = await context.get_file_metadata(file_id)
    if record is None:
        raise StoredFileNotFoundError(f"File not found: {file_id}")

    return ResponseSchema(
        status="success",
        message="File retrieved successfully",
        data=_file_payload(record),
    )


@router.get("/{file_id}/download")
async def download_file(
    _request: Request,
    file_id: str = Path(..., description="File ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Stream the stored bytes with the recorded content type and filename."""
    record = await context.get_file_metadata(file_id)
    if record is None:
        raise StoredFileNotFoundError(f"File not found: {file_id}")

    data = await context.get_file(file_id)
    if data is None:
        logger.warning("File row without blob: %s", file_id)
        raise StoredFileNotFoundError(f"File content not found: {file_id}")

    file_name = posixpath.basename(record.path) or file_id
    return Response(
        content=data,
        media_type=record.content_type or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(file_name)}"},
    )


@router.delete("/{file_id}", response_model=ResponseSchema)
async def delete_file(
    _request: Request,
    file_id: str = Path(..., description="File ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Delete a file's blob and metadata row."""
    if await context.get_file_metadata(file_id) is None:
        raise StoredFileNotFoundError(f"File not found: {file_id}")

    await context.delete_file(file_id)
    return ResponseSchema(status="success", message="File deleted successfully")
