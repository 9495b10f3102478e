"""Chat API controller with FastAPI endpoints."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Request

from app.core.context import CoordinationContext
from app.core.dependencies import get_context
from app.exceptions.base import NotFoundError
from app.exceptions.storage import ChatNotFoundError
from app.schemas.base import ResponseSchema
from app.schemas.chat import (
    ChatCreate,
    ChatDescriptionUpdate,
    ChatFork,
    ChatMetadataUpdate,
    ChatRecord,
    ChatUpsert,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chats",
    tags=["chats"],
)


def _chat_payload(chat: ChatRecord) -> dict:
    return chat.model_dump(by_alias=True, mode="json", exclude_unset=True)


@router.get("/", response_model=ResponseSchema)
async def list_chats(
    _request: Request,
    context: CoordinationContext = Depends(get_context),
):
    """Get all chats, newest first."""
    chats = await context.get_all_chats()

    return ResponseSchema(
        status="success",
        message="Chats retrieved successfully",
        data={"chats": [_chat_payload(chat) for chat in chats], "total": len(chats)},
    )


@router.post("/", response_model=ResponseSchema, status_code=201)
async def create_chat(
    _request: Request,
    chat_data: ChatCreate,
    context: CoordinationContext = Depends(get_context),
):
    """Create a new chat from messages."""
    chat_id = await context.create_chat(
        chat_data.description, chat_data.messages, chat_data.metadata
    )
    chat = await context.get_chat_messages(chat_id)

    return ResponseSchema(
        status="success",
        message="Chat created successfully",
        data=_chat_payload(chat),
    )


@router.get("/{chat_id}", response_model=ResponseSchema)
async def get_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID or URL ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Get a chat by its id or url id."""
    chat = await context.get_chat_messages(chat_id)
    if chat is None:
        raise ChatNotFoundError(f"Chat not found: {chat_id}")

    return ResponseSchema(
        status="success",
        message="Chat retrieved successfully",
        data=_chat_payload(chat),
    )


@router.put("/{chat_id}", response_model=ResponseSchema)
async def save_chat(
    _request: Request,
    chat_data: ChatUpsert,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Insert or update a chat under a known id."""
    await context.save_chat_messages(
        chat_id,
        chat_data.messages,
        url_id=chat_data.url_id,
        description=chat_data.description,
        timestamp=chat_data.timestamp,
        metadata=chat_data.metadata,
    )
    chat = await context.get_chat_messages(chat_id)

    return ResponseSchema(
        status="success",
        message="Chat saved successfully",
        data=_chat_payload(chat),
    )


@router.delete("/{chat_id}", response_model=ResponseSchema)
async def delete_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Delete a chat together with its snapshot and file rows."""
    await context.delete_chat(chat_id)
    return ResponseSchema(status="success", message="Chat deleted successfully")


@router.post("/{chat_id}/fork", response_model=ResponseSchema, status_code=201)
async def fork_chat(
    _request: Request,
    fork_data: ChatFork,
    chat_id: str = Path(..., description="Chat ID or URL ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Fork a chat at a message."""
    new_id = await context.fork_chat(chat_id, fork_data.message_id)
    logger.info("Chat %s forked into %s", chat_id, new_id)

    return ResponseSchema(
        status="success",
        message="Chat forked successfully",
        data=_chat_payload(await context.get_chat_messages(new_id)),
    )


@router.post("/{chat_id}/duplicate", response_model=ResponseSchema, status_code=201)
async def duplicate_chat(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID or URL ID"),
    context: CoordinationContext = Depends(get_context),
):
    """Duplicate a chat with all of its messages."""
    new_id = await context.duplicate_chat(chat_id)

    return ResponseSchema(
        status="success",
        message="Chat duplicated successfully",
        data=_chat_payload(await context.get_chat_messages(new_id)),
    )


@router.patch("/{chat_id}/description", response_model=ResponseSchema)
async def update_chat_description(
    _request: Request,
    update_data: ChatDescriptionUpdate,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    await context.update_chat_description(chat_id, update_data.description)
    return ResponseSchema(status="success", message="Chat description updated successfully")


@router.patch("/{chat_id}/metadata", response_model=ResponseSchema)
async def update_chat_metadata(
    _request: Request,
    update_data: ChatMetadataUpdate,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    await context.update_chat_metadata(chat_id, update_data.metadata)
    return ResponseSchema(status="success", message="Chat metadata updated successfully")


# Snapshot endpoints


@router.get("/{chat_id}/snapshot", response_model=ResponseSchema)
async def get_chat_snapshot(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    snapshot = await context.get_chat_snapshot(chat_id)
    if snapshot is None:
        raise NotFoundError(f"Snapshot not found for chat: {chat_id}")

    return ResponseSchema(
        status="success",
        message="Snapshot retrieved successfully",
        data={"chat_id": chat_id, "snapshot": snapshot},
    )


@router.put("/{chat_id}/snapshot", response_model=ResponseSchema)
async def save_chat_snapshot(
    _request: Request,
    snapshot: Any = Body(..., description="Opaque snapshot payload"),
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    await context.save_chat_snapshot(chat_id, snapshot)
    return ResponseSchema(status="success", message="Snapshot saved successfully")


@router.delete("/{chat_id}/snapshot", response_model=ResponseSchema)
async def delete_chat_snapshot(
    _request: Request,
    chat_id: str = Path(..., description="Chat ID"),
    context: CoordinationContext = Depends(get_context),
):
    await context.delete_chat_snapshot(chat_id)
    return ResponseSchema(status="success", message="Snapshot deleted successfully")
