"""Chat schemas for stored transcripts and request bodies."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .base import BaseSchema, CamelSchema


class Message(BaseModel):
    """One chat message.

    Only ``role`` and ``content`` are interpreted; every other field is kept
    verbatim so transcripts round-trip unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: Any = None
    role: str
    content: Any = None


class ChatMetadata(CamelSchema):
    """Version-control and deployment details attached to a chat."""

    model_config = ConfigDict(extra="forbid")

    git_url: str
    git_branch: str | None = None
    netlify_site_id: str | None = None


class ChatRecord(CamelSchema):
    """A stored chat transcript."""

    id: str
    url_id: str | None = None
    messages: list[Message] = Field(default_factory=list)
    description: str | None = None
    timestamp: str
    metadata: ChatMetadata | None = None


class ChatCreate(CamelSchema):
    """Body for creating a chat from messages."""

    description: str = Field(..., description="Chat description")
    messages: list[Message] = Field(default_factory=list)
    metadata: ChatMetadata | None = None


class ChatUpsert(CamelSchema):
    """Body for saving a chat under a known id."""

    messages: list[Message]
    url_id: str | None = None
    description: str | None = None
    timestamp: str | None = Field(None, description="ISO-8601 timestamp; defaults to now")
    metadata: ChatMetadata | None = None


class ChatFork(CamelSchema):
    """Body for forking a chat at a message."""

    message_id: str = Field(..., min_length=1)


class ChatDescriptionUpdate(BaseSchema):
    """Body for renaming a chat."""

    description: str


class ChatMetadataUpdate(BaseSchema):
    """Body for replacing chat metadata; ``null`` clears it."""

    metadata: ChatMetadata | None = None
