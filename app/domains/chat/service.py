"""Chat service layer: transcript and snapshot persistence."""

import logging
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Integer, cast, delete, desc, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import translate_db_errors
from app.exceptions.storage import (
    ChatNotFoundError,
    InvalidTimestampError,
    MessageNotFoundError,
    ReferentialError,
)
from app.schemas.chat import ChatMetadata, ChatRecord, Message
from app.shared.serialization import (
    decode_chat_metadata,
    decode_messages,
    decode_snapshot,
    encode_chat_metadata,
    encode_messages,
    encode_snapshot,
)
from models.chat import Chat, Snapshot

logger = logging.getLogger(__name__)

MessagesInput = Sequence[Message | Mapping[str, Any]]
MetadataInput = ChatMetadata | Mapping[str, Any] | None


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _validate_timestamp(timestamp: str) -> None:
    try:
        datetime.fromisoformat(timestamp)
    except (TypeError, ValueError) as e:
        raise InvalidTimestampError(f"Invalid timestamp: {timestamp!r}") from e


def _insert_for(session: AsyncSession):
    if session.bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


def _matches(message: Message, message_id: str) -> bool:
    # stored ids may be numbers; callers always pass strings
    return message.id is not None and str(message.id) == message_id


def _to_record(row: Chat) -> ChatRecord:
    return ChatRecord(
        id=row.id,
        url_id=row.url_id,
        messages=decode_messages(row.messages),
        description=row.description,
        timestamp=row.timestamp,
        metadata=decode_chat_metadata(row.metadata_),
    )


class ChatService:
    """Service class for chat and snapshot persistence.

    Each operation runs in its own session; no state is shared between calls
    beyond the session factory.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._sessions = session_factory

    async def get_all(self) -> list[ChatRecord]:
        """Get every chat, newest first."""
        with translate_db_errors("Get all chats"):
            async with self._sessions() as db:
                result = await db.execute(select(Chat).order_by(desc(Chat.timestamp)))
                rows = result.scalars().all()
        return [_to_record(row) for row in rows]

    async def set_messages(
        self,
        chat_id: str,
        messages: MessagesInput,
        url_id: str | None = None,
        description: str | None = None,
        timestamp: str | None = None,
        metadata: MetadataInput = None,
    ) -> None:
        """Insert or update a chat.

        Messages and timestamp are always replaced; ``url_id``, ``description``
        and ``metadata`` keep their stored values when passed as None.
        """
        if timestamp is not None:
            _validate_timestamp(timestamp)

        values = {
            "id": chat_id,
            "url_id": url_id,
            "messages": encode_messages(messages),
            "description": description,
            "timestamp": timestamp or _now_iso(),
            "metadata_": encode_chat_metadata(metadata),
        }

        with translate_db_errors("Set messages", chat_id=chat_id, url_id=url_id):
            async with self._sessions() as db:
                stmt = _insert_for(db)(Chat).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Chat.id],
                    set_={
                        "messages": stmt.excluded.messages,
                        "url_id": func.coalesce(stmt.excluded.url_id, Chat.url_id),
                        "description": func.coalesce(stmt.excluded.description, Chat.description),
                        "timestamp": stmt.excluded.timestamp,
                        "metadata_": func.coalesce(stmt.excluded.metadata_, Chat.metadata_),
                    },
                )
                await db.execute(stmt)
                await db.commit()

    async def get_messages(self, chat_id: str) -> ChatRecord | None:
        """Resolve a chat by id, falling back to its url id."""
        record = await self.get_messages_by_id(chat_id)
        if record is not None:
            return record
        return await self.get_messages_by_url_id(chat_id)

    async def get_messages_by_id(self, chat_id: str) -> ChatRecord | None:
        with translate_db_errors("Get messages by ID", chat_id=chat_id):
            async with self._sessions() as db:
                row = await db.get(Chat, chat_id)
        return _to_record(row) if row else None

    async def get_messages_by_url_id(self, url_id: str) -> ChatRecord | None:
        with translate_db_errors("Get messages by URL ID", url_id=url_id):
            async with self._sessions() as db:
                result = await db.execute(select(Chat).where(Chat.url_id == url_id))
                row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def delete_chat(self, chat_id: str) -> None:
        """Delete a chat; its snapshot and file rows go with it by cascade."""
        with translate_db_errors("Delete chat", chat_id=chat_id):
            async with self._sessions() as db:
                await db.execute(delete(Chat).where(Chat.id == chat_id))
                await db.commit()

    async def get_next_id(self) -> str:
        """Return one past the highest numeric chat id.

        Every id in the table must be a base-10 integer string.
        """
        with translate_db_errors("Get next ID"):
            async with self._sessions() as db:
                result = await db.execute(select(func.max(cast(Chat.id, Integer))))
                highest = result.scalar()
        return str(int(highest or 0) + 1)

    async def get_url_id(self, candidate: str) -> str:
        """Return ``candidate`` or the first free ``candidate-N`` (N >= 2)."""
        with translate_db_errors("Get URL ID", candidate=candidate):
            async with self._sessions() as db:
                result = await db.execute(select(Chat.url_id).where(Chat.url_id.is_not(None)))
                taken = set(result.scalars().all())

        if candidate not in taken:
            return candidate
        suffix = 2
        while f"{candidate}-{suffix}" in taken:
            suffix += 1
        return f"{candidate}-{suffix}"

    async def create_chat_from_messages(
        self,
        description: str,
        messages: MessagesInput,
        metadata: MetadataInput = None,
    ) -> str:
        chat_id = await self.get_next_id()
        url_id = await self.get_url_id(chat_id)
        await self.set_messages(chat_id, messages, url_id, description, None, metadata)
        logger.debug("Chat created: %s", chat_id)
        return chat_id

    async def fork_chat(self, chat_id: str, message_id: str) -> str:
        """Copy messages up to and including ``message_id`` into a new chat."""
        chat = await self.get_messages(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")

        index = next(
            (i for i, message in enumerate(chat.messages) if _matches(message, message_id)),
            None,
        )
        if index is None:
            raise MessageNotFoundError(f"Message not found: {message_id}")

        description = f"{chat.description} (fork)" if chat.description else "Forked chat"
        return await self.create_chat_from_messages(description, chat.messages[: index + 1])

    async def duplicate_chat(self, chat_id: str) -> str:
        chat = await self.get_messages(chat_id)
        if chat is None:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")

        description = f"{chat.description} (copy)" if chat.description else "Duplicated chat"
        return await self.create_chat_from_messages(description, chat.messages, chat.metadata)

    async def update_chat_description(self, chat_id: str, description: str) -> None:
        with translate_db_errors("Update chat description", chat_id=chat_id):
            async with self._sessions() as db:
                result = await db.execute(
                    update(Chat).where(Chat.id == chat_id).values(description=description)
                )
                await db.commit()
        if result.rowcount == 0:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")

    async def update_chat_metadata(self, chat_id: str, metadata: MetadataInput) -> None:
        """Replace chat metadata; None clears it."""
        encoded = encode_chat_metadata(metadata)
        with translate_db_errors("Update chat metadata", chat_id=chat_id):
            async with self._sessions() as db:
                result = await db.execute(
                    update(Chat).where(Chat.id == chat_id).values(metadata_=encoded)
                )
                await db.commit()
        if result.rowcount == 0:
            raise ChatNotFoundError(f"Chat not found: {chat_id}")

    # ----- Snapshots -----

    async def get_snapshot(self, chat_id: str) -> Any | None:
        with translate_db_errors("Get snapshot", chat_id=chat_id):
            async with self._sessions() as db:
                result = await db.execute(select(Snapshot.data).where(Snapshot.chat_id == chat_id))
                raw = result.scalar_one_or_none()
        return decode_snapshot(raw) if raw is not None else None

    async def set_snapshot(self, chat_id: str, snapshot: Any) -> None:
        """Store the snapshot of a chat, replacing any previous one."""
        data = encode_snapshot(snapshot)
        with translate_db_errors("Set snapshot", on_integrity=ReferentialError, chat_id=chat_id):
            async with self._sessions() as db:
                stmt = _insert_for(db)(Snapshot).values(chat_id=chat_id, data=data)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Snapshot.chat_id],
                    set_={"data": stmt.excluded.data},
                )
                await db.execute(stmt)
                await db.commit()

    async def delete_snapshot(self, chat_id: str) -> None:
        with translate_db_errors("Delete snapshot", chat_id=chat_id):
            async with self._sessions() as db:
                await db.execute(delete(Snapshot).where(Snapshot.chat_id == chat_id))
                await db.commit()
