"""
Chat transcript and snapshot models.
"""

from sqlalchemy import Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from .base import Base


class Chat(Base):
    """
    Represents a stored chat transcript.

    ``id`` is a decimal string allocated by ``ChatService.get_next_id``;
    ``url_id`` is the shareable identifier and is unique when present.
    ``messages`` and ``metadata_`` hold versioned JSON envelopes.
    """

    __tablename__ = "chats"

    id = Column(String, primary_key=True)
    url_id = Column("urlId", String, key="url_id", unique=True, index=True)
    messages = Column(Text, nullable=False)
    description = Column(Text)
    timestamp = Column(Text, nullable=False)
    metadata_ = Column("metadata", Text, key="metadata_")

    # Relationships
    snapshot = relationship(
        "Snapshot",
        back_populates="chat",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    files = relationship(
        "File",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Snapshot(Base):
    """
    Project file-tree state for a chat; at most one per chat.
    """

    __tablename__ = "snapshots"

    chat_id = Column(
        "chatId",
        String,
        ForeignKey("chats.id", ondelete="CASCADE"),
        key="chat_id",
        primary_key=True,
    )
    data = Column(Text, nullable=False)

    chat = relationship("Chat", back_populates="snapshot")
