"""
File metadata model for blobs kept in the object store.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base


class File(Base):
    """
    Represents the metadata row of a stored file.

    The row shares its ``id`` with the blob key in the object store.
    ``path`` is the original filename, not a storage key.
    """

    __tablename__ = "files"

    id = Column(String, primary_key=True)
    chat_id = Column(
        "chatId",
        String,
        ForeignKey("chats.id", ondelete="CASCADE"),
        key="chat_id",
        index=True,
    )
    path = Column(Text, nullable=False)
    content_type = Column("contentType", Text, key="content_type")
    size = Column(Integer)
    timestamp = Column(Text, nullable=False)
    metadata_ = Column("metadata", Text, key="metadata_")

    chat = relationship("Chat", back_populates="files")
