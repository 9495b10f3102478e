"""
User, session and API-key tables.

These tables are part of the bootstrap schema so deployments can move
sessions and credentials into the relational store later. The key-value
store currently owns both concerns, so no service reads or writes them.
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from .base import Base


class User(Base):
    """
    Represents a user entity in the application.
    """

    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, unique=True)
    email = Column(String, unique=True)
    created_at = Column("createdAt", Text, key="created_at", nullable=False)
    last_login = Column("lastLogin", Text, key="last_login")
    settings = Column(Text)

    # Relationships
    api_keys = relationship(
        "ApiKey", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class UserSession(Base):
    """
    Represents a persisted user session.
    """

    __tablename__ = "sessions"

    id = Column(String, primary_key=True)
    user_id = Column("userId", String, key="user_id")
    data = Column(Text, nullable=False)
    expires = Column(Integer, nullable=False)


class ApiKey(Base):
    """
    Represents one provider credential of a user.
    """

    __tablename__ = "api_keys"

    user_id = Column(
        "userId",
        String,
        ForeignKey("users.id", ondelete="CASCADE"),
        key="user_id",
        primary_key=True,
    )
    provider = Column(String, primary_key=True)
    api_key = Column("apiKey", Text, key="api_key", nullable=False)
    created_at = Column("createdAt", Text, key="created_at", nullable=False)

    user = relationship("User", back_populates="api_keys")
