"""
Models package initialization.
"""

from .base import Base
from .chat import Chat, Snapshot
from .file import File
from .user import ApiKey, User, UserSession

__all__ = [
    "Base",
    # Chat models
    "Chat",
    "Snapshot",
    "File",
    # Extension tables
    "User",
    "UserSession",
    "ApiKey",
]
