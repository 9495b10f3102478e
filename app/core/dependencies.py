# app/core/dependencies.py
import logging

from fastapi import Depends, Request

from app.core.config import settings
from app.core.context import CoordinationContext
from app.exceptions.storage import StorageUnavailableError

logger = logging.getLogger(__name__)


def get_optional_context(request: Request) -> CoordinationContext | None:
    """Return the storage context, or None when storage is not configured."""
    return getattr(request.app.state, "context", None)


def get_context(
    context: CoordinationContext | None = Depends(get_optional_context),
) -> CoordinationContext:
    """Return the storage context.

    Raises:
        StorageUnavailableError: If storage is not configured
    """
    if context is None:
        logger.warning("Storage requested but not configured")
        raise StorageUnavailableError("Storage not available")
    return context


def get_current_user_id() -> str:
    """Return the placeholder user; authentication is handled upstream."""
    return settings.default_user_id
