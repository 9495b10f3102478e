"""Storage-related exceptions."""

from typing import Any

from .base import BaseAppException


class StorageUnavailableError(BaseAppException):
    """Raised when a backing store is unreachable or not configured."""

    def __init__(
        self,
        message: str = "Storage not available",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            status_code=503,
            error_code="STORAGE_UNAVAILABLE",
            details=details,
        )


class EncodingError(BaseAppException):
    """Raised when a value cannot be serialized or stored JSON is malformed."""

    def __init__(
        self,
        message: str = "Stored data could not be encoded or decoded",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message, status_code=500, error_code="ENCODING_ERROR", details=details
        )


class ReferentialError(BaseAppException):
    """Raised when an operation targets a parent that does not exist."""

    def __init__(
        self,
        message: str = "Referenced resource does not exist",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message, status_code=409, error_code="REFERENTIAL_ERROR", details=details
        )


class InvalidTimestampError(BaseAppException):
    """Raised when a caller-supplied timestamp is not a valid date."""

    def __init__(self, message: str = "Invalid timestamp"):
        super().__init__(message=message, status_code=422, error_code="INVALID_TIMESTAMP")


class ChatNotFoundError(BaseAppException):
    """Raised when a chat is not found."""

    def __init__(self, message: str = "Chat not found"):
        super().__init__(message=message, status_code=404, error_code="CHAT_NOT_FOUND")


class MessageNotFoundError(BaseAppException):
    """Raised when a message id is not present in a chat."""

    def __init__(self, message: str = "Message not found"):
        super().__init__(message=message, status_code=404, error_code="MESSAGE_NOT_FOUND")


class StoredFileNotFoundError(BaseAppException):
    """Raised when a file metadata row is not found."""

    def __init__(self, message: str = "File not found"):
        super().__init__(message=message, status_code=404, error_code="FILE_NOT_FOUND")


class FileTooLargeError(BaseAppException):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, message: str = "File too large", details: dict[str, Any] | None = None):
        super().__init__(
            message=message, status_code=413, error_code="FILE_TOO_LARGE", details=details
        )
