"""
Unit tests for Exception classes.
"""

import pytest
from fastapi import HTTPException

from app.exceptions.base import BaseAppException, ConflictError, NotFoundError, ValidationError
from app.exceptions.storage import (
    ChatNotFoundError,
    EncodingError,
    FileTooLargeError,
    InvalidTimestampError,
    MessageNotFoundError,
    ReferentialError,
    StorageUnavailableError,
    StoredFileNotFoundError,
)


class TestBaseAppException:
    """Test cases for BaseAppException."""

    def test_base_exception_default_values(self):
        exc = BaseAppException("Test error")

        assert exc.message == "Test error"
        assert exc.status_code == 500
        assert exc.error_code == "INTERNAL_ERROR"
        assert exc.details == {}
        assert exc.detail["message"] == "Test error"
        assert exc.detail["error_code"] == "INTERNAL_ERROR"

    def test_base_exception_custom_values(self):
        details = {"chat_id": "1"}
        exc = BaseAppException(
            message="Custom error", status_code=400, error_code="CUSTOM_ERROR", details=details
        )

        assert exc.status_code == 400
        assert exc.details == details
        assert exc.detail["details"] == details

    def test_base_exception_inheritance(self):
        assert isinstance(BaseAppException("Test error"), HTTPException)

    def test_str_is_message(self):
        assert str(BaseAppException("Readable")) == "Readable"


@pytest.mark.parametrize(
    "exc_class,status_code,error_code",
    [
        (StorageUnavailableError, 503, "STORAGE_UNAVAILABLE"),
        (NotFoundError, 404, "NOT_FOUND"),
        (ChatNotFoundError, 404, "CHAT_NOT_FOUND"),
        (MessageNotFoundError, 404, "MESSAGE_NOT_FOUND"),
        (StoredFileNotFoundError, 404, "FILE_NOT_FOUND"),
        (ValidationError, 422, "VALIDATION_ERROR"),
        (InvalidTimestampError, 422, "INVALID_TIMESTAMP"),
        (ConflictError, 409, "CONFLICT"),
        (EncodingError, 500, "ENCODING_ERROR"),
        (ReferentialError, 409, "REFERENTIAL_ERROR"),
        (FileTooLargeError, 413, "FILE_TOO_LARGE"),
    ],
)
def test_error_status_and_code(exc_class, status_code, error_code):
    exc = exc_class()

    assert isinstance(exc, BaseAppException)
    assert exc.status_code == status_code
    assert exc.error_code == error_code
    assert exc.message
