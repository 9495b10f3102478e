"""JSON encoding for the text columns of the relational store.

Messages, chat metadata and snapshots are stored inside a versioned envelope,
``{"version": 1, "data": ...}``. Rows written before the envelope existed hold
the bare value; readers accept both shapes.
"""

import json
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.exceptions.base import ValidationError
from app.exceptions.storage import EncodingError
from app.schemas.chat import ChatMetadata, Message

SCHEMA_VERSION = 1


def dump_json(value: Any, what: str = "value") -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Cannot encode {what} as JSON", details={"error": str(e)}) from e


def load_json(raw: str | bytes, what: str = "value") -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Stored {what} is not valid JSON", details={"error": str(e)}) from e


def _is_envelope(payload: Any) -> bool:
    return isinstance(payload, dict) and set(payload) == {"version", "data"}


def _wrap(data: Any, what: str) -> str:
    return dump_json({"version": SCHEMA_VERSION, "data": data}, what)


def _unwrap(raw: str, what: str) -> Any:
    payload = load_json(raw, what)
    if not _is_envelope(payload):
        return payload
    version = payload["version"]
    if not isinstance(version, int) or version > SCHEMA_VERSION or version < 1:
        raise EncodingError(
            f"Unsupported {what} schema version", details={"version": version}
        )
    return payload["data"]


def normalize_messages(messages: Sequence[Message | Mapping[str, Any]]) -> list[Message]:
    """Validate caller-supplied messages."""
    if isinstance(messages, (str, bytes)) or not isinstance(messages, Sequence):
        raise ValidationError("Messages must be a list")
    try:
        return [
            item if isinstance(item, Message) else Message.model_validate(item)
            for item in messages
        ]
    except PydanticValidationError as e:
        raise ValidationError("Invalid message", details={"errors": str(e)}) from e


def encode_messages(messages: Sequence[Message | Mapping[str, Any]]) -> str:
    payload = [
        message.model_dump(mode="json", exclude_unset=True)
        for message in normalize_messages(messages)
    ]
    return _wrap(payload, "messages")


def decode_messages(raw: str) -> list[Message]:
    data = _unwrap(raw, "messages")
    if not isinstance(data, list):
        raise EncodingError("Stored messages are not a list")
    try:
        return [Message.model_validate(item) for item in data]
    except PydanticValidationError as e:
        raise EncodingError("Stored messages are malformed", details={"errors": str(e)}) from e


def normalize_chat_metadata(metadata: ChatMetadata | Mapping[str, Any] | None) -> ChatMetadata | None:
    if metadata is None or isinstance(metadata, ChatMetadata):
        return metadata
    try:
        return ChatMetadata.model_validate(metadata)
    except PydanticValidationError as e:
        raise ValidationError("Invalid chat metadata", details={"errors": str(e)}) from e


def encode_chat_metadata(metadata: ChatMetadata | Mapping[str, Any] | None) -> str | None:
    metadata = normalize_chat_metadata(metadata)
    if metadata is None:
        return None
    return _wrap(metadata.model_dump(mode="json", by_alias=True, exclude_none=True), "chat metadata")


def decode_chat_metadata(raw: str | None) -> ChatMetadata | None:
    if not raw:
        return None
    data = _unwrap(raw, "chat metadata")
    if data is None:
        return None
    try:
        return ChatMetadata.model_validate(data)
    except PydanticValidationError as e:
        raise EncodingError("Stored chat metadata is malformed", details={"errors": str(e)}) from e


def encode_snapshot(snapshot: Any) -> str:
    return _wrap(snapshot, "snapshot")


def decode_snapshot(raw: str) -> Any:
    return _unwrap(raw, "snapshot")


def validate_string_map(metadata: Mapping[str, Any] | None, what: str = "metadata") -> dict[str, str] | None:
    """Check that ``metadata`` is a flat string-to-string map."""
    if metadata is None:
        return None
    if not isinstance(metadata, Mapping):
        raise ValidationError(f"{what} must be a mapping")
    bad = [key for key, value in metadata.items() if not isinstance(key, str) or not isinstance(value, str)]
    if bad:
        raise ValidationError(f"{what} keys and values must be strings", details={"keys": [str(k) for k in bad]})
    return dict(metadata)


def encode_file_metadata(metadata: Mapping[str, str] | None) -> str | None:
    if metadata is None:
        return None
    return dump_json(dict(metadata), "file metadata")


def decode_file_metadata(raw: str | None) -> dict[str, str] | None:
    if not raw:
        return None
    data = load_json(raw, "file metadata")
    if not isinstance(data, dict):
        raise EncodingError("Stored file metadata is not an object")
    return {str(key): str(value) for key, value in data.items()}
