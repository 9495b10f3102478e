"""
Unit tests for the object store and its backends.
"""

import io
import json
from unittest.mock import MagicMock
from urllib.parse import unquote

import pytest
from botocore.exceptions import ClientError

from app.exceptions.base import ValidationError
from app.exceptions.storage import EncodingError, ReferentialError, StorageUnavailableError
from app.services.object_store import LocalObjectBackend, ObjectStore, S3ObjectBackend


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestObjectStoreLocal:
    """Test cases for ObjectStore over the filesystem backend."""

    @pytest.mark.asyncio
    async def test_store_and_get(self, object_store):
        key = await object_store.store_file("a/b.txt", "héllo", {"path": "b.txt"})

        assert key == "a/b.txt"
        assert await object_store.get_file("a/b.txt") == "héllo".encode("utf-8")
        assert await object_store.get_file_as_text("a/b.txt") == "héllo"
        assert await object_store.get_file_metadata("a/b.txt") == {"path": "b.txt"}

    @pytest.mark.asyncio
    async def test_missing_file(self, object_store):
        assert await object_store.get_file("nope") is None
        assert await object_store.get_file_as_text("nope") is None
        assert await object_store.get_file_metadata("nope") is None
        assert await object_store.file_exists("nope") is False

    @pytest.mark.asyncio
    async def test_binary_is_not_text(self, object_store):
        await object_store.store_file("bin", b"\xff\xfe\x00")
        with pytest.raises(EncodingError):
            await object_store.get_file_as_text("bin")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, object_store):
        await object_store.store_file("k", b"data")
        await object_store.delete_file("k")
        await object_store.delete_file("k")

        assert await object_store.file_exists("k") is False

    @pytest.mark.asyncio
    async def test_prefix_collapses_separators(self, tmp_path):
        store = ObjectStore(LocalObjectBackend(tmp_path), prefix="/tenant/")

        key = await store.store_file("//docs///x.txt", b"x")

        assert key == "tenant/docs/x.txt"
        assert (tmp_path / "tenant" / "docs" / "x.txt").read_bytes() == b"x"
        assert await store.list_files("docs") == ["docs/x.txt"]

    @pytest.mark.asyncio
    async def test_list_skips_metadata_tree(self, object_store):
        await object_store.store_file("one", b"1", {"a": "b"})
        await object_store.store_file("two", b"2")

        assert await object_store.list_files() == ["one", "two"]

    @pytest.mark.asyncio
    async def test_json_suffixed_key_keeps_its_own_metadata(self, object_store):
        await object_store.store_file("x", b"blob", {"owner": "x"})
        await object_store.store_file("x.meta.json", b"not metadata", {"owner": "other"})

        assert await object_store.get_file_metadata("x") == {"owner": "x"}
        assert await object_store.get_file("x.meta.json") == b"not metadata"
        assert await object_store.list_files() == ["x", "x.meta.json"]

    @pytest.mark.asyncio
    async def test_reserved_metadata_prefix_is_rejected(self, object_store):
        with pytest.raises(ValidationError):
            await object_store.store_file(".meta/x.json", b"{}")

    @pytest.mark.asyncio
    async def test_corrupt_metadata_is_encoding_error(self, tmp_path):
        store = ObjectStore(LocalObjectBackend(tmp_path))
        await store.store_file("doc", b"body", {"a": "1"})
        (tmp_path / ".meta" / "doc.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(EncodingError):
            await store.get_file_metadata("doc")
        with pytest.raises(EncodingError):
            await store.get_file("doc")

    @pytest.mark.asyncio
    async def test_delete_removes_metadata(self, tmp_path):
        store = ObjectStore(LocalObjectBackend(tmp_path))
        await store.store_file("doc", b"body", {"a": "1"})

        await store.delete_file("doc")

        assert not (tmp_path / ".meta" / "doc.json").exists()

    @pytest.mark.asyncio
    async def test_update_metadata_replaces_map(self, object_store):
        await object_store.store_file("doc", b"body", {"a": "1", "b": "2"})

        await object_store.update_file_metadata("doc", {"c": "3"})

        assert await object_store.get_file_metadata("doc") == {"c": "3"}
        assert await object_store.get_file("doc") == b"body"

    @pytest.mark.asyncio
    async def test_update_metadata_of_missing_blob(self, object_store):
        with pytest.raises(ReferentialError):
            await object_store.update_file_metadata("ghost", {"a": "b"})

    @pytest.mark.asyncio
    async def test_key_cannot_escape_base_dir(self, object_store):
        with pytest.raises(StorageUnavailableError):
            await object_store.store_file("../outside", b"x")

    @pytest.mark.asyncio
    async def test_file_exists_is_false_when_backend_fails(self):
        backend = MagicMock()
        backend.head.side_effect = StorageUnavailableError("down")
        store = ObjectStore(backend)

        assert await store.file_exists("k") is False


class TestS3ObjectBackend:
    """Test cases for the S3 backend with a mocked boto3 client."""

    @pytest.mark.asyncio
    async def test_put_stores_metadata_as_single_attribute(self):
        client = MagicMock()
        backend = S3ObjectBackend("bucket", client=client)

        await backend.put("k", b"body", {"contentType": "text/plain", "name": "résumé"})

        kwargs = client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "bucket"
        assert kwargs["Key"] == "k"
        assert set(kwargs["Metadata"]) == {"attributes"}
        assert kwargs["Metadata"]["attributes"].isascii()
        assert json.loads(unquote(kwargs["Metadata"]["attributes"])) == {
            "contentType": "text/plain",
            "name": "résumé",
        }

    @pytest.mark.asyncio
    async def test_get_round_trips_metadata(self):
        client = MagicMock()
        backend = S3ObjectBackend("bucket", client=client)
        await backend.put("k", b"body", {"chatId": "1"})
        stored_metadata = client.put_object.call_args.kwargs["Metadata"]
        client.get_object.return_value = {"Body": io.BytesIO(b"body"), "Metadata": stored_metadata}

        stored = await backend.get("k")

        assert stored.body == b"body"
        assert stored.metadata == {"chatId": "1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["404", "NoSuchKey", "NotFound"])
    async def test_not_found_is_none(self, code):
        client = MagicMock()
        client.head_object.side_effect = _client_error(code)
        client.get_object.side_effect = _client_error(code, "GetObject")
        backend = S3ObjectBackend("bucket", client=client)

        assert await backend.head("k") is None
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_other_client_errors_are_unavailable(self):
        client = MagicMock()
        client.get_object.side_effect = _client_error("AccessDenied", "GetObject")
        store = ObjectStore(S3ObjectBackend("bucket", client=client))

        with pytest.raises(StorageUnavailableError):
            await store.get_file("k")

    @pytest.mark.asyncio
    async def test_list_follows_continuation(self):
        client = MagicMock()
        client.list_objects_v2.side_effect = [
            {"Contents": [{"Key": "p/a"}], "IsTruncated": True, "NextContinuationToken": "t"},
            {"Contents": [{"Key": "p/b"}], "IsTruncated": False},
        ]
        store = ObjectStore(S3ObjectBackend("bucket", client=client), prefix="p")

        assert await store.list_files() == ["a", "b"]
        second_call = client.list_objects_v2.call_args_list[1].kwargs
        assert second_call["ContinuationToken"] == "t"
        assert second_call["Prefix"] == "p/"
