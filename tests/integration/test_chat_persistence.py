"""
Integration tests for chat and snapshot persistence on SQLite.
"""

import pytest
from sqlalchemy import text

from app.exceptions.base import ConflictError, ValidationError
from app.exceptions.storage import (
    ChatNotFoundError,
    EncodingError,
    InvalidTimestampError,
    MessageNotFoundError,
    ReferentialError,
)
from app.schemas.chat import ChatMetadata


class TestChatIds:
    """Test cases for id and url id allocation."""

    @pytest.mark.asyncio
    async def test_first_id_is_one(self, context):
        assert await context.chats.get_next_id() == "1"

    @pytest.mark.asyncio
    async def test_next_id_follows_numeric_maximum(self, context, messages):
        for chat_id in ("1", "2", "7"):
            await context.save_chat_messages(chat_id, messages)

        assert await context.chats.get_next_id() == "8"

    @pytest.mark.asyncio
    async def test_next_id_compares_numerically(self, context, messages):
        await context.save_chat_messages("9", messages)
        await context.save_chat_messages("10", messages)

        assert await context.chats.get_next_id() == "11"

    @pytest.mark.asyncio
    async def test_url_id_suffix(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="5")
        await context.save_chat_messages("2", messages, url_id="5-2")

        assert await context.chats.get_url_id("5") == "5-3"
        assert await context.chats.get_url_id("6") == "6"


class TestSetMessages:
    """Test cases for the chat upsert."""

    @pytest.mark.asyncio
    async def test_insert_and_read_back(self, context, messages):
        metadata = {"gitUrl": "https://example.test/repo.git"}
        await context.save_chat_messages(
            "1", messages, url_id="u1", description="demo",
            timestamp="2024-01-01T00:00:00+00:00", metadata=metadata,
        )

        chat = await context.get_chat_messages("1")

        assert chat.id == "1"
        assert chat.url_id == "u1"
        assert chat.description == "demo"
        assert chat.timestamp == "2024-01-01T00:00:00+00:00"
        assert [m.id for m in chat.messages] == ["m1", "m2", "m3"]
        assert chat.metadata == ChatMetadata(git_url="https://example.test/repo.git")

    @pytest.mark.asyncio
    async def test_upsert_keeps_fields_passed_as_none(self, context, messages):
        await context.save_chat_messages(
            "1", messages, url_id="u1", description="demo",
            metadata={"gitUrl": "https://example.test/repo.git"},
        )

        await context.save_chat_messages("1", messages[:1], timestamp="2024-02-01T00:00:00")

        chat = await context.get_chat_messages("1")
        assert [m.id for m in chat.messages] == ["m1"]
        assert chat.url_id == "u1"
        assert chat.description == "demo"
        assert chat.metadata.git_url == "https://example.test/repo.git"
        assert chat.timestamp == "2024-02-01T00:00:00"

    @pytest.mark.asyncio
    async def test_upsert_overwrites_given_fields(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="u1", description="old")
        await context.save_chat_messages("1", messages, url_id="u2", description="new")

        chat = await context.get_chat_messages("1")
        assert chat.url_id == "u2"
        assert chat.description == "new"

    @pytest.mark.asyncio
    async def test_timestamp_defaults_to_now(self, context, messages):
        await context.save_chat_messages("1", messages)

        chat = await context.get_chat_messages("1")
        assert chat.timestamp.startswith("20")

    @pytest.mark.asyncio
    async def test_invalid_timestamp(self, context, messages):
        with pytest.raises(InvalidTimestampError):
            await context.save_chat_messages("1", messages, timestamp="not-a-date")

        assert await context.get_chat_messages("1") is None

    @pytest.mark.asyncio
    async def test_duplicate_url_id_conflicts(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="shared")

        with pytest.raises(ConflictError):
            await context.save_chat_messages("2", messages, url_id="shared")

    @pytest.mark.asyncio
    async def test_invalid_message_is_rejected(self, context):
        with pytest.raises(ValidationError):
            await context.save_chat_messages("1", [{"content": "missing role"}])

    @pytest.mark.asyncio
    async def test_lookup_by_url_id(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="shareable")

        chat = await context.get_chat_messages("shareable")

        assert chat.id == "1"
        assert await context.get_chat_messages("unknown") is None

    @pytest.mark.asyncio
    async def test_id_wins_over_url_id(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="2")
        await context.save_chat_messages("2", messages[:1], url_id="other")

        chat = await context.get_chat_messages("2")
        assert chat.id == "2"

    @pytest.mark.asyncio
    async def test_get_all_newest_first(self, context, messages):
        await context.save_chat_messages("1", messages, timestamp="2024-01-01T00:00:00")
        await context.save_chat_messages("2", messages, timestamp="2024-03-01T00:00:00")
        await context.save_chat_messages("3", messages, timestamp="2024-02-01T00:00:00")

        chats = await context.get_all_chats()

        assert [chat.id for chat in chats] == ["2", "3", "1"]

    @pytest.mark.asyncio
    async def test_legacy_bare_json_rows_decode(self, context):
        async with context.engine.begin() as conn:
            await conn.execute(
                text(
                    "INSERT INTO chats (id, messages, timestamp, metadata) "
                    "VALUES ('1', :messages, '2023-01-01T00:00:00', :metadata)"
                ),
                {
                    "messages": '[{"id": "a", "role": "user", "content": "old"}]',
                    "metadata": '{"gitUrl": "https://example.test/legacy.git"}',
                },
            )

        chat = await context.get_chat_messages("1")

        assert chat.messages[0].content == "old"
        assert chat.metadata.git_url == "https://example.test/legacy.git"

    @pytest.mark.asyncio
    async def test_corrupt_row_raises_encoding_error(self, context):
        async with context.engine.begin() as conn:
            await conn.execute(
                text("INSERT INTO chats (id, messages, timestamp) VALUES ('1', '{oops', '2023')")
            )

        with pytest.raises(EncodingError):
            await context.get_chat_messages("1")


class TestChatLifecycle:
    """Test cases for create, fork, duplicate, update and delete."""

    @pytest.mark.asyncio
    async def test_create_chat_allocates_ids(self, context, messages):
        first = await context.create_chat("first", messages)
        second = await context.create_chat("second", messages)

        assert (first, second) == ("1", "2")
        chat = await context.get_chat_messages(second)
        assert chat.url_id == "2"
        assert chat.description == "second"

    @pytest.mark.asyncio
    async def test_create_chat_skips_taken_url_id(self, context, messages):
        await context.save_chat_messages("5", messages, url_id="6")

        new_id = await context.create_chat("next", messages)

        assert new_id == "6"
        assert (await context.chats.get_messages_by_id("6")).url_id == "6-2"

    @pytest.mark.asyncio
    async def test_fork_copies_prefix_inclusive(self, context, messages):
        await context.save_chat_messages("1", messages, url_id="1", description="demo")

        forked_id = await context.fork_chat("1", "m2")

        forked = await context.get_chat_messages(forked_id)
        assert forked_id == "2"
        assert forked.description == "demo (fork)"
        assert [m.id for m in forked.messages] == ["m1", "m2"]
        assert len((await context.get_chat_messages("1")).messages) == 3

    @pytest.mark.asyncio
    async def test_fork_without_description(self, context, messages):
        await context.save_chat_messages("1", messages)

        forked = await context.get_chat_messages(await context.fork_chat("1", "m1"))

        assert forked.description == "Forked chat"

    @pytest.mark.asyncio
    async def test_fork_errors(self, context, messages):
        with pytest.raises(ChatNotFoundError):
            await context.fork_chat("404", "m1")

        await context.save_chat_messages("1", messages)
        with pytest.raises(MessageNotFoundError):
            await context.fork_chat("1", "missing")

    @pytest.mark.asyncio
    async def test_fork_matches_numeric_message_ids(self, context):
        numbered = [
            {"id": 1, "role": "user", "content": "hi"},
            {"id": 2, "role": "assistant", "content": "hello"},
        ]
        await context.save_chat_messages("1", numbered, description="demo")

        forked = await context.get_chat_messages(await context.fork_chat("1", "1"))

        assert [m.id for m in forked.messages] == [1]

    @pytest.mark.asyncio
    async def test_create_then_fork_single_message(self, context):
        chat_id = await context.create_chat("demo", [{"id": "m1", "role": "user", "content": "hi"}])

        assert chat_id == "1"
        forked_id = await context.fork_chat(chat_id, "m1")

        assert forked_id == "2"
        forked = await context.get_chat_messages(forked_id)
        assert forked.description == "demo (fork)"
        assert [(m.role, m.content) for m in forked.messages] == [("user", "hi")]

    @pytest.mark.asyncio
    async def test_duplicate_carries_metadata(self, context, messages):
        await context.save_chat_messages(
            "1", messages, description="demo",
            metadata={"gitUrl": "https://example.test/repo.git", "netlifySiteId": "site"},
        )

        copy = await context.get_chat_messages(await context.duplicate_chat("1"))

        assert copy.description == "demo (copy)"
        assert len(copy.messages) == 3
        assert copy.metadata.netlify_site_id == "site"

    @pytest.mark.asyncio
    async def test_duplicate_missing_chat(self, context):
        with pytest.raises(ChatNotFoundError):
            await context.duplicate_chat("1")

    @pytest.mark.asyncio
    async def test_update_description_and_metadata(self, context, messages):
        await context.save_chat_messages("1", messages, description="old")

        await context.update_chat_description("1", "new")
        await context.update_chat_metadata("1", {"gitUrl": "https://example.test/x.git"})

        chat = await context.get_chat_messages("1")
        assert chat.description == "new"
        assert chat.metadata.git_url == "https://example.test/x.git"

        await context.update_chat_metadata("1", None)
        assert (await context.get_chat_messages("1")).metadata is None

    @pytest.mark.asyncio
    async def test_updates_on_missing_chat(self, context):
        with pytest.raises(ChatNotFoundError):
            await context.update_chat_description("1", "x")
        with pytest.raises(ChatNotFoundError):
            await context.update_chat_metadata("1", None)

    @pytest.mark.asyncio
    async def test_delete_chat_is_idempotent(self, context, messages):
        await context.save_chat_messages("1", messages)

        await context.delete_chat("1")
        await context.delete_chat("1")

        assert await context.get_chat_messages("1") is None


class TestSnapshots:
    """Test cases for snapshot persistence."""

    @pytest.mark.asyncio
    async def test_set_get_replace(self, context, messages):
        await context.save_chat_messages("1", messages)

        await context.save_chat_snapshot("1", {"chatIndex": "m1", "files": {}})
        await context.save_chat_snapshot("1", {"chatIndex": "m3", "files": {"/a": {}}})

        assert await context.get_chat_snapshot("1") == {"chatIndex": "m3", "files": {"/a": {}}}

    @pytest.mark.asyncio
    async def test_missing_snapshot_is_none(self, context):
        assert await context.get_chat_snapshot("1") is None

    @pytest.mark.asyncio
    async def test_snapshot_for_unknown_chat(self, context):
        with pytest.raises(ReferentialError):
            await context.save_chat_snapshot("404", {"files": {}})

    @pytest.mark.asyncio
    async def test_delete_snapshot_is_idempotent(self, context, messages):
        await context.save_chat_messages("1", messages)
        await context.save_chat_snapshot("1", {"files": {}})

        await context.delete_chat_snapshot("1")
        await context.delete_chat_snapshot("1")

        assert await context.get_chat_snapshot("1") is None

    @pytest.mark.asyncio
    async def test_delete_chat_cascades_to_snapshot(self, context, messages):
        await context.save_chat_messages("1", messages)
        await context.save_chat_snapshot("1", {"files": {}})

        await context.delete_chat("1")

        assert await context.get_chat_snapshot("1") is None
