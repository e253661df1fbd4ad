"""Tests for Store: aiosqlite CRUD."""

from pathlib import Path

import aiosqlite
import pytest

from hearth.chat.models import Conversation, Message, Role
from hearth.memory.models import MemoryItem
from hearth.store import Store


def _conversation(conversation_id: str | None = None, **kwargs) -> Conversation:
    defaults = {"model_id": "llama-3.2-1b", "title": "New Chat", "created_at": 1000.0}
    defaults.update(kwargs)
    if conversation_id:
        defaults["id"] = conversation_id
    return Conversation(**defaults)


def _message(content: str = "hello", role: Role = Role.USER, timestamp: float = 1001.0) -> Message:
    return Message(role=role, content=content, timestamp=timestamp)


async def _raw(store: Store, sql: str, params: tuple = ()) -> None:
    """Execute SQL directly, bypassing the Store's validation."""
    await store.count_rows()  # ensure the schema exists
    async with aiosqlite.connect(str(store.path)) as db:
        await db.execute(sql, params)
        await db.commit()


# -- conversations -------------------------------------------------------------


async def test_insert_and_list_conversation(store: Store) -> None:
    conversation = _conversation(title="Trip ideas", updated_at=1005.0)
    assert await store.insert_conversation(conversation) is True

    listed = await store.list_conversations()
    assert listed == [conversation]


async def test_insert_duplicate_conversation_fails(store: Store) -> None:
    conversation = _conversation()
    assert await store.insert_conversation(conversation) is True
    assert await store.insert_conversation(conversation) is False
    assert len(await store.list_conversations()) == 1


async def test_list_conversations_most_recent_first(store: Store) -> None:
    old = _conversation(title="old", updated_at=1000.0)
    new = _conversation(title="new", updated_at=2000.0)
    await store.insert_conversation(old)
    await store.insert_conversation(new)

    titles = [c.title for c in await store.list_conversations()]
    assert titles == ["new", "old"]


async def test_list_conversations_loads_messages_in_order(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)
    await store.insert_message(_message("second", timestamp=1002.0), conversation.id)
    await store.insert_message(_message("first", timestamp=1001.0), conversation.id)

    [loaded] = await store.list_conversations()
    assert [m.content for m in loaded.messages] == ["first", "second"]
    assert all(m.streaming is False for m in loaded.messages)


async def test_update_conversation(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)

    assert await store.update_conversation(conversation.id, "Renamed", 3000.0) is True
    loaded = await store.get_conversation(conversation.id)
    assert loaded is not None
    assert loaded.title == "Renamed"
    assert loaded.updated_at == 3000.0


async def test_update_unknown_conversation_returns_false(store: Store) -> None:
    assert await store.update_conversation("0" * 32, "x", 1.0) is False


async def test_get_conversation_not_found(store: Store) -> None:
    assert await store.get_conversation("0" * 32) is None


async def test_delete_conversation_cascades_to_messages(store: Store) -> None:
    keep = _conversation()
    drop = _conversation()
    await store.insert_conversation(keep)
    await store.insert_conversation(drop)
    await store.insert_message(_message("stays"), keep.id)
    await store.insert_message(_message("goes"), drop.id)
    await store.insert_message(_message("goes too", timestamp=1002.0), drop.id)

    assert await store.delete_conversation(drop.id) is True

    assert await store.list_messages(drop.id) == []
    assert [m.content for m in await store.list_messages(keep.id)] == ["stays"]
    counts = await store.count_rows()
    assert counts["conversations"] == 1
    assert counts["messages"] == 1


async def test_foreign_key_cascade_is_enforced(store: Store) -> None:
    """Deleting the conversation row alone still removes its messages."""
    conversation = _conversation()
    await store.insert_conversation(conversation)
    await store.insert_message(_message(), conversation.id)

    async with aiosqlite.connect(str(store.path)) as db:
        await db.execute("PRAGMA foreign_keys = ON")
        await db.execute("DELETE FROM conversations WHERE id = ?", (conversation.id,))
        await db.commit()

    assert await store.list_messages(conversation.id) == []


async def test_delete_unknown_conversation_returns_false(store: Store) -> None:
    assert await store.delete_conversation("0" * 32) is False


async def test_clear_all_conversations(store: Store) -> None:
    for _ in range(3):
        conversation = _conversation()
        await store.insert_conversation(conversation)
        await store.insert_message(_message(), conversation.id)

    assert await store.clear_all_conversations() is True
    assert await store.list_conversations() == []
    counts = await store.count_rows()
    assert counts["messages"] == 0


# -- messages ------------------------------------------------------------------


async def test_message_round_trip(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)
    message = _message("Ünïcode ✓ and\nnewlines", role=Role.ASSISTANT, timestamp=1234.5678)

    assert await store.insert_message(message, conversation.id) is True
    assert await store.list_messages(conversation.id) == [message]


async def test_equal_timestamps_keep_insertion_order(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)
    for text in ["a", "b", "c"]:
        await store.insert_message(_message(text, timestamp=1001.0), conversation.id)

    assert [m.content for m in await store.list_messages(conversation.id)] == ["a", "b", "c"]


async def test_insert_message_for_unknown_conversation_fails(store: Store) -> None:
    assert await store.insert_message(_message(), "0" * 32) is False
    assert (await store.count_rows())["messages"] == 0


async def test_insert_message_updates_conversation_atomically(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)

    ok = await store.insert_message(
        _message(), conversation.id, title="Greeting", updated_at=5000.0
    )
    assert ok is True
    loaded = await store.get_conversation(conversation.id)
    assert loaded is not None
    assert loaded.title == "Greeting"
    assert loaded.updated_at == 5000.0
    assert len(loaded.messages) == 1


async def test_insert_message_touch_without_title(store: Store) -> None:
    conversation = _conversation(title="Keep me")
    await store.insert_conversation(conversation)

    await store.insert_message(_message(), conversation.id, updated_at=6000.0)
    loaded = await store.get_conversation(conversation.id)
    assert loaded is not None
    assert loaded.title == "Keep me"
    assert loaded.updated_at == 6000.0


async def test_streaming_message_is_rejected(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)
    message = Message(role=Role.ASSISTANT, content="partial", streaming=True)

    assert await store.insert_message(message, conversation.id) is False
    assert await store.list_messages(conversation.id) == []


async def test_duplicate_message_leaves_store_unchanged(store: Store) -> None:
    conversation = _conversation(updated_at=1000.0)
    await store.insert_conversation(conversation)
    message = _message()
    await store.insert_message(message, conversation.id)

    ok = await store.insert_message(message, conversation.id, title="x", updated_at=9000.0)
    assert ok is False
    loaded = await store.get_conversation(conversation.id)
    assert loaded is not None
    assert loaded.title == "New Chat"
    assert loaded.updated_at == 1000.0
    assert len(loaded.messages) == 1


# -- memories ------------------------------------------------------------------


async def test_memory_round_trip(store: Store) -> None:
    item = MemoryItem(text="Allergic to peanuts", embedding=[0.5, -0.25, 0.125, 0.0])
    assert await store.insert_memory_item(item) is True

    [loaded] = await store.list_memory_items()
    assert loaded == item


async def test_encoded_memory_round_trip(store: Store, encoder) -> None:
    item = MemoryItem(text="Lives in Porto", embedding=encoder.encode("Lives in Porto"))
    await store.insert_memory_item(item)

    [loaded] = await store.list_memory_items()
    assert loaded.embedding == item.embedding


async def test_list_memories_most_recent_first(store: Store) -> None:
    await store.insert_memory_item(MemoryItem(text="old", embedding=[1.0], created_at=1.0))
    await store.insert_memory_item(MemoryItem(text="new", embedding=[1.0], created_at=2.0))

    assert [m.text for m in await store.list_memory_items()] == ["new", "old"]


async def test_delete_memory(store: Store) -> None:
    item = MemoryItem(text="x", embedding=[1.0])
    await store.insert_memory_item(item)

    assert await store.delete_memory_item(item.id) is True
    assert await store.list_memory_items() == []
    assert await store.delete_memory_item(item.id) is False


async def test_delete_all_memories(store: Store) -> None:
    for i in range(3):
        await store.insert_memory_item(MemoryItem(text=str(i), embedding=[1.0]))

    assert await store.delete_all_memory_items() is True
    assert await store.list_memory_items() == []


# -- corruption ----------------------------------------------------------------


async def test_corrupt_embedding_row_is_skipped(store: Store) -> None:
    good = MemoryItem(text="good", embedding=[1.0, 0.0])
    await store.insert_memory_item(good)
    await _raw(
        store,
        "INSERT INTO memories (id, text, embedding, created_at) VALUES (?, ?, ?, ?)",
        ("f" * 32, "bad", b"\x00" * 5, 5.0),
    )

    assert await store.list_memory_items() == [good]


async def test_corrupt_conversation_row_is_skipped(store: Store) -> None:
    good = _conversation()
    await store.insert_conversation(good)
    await _raw(
        store,
        "INSERT INTO conversations (id, title, model_id, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?)",
        ("not-a-uuid", "broken", "llama-3.2-1b", 1.0, 1.0),
    )

    assert [c.id for c in await store.list_conversations()] == [good.id]


async def test_corrupt_message_row_is_skipped(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)
    await store.insert_message(_message("fine"), conversation.id)
    await _raw(
        store,
        "INSERT INTO messages (id, conversation_id, role, content, timestamp) "
        "VALUES (?, ?, ?, ?, ?)",
        ("e" * 32, conversation.id, "user", "bad timestamp", "yesterday"),
    )

    [loaded] = await store.list_conversations()
    assert [m.content for m in loaded.messages] == ["fine"]


# -- persistence ---------------------------------------------------------------


async def test_data_survives_new_store_instance(db_path: Path) -> None:
    first = Store(db_path)
    conversation = _conversation()
    await first.insert_conversation(conversation)
    await first.insert_message(_message(), conversation.id)
    await first.insert_memory_item(MemoryItem(text="x", embedding=[0.25]))

    second = Store(db_path)
    [loaded] = await second.list_conversations()
    assert loaded.id == conversation.id
    assert len(loaded.messages) == 1
    assert len(await second.list_memory_items()) == 1


async def test_count_rows_empty(store: Store) -> None:
    assert await store.count_rows() == {"conversations": 0, "messages": 0, "memories": 0}


async def test_unwritable_database_reports_failure(tmp_path: Path) -> None:
    directory = tmp_path / "db-is-a-directory"
    directory.mkdir()
    broken = Store(directory)

    assert await broken.insert_memory_item(MemoryItem(text="x", embedding=[1.0])) is False
    assert await broken.list_memory_items() is None
    assert await broken.list_conversations() is None


@pytest.mark.parametrize("blob_size", [0, 4, 16])
async def test_embedding_blob_sizes_accepted(store: Store, blob_size: int) -> None:
    await _raw(
        store,
        "INSERT INTO memories (id, text, embedding, created_at) VALUES (?, ?, ?, ?)",
        ("a" * 32, "raw", b"\x00" * blob_size, 1.0),
    )
    [loaded] = await store.list_memory_items()
    assert len(loaded.embedding) == blob_size // 4


async def test_unreadable_database_lists_none(store: Store) -> None:
    await store.insert_conversation(_conversation())
    store.path.write_bytes(b"this is not a sqlite database" * 100)

    assert await store.list_conversations() is None
    assert await store.list_memory_items() is None


async def test_unbindable_text_fails_cleanly(store: Store) -> None:
    conversation = _conversation()
    await store.insert_conversation(conversation)

    assert await store.insert_message(_message("caf\udce9"), conversation.id) is False
    assert await store.insert_memory_item(MemoryItem(text="x\udce9", embedding=[1.0])) is False
    assert await store.update_conversation(conversation.id, "bad \udce9", 2000.0) is False
    assert await store.count_rows() == {"conversations": 1, "messages": 0, "memories": 0}
