"""Store: aiosqlite persistence for conversations, messages and memories."""

from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import aiosqlite

from hearth.chat.models import Conversation, Message
from hearth.memory.models import MemoryItem

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterable
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        model_id TEXT NOT NULL,
        created_at REAL NOT NULL,
        updated_at REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id TEXT PRIMARY KEY,
        conversation_id TEXT NOT NULL
            REFERENCES conversations(id) ON DELETE CASCADE,
        role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
        content TEXT NOT NULL,
        timestamp REAL NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        text TEXT NOT NULL,
        embedding BLOB NOT NULL,
        created_at REAL NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_conversations_updated ON conversations(updated_at)",
    "CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at)",
)

_MESSAGE_COLUMNS = "id, role, content, timestamp"
_CONVERSATION_COLUMNS = "id, title, model_id, created_at, updated_at"


class Store:
    """Durable CRUD over conversations, messages and memory items.

    Every mutation returns ``True`` on success and ``False`` if SQLite
    rejected it; a failed call is rolled back and leaves the database as it
    was. Multi-statement operations run inside a single transaction.
    Pass an explicit *db_path* (e.g. ``tmp_path / "test.db"``) for isolation.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._initialised = False

    @property
    def path(self) -> Path:
        return self._db_path

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        try:
            await db.execute("PRAGMA foreign_keys = ON")
            if not self._initialised:
                for statement in _SCHEMA:
                    await db.execute(statement)
                await db.commit()
        except BaseException:
            await db.close()
            raise
        self._initialised = True
        return db

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[aiosqlite.Connection]:
        db = await self._connect()
        try:
            yield db
        finally:
            await db.close()

    async def _write(
        self, action: str, statements: Iterable[tuple[str, tuple]]
    ) -> int | None:
        """Run *statements* in one transaction.

        Returns the row count of the last statement, or None if the write failed.
        Text SQLite cannot bind (lone surrogates) counts as a failed write.
        """
        try:
            async with self._session() as db:
                try:
                    rowcount = 0
                    for sql, params in statements:
                        cursor = await db.execute(sql, params)
                        rowcount = cursor.rowcount
                    await db.commit()
                    return rowcount
                except (aiosqlite.Error, ValueError):
                    await db.rollback()
                    raise
        except (aiosqlite.Error, ValueError):
            logger.exception("Store write failed: %s", action)
            return None

    # -- Conversations ---------------------------------------------------------

    async def insert_conversation(self, conversation: Conversation) -> bool:
        """Insert a conversation row (its messages are inserted separately)."""
        result = await self._write(
            f"insert conversation {conversation.id}",
            [
                (
                    f"INSERT INTO conversations ({_CONVERSATION_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    conversation.to_row(),
                )
            ],
        )
        if result is None:
            return False
        logger.info("Inserted conversation: %s [%s]", conversation.title, conversation.id)
        return True

    async def update_conversation(
        self, conversation_id: str, title: str, updated_at: float
    ) -> bool:
        """Set a conversation's title and updated-at timestamp.

        Returns False if the write failed or no such conversation exists.
        """
        result = await self._write(
            f"update conversation {conversation_id}",
            [
                (
                    "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                    (title, updated_at, conversation_id),
                )
            ],
        )
        return bool(result)

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and all of its messages.

        Returns False if the write failed or no such conversation exists.
        """
        result = await self._write(
            f"delete conversation {conversation_id}",
            [
                ("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)),
                ("DELETE FROM conversations WHERE id = ?", (conversation_id,)),
            ],
        )
        if not result:
            return False
        logger.info("Deleted conversation: %s", conversation_id)
        return True

    async def clear_all_conversations(self) -> bool:
        """Delete every message, then every conversation, atomically."""
        result = await self._write(
            "clear all conversations",
            [
                ("DELETE FROM messages", ()),
                ("DELETE FROM conversations", ()),
            ],
        )
        if result is None:
            return False
        logger.info("Cleared all conversations")
        return True

    async def list_conversations(self) -> list[Conversation] | None:
        """Return all conversations, most recently updated first.

        Each conversation carries its messages in chronological order. Rows
        that cannot be decoded are skipped. Returns None if the read failed.
        """
        try:
            async with self._session() as db:
                cursor = await db.execute(
                    f"SELECT {_CONVERSATION_COLUMNS} FROM conversations "
                    "ORDER BY updated_at DESC"
                )
                conversation_rows = await cursor.fetchall()
                cursor = await db.execute(
                    f"SELECT conversation_id, {_MESSAGE_COLUMNS} FROM messages "
                    "ORDER BY timestamp ASC, rowid ASC"
                )
                message_rows = await cursor.fetchall()
        except aiosqlite.Error:
            logger.exception("Failed to list conversations")
            return None

        grouped: dict[str, list[Message]] = defaultdict(list)
        for row in message_rows:
            message = _decode_message(row[1:])
            if message is not None:
                grouped[row[0]].append(message)

        conversations = []
        for row in conversation_rows:
            conversation = _decode_conversation(row, tuple(grouped.get(row[0], ())))
            if conversation is not None:
                conversations.append(conversation)
        return conversations

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Fetch one conversation with its messages, or None if not found."""
        try:
            async with self._session() as db:
                cursor = await db.execute(
                    f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
                    (conversation_id,),
                )
                row = await cursor.fetchone()
                if row is None:
                    return None
                messages = await self._select_messages(db, conversation_id)
        except aiosqlite.Error:
            logger.exception("Failed to read conversation %s", conversation_id)
            return None
        return _decode_conversation(row, tuple(messages))

    # -- Messages --------------------------------------------------------------

    async def insert_message(
        self,
        message: Message,
        conversation_id: str,
        *,
        title: str | None = None,
        updated_at: float | None = None,
    ) -> bool:
        """Insert a message into a conversation.

        When *updated_at* is given, the conversation's title (if *title* is
        given) and updated-at timestamp are written in the same transaction.
        A message still flagged as streaming is rejected.
        """
        if message.streaming:
            logger.warning("Refusing to persist streaming message %s", message.id)
            return False

        statements = [
            (
                "INSERT INTO messages (id, conversation_id, role, content, timestamp) "
                "VALUES (?, ?, ?, ?, ?)",
                message.to_row(conversation_id),
            )
        ]
        if updated_at is not None:
            if title is None:
                statements.append((
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (updated_at, conversation_id),
                ))
            else:
                statements.append((
                    "UPDATE conversations SET title = ?, updated_at = ? WHERE id = ?",
                    (title, updated_at, conversation_id),
                ))

        result = await self._write(f"insert message {message.id}", statements)
        if result is None:
            return False
        logger.debug(
            "Saved message [%s] %s to conversation %s",
            message.role.value,
            message.content[:50],
            conversation_id,
        )
        return True

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Return a conversation's messages, oldest first."""
        try:
            async with self._session() as db:
                return await self._select_messages(db, conversation_id)
        except aiosqlite.Error:
            logger.exception("Failed to list messages for %s", conversation_id)
            return []

    @staticmethod
    async def _select_messages(
        db: aiosqlite.Connection, conversation_id: str
    ) -> list[Message]:
        cursor = await db.execute(
            f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? "
            "ORDER BY timestamp ASC, rowid ASC",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [m for m in (_decode_message(row) for row in rows) if m is not None]

    # -- Memories --------------------------------------------------------------

    async def insert_memory_item(self, item: MemoryItem) -> bool:
        result = await self._write(
            f"insert memory {item.id}",
            [
                (
                    "INSERT INTO memories (id, text, embedding, created_at) VALUES (?, ?, ?, ?)",
                    item.to_row(),
                )
            ],
        )
        return result is not None

    async def list_memory_items(self) -> list[MemoryItem] | None:
        """Return all memory items, most recently created first, or None if the read failed."""
        try:
            async with self._session() as db:
                cursor = await db.execute(
                    "SELECT id, text, embedding, created_at FROM memories "
                    "ORDER BY created_at DESC, rowid DESC"
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error:
            logger.exception("Failed to list memories")
            return None

        items = []
        for row in rows:
            try:
                items.append(MemoryItem.from_row(row))
            except ValueError as exc:
                logger.warning("Skipping corrupt memory row %r: %s", row[0], exc)
        return items

    async def delete_memory_item(self, item_id: str) -> bool:
        """Delete one memory. Returns False if it failed or the id is unknown."""
        result = await self._write(
            f"delete memory {item_id}",
            [("DELETE FROM memories WHERE id = ?", (item_id,))],
        )
        return bool(result)

    async def delete_all_memory_items(self) -> bool:
        result = await self._write("delete all memories", [("DELETE FROM memories", ())])
        return result is not None

    # -- Diagnostics -----------------------------------------------------------

    async def count_rows(self) -> dict[str, int]:
        """Return the number of rows in each relation."""
        counts: dict[str, int] = {}
        try:
            async with self._session() as db:
                for table in ("conversations", "messages", "memories"):
                    cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
                    row = await cursor.fetchone()
                    counts[table] = row[0] if row else 0
        except aiosqlite.Error:
            logger.exception("Failed to count rows")
        return counts


def _decode_message(row: tuple) -> Message | None:
    try:
        return Message.from_row(row)
    except ValueError as exc:
        logger.warning("Skipping corrupt message row %r: %s", row[0], exc)
        return None


def _decode_conversation(row: tuple, messages: tuple[Message, ...]) -> Conversation | None:
    try:
        return Conversation.from_row(row, messages)
    except ValueError as exc:
        logger.warning("Skipping corrupt conversation row %r: %s", row[0], exc)
        return None
