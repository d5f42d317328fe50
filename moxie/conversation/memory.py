"""Persistent conversation memory backed by SQLite (aiosqlite)."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

import aiosqlite

from moxie.conversation.models import Message, Role

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation
    ON messages(conversation_id, id);
"""


class MemoryStore:
    """Durable message history, one row per message.

    ``open()`` must be awaited before use and ``close()`` at shutdown.
    Use ``":memory:"`` as the path for a throwaway database.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        self._conn: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        if self._conn is not None:
            return
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA busy_timeout=5000")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()
        logger.info(f"Conversation memory opened: {self.path}")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info(f"Conversation memory closed: {self.path}")

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("MemoryStore is not open")
        return self._conn

    async def save_message(self, conversation_id: str, message: Message) -> int:
        """Store one message and return its row id."""
        ids = await self.save_messages(conversation_id, [message])
        return ids[0]

    async def save_messages(self, conversation_id: str, messages: Iterable[Message]) -> List[int]:
        """Store messages in order inside one transaction."""
        batch = list(messages)
        ids = []
        try:
            await self.conn.execute(
                "INSERT OR IGNORE INTO conversations (id) VALUES (?)", (conversation_id,)
            )
            await self.conn.execute(
                "UPDATE conversations SET updated_at = datetime('now') WHERE id = ?",
                (conversation_id,),
            )
            for message in batch:
                cursor = await self.conn.execute(
                    "INSERT INTO messages (conversation_id, role, content) VALUES (?, ?, ?)",
                    (conversation_id, message.role.value, message.content),
                )
                ids.append(cursor.lastrowid)
            await self.conn.commit()
        except Exception:
            await self.conn.rollback()
            raise
        logger.debug(f"[{conversation_id}] Saved {len(batch)} message(s)")
        return ids

    async def get_conversation(self, conversation_id: str) -> List[Message]:
        """All messages of a conversation, oldest first."""
        async with self.conn.execute(
            "SELECT role, content FROM messages WHERE conversation_id = ? ORDER BY id",
            (conversation_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Message(role=Role(row["role"]), content=row["content"]) for row in rows]

    async def get_recent_messages(self, conversation_id: str, limit: int) -> List[Message]:
        """The newest ``limit`` messages, returned oldest first."""
        async with self.conn.execute(
            "SELECT role, content FROM messages WHERE conversation_id = ? ORDER BY id DESC LIMIT ?",
            (conversation_id, limit),
        ) as cursor:
            rows = await cursor.fetchall()
        return [Message(role=Role(row["role"]), content=row["content"]) for row in reversed(rows)]

    async def search_messages(self, text: str, limit: int = 20) -> List[dict]:
        """Case-insensitive substring search across all conversations, newest first."""
        async with self.conn.execute(
            "SELECT id, conversation_id, role, content, created_at FROM messages "
            "WHERE instr(lower(content), lower(?)) > 0 ORDER BY id DESC LIMIT ?",
            (text, limit),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            {
                "id": row["id"],
                "conversation_id": row["conversation_id"],
                "role": row["role"],
                "content": row["content"],
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    async def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and its messages. Returns False if unknown."""
        await self.conn.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
        cursor = await self.conn.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        await self.conn.commit()
        return cursor.rowcount > 0

    async def list_conversations(self, limit: int = 50) -> List[dict]:
        """Conversations ordered by last update, newest first."""
        async with self.conn.execute(
            "SELECT c.id, c.created_at, c.updated_at, COUNT(m.id) AS message_count "
            "FROM conversations c LEFT JOIN messages m ON m.conversation_id = c.id "
            "GROUP BY c.id ORDER BY c.updated_at DESC, c.rowid DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [
            {
                "id": row["id"],
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
                "message_count": row["message_count"],
            }
            for row in rows
        ]
