"""Conversation store with one writer at a time per conversation id.

Conversations are cached in memory and expire after a period of inactivity,
the same way channel sessions are timed out. With a MemoryStore attached,
history is persisted and reloaded when a conversation is opened again.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, Iterable, List, Optional

from moxie.conversation.memory import MemoryStore
from moxie.conversation.models import Conversation, Message

logger = logging.getLogger(__name__)


@dataclass
class ConversationEntry:
    """A stored conversation and its bookkeeping."""

    conversation: Conversation
    last_active: float
    loaded: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class ConversationStore:
    """Keeps conversations by id.

    Mutations of one conversation go through ``session()``, which holds that
    conversation's lock; different conversations never share a lock.
    """

    def __init__(
        self,
        timeout_seconds: Optional[int] = None,
        memory: Optional[MemoryStore] = None,
        history_limit: int = 100,
    ):
        """
        Args:
            timeout_seconds: Inactivity timeout; None keeps conversations forever
            memory: Persistent history; None keeps conversations in memory only
            history_limit: Newest persisted messages reloaded into a conversation
        """
        self.timeout_seconds = timeout_seconds
        self.memory = memory
        self.history_limit = history_limit
        self._entries: Dict[str, ConversationEntry] = {}

    def _is_expired(self, entry: ConversationEntry, now: float) -> bool:
        return self.timeout_seconds is not None and (now - entry.last_active) > self.timeout_seconds

    def get(self, conversation_id: str) -> Optional[Conversation]:
        """Get a conversation, or None if unknown or expired.

        A conversation inside a ``session()`` never expires.
        """
        entry = self._entries.get(conversation_id)
        if entry is None:
            return None
        if self._is_expired(entry, time.time()) and not entry.lock.locked():
            logger.info(f"Conversation expired: {conversation_id}")
            del self._entries[conversation_id]
            return None
        return entry.conversation

    def get_or_create(self, conversation_id: Optional[str] = None) -> Conversation:
        """Return the stored conversation, creating an empty one if needed."""
        if conversation_id:
            existing = self.get(conversation_id)
            if existing is not None:
                return existing
        conversation = Conversation(conversation_id)
        self._entries[conversation.id] = ConversationEntry(
            conversation=conversation,
            last_active=time.time(),
        )
        logger.debug(f"Created conversation: {conversation.id}")
        return conversation

    @asynccontextmanager
    async def session(self, conversation_id: Optional[str] = None) -> AsyncIterator[Conversation]:
        """Hold the conversation's lock for a read-modify-write sequence.

        The first session of a conversation reloads its persisted history.
        """
        conversation = self.get_or_create(conversation_id)
        entry = self._entries[conversation.id]
        async with entry.lock:
            entry.last_active = time.time()
            try:
                if not entry.loaded:
                    await self._load_history(conversation)
                    entry.loaded = True
                yield conversation
            finally:
                entry.last_active = time.time()

    async def _load_history(self, conversation: Conversation) -> None:
        if self.memory is None or len(conversation):
            return
        history = await self.memory.get_recent_messages(conversation.id, self.history_limit)
        if history:
            conversation.extend(history)
            logger.info(f"[{conversation.id}] Restored {len(history)} message(s) from memory")

    async def commit(self, conversation: Conversation, messages: Iterable[Message]) -> None:
        """Persist messages, then append them. Call inside ``session()``."""
        batch = list(messages)
        if self.memory is not None:
            await self.memory.save_messages(conversation.id, batch)
        conversation.extend(batch)

    def delete(self, conversation_id: str) -> bool:
        return self._entries.pop(conversation_id, None) is not None

    async def forget(self, conversation_id: str) -> bool:
        """Delete a conversation from memory and from persistent storage."""
        removed = self.delete(conversation_id)
        if self.memory is not None:
            removed = await self.memory.delete_conversation(conversation_id) or removed
        return removed

    async def load(self, conversation_id: str) -> Optional[Conversation]:
        """Full conversation, from persistent storage when available."""
        if self.memory is not None:
            messages = await self.memory.get_conversation(conversation_id)
            if messages:
                return Conversation(conversation_id, messages)
        return self.get(conversation_id)

    async def list_conversations(self, limit: int = 50) -> List[dict]:
        if self.memory is not None:
            return await self.memory.list_conversations(limit)
        return [
            {"id": cid, "message_count": len(entry.conversation)}
            for cid, entry in list(self._entries.items())[:limit]
        ]

    async def search_history(self, text: str, limit: int = 20) -> List[dict]:
        """Search persisted messages, or the cached ones without persistence."""
        if self.memory is not None:
            return await self.memory.search_messages(text, limit)
        return self.search(text, limit)

    def list_ids(self) -> List[str]:
        return list(self._entries.keys())

    def search(self, text: str, limit: int = 20) -> List[dict]:
        """Case-insensitive substring search over all stored messages."""
        needle = text.lower()
        hits = []
        for conversation_id, entry in self._entries.items():
            for index, message in enumerate(entry.conversation.messages):
                if needle in message.content.lower():
                    hits.append({
                        "conversation_id": conversation_id,
                        "index": index,
                        "role": message.role.value,
                        "content": message.content,
                    })
                    if len(hits) >= limit:
                        return hits
        return hits

    def cleanup_expired(self) -> int:
        """Remove all expired conversations and return how many were removed."""
        now = time.time()
        expired = [
            cid for cid, entry in self._entries.items()
            if self._is_expired(entry, now) and not entry.lock.locked()
        ]
        for cid in expired:
            del self._entries[cid]
        if expired:
            logger.info(f"Cleaned {len(expired)} expired conversations")
        return len(expired)

    def get_stats(self) -> dict:
        now = time.time()
        return {
            "total_conversations": len(self._entries),
            "timeout_seconds": self.timeout_seconds,
            "conversations": [
                {
                    "conversation_id": cid,
                    "messages": len(entry.conversation),
                    "inactive_seconds": int(now - entry.last_active),
                }
                for cid, entry in self._entries.items()
            ],
        }
