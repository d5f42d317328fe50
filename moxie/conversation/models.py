"""Canonical chat message and conversation types shared by providers and plugins."""

import math
import uuid
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Rough characters-per-token ratio used for context budgeting
CHARS_PER_TOKEN = 4


class Role(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Message(BaseModel):
    """A single chat message. Frozen: a message never changes once created."""

    model_config = ConfigDict(frozen=True)

    role: Role
    content: str = Field(default="", description="Message text")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool(cls, content: str) -> "Message":
        return cls(role=Role.TOOL, content=content)

    def estimated_tokens(self) -> int:
        return math.ceil(len(self.content) / CHARS_PER_TOKEN)


class Conversation:
    """Ordered, append-only sequence of messages.

    Insertion order is dialogue order. Existing entries are never replaced,
    removed or reordered; callers only see tuple snapshots.
    """

    def __init__(self, conversation_id: Optional[str] = None, messages: Iterable[Message] = ()):
        self.id = conversation_id or uuid.uuid4().hex
        self._messages: List[Message] = list(messages)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def append(self, message: Message) -> None:
        if not isinstance(message, Message):
            raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        """Append several messages; nothing is appended if any item is invalid."""
        batch = list(messages)
        for message in batch:
            if not isinstance(message, Message):
                raise TypeError(f"Expected Message, got {type(message).__name__}")
        self._messages.extend(batch)

    def with_system(self, prompt: str) -> "Conversation":
        self.append(Message.system(prompt))
        return self

    def truncate_for_context(
        self,
        max_messages: Optional[int] = None,
        max_tokens: Optional[int] = None,
    ) -> List[Message]:
        """Return a drop-oldest view of the conversation bounded by a budget.

        Leading system messages are always kept. Of the remaining messages the
        newest ones are kept until either budget would be exceeded. The stored
        history is not modified.

        Args:
            max_messages: Maximum number of messages in the view (system included)
            max_tokens: Maximum estimated tokens in the view (system included)

        Returns:
            New list of messages in dialogue order
        """
        messages = list(self._messages)
        if max_messages is None and max_tokens is None:
            return messages

        head: List[Message] = []
        for message in messages:
            if message.role != Role.SYSTEM:
                break
            head.append(message)
        body = messages[len(head):]

        message_budget = None if max_messages is None else max(0, max_messages - len(head))
        token_budget = None
        if max_tokens is not None:
            token_budget = max(0, max_tokens - sum(m.estimated_tokens() for m in head))

        kept: List[Message] = []
        used_tokens = 0
        for message in reversed(body):
            if message_budget is not None and len(kept) >= message_budget:
                break
            cost = message.estimated_tokens()
            if token_budget is not None and used_tokens + cost > token_budget:
                break
            kept.append(message)
            used_tokens += cost

        kept.reverse()
        return head + kept

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "messages": [m.model_dump(mode="json") for m in self._messages],
        }
