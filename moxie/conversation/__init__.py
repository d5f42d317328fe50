"""Conversation model and storage."""

from moxie.conversation.models import Conversation, Message, Role
from moxie.conversation.store import ConversationStore

__all__ = ["Conversation", "ConversationStore", "Message", "Role"]
