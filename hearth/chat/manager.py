"""Conversation lifecycle and cache synchronization."""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import TYPE_CHECKING

from hearth.chat.models import Conversation, Message, Role

if TYPE_CHECKING:
    from hearth.store import Store

logger = logging.getLogger(__name__)

TITLE_WORDS = 6
TITLE_ELLIPSIS = "..."


def make_title(text: str, fallback: str = "New Chat") -> str:
    """Build a title from the first few words of *text*.

    Appends an ellipsis when words were dropped; blank text gets *fallback*.
    """
    words = text.split()
    if not words:
        return fallback
    title = " ".join(words[:TITLE_WORDS])
    if len(words) > TITLE_WORDS:
        title += TITLE_ELLIPSIS
    return title


class ConversationManager:
    """Owns the conversation list and the active conversation.

    All mutations go through the store first; the cache is updated only on
    success, then resynchronized from the store. Conversations handed out
    are immutable snapshots. The active conversation is tracked by id and
    resolved on demand.
    """

    def __init__(self, store: Store, *, default_title: str = "New Chat") -> None:
        self._store = store
        self._default_title = default_title
        self._conversations: list[Conversation] = []
        self._active_id: str | None = None

    # -- Read ------------------------------------------------------------------

    async def reload(self) -> bool:
        """Replace the cache with the store's contents.

        If the store cannot be read, the cache and active id are left as they
        were and False is returned.
        """
        conversations = await self._store.list_conversations()
        if conversations is None:
            logger.warning("Keeping cached conversations; store read failed")
            return False
        self._conversations = conversations
        if self._active_id is not None and self.get(self._active_id) is None:
            self._active_id = None
        logger.info("Loaded %d conversations", len(self._conversations))
        return True

    @property
    def conversations(self) -> list[Conversation]:
        """Snapshot of all conversations, most recently updated first."""
        return list(self._conversations)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active(self) -> Conversation | None:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def get(self, conversation_id: str) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def select(self, conversation_id: str | None) -> bool:
        """Make *conversation_id* the active conversation (None clears it)."""
        if conversation_id is not None and self.get(conversation_id) is None:
            logger.warning("Cannot select unknown conversation %s", conversation_id)
            return False
        self._active_id = conversation_id
        return True

    # -- Write -----------------------------------------------------------------

    async def create_conversation(self, model_id: str) -> Conversation | None:
        """Create, persist and activate an empty conversation.

        Returns None if the store rejected it.
        """
        conversation = Conversation(model_id=model_id, title=self._default_title)
        if not await self._store.insert_conversation(conversation):
            return None
        self._conversations.insert(0, conversation)
        self._active_id = conversation.id
        return conversation

    async def append_message(self, message: Message, conversation_id: str) -> bool:
        """Persist *message* into a conversation and bump its updated-at.

        The first user message also sets the conversation's title, in the
        same store transaction.
        """
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("Conversation not found for message: %s", conversation_id)
            return False

        title = None
        if message.role is Role.USER and conversation.user_message_count == 0:
            title = make_title(message.content, self._default_title)

        updated_at = self._next_timestamp(conversation)
        if not await self._store.insert_message(
            message, conversation_id, title=title, updated_at=updated_at
        ):
            return False

        fresh = await self._store.get_conversation(conversation_id)
        if fresh is None:
            # Written but unreadable; keep the cache consistent with the write.
            fresh = replace(
                conversation,
                title=title or conversation.title,
                messages=(*conversation.messages, message),
                updated_at=updated_at,
            )
        self._put(fresh)
        return True

    async def update_title(self, conversation_id: str, new_title: str) -> bool:
        conversation = self.get(conversation_id)
        if conversation is None:
            logger.warning("Cannot rename unknown conversation %s", conversation_id)
            return False

        updated_at = self._next_timestamp(conversation)
        if not await self._store.update_conversation(conversation_id, new_title, updated_at):
            return False
        self._put(replace(conversation, title=new_title, updated_at=updated_at))
        return True

    async def delete_conversation(self, conversation_id: str) -> bool:
        if self.get(conversation_id) is None:
            logger.warning("Cannot delete unknown conversation %s", conversation_id)
            return False
        if not await self._store.delete_conversation(conversation_id):
            return False
        self._conversations = [c for c in self._conversations if c.id != conversation_id]
        if self._active_id == conversation_id:
            self._active_id = None
        return True

    async def delete_all(self) -> bool:
        if not await self._store.clear_all_conversations():
            return False
        self._conversations = []
        self._active_id = None
        logger.info("All conversations deleted")
        return True

    # -- Internal helpers ------------------------------------------------------

    @staticmethod
    def _next_timestamp(conversation: Conversation) -> float:
        return max(time.time(), conversation.updated_at)

    def _put(self, conversation: Conversation) -> None:
        """Replace a cached conversation and keep most-recent-first order."""
        updated = [conversation, *(c for c in self._conversations if c.id != conversation.id)]
        updated.sort(key=lambda c: c.updated_at, reverse=True)
        self._conversations = updated
