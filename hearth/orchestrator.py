"""One request/response cycle: memories, context, streaming, persistence."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from hearth.chat.models import Message, Role, make_id
from hearth.llm.engine import GenerationParams
from hearth.llm.prompt import build_context

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from hearth.chat.manager import ConversationManager
    from hearth.llm.engine import InferenceEngine, ModelProvisioning
    from hearth.memory.manager import MemoryManager

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Sorry, I encountered an error: "
CANCELLED_PLACEHOLDER = "(response cancelled)"


class ConversationNotFoundError(LookupError):
    """No conversation with the requested id exists."""


class ConversationBusyError(RuntimeError):
    """A reply is already being generated for this conversation."""


class ModelNotReadyError(RuntimeError):
    """The conversation's model files are not available on disk."""


class PersistenceError(RuntimeError):
    """A message could not be written to the store."""


def describe_error(exc: BaseException) -> str:
    """Human-readable summary of a generation failure."""
    return f"{ERROR_PREFIX}{str(exc) or type(exc).__name__}"


@dataclass
class PendingReply:
    """Accumulates streamed fragments until the reply is closed.

    Only :meth:`to_message` produces something persistable, and it is
    always marked as no longer streaming.
    """

    id: str = field(default_factory=make_id)
    started_at: float = field(default_factory=time.time)
    fragments: list[str] = field(default_factory=list)

    def append(self, fragment: str) -> None:
        self.fragments.append(fragment)

    @property
    def text(self) -> str:
        return "".join(self.fragments)

    def to_message(self, content: str | None = None) -> Message:
        return Message(
            id=self.id,
            role=Role.ASSISTANT,
            content=self.text if content is None else content,
            timestamp=self.started_at,
            streaming=False,
        )


class GenerationOrchestrator:
    """Drives ``respond`` against the inference engine.

    The user's message is persisted before anything else, and every turn
    ends with exactly one persisted assistant message: the reply, the
    partial reply on cancellation, or an error summary on failure.
    """

    def __init__(
        self,
        conversations: ConversationManager,
        memories: MemoryManager,
        engine: InferenceEngine,
        *,
        provisioning: ModelProvisioning | None = None,
        system_prompt: str = "You are a helpful AI assistant.",
        params: GenerationParams | None = None,
        history_window: int = 6,
        memory_top_k: int = 3,
    ) -> None:
        self._conversations = conversations
        self._memories = memories
        self._engine = engine
        self._provisioning = provisioning
        self._system_prompt = system_prompt
        self._params = params or GenerationParams()
        self._history_window = history_window
        self._memory_top_k = memory_top_k
        self._in_flight: set[str] = set()

    def is_generating(self, conversation_id: str) -> bool:
        return conversation_id in self._in_flight

    async def respond(self, conversation_id: str, user_text: str) -> AsyncIterator[str]:
        """Stream the reply to *user_text* in a conversation.

        Fragments are yielded as the engine produces them. Failures of the
        engine are not raised; they end the stream and are recorded as an
        assistant error message. Closing the stream early or cancelling the
        consuming task persists whatever was received so far.

        Raises:
            ConversationNotFoundError: Unknown *conversation_id*.
            ConversationBusyError: Another reply is in flight for it.
            ModelNotReadyError: The conversation's model is not on disk.
            PersistenceError: The user message, the completed reply, or the
                error reply could not be saved.
        """
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError(conversation_id)
        if conversation_id in self._in_flight:
            raise ConversationBusyError(conversation_id)
        if self._provisioning and not self._provisioning.is_model_ready(conversation.model_id):
            raise ModelNotReadyError(conversation.model_id)

        self._in_flight.add(conversation_id)
        try:
            history = conversation.messages
            user_message = Message(role=Role.USER, content=user_text)
            if not await self._conversations.append_message(user_message, conversation_id):
                raise PersistenceError("Failed to save the user message")

            reply = PendingReply()
            stream = None
            try:
                memories = self._memories.retrieve(user_text, self._memory_top_k)
                if memories:
                    logger.debug("Injecting %d memories", len(memories))
                context = build_context(
                    self._system_prompt,
                    history,
                    user_text,
                    memories=memories,
                    window=self._history_window,
                )
                stream = self._engine.stream(
                    context, self._params, model=conversation.model_id
                )
                async for fragment in stream:
                    reply.append(fragment)
                    yield fragment
            except (asyncio.CancelledError, GeneratorExit):
                logger.info("Generation cancelled for %s", conversation_id)
                await self._close_stream(stream)
                await self._save_reply(
                    conversation_id, reply.to_message(reply.text or CANCELLED_PLACEHOLDER)
                )
                raise
            except Exception as exc:
                logger.exception("Generation failed for %s", conversation_id)
                await self._close_stream(stream)
                if not await self._save_reply(
                    conversation_id, reply.to_message(describe_error(exc))
                ):
                    raise PersistenceError("Failed to save the error reply") from exc
                return

            if not await self._save_reply(conversation_id, reply.to_message()):
                raise PersistenceError("Failed to save the assistant reply")
        finally:
            self._in_flight.discard(conversation_id)

    async def _save_reply(self, conversation_id: str, message: Message) -> bool:
        saved = await self._conversations.append_message(message, conversation_id)
        if not saved:
            logger.error("Could not persist assistant message for %s", conversation_id)
        return saved

    @staticmethod
    async def _close_stream(stream: AsyncIterator[str] | None) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.exception("Error while closing the inference stream")
