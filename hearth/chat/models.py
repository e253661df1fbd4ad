"""Conversation and Message data models."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import StrEnum


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def make_id() -> str:
    """Generate a new record ID."""
    return uuid.uuid4().hex


def parse_id(value: object) -> str:
    """Validate a stored identifier. Raises ``ValueError`` if it is not a UUID."""
    if not isinstance(value, str):
        raise ValueError(f"identifier must be text, got {type(value).__name__}")
    uuid.UUID(value)
    return value


def parse_timestamp(value: object) -> float:
    """Validate a stored timestamp (seconds since the epoch)."""
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError(f"timestamp must be numeric, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class Message:
    """A single conversation turn.

    Attributes:
        id: Unique identifier (UUID hex).
        role: Who produced the message.
        content: Message text.
        timestamp: Creation time in seconds since the epoch.
        streaming: True only while a reply is still being produced in memory.
            Never persisted; messages loaded from the store always have False.
    """

    role: Role
    content: str
    id: str = field(default_factory=make_id)
    timestamp: float = field(default_factory=time.time)
    streaming: bool = False

    def to_row(self, conversation_id: str) -> tuple:
        """Serialize to a tuple matching the ``messages`` column order."""
        return (self.id, conversation_id, self.role.value, self.content, self.timestamp)

    @classmethod
    def from_row(cls, row: tuple) -> Message:
        """Deserialize from an ``(id, role, content, timestamp)`` row.

        Raises ``ValueError`` for an unparseable id, role or timestamp.
        """
        return cls(
            id=parse_id(row[0]),
            role=Role(row[1]),
            content=row[2] if row[2] is not None else "",
            timestamp=parse_timestamp(row[3]),
        )

    def to_turn(self) -> dict[str, str]:
        """Format for the inference engine."""
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class Conversation:
    """A titled, ordered sequence of messages tied to one model.

    Instances are snapshots: the Conversation Manager replaces them on every
    write instead of mutating them, so a reference handed out stays stable.
    """

    model_id: str
    title: str = "New Chat"
    id: str = field(default_factory=make_id)
    messages: tuple[Message, ...] = ()
    created_at: float = field(default_factory=time.time)
    updated_at: float = 0.0

    def __post_init__(self) -> None:
        if self.updated_at < self.created_at:
            object.__setattr__(self, "updated_at", self.created_at)

    @property
    def preview(self) -> str:
        """Content of the latest user message, for list displays."""
        for message in reversed(self.messages):
            if message.role is Role.USER:
                return message.content
        return "No messages yet"

    @property
    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if m.role is Role.USER)

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``conversations`` column order."""
        return (self.id, self.title, self.model_id, self.created_at, self.updated_at)

    @classmethod
    def from_row(cls, row: tuple, messages: tuple[Message, ...] = ()) -> Conversation:
        """Deserialize from an ``(id, title, model_id, created_at, updated_at)`` row."""
        if row[1] is None or row[2] is None:
            raise ValueError("conversation row has a NULL title or model_id")
        return cls(
            id=parse_id(row[0]),
            title=row[1],
            model_id=row[2],
            created_at=parse_timestamp(row[3]),
            updated_at=parse_timestamp(row[4]),
            messages=messages,
        )
