"""Bounded context assembly for a generation request."""

from __future__ import annotations

from typing import TYPE_CHECKING

from hearth.chat.models import Role

if TYPE_CHECKING:
    from collections.abc import Sequence

    from hearth.chat.models import Message


def format_memories(memories: Sequence[str]) -> str:
    """Format retrieved memories for injection into the system instruction."""
    if not memories:
        return ""
    lines = ["Relevant memories from past conversations:"]
    lines.extend(f"- {memory}" for memory in memories)
    return "\n".join(lines)


def build_system_prompt(base: str, memories: Sequence[str] = ()) -> str:
    memory_text = format_memories(memories)
    if not memory_text:
        return base
    return f"{base}\n\n{memory_text}"


def build_context(
    system_prompt: str,
    history: Sequence[Message],
    user_text: str,
    *,
    memories: Sequence[str] = (),
    window: int = 6,
) -> list[dict[str, str]]:
    """Assemble the message list sent to the inference engine.

    The system instruction (with any memories appended as hints) comes
    first, then the latest *window* *history* messages in chronological
    order, then the new user message. System messages count towards the
    window but are not sent.
    """
    messages = [{"role": "system", "content": build_system_prompt(system_prompt, memories)}]
    recent = list(history)[-window:] if window > 0 else []
    messages.extend(m.to_turn() for m in recent if m.role is not Role.SYSTEM)
    messages.append({"role": "user", "content": user_text})
    return messages
