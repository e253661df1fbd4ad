"""Inference engine protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class InferenceError(Exception):
    """The inference engine failed or is unavailable."""


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters forwarded to the engine."""

    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 512


class InferenceEngine(Protocol):
    """Produces a reply to a role-tagged message list as text fragments.

    Implementations yield fragments as they are generated and raise
    (preferably :class:`InferenceError`) on failure.
    """

    def stream(
        self,
        messages: list[dict[str, str]],
        params: GenerationParams,
        *,
        model: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream the reply to *messages*.

        Args:
            messages: Ordered ``{"role", "content"}`` dicts, system first.
            params: Sampling parameters.
            model: Model identifier of the conversation, if the engine
                serves more than one.
        """
        ...


class ModelProvisioning(Protocol):
    """Answers whether a model's files are available locally."""

    def is_model_ready(self, model_id: str) -> bool: ...
