"""Brute-force cosine similarity search."""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hearth.memory.models import MemoryItem

RELEVANCE_THRESHOLD = 0.3


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*.

    Mismatched dimensions and zero-norm vectors score 0.0 (a non-match).
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def top_k(
    query: Sequence[float],
    items: Sequence[MemoryItem],
    k: int,
    threshold: float = RELEVANCE_THRESHOLD,
) -> list[tuple[MemoryItem, float]]:
    """Rank *items* against *query* and return the best *k* above *threshold*.

    Scores every item (linear scan), sorts by descending score with ties
    going to the most recently created item, truncates to *k*, then drops
    entries scoring at or below *threshold*.
    """
    if k <= 0 or not items:
        return []
    scored = [(item, cosine_similarity(query, item.embedding)) for item in items]
    scored.sort(key=lambda pair: (pair[1], pair[0].created_at), reverse=True)
    return [(item, score) for item, score in scored[:k] if score > threshold]
