"""MemoryItem data model and embedding blob encoding."""

from __future__ import annotations

import time
from array import array
from dataclasses import dataclass, field

from hearth.chat.models import make_id, parse_id, parse_timestamp

# Embeddings are stored as native-endian 32-bit floats.
FLOAT_WIDTH = array("f").itemsize


class EmbeddingCorruptError(ValueError):
    """A stored embedding blob cannot be decoded into floats."""


def pack_embedding(vector: list[float]) -> bytes:
    """Encode a vector as a fixed-width float blob."""
    return array("f", vector).tobytes()


def unpack_embedding(blob: bytes | None) -> list[float]:
    """Decode a blob produced by :func:`pack_embedding`.

    Raises:
        EmbeddingCorruptError: If the blob length is not a multiple of the
            component width.
    """
    if blob is None:
        raise EmbeddingCorruptError("embedding is NULL")
    if len(blob) % FLOAT_WIDTH:
        raise EmbeddingCorruptError(
            f"embedding is {len(blob)} bytes, not a multiple of {FLOAT_WIDTH}"
        )
    values = array("f")
    values.frombytes(bytes(blob))
    return values.tolist()


@dataclass(frozen=True)
class MemoryItem:
    """A standalone remembered fact: text plus its feature vector.

    Immutable after creation; the only operations are insert and delete.
    """

    text: str
    embedding: list[float]
    id: str = field(default_factory=make_id)
    created_at: float = field(default_factory=time.time)

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``memories`` column order."""
        return (self.id, self.text, pack_embedding(self.embedding), self.created_at)

    @classmethod
    def from_row(cls, row: tuple) -> MemoryItem:
        """Deserialize from an ``(id, text, embedding, created_at)`` row."""
        if row[1] is None:
            raise ValueError("memory row has NULL text")
        return cls(
            id=parse_id(row[0]),
            text=row[1],
            embedding=unpack_embedding(row[2]),
            created_at=parse_timestamp(row[3]),
        )
