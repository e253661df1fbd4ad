"""Deterministic, model-free text embeddings.

Each token of the normalized text is hashed into one of ``dimension``
buckets (weight 1.0), and so is every overlapping character trigram of the
token (weight 0.5). The resulting bag-of-words/trigram fingerprint is
L2-normalized, which gives partial lexical matching without a trained model.
"""

from __future__ import annotations

import hashlib
import math
import unicodedata
from array import array

WORD_WEIGHT = 1.0
TRIGRAM_WEIGHT = 0.5


def _strip_punctuation(text: str) -> str:
    return "".join(ch for ch in text if not unicodedata.category(ch).startswith("P"))


def tokenize(text: str) -> list[str]:
    """Lowercase, drop punctuation, and split on whitespace."""
    return _strip_punctuation(text.lower()).split()


def trigrams(token: str) -> list[str]:
    return [token[i : i + 3] for i in range(len(token) - 2)]


class FeatureEncoder:
    """Hashes text into a fixed-size, unit-length vector.

    Bucket assignment uses BLAKE2b rather than ``hash()`` so that vectors are
    stable across processes and can be persisted.
    """

    def __init__(self, dimension: int = 384) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def _bucket(self, feature: str) -> int:
        # Lone surrogates (surrogateescape-decoded input) must still hash.
        digest = hashlib.blake2b(
            feature.encode("utf-8", "surrogatepass"), digest_size=8
        ).digest()
        return int.from_bytes(digest, "little") % self.dimension

    def encode(self, text: str) -> list[float]:
        """Return the embedding for *text*.

        Empty or punctuation-only input yields the zero vector. Components are
        rounded to 32-bit floats so a stored vector reads back unchanged.
        """
        vector = [0.0] * self.dimension
        for token in tokenize(text):
            vector[self._bucket(token)] += WORD_WEIGHT
            for gram in trigrams(token):
                vector[self._bucket(gram)] += TRIGRAM_WEIGHT

        norm = math.sqrt(sum(v * v for v in vector))
        if norm > 0:
            vector = [v / norm for v in vector]
        return array("f", vector).tolist()
