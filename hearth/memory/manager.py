"""Memory lifecycle: encode, persist, retrieve and forget."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hearth.memory.models import MemoryItem
from hearth.memory.similarity import RELEVANCE_THRESHOLD, top_k

if TYPE_CHECKING:
    from hearth.memory.encoder import FeatureEncoder
    from hearth.store import Store

logger = logging.getLogger(__name__)


class MemoryManager:
    """Owns the pool of remembered facts.

    The store is the source of truth. The in-memory cache (most recent
    first) only changes after the corresponding store write succeeded.
    """

    def __init__(
        self,
        store: Store,
        encoder: FeatureEncoder,
        *,
        threshold: float = RELEVANCE_THRESHOLD,
        default_top_k: int = 3,
    ) -> None:
        self._store = store
        self._encoder = encoder
        self._threshold = threshold
        self._default_top_k = default_top_k
        self._items: list[MemoryItem] = []

    async def load(self) -> bool:
        """Replace the cache with the store's contents.

        Returns False, keeping the current cache, if the store cannot be read.
        """
        items = await self._store.list_memory_items()
        if items is None:
            logger.warning("Keeping cached memories; store read failed")
            return False
        self._items = items
        logger.info("Loaded %d memories", len(self._items))
        return True

    @property
    def items(self) -> list[MemoryItem]:
        """Snapshot of all memories, most recent first."""
        return list(self._items)

    @property
    def count(self) -> int:
        return len(self._items)

    # -- Write -----------------------------------------------------------------

    async def remember(self, text: str) -> bool:
        """Encode and store *text*. Returns True if it was persisted."""
        if not text.strip():
            logger.warning("Ignoring request to remember blank text")
            return False

        item = MemoryItem(text=text, embedding=self._encoder.encode(text))
        if not await self._store.insert_memory_item(item):
            return False
        self._items.insert(0, item)
        logger.info("Remembered: %s", text[:80])
        return True

    async def forget(self, item_id: str) -> bool:
        """Delete one memory by id."""
        if not await self._store.delete_memory_item(item_id):
            logger.warning("Could not forget memory %s", item_id)
            return False
        self._items = [item for item in self._items if item.id != item_id]
        logger.info("Forgot memory: %s", item_id)
        return True

    async def forget_all(self) -> bool:
        if not await self._store.delete_all_memory_items():
            return False
        self._items = []
        logger.info("Forgot all memories")
        return True

    # -- Read ------------------------------------------------------------------

    def retrieve(self, query: str, k: int | None = None) -> list[str]:
        """Return the text of the memories most relevant to *query*.

        Only items scoring above the relevance threshold are returned, most
        relevant first, at most *k* of them.
        """
        if not self._items:
            return []
        query_vector = self._encoder.encode(query)
        ranked = top_k(
            query_vector,
            self._items,
            k if k is not None else self._default_top_k,
            threshold=self._threshold,
        )
        return [item.text for item, _ in ranked]
