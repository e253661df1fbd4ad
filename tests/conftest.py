"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from hearth.chat.manager import ConversationManager
from hearth.memory.encoder import FeatureEncoder
from hearth.memory.manager import MemoryManager
from hearth.store import Store


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def store(db_path: Path) -> Store:
    """Create a Store backed by a temp database."""
    return Store(db_path)


@pytest.fixture
def encoder() -> FeatureEncoder:
    return FeatureEncoder(384)


@pytest.fixture
async def memories(store: Store, encoder: FeatureEncoder) -> MemoryManager:
    """A MemoryManager over an empty temp database."""
    manager = MemoryManager(store, encoder)
    await manager.load()
    return manager


@pytest.fixture
async def conversations(store: Store) -> ConversationManager:
    """A ConversationManager over an empty temp database."""
    manager = ConversationManager(store)
    await manager.reload()
    return manager
