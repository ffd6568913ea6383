"""Memory space and unit storage."""

from ragweave.core.memory_store.base import MemoryUnitStore
from ragweave.core.memory_store.sqlite_store import SQLiteMemoryStore

__all__ = ["MemoryUnitStore", "SQLiteMemoryStore"]
