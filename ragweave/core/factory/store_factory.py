"""
Factory for creating the SQLite-backed stores.
"""

from ragweave.config import SQLiteConfig
from ragweave.core.graph_store.base import GraphStore
from ragweave.core.graph_store.sqlite_store import SQLiteGraphStore
from ragweave.core.memory_store.base import MemoryUnitStore
from ragweave.core.memory_store.sqlite_store import SQLiteMemoryStore
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.metadata_store.sqlite_store import SQLiteMetadataStore


class StoreFactory:
    """Factory for the metadata, graph and memory stores. All share one database file."""

    @staticmethod
    def create_metadata_store(config: SQLiteConfig) -> MetadataStore:
        return SQLiteMetadataStore(db_path=config.db_path)

    @staticmethod
    def create_graph_store(config: SQLiteConfig) -> GraphStore:
        return SQLiteGraphStore(db_path=config.db_path)

    @staticmethod
    def create_memory_store(config: SQLiteConfig) -> MemoryUnitStore:
        return SQLiteMemoryStore(db_path=config.db_path)
