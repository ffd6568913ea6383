"""Knowledge graph storage."""

from ragweave.core.graph_store.base import GraphStore
from ragweave.core.graph_store.sqlite_store import SQLiteGraphStore

__all__ = ["GraphStore", "SQLiteGraphStore"]
