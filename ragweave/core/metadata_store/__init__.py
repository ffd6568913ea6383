"""Dataset, document and task metadata storage."""

from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.metadata_store.sqlite_store import SQLiteMetadataStore

__all__ = ["MetadataStore", "SQLiteMetadataStore"]
