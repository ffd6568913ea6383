"""Chunk vector index."""

from ragweave.core.vector_store.base import ChunkIndex, ChunkSearchHit
from ragweave.core.vector_store.qdrant import QdrantChunkIndex

__all__ = ["ChunkIndex", "ChunkSearchHit", "QdrantChunkIndex"]
