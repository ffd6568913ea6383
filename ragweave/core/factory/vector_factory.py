"""
Factory for creating the chunk index backend.
"""

from ragweave.config import QdrantConfig
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.core.vector_store.qdrant import QdrantChunkIndex


class VectorStoreFactory:
    """Factory for creating chunk index backends from configuration."""

    @staticmethod
    def create(config: QdrantConfig) -> ChunkIndex:
        """
        Create chunk index from configuration.

        Args:
            config: Qdrant configuration

        Returns:
            Chunk index instance
        """
        return QdrantChunkIndex(
            url=config.url,
            location=config.location,
            collection_prefix=config.collection_prefix,
            use_grpc=config.use_grpc,
            use_quantization=config.use_quantization,
            hnsw_m=config.hnsw_m,
            hnsw_ef_construct=config.hnsw_ef_construct,
            on_disk=config.on_disk,
            timeout=config.timeout,
        )
