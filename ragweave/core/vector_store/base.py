"""
Base interface for the chunk index.

One collection per dataset. Every chunk is stored once per anchor: the
content itself and each of its questions. All anchors of a chunk share its
payload and point back to the chunk id.
"""

from abc import ABC, abstractmethod

from pydantic import BaseModel

from ragweave.models.document import Chunk, ChunkKind


class ChunkSearchHit(BaseModel):
    """Vector search result folded to one entry per chunk."""

    chunk: Chunk
    score: float
    anchor: str = "content"


class ChunkIndex(ABC):
    """Abstract base class for chunk vector storage."""

    @abstractmethod
    async def initialize(self) -> None:
        """
        Connect to the backend.

        Raises:
            VectorStoreError: If the connection fails
        """

    @abstractmethod
    async def ensure_collection(self, dataset_id: str, vector_size: int) -> None:
        """
        Create the dataset collection if missing.

        Raises:
            ValidationError: If the collection exists with another vector size
            VectorStoreError: If the backend call fails
        """

    @abstractmethod
    async def upsert_chunks(
        self,
        dataset_id: str,
        chunks: list[Chunk],
        question_embeddings: dict[str, list[list[float]]] | None = None,
    ) -> None:
        """
        Write chunks in one request.

        Args:
            dataset_id: Dataset ID
            chunks: Chunks with their content embedding
            question_embeddings: Per chunk id, embeddings aligned to `chunk.questions`

        Raises:
            ValidationError: If a chunk has no embedding
            VectorStoreError: If the write fails
        """

    @abstractmethod
    async def delete_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        chunk_ids: list[str] | None = None,
        kind: ChunkKind | None = None,
    ) -> None:
        """Delete chunks (all anchors) matching every given selector."""

    @abstractmethod
    async def get_chunks(
        self, dataset_id: str, chunk_ids: list[str], with_vectors: bool = False
    ) -> list[Chunk]:
        """Fetch chunks by id; missing ids are skipped."""

    async def get_chunk(
        self, dataset_id: str, chunk_id: str, with_vectors: bool = False
    ) -> Chunk | None:
        chunks = await self.get_chunks(dataset_id, [chunk_id], with_vectors=with_vectors)
        return chunks[0] if chunks else None

    @abstractmethod
    async def list_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        kind: ChunkKind | None = None,
        available: bool | None = None,
        with_vectors: bool = False,
    ) -> list[Chunk]:
        """All matching chunks ordered by (order, id)."""

    @abstractmethod
    async def count_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        available: bool | None = True,
        kind: ChunkKind | None = None,
    ) -> int:
        """Number of matching chunks (not anchors)."""

    @abstractmethod
    async def set_availability(self, dataset_id: str, chunk_ids: list[str], available: bool) -> None:
        """Toggle the soft delete flag of chunks."""

    @abstractmethod
    async def search(
        self,
        dataset_id: str,
        vector: list[float],
        limit: int,
        document_ids: list[str] | None = None,
    ) -> list[ChunkSearchHit]:
        """
        Nearest available chunks.

        Anchors fold into their chunk keeping the best score.

        Args:
            dataset_id: Dataset ID
            vector: Query embedding
            limit: Maximum chunks returned
            document_ids: Restrict to these documents

        Returns:
            Hits sorted by score descending
        """

    @abstractmethod
    async def drop_dataset(self, dataset_id: str) -> None:
        """Remove the dataset collection."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
