"""
Abstract base class for embedding providers.

Every chunk of a dataset must be embedded by the same model, so an embedder
carries the `model_name@model_factory` reference it was built for, and the
indexer goes through `embed_many`, which rejects ragged or missing vectors
before anything reaches the chunk index.
"""

import asyncio
from abc import ABC, abstractmethod

from ragweave.utils.exceptions import EmbeddingError


class Embedder(ABC):
    """Abstract base for embedding providers."""

    reference: str = ""

    @abstractmethod
    async def embed(self, text: str, **kwargs) -> list[float]:
        """
        Generate embedding vector for text.

        Raises:
            ValidationError: If text is invalid
            EmbeddingError: If embedding generation fails
        """

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """
        Embed texts with up to `batch_size` concurrent `embed` calls.

        Providers with a native batch endpoint override this.
        """
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            embeddings.extend(await asyncio.gather(*(self.embed(text, **kwargs) for text in batch)))
        return embeddings

    async def embed_many(self, texts: list[str], batch_size: int = 32) -> list[list[float]]:
        """
        `batch_embed` with shape checks: one vector per text, one dimension.

        Raises:
            EmbeddingError: On a count or dimension mismatch
        """
        if not texts:
            return []
        vectors = await self.batch_embed(texts, batch_size=batch_size)
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}",
                context={"reference": self.reference},
            )
        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) != 1 or 0 in dimensions:
            raise EmbeddingError(
                f"Embeddings have inconsistent dimensions: {sorted(dimensions)}",
                context={"reference": self.reference},
            )
        return [[float(x) for x in vector] for vector in vectors]

    async def get_dimension(self) -> int:
        """Embedding dimension; the default embeds a probe string."""
        return len(await self.embed("dimension probe"))

    @abstractmethod
    async def close(self):
        """Close any open connections."""
