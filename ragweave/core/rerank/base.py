"""
Abstract base class for rerank providers.
"""

from abc import ABC, abstractmethod


class Reranker(ABC):
    """
    Abstract base for rerank models.

    A reranker scores (query, document) pairs; retrieval uses the score in
    place of the vector similarity.
    """

    reference: str = ""

    @abstractmethod
    async def rerank(self, query: str, documents: list[str]) -> list[float]:
        """
        Score documents against a query.

        Args:
            query: The search query
            documents: Document texts

        Returns:
            Relevance scores in [0, 1] aligned to `documents`

        Raises:
            RerankError: If the rerank call fails
        """

    @abstractmethod
    async def close(self):
        """Close any open connections."""
