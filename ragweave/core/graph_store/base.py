"""
Base interface for knowledge graph persistence.
"""

from abc import ABC, abstractmethod

from ragweave.models.graph import KnowledgeGraph


class GraphStore(ABC):
    """Stores one knowledge graph per dataset."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the schema."""

    @abstractmethod
    async def get_graph(self, dataset_id: str) -> KnowledgeGraph | None:
        """
        Load a dataset graph.

        Returns:
            The graph, or None if the dataset has none
        """

    @abstractmethod
    async def save_graph(self, graph: KnowledgeGraph) -> None:
        """
        Replace the dataset graph atomically.

        Raises:
            GraphStoreError: If the write fails
        """

    @abstractmethod
    async def delete_graph(self, dataset_id: str) -> bool:
        """
        Remove the dataset graph. Deleting a missing graph is not an error.

        Returns:
            True if a graph was removed
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""
