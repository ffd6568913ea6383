"""
Abstract base class for uploaded file storage.
"""

from abc import ABC, abstractmethod


class BlobStore(ABC):
    """Stores the raw bytes of uploaded documents by key."""

    @abstractmethod
    async def put(self, key: str, data: bytes) -> None:
        """
        Store bytes under a key, replacing any previous value.

        Raises:
            StoreError: If the write fails
        """

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Read bytes of a key.

        Raises:
            NotFoundError: If the key does not exist
            StoreError: If the read fails
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove a key. Returns False if it did not exist."""

    @abstractmethod
    async def delete_prefix(self, prefix: str) -> int:
        """Remove every key under a prefix. Returns the number removed."""
