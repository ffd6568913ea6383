"""Uploaded file storage."""

from ragweave.core.blob_store.base import BlobStore
from ragweave.core.blob_store.filesystem import FileSystemBlobStore

__all__ = ["BlobStore", "FileSystemBlobStore"]
