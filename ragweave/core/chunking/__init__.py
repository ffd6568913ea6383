"""
Document parsing and chunking.

One chunk method per ChunkMethod; `Chunker` dispatches to them.
"""

from ragweave.core.chunking.chunker import CHUNK_METHODS, Chunker
from ragweave.core.chunking.parser import (
    IMAGE_SUFFIXES,
    TEXT_SUFFIXES,
    file_suffix,
    is_supported,
    parse_document,
)
from ragweave.core.chunking.text import parse_delimiters

__all__ = [
    "Chunker",
    "CHUNK_METHODS",
    "parse_document",
    "parse_delimiters",
    "file_suffix",
    "is_supported",
    "TEXT_SUFFIXES",
    "IMAGE_SUFFIXES",
]
