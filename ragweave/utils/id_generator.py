"""
ID generation utilities for RagWeave.

Random IDs are a type prefix plus 12 hex characters ("ds_3f9a0c1b2d4e").
Chunk IDs are derived from their document and content so re-indexing the
same document yields the same IDs.
"""

import hashlib
from uuid import uuid4

DATASET_PREFIX = "ds"
DOCUMENT_PREFIX = "doc"
TASK_PREFIX = "task"
MEMORY_SPACE_PREFIX = "memory"
MEMORY_UNIT_PREFIX = "unit"


def _prefixed_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def generate_dataset_id() -> str:
    return _prefixed_id(DATASET_PREFIX)


def generate_document_id() -> str:
    return _prefixed_id(DOCUMENT_PREFIX)


def generate_task_id() -> str:
    return _prefixed_id(TASK_PREFIX)


def generate_memory_space_id() -> str:
    return _prefixed_id(MEMORY_SPACE_PREFIX)


def generate_memory_unit_id() -> str:
    return _prefixed_id(MEMORY_UNIT_PREFIX)


def generate_chunk_id(document_id: str, salt: str | int, content: str) -> str:
    """
    Deterministic chunk ID: "<document_id>_chunk_<16 hex>".

    `salt` marks the position within the document (chunk order, or a tag
    such as "raptor-1-0" for summaries) so equal texts at different
    positions stay distinct.
    """
    digest = hashlib.sha256(f"{salt}:{content}".encode("utf-8")).hexdigest()
    return f"{document_id}_chunk_{digest[:16]}"
