"""
Tests for ID generation utilities.

Tests cover:
1. Prefixed random IDs (datasets, documents, tasks, memories, units)
2. Deterministic chunk IDs
3. Uniqueness guarantees
"""

import pytest

from ragweave.utils import (
    generate_chunk_id,
    generate_dataset_id,
    generate_document_id,
    generate_memory_space_id,
    generate_memory_unit_id,
    generate_task_id,
)


@pytest.mark.unit
class TestPrefixedIds:
    """Tests for random IDs."""

    @pytest.mark.parametrize(
        "generate, prefix",
        [
            (generate_dataset_id, "ds_"),
            (generate_document_id, "doc_"),
            (generate_task_id, "task_"),
            (generate_memory_space_id, "memory_"),
            (generate_memory_unit_id, "unit_"),
        ],
    )
    def test_format(self, generate, prefix):
        """Test ID format: prefix + 12 hex chars."""
        value = generate()

        assert value.startswith(prefix)
        suffix = value[len(prefix) :]
        assert len(suffix) == 12
        int(suffix, 16)

    def test_uniqueness(self):
        ids = [generate_document_id() for _ in range(1000)]
        assert len(ids) == len(set(ids))


@pytest.mark.unit
class TestGenerateChunkId:
    """Tests for deterministic chunk IDs."""

    def test_format(self):
        chunk_id = generate_chunk_id("doc_abc", 0, "hello")

        assert chunk_id.startswith("doc_abc_chunk_")
        assert len(chunk_id) == len("doc_abc_chunk_") + 16

    def test_deterministic(self):
        """Test the same inputs always give the same ID."""
        assert generate_chunk_id("doc_abc", 3, "text") == generate_chunk_id("doc_abc", 3, "text")

    def test_salt_and_content_matter(self):
        base = generate_chunk_id("doc_abc", 0, "text")

        assert generate_chunk_id("doc_abc", 1, "text") != base
        assert generate_chunk_id("doc_abc", 0, "other") != base
        assert generate_chunk_id("doc_xyz", 0, "text") != base
