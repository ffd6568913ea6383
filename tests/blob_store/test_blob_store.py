"""
Tests for the filesystem blob store.
"""

import pytest

from ragweave.core.blob_store import FileSystemBlobStore
from ragweave.utils.exceptions import NotFoundError, ValidationError


@pytest.fixture
def blobs(tmp_path) -> FileSystemBlobStore:
    return FileSystemBlobStore(tmp_path / "blobs")


@pytest.mark.unit
class TestFileSystemBlobStore:
    """Tests for put / get / delete."""

    async def test_put_and_get(self, blobs):
        await blobs.put("ds_1/doc_1", b"hello")

        assert await blobs.get("ds_1/doc_1") == b"hello"

    async def test_overwrite(self, blobs):
        await blobs.put("ds_1/doc_1", b"one")
        await blobs.put("ds_1/doc_1", b"two")

        assert await blobs.get("ds_1/doc_1") == b"two"

    async def test_missing_blob(self, blobs):
        with pytest.raises(NotFoundError):
            await blobs.get("ds_1/missing")

    async def test_delete(self, blobs):
        await blobs.put("ds_1/doc_1", b"hello")

        assert await blobs.delete("ds_1/doc_1") is True
        assert await blobs.delete("ds_1/doc_1") is False

    async def test_delete_prefix(self, blobs):
        await blobs.put("ds_1/doc_1", b"a")
        await blobs.put("ds_1/doc_2", b"b")
        await blobs.put("ds_2/doc_3", b"c")

        assert await blobs.delete_prefix("ds_1") == 2
        assert await blobs.get("ds_2/doc_3") == b"c"
        assert await blobs.delete_prefix("ds_1") == 0

    async def test_key_escaping_root_rejected(self, blobs):
        with pytest.raises(ValidationError):
            await blobs.put("../outside", b"x")
