"""
Filesystem blob store.

Keys are relative POSIX paths ("<dataset_id>/<document_id>") under a root
directory. File IO runs in a worker thread.
"""

import asyncio
import shutil
from pathlib import Path

from ragweave.core.blob_store.base import BlobStore
from ragweave.utils.exceptions import NotFoundError, StoreError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class FileSystemBlobStore(BlobStore):
    def __init__(self, root: str | Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValidationError(f"Invalid blob key: {key}")
        return path

    async def put(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_bytes(data)
            tmp.replace(path)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error(f"Failed to write blob {key}: {e}", extra={"key": key, "error": str(e)})
            raise StoreError(f"Failed to write blob {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {key}") from e
        except OSError as e:
            logger.error(f"Failed to read blob {key}: {e}", extra={"key": key, "error": str(e)})
            raise StoreError(f"Failed to read blob {key}: {e}") from e

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreError(f"Failed to delete blob {key}: {e}") from e

    async def delete_prefix(self, prefix: str) -> int:
        path = self._path(prefix)
        if not path.exists():
            return 0
        if path.is_file():
            return int(await self.delete(prefix))

        count = sum(1 for p in path.rglob("*") if p.is_file())
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise StoreError(f"Failed to delete blobs under {prefix}: {e}") from e
        return count
