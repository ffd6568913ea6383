"""
SQLite metadata store for datasets, documents and indexing tasks.
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ragweave.core.metadata_store.base import MetadataStore
from ragweave.models.dataset import Caller, Dataset, DatasetPermission
from ragweave.models.document import Document
from ragweave.models.parser_config import ChunkMethod, build_parser_config
from ragweave.models.task import IndexingTask, TaskStatus, TaskType
from ragweave.utils.exceptions import ConflictError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

_ACTIVE = (TaskStatus.UNSTART.value, TaskStatus.RUNNING.value)
_ORDERABLE = {"create_time", "update_time", "name"}

_DATASET_SELECT = """
    SELECT d.*,
        (SELECT COUNT(*) FROM documents WHERE dataset_id = d.id) AS document_count,
        (SELECT COALESCE(SUM(chunk_count), 0) FROM documents WHERE dataset_id = d.id) AS chunk_count,
        (SELECT COALESCE(SUM(token_count), 0) FROM documents WHERE dataset_id = d.id) AS token_count
    FROM datasets d
"""


def _stamp(message: str) -> str:
    return f"{datetime.now().strftime('%H:%M:%S')} {message}"


def _order_clause(orderby: str, desc: bool, prefix: str = "") -> str:
    if orderby not in _ORDERABLE:
        raise ValidationError(f"Cannot order by '{orderby}'", context={"orderby": orderby})
    return f" ORDER BY {prefix}{orderby} {'DESC' if desc else 'ASC'}, {prefix}id ASC"


class SQLiteMetadataStore(MetadataStore):
    """
    SQLite-backed metadata store.

    Dataset counters are not stored: they are summed from the documents of
    the dataset on every read, so they cannot drift.
    """

    def __init__(self, db_path: str = "data/ragweave.db"):
        """
        Initialize SQLite metadata store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self.connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    async def connect(self) -> None:
        """Establish connection to SQLite."""
        if self.connection is None:
            self.connection = await aiosqlite.connect(self.db_path, timeout=30)
            self.connection.row_factory = aiosqlite.Row
            await self.connection.execute("PRAGMA foreign_keys = ON")
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS datasets (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                embedding_model TEXT NOT NULL,
                chunk_method TEXT NOT NULL,
                parser_config TEXT NOT NULL,
                permission TEXT NOT NULL,
                pagerank INTEGER DEFAULT 0,
                language TEXT DEFAULT 'English',
                create_time TEXT NOT NULL,
                update_time TEXT NOT NULL
            )
        """
        )
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                dataset_id TEXT NOT NULL,
                name TEXT NOT NULL,
                location TEXT DEFAULT '',
                size INTEGER DEFAULT 0,
                type TEXT DEFAULT '',
                chunk_method TEXT,
                parser_config TEXT,
                meta_fields TEXT DEFAULT '{}',
                run TEXT NOT NULL,
                progress REAL DEFAULT 0,
                progress_msg TEXT DEFAULT '',
                chunk_count INTEGER DEFAULT 0,
                token_count INTEGER DEFAULT 0,
                enabled INTEGER DEFAULT 1,
                create_time TEXT NOT NULL,
                update_time TEXT NOT NULL,
                FOREIGN KEY (dataset_id) REFERENCES datasets(id) ON DELETE CASCADE
            )
        """
        )
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                task_type TEXT NOT NULL,
                dataset_id TEXT NOT NULL,
                document_id TEXT,
                target TEXT NOT NULL,
                status TEXT NOT NULL,
                progress REAL DEFAULT 0,
                progress_msg TEXT DEFAULT '',
                retry_count INTEGER DEFAULT 0,
                create_time TEXT NOT NULL,
                begin_at TEXT,
                update_time TEXT NOT NULL,
                finish_at TEXT,
                FOREIGN KEY (dataset_id) REFERENCES datasets(id) ON DELETE CASCADE,
                FOREIGN KEY (document_id) REFERENCES documents(id) ON DELETE CASCADE
            )
        """
        )

        await self.connection.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_datasets_tenant_name "
            "ON datasets(tenant_id, lower(name))"
        )
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_documents_dataset ON documents(dataset_id)"
        )
        await self.connection.execute("CREATE INDEX IF NOT EXISTS idx_tasks_target ON tasks(target)")
        await self.connection.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")

        await self.connection.commit()
        logger.info("Metadata store initialized", extra={"db_path": self.db_path})

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    # ═══════════════════════════════════════════════════════════
    # DATASETS
    # ═══════════════════════════════════════════════════════════

    async def create_dataset(self, dataset: Dataset) -> Dataset:
        async with self._write_lock:
            await self._check_dataset_name(dataset.tenant_id, dataset.name, exclude_id=None)
            await self.connection.execute(
                """
                INSERT INTO datasets (
                    id, tenant_id, name, description, embedding_model, chunk_method,
                    parser_config, permission, pagerank, language, create_time, update_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    dataset.id,
                    dataset.tenant_id,
                    dataset.name,
                    dataset.description,
                    dataset.embedding_model,
                    dataset.chunk_method.value,
                    dataset.parser_config.model_dump_json(),
                    dataset.permission.value,
                    dataset.pagerank,
                    dataset.language,
                    dataset.create_time.isoformat(),
                    dataset.update_time.isoformat(),
                ),
            )
            await self.connection.commit()
        return dataset

    async def get_dataset(self, dataset_id: str) -> Dataset | None:
        cursor = await self.connection.execute(_DATASET_SELECT + " WHERE d.id = ?", (dataset_id,))
        row = await cursor.fetchone()
        return self._row_to_dataset(row) if row else None

    async def list_datasets(
        self,
        caller: Caller,
        name: str | None = None,
        dataset_id: str | None = None,
        page: int = 1,
        page_size: int = 30,
        orderby: str = "create_time",
        desc: bool = True,
    ) -> tuple[list[Dataset], int]:
        where = ["d.tenant_id = ?"]
        params: list[Any] = [caller.tenant_id]
        if caller.team_ids:
            placeholders = ",".join("?" * len(caller.team_ids))
            where = [f"(d.tenant_id = ? OR (d.permission = ? AND d.tenant_id IN ({placeholders})))"]
            params.append(DatasetPermission.TEAM.value)
            params.extend(caller.team_ids)

        if name:
            where.append("lower(d.name) = lower(?)")
            params.append(name)
        if dataset_id:
            where.append("d.id = ?")
            params.append(dataset_id)

        clause = " WHERE " + " AND ".join(where)
        cursor = await self.connection.execute(
            "SELECT COUNT(*) FROM datasets d" + clause, params
        )
        total = (await cursor.fetchone())[0]

        query = _DATASET_SELECT + clause + _order_clause(orderby, desc, prefix="d.")
        query += " LIMIT ? OFFSET ?"
        cursor = await self.connection.execute(
            query, [*params, page_size, (max(page, 1) - 1) * page_size]
        )
        rows = await cursor.fetchall()
        return [self._row_to_dataset(row) for row in rows], total

    async def update_dataset(self, dataset: Dataset) -> Dataset:
        dataset.update_time = datetime.now()
        async with self._write_lock:
            await self._check_dataset_name(dataset.tenant_id, dataset.name, exclude_id=dataset.id)
            await self.connection.execute(
                """
                UPDATE datasets SET
                    name = ?, description = ?, embedding_model = ?, chunk_method = ?,
                    parser_config = ?, permission = ?, pagerank = ?, language = ?, update_time = ?
                WHERE id = ?
            """,
                (
                    dataset.name,
                    dataset.description,
                    dataset.embedding_model,
                    dataset.chunk_method.value,
                    dataset.parser_config.model_dump_json(),
                    dataset.permission.value,
                    dataset.pagerank,
                    dataset.language,
                    dataset.update_time.isoformat(),
                    dataset.id,
                ),
            )
            await self.connection.commit()
        return dataset

    async def delete_dataset(self, dataset_id: str) -> bool:
        async with self._write_lock:
            cursor = await self.connection.execute("DELETE FROM datasets WHERE id = ?", (dataset_id,))
            await self.connection.commit()
        return cursor.rowcount > 0

    async def _check_dataset_name(self, tenant_id: str, name: str, exclude_id: str | None) -> None:
        cursor = await self.connection.execute(
            "SELECT id FROM datasets WHERE tenant_id = ? AND lower(name) = lower(?)",
            (tenant_id, name),
        )
        row = await cursor.fetchone()
        if row and row["id"] != exclude_id:
            raise ConflictError(
                f"Dataset name '{name}' already exists", context={"tenant_id": tenant_id}
            )

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    async def create_document(self, document: Document) -> Document:
        async with self._write_lock:
            await self.connection.execute(
                """
                INSERT INTO documents (
                    id, dataset_id, name, location, size, type, chunk_method, parser_config,
                    meta_fields, run, progress, progress_msg, chunk_count, token_count, enabled,
                    create_time, update_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    document.id,
                    document.dataset_id,
                    document.name,
                    document.location,
                    document.size,
                    document.type,
                    document.chunk_method.value if document.chunk_method else None,
                    document.parser_config.model_dump_json() if document.parser_config else None,
                    json.dumps(document.meta_fields),
                    document.run.value,
                    document.progress,
                    document.progress_msg,
                    document.chunk_count,
                    document.token_count,
                    int(document.enabled),
                    document.create_time.isoformat(),
                    document.update_time.isoformat(),
                ),
            )
            await self.connection.commit()
        return document

    async def get_document(self, document_id: str) -> Document | None:
        cursor = await self.connection.execute("SELECT * FROM documents WHERE id = ?", (document_id,))
        row = await cursor.fetchone()
        return self._row_to_document(row) if row else None

    async def list_documents(
        self,
        dataset_id: str,
        name: str | None = None,
        run: list[TaskStatus] | None = None,
        document_ids: list[str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
        orderby: str = "create_time",
        desc: bool = True,
    ) -> tuple[list[Document], int]:
        where = ["dataset_id = ?"]
        params: list[Any] = [dataset_id]
        if name:
            where.append("name = ?")
            params.append(name)
        if run:
            where.append(f"run IN ({','.join('?' * len(run))})")
            params.extend(TaskStatus(status).value for status in run)
        if document_ids is not None:
            if not document_ids:
                return [], 0
            where.append(f"id IN ({','.join('?' * len(document_ids))})")
            params.extend(document_ids)

        clause = " WHERE " + " AND ".join(where)
        cursor = await self.connection.execute("SELECT COUNT(*) FROM documents" + clause, params)
        total = (await cursor.fetchone())[0]

        query = "SELECT * FROM documents" + clause + _order_clause(orderby, desc)
        if page is not None and page_size is not None:
            query += " LIMIT ? OFFSET ?"
            params = [*params, page_size, (max(page, 1) - 1) * page_size]
        cursor = await self.connection.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_document(row) for row in rows], total

    async def update_document(self, document: Document) -> Document:
        document.update_time = datetime.now()
        async with self._write_lock:
            await self.connection.execute(
                """
                UPDATE documents SET
                    name = ?, chunk_method = ?, parser_config = ?, meta_fields = ?,
                    enabled = ?, update_time = ?
                WHERE id = ?
            """,
                (
                    document.name,
                    document.chunk_method.value if document.chunk_method else None,
                    document.parser_config.model_dump_json() if document.parser_config else None,
                    json.dumps(document.meta_fields),
                    int(document.enabled),
                    document.update_time.isoformat(),
                    document.id,
                ),
            )
            await self.connection.commit()
        return document

    async def delete_document(self, document_id: str) -> bool:
        async with self._write_lock:
            cursor = await self.connection.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            await self.connection.commit()
        return cursor.rowcount > 0

    async def mirror_parse_state(
        self,
        document_id: str,
        run: TaskStatus,
        progress: float,
        progress_msg: str,
        chunk_count: int | None = None,
        token_count: int | None = None,
    ) -> None:
        assignments = ["run = ?", "progress = ?", "progress_msg = ?", "update_time = ?"]
        params: list[Any] = [run.value, progress, progress_msg, datetime.now().isoformat()]
        if chunk_count is not None:
            assignments.append("chunk_count = ?")
            params.append(chunk_count)
        if token_count is not None:
            assignments.append("token_count = ?")
            params.append(token_count)

        async with self._write_lock:
            await self.connection.execute(
                f"UPDATE documents SET {', '.join(assignments)} WHERE id = ?",
                [*params, document_id],
            )
            await self.connection.commit()

    async def set_document_counts(self, document_id: str, chunk_count: int, token_count: int) -> None:
        async with self._write_lock:
            await self.connection.execute(
                "UPDATE documents SET chunk_count = ?, token_count = ? WHERE id = ?",
                (chunk_count, token_count, document_id),
            )
            await self.connection.commit()

    # ═══════════════════════════════════════════════════════════
    # TASKS
    # ═══════════════════════════════════════════════════════════

    async def create_task(self, task: IndexingTask) -> IndexingTask:
        async with self._write_lock:
            cursor = await self.connection.execute(
                f"SELECT id FROM tasks WHERE target = ? AND status IN ({','.join('?' * len(_ACTIVE))})",
                (task.target, *_ACTIVE),
            )
            active = await cursor.fetchone()
            if active:
                raise ConflictError(
                    f"A {task.task_type.value} task is already active for {task.target}",
                    context={"task_id": active["id"], "target": task.target},
                )

            await self.connection.execute(
                """
                INSERT INTO tasks (
                    id, task_type, dataset_id, document_id, target, status, progress,
                    progress_msg, retry_count, create_time, begin_at, update_time, finish_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    task.id,
                    task.task_type.value,
                    task.dataset_id,
                    task.document_id,
                    task.target,
                    task.status.value,
                    task.progress,
                    task.progress_msg,
                    task.retry_count,
                    task.create_time.isoformat(),
                    None,
                    task.update_time.isoformat(),
                    None,
                ),
            )
            await self.connection.commit()
        return task

    async def get_task(self, task_id: str) -> IndexingTask | None:
        cursor = await self.connection.execute("SELECT * FROM tasks WHERE id = ?", (task_id,))
        row = await cursor.fetchone()
        return self._row_to_task(row) if row else None

    async def list_tasks(
        self,
        dataset_id: str | None = None,
        document_id: str | None = None,
        task_type: TaskType | None = None,
        statuses: list[TaskStatus] | None = None,
    ) -> list[IndexingTask]:
        where: list[str] = []
        params: list[Any] = []
        if dataset_id:
            where.append("dataset_id = ?")
            params.append(dataset_id)
        if document_id:
            where.append("document_id = ?")
            params.append(document_id)
        if task_type:
            where.append("task_type = ?")
            params.append(TaskType(task_type).value)
        if statuses:
            where.append(f"status IN ({','.join('?' * len(statuses))})")
            params.extend(TaskStatus(status).value for status in statuses)

        query = "SELECT * FROM tasks"
        if where:
            query += " WHERE " + " AND ".join(where)
        query += " ORDER BY create_time ASC, id ASC"
        cursor = await self.connection.execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def claim_task(self, task_id: str) -> bool:
        now = datetime.now().isoformat()
        return await self._guarded_update(
            "UPDATE tasks SET status = ?, begin_at = ?, update_time = ? WHERE id = ? AND status = ?",
            (TaskStatus.RUNNING.value, now, now, task_id, TaskStatus.UNSTART.value),
        )

    async def update_task_progress(
        self, task_id: str, progress: float | None = None, message: str | None = None
    ) -> bool:
        assignments = ["update_time = ?"]
        params: list[Any] = [datetime.now().isoformat()]
        if progress is not None:
            assignments.append("progress = MAX(progress, ?)")
            params.append(min(max(progress, 0.0), 1.0))
        if message:
            assignments.append(
                "progress_msg = CASE WHEN progress_msg = '' THEN ? ELSE progress_msg || char(10) || ? END"
            )
            stamped = _stamp(message)
            params.extend([stamped, stamped])

        return await self._guarded_update(
            f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ? AND status = ?",
            (*params, task_id, TaskStatus.RUNNING.value),
        )

    async def finish_task(self, task_id: str, status: TaskStatus, message: str) -> bool:
        if status not in (TaskStatus.DONE, TaskStatus.FAIL):
            raise ValidationError(f"Cannot finish a task as {status.value}")
        now = datetime.now().isoformat()
        stamped = _stamp(message)
        return await self._guarded_update(
            """
            UPDATE tasks SET
                status = ?, progress = ?, finish_at = ?, update_time = ?,
                progress_msg = CASE WHEN progress_msg = '' THEN ? ELSE progress_msg || char(10) || ? END
            WHERE id = ? AND status = ?
        """,
            (
                status.value,
                1.0 if status == TaskStatus.DONE else -1.0,
                now,
                now,
                stamped,
                stamped,
                task_id,
                TaskStatus.RUNNING.value,
            ),
        )

    async def cancel_task(self, task_id: str, message: str) -> bool:
        now = datetime.now().isoformat()
        stamped = _stamp(message)
        return await self._guarded_update(
            f"""
            UPDATE tasks SET
                status = ?, finish_at = ?, update_time = ?,
                progress_msg = CASE WHEN progress_msg = '' THEN ? ELSE progress_msg || char(10) || ? END
            WHERE id = ? AND status IN ({','.join('?' * len(_ACTIVE))})
        """,
            (TaskStatus.CANCEL.value, now, now, stamped, stamped, task_id, *_ACTIVE),
        )

    async def requeue_task(self, task_id: str, message: str) -> bool:
        stamped = _stamp(message)
        return await self._guarded_update(
            """
            UPDATE tasks SET
                status = ?, retry_count = retry_count + 1, update_time = ?,
                progress_msg = CASE WHEN progress_msg = '' THEN ? ELSE progress_msg || char(10) || ? END
            WHERE id = ? AND status = ?
        """,
            (
                TaskStatus.UNSTART.value,
                datetime.now().isoformat(),
                stamped,
                stamped,
                task_id,
                TaskStatus.RUNNING.value,
            ),
        )

    async def recover_running_tasks(self) -> list[str]:
        async with self._write_lock:
            cursor = await self.connection.execute(
                "SELECT id FROM tasks WHERE status = ?", (TaskStatus.RUNNING.value,)
            )
            task_ids = [row["id"] for row in await cursor.fetchall()]
            if task_ids:
                stamped = _stamp("Task interrupted, requeued.")
                await self.connection.execute(
                    """
                    UPDATE tasks SET
                        status = ?, retry_count = retry_count + 1, update_time = ?,
                        progress_msg = CASE WHEN progress_msg = '' THEN ? ELSE progress_msg || char(10) || ? END
                    WHERE status = ?
                """,
                    (
                        TaskStatus.UNSTART.value,
                        datetime.now().isoformat(),
                        stamped,
                        stamped,
                        TaskStatus.RUNNING.value,
                    ),
                )
                await self.connection.commit()

        if task_ids:
            logger.warning(
                f"Recovered {len(task_ids)} interrupted tasks", extra={"task_ids": task_ids}
            )
        return task_ids

    async def pending_task_ids(self) -> list[str]:
        cursor = await self.connection.execute(
            "SELECT id FROM tasks WHERE status = ? ORDER BY create_time ASC, id ASC",
            (TaskStatus.UNSTART.value,),
        )
        return [row["id"] for row in await cursor.fetchall()]

    async def _guarded_update(self, query: str, params: tuple) -> bool:
        async with self._write_lock:
            cursor = await self.connection.execute(query, params)
            await self.connection.commit()
        return cursor.rowcount == 1

    # ═══════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════

    def _row_to_dataset(self, row: aiosqlite.Row) -> Dataset:
        """Convert database row to Dataset object."""
        chunk_method = ChunkMethod(row["chunk_method"])
        return Dataset(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row["description"] or "",
            embedding_model=row["embedding_model"],
            chunk_method=chunk_method,
            parser_config=build_parser_config(chunk_method, json.loads(row["parser_config"])),
            permission=DatasetPermission(row["permission"]),
            pagerank=row["pagerank"],
            language=row["language"],
            document_count=row["document_count"],
            chunk_count=row["chunk_count"],
            token_count=row["token_count"],
            create_time=datetime.fromisoformat(row["create_time"]),
            update_time=datetime.fromisoformat(row["update_time"]),
        )

    def _row_to_document(self, row: aiosqlite.Row) -> Document:
        """Convert database row to Document object."""
        parser_config = None
        if row["parser_config"]:
            raw = json.loads(row["parser_config"])
            parser_config = build_parser_config(raw["chunk_method"], raw)
        return Document(
            id=row["id"],
            dataset_id=row["dataset_id"],
            name=row["name"],
            location=row["location"] or "",
            size=row["size"],
            type=row["type"] or "",
            chunk_method=ChunkMethod(row["chunk_method"]) if row["chunk_method"] else None,
            parser_config=parser_config,
            meta_fields=json.loads(row["meta_fields"]) if row["meta_fields"] else {},
            run=TaskStatus(row["run"]),
            progress=row["progress"],
            progress_msg=row["progress_msg"] or "",
            chunk_count=row["chunk_count"],
            token_count=row["token_count"],
            enabled=bool(row["enabled"]),
            create_time=datetime.fromisoformat(row["create_time"]),
            update_time=datetime.fromisoformat(row["update_time"]),
        )

    def _row_to_task(self, row: aiosqlite.Row) -> IndexingTask:
        """Convert database row to IndexingTask object."""
        return IndexingTask(
            id=row["id"],
            task_type=TaskType(row["task_type"]),
            dataset_id=row["dataset_id"],
            document_id=row["document_id"],
            status=TaskStatus(row["status"]),
            progress=row["progress"],
            progress_msg=row["progress_msg"] or "",
            retry_count=row["retry_count"],
            create_time=datetime.fromisoformat(row["create_time"]),
            begin_at=datetime.fromisoformat(row["begin_at"]) if row["begin_at"] else None,
            update_time=datetime.fromisoformat(row["update_time"]),
            finish_at=datetime.fromisoformat(row["finish_at"]) if row["finish_at"] else None,
        )
