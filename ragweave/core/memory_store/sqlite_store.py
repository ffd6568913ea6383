"""
SQLite storage for memory spaces and units.
"""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ragweave.core.memory_store.base import MemoryUnitStore
from ragweave.models.memory import (
    ForgettingPolicy,
    MemorySpace,
    MemoryType,
    MemoryUnit,
    UnitStatus,
)
from ragweave.utils.exceptions import ConflictError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class SQLiteMemoryStore(MemoryUnitStore):
    """SQLite-based memory space and unit storage."""

    def __init__(self, db_path: str = "data/ragweave.db"):
        """
        Initialize SQLite memory store.

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
            CREATE TABLE IF NOT EXISTS memory_spaces (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                name TEXT NOT NULL,
                description TEXT DEFAULT '',
                memory_types TEXT NOT NULL,
                embedding_model TEXT NOT NULL,
                memory_size INTEGER NOT NULL,
                forgetting_policy TEXT NOT NULL,
                create_time TEXT NOT NULL,
                update_time TEXT NOT NULL
            )
        """
        )
        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS memory_units (
                id TEXT PRIMARY KEY,
                memory_id TEXT NOT NULL,
                memory_type TEXT NOT NULL,
                content TEXT NOT NULL,
                embedding TEXT,
                size_bytes INTEGER NOT NULL,
                source_id TEXT,
                agent_id TEXT,
                session_id TEXT,
                valid_at TEXT NOT NULL,
                invalid_at TEXT,
                forget_at TEXT,
                status TEXT NOT NULL,
                create_time TEXT NOT NULL,
                FOREIGN KEY (memory_id) REFERENCES memory_spaces(id) ON DELETE CASCADE
            )
        """
        )
        await self.connection.execute(
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_memory_spaces_tenant_name "
            "ON memory_spaces(tenant_id, lower(name))"
        )
        await self.connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_memory_units_space ON memory_units(memory_id, valid_at)"
        )
        await self.connection.commit()

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None

    # ═══════════════════════════════════════════════════════════
    # SPACES
    # ═══════════════════════════════════════════════════════════

    async def create_space(self, space: MemorySpace) -> MemorySpace:
        async with self._write_lock:
            await self._check_space_name(space.tenant_id, space.name, exclude_id=None)
            await self.connection.execute(
                """
                INSERT INTO memory_spaces (
                    id, tenant_id, name, description, memory_types, embedding_model,
                    memory_size, forgetting_policy, create_time, update_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    space.id,
                    space.tenant_id,
                    space.name,
                    space.description,
                    json.dumps([t.value for t in space.memory_types]),
                    space.embedding_model,
                    space.memory_size,
                    space.forgetting_policy.value,
                    space.create_time.isoformat(),
                    space.update_time.isoformat(),
                ),
            )
            await self.connection.commit()
        return space

    async def get_space(self, memory_id: str) -> MemorySpace | None:
        cursor = await self.connection.execute(
            "SELECT * FROM memory_spaces WHERE id = ?", (memory_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_space(row) if row else None

    async def list_spaces(
        self, tenant_id: str, page: int = 1, page_size: int = 30
    ) -> tuple[list[MemorySpace], int]:
        cursor = await self.connection.execute(
            "SELECT COUNT(*) FROM memory_spaces WHERE tenant_id = ?", (tenant_id,)
        )
        total = (await cursor.fetchone())[0]

        cursor = await self.connection.execute(
            """
            SELECT * FROM memory_spaces WHERE tenant_id = ?
            ORDER BY create_time DESC, id ASC LIMIT ? OFFSET ?
        """,
            (tenant_id, page_size, (max(page, 1) - 1) * page_size),
        )
        rows = await cursor.fetchall()
        return [self._row_to_space(row) for row in rows], total

    async def update_space(self, space: MemorySpace) -> MemorySpace:
        space.update_time = datetime.now()
        async with self._write_lock:
            await self._check_space_name(space.tenant_id, space.name, exclude_id=space.id)
            await self.connection.execute(
                """
                UPDATE memory_spaces SET
                    name = ?, description = ?, memory_types = ?, memory_size = ?, update_time = ?
                WHERE id = ?
            """,
                (
                    space.name,
                    space.description,
                    json.dumps([t.value for t in space.memory_types]),
                    space.memory_size,
                    space.update_time.isoformat(),
                    space.id,
                ),
            )
            await self.connection.commit()
        return space

    async def delete_space(self, memory_id: str) -> bool:
        async with self._write_lock:
            cursor = await self.connection.execute(
                "DELETE FROM memory_spaces WHERE id = ?", (memory_id,)
            )
            await self.connection.commit()
        return cursor.rowcount > 0

    async def _check_space_name(self, tenant_id: str, name: str, exclude_id: str | None) -> None:
        cursor = await self.connection.execute(
            "SELECT id FROM memory_spaces WHERE tenant_id = ? AND lower(name) = lower(?)",
            (tenant_id, name),
        )
        row = await cursor.fetchone()
        if row and row["id"] != exclude_id:
            raise ConflictError(
                f"Memory name '{name}' already exists", context={"tenant_id": tenant_id}
            )

    # ═══════════════════════════════════════════════════════════
    # UNITS
    # ═══════════════════════════════════════════════════════════

    async def add_unit(self, unit: MemoryUnit) -> MemoryUnit:
        async with self._write_lock:
            await self.connection.execute(
                """
                INSERT OR REPLACE INTO memory_units (
                    id, memory_id, memory_type, content, embedding, size_bytes, source_id,
                    agent_id, session_id, valid_at, invalid_at, forget_at, status, create_time
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    unit.id,
                    unit.memory_id,
                    unit.memory_type.value,
                    unit.content,
                    json.dumps(unit.embedding),
                    unit.size_bytes,
                    unit.source_id,
                    unit.agent_id,
                    unit.session_id,
                    unit.valid_at.isoformat(),
                    unit.invalid_at.isoformat() if unit.invalid_at else None,
                    unit.forget_at.isoformat() if unit.forget_at else None,
                    unit.status.value,
                    unit.create_time.isoformat(),
                ),
            )
            await self.connection.commit()
        return unit

    async def get_unit(self, unit_id: str) -> MemoryUnit | None:
        cursor = await self.connection.execute("SELECT * FROM memory_units WHERE id = ?", (unit_id,))
        row = await cursor.fetchone()
        return self._row_to_unit(row) if row else None

    async def list_units(
        self,
        memory_id: str,
        memory_types: list[MemoryType] | None = None,
        status: UnitStatus | None = None,
        agent_id: str | None = None,
        session_id: str | None = None,
    ) -> list[MemoryUnit]:
        where = ["memory_id = ?"]
        params: list[Any] = [memory_id]
        if memory_types:
            where.append(f"memory_type IN ({','.join('?' * len(memory_types))})")
            params.extend(MemoryType(t).value for t in memory_types)
        if status:
            where.append("status = ?")
            params.append(UnitStatus(status).value)
        if agent_id:
            where.append("agent_id = ?")
            params.append(agent_id)
        if session_id:
            where.append("session_id = ?")
            params.append(session_id)

        cursor = await self.connection.execute(
            f"SELECT * FROM memory_units WHERE {' AND '.join(where)} "
            "ORDER BY valid_at ASC, create_time ASC, id ASC",
            params,
        )
        rows = await cursor.fetchall()
        return [self._row_to_unit(row) for row in rows]

    async def update_unit(self, unit: MemoryUnit) -> MemoryUnit:
        async with self._write_lock:
            await self.connection.execute(
                "UPDATE memory_units SET status = ?, invalid_at = ?, forget_at = ? WHERE id = ?",
                (
                    unit.status.value,
                    unit.invalid_at.isoformat() if unit.invalid_at else None,
                    unit.forget_at.isoformat() if unit.forget_at else None,
                    unit.id,
                ),
            )
            await self.connection.commit()
        return unit

    async def delete_units(self, unit_ids: list[str]) -> int:
        if not unit_ids:
            return 0
        async with self._write_lock:
            cursor = await self.connection.execute(
                f"DELETE FROM memory_units WHERE id IN ({','.join('?' * len(unit_ids))})",
                unit_ids,
            )
            await self.connection.commit()
        return cursor.rowcount

    async def delete_forgotten(self, memory_id: str, now: datetime) -> int:
        async with self._write_lock:
            cursor = await self.connection.execute(
                """
                DELETE FROM memory_units
                WHERE memory_id = ? AND forget_at IS NOT NULL AND forget_at <= ?
            """,
                (memory_id, now.isoformat()),
            )
            await self.connection.commit()
        if cursor.rowcount:
            logger.debug(
                f"Purged {cursor.rowcount} forgotten units", extra={"memory_id": memory_id}
            )
        return cursor.rowcount

    async def space_usage(self, memory_id: str) -> int:
        cursor = await self.connection.execute(
            "SELECT COALESCE(SUM(size_bytes), 0) FROM memory_units WHERE memory_id = ?",
            (memory_id,),
        )
        return (await cursor.fetchone())[0]

    # ═══════════════════════════════════════════════════════════
    # HELPERS
    # ═══════════════════════════════════════════════════════════

    def _row_to_space(self, row: aiosqlite.Row) -> MemorySpace:
        """Convert database row to MemorySpace object."""
        return MemorySpace(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row["description"] or "",
            memory_types=[MemoryType(t) for t in json.loads(row["memory_types"])],
            embedding_model=row["embedding_model"],
            memory_size=row["memory_size"],
            forgetting_policy=ForgettingPolicy(row["forgetting_policy"]),
            create_time=datetime.fromisoformat(row["create_time"]),
            update_time=datetime.fromisoformat(row["update_time"]),
        )

    def _row_to_unit(self, row: aiosqlite.Row) -> MemoryUnit:
        """Convert database row to MemoryUnit object."""
        return MemoryUnit(
            id=row["id"],
            memory_id=row["memory_id"],
            memory_type=MemoryType(row["memory_type"]),
            content=row["content"],
            embedding=json.loads(row["embedding"]) if row["embedding"] else [],
            source_id=row["source_id"],
            agent_id=row["agent_id"],
            session_id=row["session_id"],
            valid_at=datetime.fromisoformat(row["valid_at"]),
            invalid_at=datetime.fromisoformat(row["invalid_at"]) if row["invalid_at"] else None,
            forget_at=datetime.fromisoformat(row["forget_at"]) if row["forget_at"] else None,
            status=UnitStatus(row["status"]),
            create_time=datetime.fromisoformat(row["create_time"]),
        )
