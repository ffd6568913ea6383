"""
SQLite knowledge graph store.

Each dataset graph is one JSON document, written with INSERT OR REPLACE so
readers always see either the previous or the new graph.
"""

import asyncio
from datetime import datetime
from pathlib import Path

import aiosqlite

from ragweave.core.graph_store.base import GraphStore
from ragweave.models.graph import KnowledgeGraph
from ragweave.utils.exceptions import GraphStoreError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class SQLiteGraphStore(GraphStore):
    """SQLite-based storage of per-dataset knowledge graphs."""

    def __init__(self, db_path: str = "data/ragweave.db"):
        """
        Initialize SQLite graph store.

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
            await self.connection.execute("PRAGMA journal_mode = WAL")
            await self.connection.commit()

    async def initialize(self) -> None:
        """Initialize database schema."""
        await self.connect()

        await self.connection.execute(
            """
            CREATE TABLE IF NOT EXISTS knowledge_graphs (
                dataset_id TEXT PRIMARY KEY,
                graph TEXT NOT NULL,
                node_count INTEGER DEFAULT 0,
                edge_count INTEGER DEFAULT 0,
                update_time TEXT NOT NULL
            )
        """
        )
        await self.connection.commit()

    async def get_graph(self, dataset_id: str) -> KnowledgeGraph | None:
        cursor = await self.connection.execute(
            "SELECT graph FROM knowledge_graphs WHERE dataset_id = ?", (dataset_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return KnowledgeGraph.model_validate_json(row[0])

    async def save_graph(self, graph: KnowledgeGraph) -> None:
        graph.update_time = datetime.now()
        payload = graph.model_dump_json(
            include={"dataset_id", "nodes", "edges", "update_time"},
        )

        try:
            async with self._write_lock:
                await self.connection.execute(
                    """
                    INSERT OR REPLACE INTO knowledge_graphs (
                        dataset_id, graph, node_count, edge_count, update_time
                    ) VALUES (?, ?, ?, ?, ?)
                """,
                    (
                        graph.dataset_id,
                        payload,
                        len(graph.nodes),
                        len(graph.edges),
                        graph.update_time.isoformat(),
                    ),
                )
                await self.connection.commit()
        except aiosqlite.Error as e:
            logger.error(
                f"Failed to save knowledge graph: {e}", extra={"dataset_id": graph.dataset_id}
            )
            raise GraphStoreError(
                f"Failed to save knowledge graph: {e}", context={"dataset_id": graph.dataset_id}
            ) from e

        logger.debug(
            "Knowledge graph saved",
            extra={
                "dataset_id": graph.dataset_id,
                "nodes": len(graph.nodes),
                "edges": len(graph.edges),
            },
        )

    async def delete_graph(self, dataset_id: str) -> bool:
        async with self._write_lock:
            cursor = await self.connection.execute(
                "DELETE FROM knowledge_graphs WHERE dataset_id = ?", (dataset_id,)
            )
            await self.connection.commit()
        return cursor.rowcount > 0

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.connection:
            await self.connection.close()
            self.connection = None
