"""
Tests for SQLite knowledge graph store.
"""

from collections.abc import AsyncGenerator

import pytest

from ragweave.core.graph_store.sqlite_store import SQLiteGraphStore
from ragweave.models.graph import (
    EdgeContribution,
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    NodeContribution,
    edge_key,
)


@pytest.fixture
async def store(tmp_path) -> AsyncGenerator[SQLiteGraphStore, None]:
    graph_store = SQLiteGraphStore(db_path=str(tmp_path / "graph.db"))
    await graph_store.initialize()
    yield graph_store
    await graph_store.close()


def city_graph() -> KnowledgeGraph:
    berlin = GraphNode(
        name="BERLIN",
        contributions={
            "doc_1": NodeContribution(
                entity_types={"geo"}, descriptions={"Capital of Germany"}, chunk_ids={"c1"}
            )
        },
        pagerank=0.5,
    )
    germany = GraphNode(
        name="GERMANY",
        contributions={"doc_1": NodeContribution(entity_types={"geo"}, chunk_ids={"c1"})},
        pagerank=0.5,
    )
    edge = GraphEdge(
        source="BERLIN",
        target="GERMANY",
        contributions={"doc_1": EdgeContribution(descriptions={"capital of"}, weight=9.0)},
    )
    return KnowledgeGraph(
        dataset_id="ds_1",
        nodes={"BERLIN": berlin, "GERMANY": germany},
        edges={edge_key("GERMANY", "BERLIN"): edge},
    )


@pytest.mark.unit
class TestSQLiteGraphStore:
    """Test graph persistence."""

    async def test_missing_graph(self, store):
        assert await store.get_graph("ds_1") is None

    async def test_save_and_load(self, store):
        await store.save_graph(city_graph())

        graph = await store.get_graph("ds_1")

        assert set(graph.nodes) == {"BERLIN", "GERMANY"}
        berlin = graph.nodes["BERLIN"]
        assert berlin.entity_type == "geo"
        assert berlin.description == "Capital of Germany"
        assert berlin.source_id == ["doc_1"]
        assert berlin.pagerank == pytest.approx(0.5)
        (edge,) = graph.edges.values()
        assert edge.weight == pytest.approx(9.0)
        assert graph.neighbours("GERMANY") == {"BERLIN"}

    async def test_save_replaces_graph(self, store):
        await store.save_graph(city_graph())
        smaller = city_graph()
        del smaller.nodes["GERMANY"]
        smaller.edges = {}

        await store.save_graph(smaller)

        graph = await store.get_graph("ds_1")
        assert set(graph.nodes) == {"BERLIN"}
        assert graph.edges == {}

    async def test_delete(self, store):
        await store.save_graph(city_graph())

        assert await store.delete_graph("ds_1") is True
        assert await store.get_graph("ds_1") is None
        assert await store.delete_graph("ds_1") is False
