"""
Knowledge graph builder.

Per document the LLM extracts entities and relationships from every chunk
into a subgraph. Subgraphs merge into the dataset graph by document
contribution, so merging is commutative and idempotent and a deleted
document can be pruned without touching what other documents said.
PageRank is recomputed after every change.
"""

import asyncio
import re
from collections import defaultdict

import networkx as nx

from ragweave.config import GraphRAGConfig
from ragweave.core.graph_store.base import GraphStore
from ragweave.core.llm.base import LLMProvider
from ragweave.models.document import Chunk, Document
from ragweave.models.graph import (
    EdgeContribution,
    ExtractionResult,
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    NodeContribution,
    edge_key,
)
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Collapse whitespace, strip quotes and upper-case an entity name."""
    return _WHITESPACE_RE.sub(" ", name.strip().strip("\"'")).strip().upper()


def mentions(text: str, name: str) -> bool:
    """
    Whole-word occurrence of a normalized entity name in normalized text.

    Word boundaries apply at Latin letters and digits; CJK names match anywhere.
    """
    pattern = re.escape(name)
    if re.match(r"[A-Z0-9]", name):
        pattern = r"(?<![A-Z0-9])" + pattern
    if re.search(r"[A-Z0-9]$", name):
        pattern += r"(?![A-Z0-9])"
    return re.search(pattern, text) is not None


def merge(
    graph: KnowledgeGraph | None, subgraph: KnowledgeGraph, alpha: float = 0.85
) -> KnowledgeGraph:
    """
    Merge a subgraph into a graph without mutating either.

    Contributions are unioned per document; an edge keeps the max weight a
    document ever gave it.

    Args:
        graph: Current dataset graph (None for an empty one)
        subgraph: Contributions to add
        alpha: PageRank damping factor

    Returns:
        New graph with PageRank recomputed
    """
    merged = (
        graph.model_copy(deep=True)
        if graph is not None
        else KnowledgeGraph(dataset_id=subgraph.dataset_id)
    )

    for key in sorted(subgraph.nodes):
        node = merged.nodes.setdefault(key, GraphNode(name=key))
        for doc_id, contribution in subgraph.nodes[key].contributions.items():
            current = node.contributions.get(doc_id)
            if current is None:
                node.contributions[doc_id] = contribution.model_copy(deep=True)
                continue
            current.entity_types |= contribution.entity_types
            current.descriptions |= contribution.descriptions
            current.chunk_ids |= contribution.chunk_ids

    for key in sorted(subgraph.edges):
        source_edge = subgraph.edges[key]
        edge = merged.edges.setdefault(
            key, GraphEdge(source=source_edge.source, target=source_edge.target)
        )
        for doc_id, contribution in source_edge.contributions.items():
            current = edge.contributions.get(doc_id)
            if current is None:
                edge.contributions[doc_id] = contribution.model_copy(deep=True)
                continue
            current.descriptions |= contribution.descriptions
            current.chunk_ids |= contribution.chunk_ids
            current.weight = max(current.weight, contribution.weight)

    compute_pagerank(merged, alpha=alpha)
    return merged


def prune_document(
    graph: KnowledgeGraph, document_id: str, alpha: float = 0.85
) -> KnowledgeGraph:
    """
    Remove a document's contributions.

    Nodes and edges nobody else contributed to disappear; edges never outlive
    their endpoints.
    """
    pruned = graph.model_copy(deep=True)
    for key in list(pruned.nodes):
        pruned.nodes[key].contributions.pop(document_id, None)
        if not pruned.nodes[key].contributions:
            del pruned.nodes[key]
    for key in list(pruned.edges):
        edge = pruned.edges[key]
        edge.contributions.pop(document_id, None)
        if (
            not edge.contributions
            or edge.source not in pruned.nodes
            or edge.target not in pruned.nodes
        ):
            del pruned.edges[key]

    compute_pagerank(pruned, alpha=alpha)
    return pruned


def compute_pagerank(graph: KnowledgeGraph, alpha: float = 0.85) -> None:
    """Weighted PageRank over the undirected graph, rounded for stable output."""
    if not graph.nodes:
        return
    g = nx.Graph()
    g.add_nodes_from(sorted(graph.nodes))
    for key in sorted(graph.edges):
        edge = graph.edges[key]
        g.add_edge(edge.source, edge.target, weight=max(edge.weight, 1e-9))

    scores = nx.pagerank(g, alpha=alpha, weight="weight")
    for name, node in graph.nodes.items():
        node.pagerank = round(float(scores.get(name, 0.0)), 8)


class KnowledgeGraphBuilder:
    """
    Extracts document subgraphs and maintains the dataset graphs.

    Merges for a dataset are serialized by a dataset lock; the store replaces
    the serialized graph in one statement, so readers see the graph either
    before or after a merge.
    """

    def __init__(
        self,
        llm: LLMProvider,
        graph_store: GraphStore,
        config: GraphRAGConfig | None = None,
    ):
        """
        Initialize builder.

        Args:
            llm: LLM for entity / relationship extraction
            graph_store: Dataset graph persistence
            config: Extraction and PageRank settings
        """
        self.llm = llm
        self.graph_store = graph_store
        self.config = config or GraphRAGConfig()
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def dataset_lock(self, dataset_id: str) -> asyncio.Lock:
        return self._locks[dataset_id]

    async def build_subgraph(
        self,
        document: Document,
        chunks: list[Chunk],
        entity_types: list[str],
        ctx=None,
    ) -> KnowledgeGraph:
        """
        Extract the subgraph of one document.

        Args:
            document: Source document
            chunks: Its available chunks
            entity_types: Allowed entity types (lower case)
            ctx: Optional TaskContext for progress and cancellation

        Returns:
            Subgraph whose contributions are all keyed by the document id

        Raises:
            TaskCancelledError: If cancelled between chunks
            LLMError: If extraction fails
        """
        subgraph = KnowledgeGraph(dataset_id=document.dataset_id)
        allowed = {t.strip().lower() for t in entity_types}

        for i, chunk in enumerate(chunks):
            if ctx:
                ctx.check_cancelled()

            extraction = await self.llm.extract(
                self._build_extraction_prompt(chunk.content, entity_types),
                ExtractionResult,
                max_tokens=self.config.extraction_max_tokens,
                temperature=0.0,
            )
            self._add_extraction(subgraph, document.id, chunk.id, extraction, allowed)

            if ctx and (i + 1) % 10 == 0:
                await ctx.progress(message=f"Extracted entities from {i + 1}/{len(chunks)} chunks.")

        logger.info(
            f"Extracted {len(subgraph.nodes)} entities and {len(subgraph.edges)} relations",
            extra={"document_id": document.id, "chunks": len(chunks)},
        )
        return subgraph

    @staticmethod
    def _add_extraction(
        subgraph: KnowledgeGraph,
        document_id: str,
        chunk_id: str,
        extraction: ExtractionResult,
        allowed: set[str],
    ) -> None:
        kept: set[str] = set()
        for entity in extraction.entities:
            entity_type = entity.type.strip().lower()
            name = normalize_name(entity.name)
            if not name or entity_type not in allowed:
                continue
            kept.add(name)
            node = subgraph.nodes.setdefault(name, GraphNode(name=name))
            contribution = node.contributions.setdefault(document_id, NodeContribution())
            contribution.entity_types.add(entity_type)
            contribution.chunk_ids.add(chunk_id)
            if entity.description.strip():
                contribution.descriptions.add(entity.description.strip())

        for relation in extraction.relationships:
            source, target = normalize_name(relation.source), normalize_name(relation.target)
            if source == target or source not in kept or target not in kept:
                continue
            first, second = sorted((source, target))
            edge = subgraph.edges.setdefault(
                edge_key(first, second), GraphEdge(source=first, target=second)
            )
            contribution = edge.contributions.get(document_id)
            if contribution is None:
                contribution = EdgeContribution(weight=0.0)
                edge.contributions[document_id] = contribution
            contribution.chunk_ids.add(chunk_id)
            contribution.weight += relation.strength
            if relation.description.strip():
                contribution.descriptions.add(relation.description.strip())

    def _build_extraction_prompt(self, content: str, entity_types: list[str]) -> str:
        return f"""
You are a knowledge graph extraction system. Identify the entities in the text and the relationships between them.

## Entity Types
Use ONLY these types: {", ".join(entity_types)}

## Text
{content}

## Task
1. List every entity of an allowed type with its name as written, its type and a short description.
2. List the relationships between those entities: source, target, a short description and a strength from 0 to 10.

Return JSON: {{"entities": [{{"name": ..., "type": ..., "description": ...}}], "relationships": [{{"source": ..., "target": ..., "description": ..., "strength": ...}}]}}
"""

    async def merge_document(self, dataset_id: str, subgraph: KnowledgeGraph) -> KnowledgeGraph:
        """Merge a document subgraph into the stored dataset graph."""
        async with self._locks[dataset_id]:
            graph = await self.graph_store.get_graph(dataset_id)
            merged = merge(graph, subgraph, alpha=self.config.pagerank_alpha)
            await self.graph_store.save_graph(merged)
        return merged

    async def remove_document(self, dataset_id: str, document_id: str) -> None:
        """Prune a document's contributions from the stored dataset graph."""
        async with self._locks[dataset_id]:
            graph = await self.graph_store.get_graph(dataset_id)
            if graph is None:
                return
            pruned = prune_document(graph, document_id, alpha=self.config.pagerank_alpha)
            await self.graph_store.save_graph(pruned)
        logger.debug("Pruned document from knowledge graph", extra={"document_id": document_id})

    async def get_graph(self, dataset_id: str) -> KnowledgeGraph | None:
        return await self.graph_store.get_graph(dataset_id)

    async def delete_graph(self, dataset_id: str) -> bool:
        async with self._locks[dataset_id]:
            return await self.graph_store.delete_graph(dataset_id)
