"""
Knowledge graph models.

A dataset has one knowledge graph. Nodes are keyed by normalized entity name
and edges by the unordered pair of node keys. Every node and edge keeps the
contribution of each document separately so that re-processing or deleting a
document only touches its own share; the public fields (type, description,
sources, weight) are derived from the contributions.
"""

from collections import Counter
from datetime import datetime

from pydantic import BaseModel, Field, computed_field

GRAPH_FIELD_SEP = "<SEP>"


def edge_key(source: str, target: str) -> str:
    """Key of the unordered pair (source, target)."""
    first, second = sorted((source, target))
    return f"{first}\t{second}"


class NodeContribution(BaseModel):
    """What one document says about an entity."""

    entity_types: set[str] = Field(default_factory=set)
    descriptions: set[str] = Field(default_factory=set)
    chunk_ids: set[str] = Field(default_factory=set)


class EdgeContribution(BaseModel):
    """What one document says about a relationship."""

    descriptions: set[str] = Field(default_factory=set)
    chunk_ids: set[str] = Field(default_factory=set)
    weight: float = Field(default=1.0, ge=0.0)


class GraphNode(BaseModel):
    """Entity node."""

    name: str = Field(..., description="Normalized entity name")
    contributions: dict[str, NodeContribution] = Field(default_factory=dict)
    pagerank: float = Field(default=0.0)

    @computed_field
    @property
    def entity_type(self) -> str:
        """Most voted type across documents; ties resolved lexically."""
        votes: Counter[str] = Counter()
        for contribution in self.contributions.values():
            votes.update(contribution.entity_types)
        if not votes:
            return ""
        return min(votes, key=lambda t: (-votes[t], t))

    @computed_field
    @property
    def description(self) -> str:
        descriptions = set()
        for contribution in self.contributions.values():
            descriptions |= contribution.descriptions
        return GRAPH_FIELD_SEP.join(sorted(descriptions))

    @computed_field
    @property
    def source_id(self) -> list[str]:
        return sorted(self.contributions)

    @computed_field
    @property
    def chunk_ids(self) -> list[str]:
        chunk_ids = set()
        for contribution in self.contributions.values():
            chunk_ids |= contribution.chunk_ids
        return sorted(chunk_ids)


class GraphEdge(BaseModel):
    """Undirected relationship between two nodes (source < target)."""

    source: str
    target: str
    contributions: dict[str, EdgeContribution] = Field(default_factory=dict)

    @computed_field
    @property
    def weight(self) -> float:
        return sum(c.weight for c in self.contributions.values())

    @computed_field
    @property
    def description(self) -> str:
        descriptions = set()
        for contribution in self.contributions.values():
            descriptions |= contribution.descriptions
        return GRAPH_FIELD_SEP.join(sorted(descriptions))

    @computed_field
    @property
    def source_id(self) -> list[str]:
        return sorted(self.contributions)

    @computed_field
    @property
    def chunk_ids(self) -> list[str]:
        chunk_ids = set()
        for contribution in self.contributions.values():
            chunk_ids |= contribution.chunk_ids
        return sorted(chunk_ids)


class KnowledgeGraph(BaseModel):
    """Per-dataset knowledge graph (also used for single-document subgraphs)."""

    dataset_id: str
    nodes: dict[str, GraphNode] = Field(default_factory=dict)
    edges: dict[str, GraphEdge] = Field(default_factory=dict)
    update_time: datetime = Field(default_factory=datetime.now)

    def neighbours(self, name: str) -> set[str]:
        result = set()
        for edge in self.edges.values():
            if edge.source == name:
                result.add(edge.target)
            elif edge.target == name:
                result.add(edge.source)
        return result

    def to_payload(self) -> dict:
        """Flat node / edge lists for API responses."""
        nodes = [
            {
                "id": node.name,
                "entity_name": node.name,
                "entity_type": node.entity_type,
                "description": node.description,
                "source_id": node.source_id,
                "chunk_ids": node.chunk_ids,
                "pagerank": node.pagerank,
            }
            for node in sorted(self.nodes.values(), key=lambda n: (-n.pagerank, n.name))
        ]
        edges = [
            {
                "source": edge.source,
                "target": edge.target,
                "description": edge.description,
                "weight": edge.weight,
                "source_id": edge.source_id,
                "chunk_ids": edge.chunk_ids,
            }
            for edge in sorted(self.edges.values(), key=lambda e: (e.source, e.target))
        ]
        return {"nodes": nodes, "edges": edges}


# LLM structured output for extraction


class ExtractedEntity(BaseModel):
    name: str = Field(..., description="Entity name as written in the text")
    type: str = Field(..., description="One of the requested entity types")
    description: str = Field(default="", description="What the text says about the entity")


class ExtractedRelationship(BaseModel):
    source: str = Field(..., description="Source entity name")
    target: str = Field(..., description="Target entity name")
    description: str = Field(default="", description="How the entities are related")
    strength: float = Field(default=1.0, ge=0.0, le=10.0, description="Relationship strength")


class ExtractionResult(BaseModel):
    """Entities and relationships found in one chunk."""

    entities: list[ExtractedEntity] = Field(default_factory=list)
    relationships: list[ExtractedRelationship] = Field(default_factory=list)
