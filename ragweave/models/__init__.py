"""
Data models for RagWeave.

- Dataset, Document, Chunk: indexed content
- ParserConfig variants: per chunk method settings (tagged union)
- IndexingTask: persistent indexing jobs
- KnowledgeGraph: per dataset entity graph
- Retrieval models: request, metadata condition AST, ranked results
- Memory models: memory spaces and units
"""

from ragweave.models.dataset import (
    Caller,
    Dataset,
    DatasetCreate,
    DatasetPermission,
    DatasetUpdate,
    split_model_reference,
)
from ragweave.models.document import (
    Chunk,
    ChunkCreate,
    ChunkDraft,
    ChunkKind,
    ChunkUpdate,
    Document,
    DocumentUpdate,
    ParsedDocument,
)
from ragweave.models.graph import (
    GRAPH_FIELD_SEP,
    EdgeContribution,
    ExtractedEntity,
    ExtractedRelationship,
    ExtractionResult,
    GraphEdge,
    GraphNode,
    KnowledgeGraph,
    NodeContribution,
    edge_key,
)
from ragweave.models.memory import (
    ExtractedMemory,
    ForgettingPolicy,
    MemoryExtraction,
    MemorySearchHit,
    MemorySearchRequest,
    MemorySpace,
    MemorySpaceCreate,
    MemorySpaceUpdate,
    MemoryType,
    MemoryUnit,
    MemoryUnitUpdate,
    MessageCreate,
    UnitStatus,
)
from ragweave.models.parser_config import (
    ChunkMethod,
    GraphRAGSettings,
    NaiveParserConfig,
    ParserConfig,
    RaptorSettings,
    build_parser_config,
    default_parser_config,
)
from ragweave.models.retrieval import (
    ComparisonOperator,
    Condition,
    ConditionLogic,
    DocAggregate,
    MetadataCondition,
    RetrievalRequest,
    RetrievalResult,
    RetrievedChunk,
)
from ragweave.models.task import IndexingTask, TaskStatus, TaskType

__all__ = [
    # Dataset models
    "Caller",
    "Dataset",
    "DatasetCreate",
    "DatasetUpdate",
    "DatasetPermission",
    "split_model_reference",
    # Parser config
    "ChunkMethod",
    "ParserConfig",
    "NaiveParserConfig",
    "RaptorSettings",
    "GraphRAGSettings",
    "build_parser_config",
    "default_parser_config",
    # Document models
    "Document",
    "DocumentUpdate",
    "Chunk",
    "ChunkKind",
    "ChunkCreate",
    "ChunkUpdate",
    "ChunkDraft",
    "ParsedDocument",
    # Task models
    "IndexingTask",
    "TaskStatus",
    "TaskType",
    # Graph models
    "GRAPH_FIELD_SEP",
    "KnowledgeGraph",
    "GraphNode",
    "GraphEdge",
    "NodeContribution",
    "EdgeContribution",
    "ExtractedEntity",
    "ExtractedRelationship",
    "ExtractionResult",
    "edge_key",
    # Retrieval models
    "RetrievalRequest",
    "RetrievalResult",
    "RetrievedChunk",
    "DocAggregate",
    "MetadataCondition",
    "Condition",
    "ConditionLogic",
    "ComparisonOperator",
    # Memory models
    "MemorySpace",
    "MemorySpaceCreate",
    "MemorySpaceUpdate",
    "MemoryUnit",
    "MemoryUnitUpdate",
    "MemoryType",
    "MemorySearchRequest",
    "MemorySearchHit",
    "MessageCreate",
    "ForgettingPolicy",
    "UnitStatus",
    "ExtractedMemory",
    "MemoryExtraction",
]
