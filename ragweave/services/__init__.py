"""
Services for RagWeave.

High-level business logic services:
- KnowledgeBaseService: Dataset, document, chunk and task operations
- IndexerGateway: Chunk embedding and index writes
- TaskScheduler: Persistent indexing queue with a worker pool
- RaptorSummarizer: Hierarchical chunk summaries
- KnowledgeGraphBuilder: Entity extraction and dataset graphs
- RetrievalEngine: Hybrid retrieval
- MemoryService: Agent memory spaces
- ServiceContainer: Wires everything from Config
"""

from ragweave.services.container import ServiceContainer
from ragweave.services.indexer import IndexerGateway
from ragweave.services.knowledge_base import KnowledgeBaseService
from ragweave.services.knowledge_graph import KnowledgeGraphBuilder
from ragweave.services.memory_service import MemoryService
from ragweave.services.raptor import RaptorSummarizer
from ragweave.services.retrieval_engine import RetrievalEngine
from ragweave.services.task_scheduler import TaskScheduler

__all__ = [
    "ServiceContainer",
    "KnowledgeBaseService",
    "IndexerGateway",
    "TaskScheduler",
    "RaptorSummarizer",
    "KnowledgeGraphBuilder",
    "RetrievalEngine",
    "MemoryService",
]
