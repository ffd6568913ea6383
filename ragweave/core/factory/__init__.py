"""
Factory modules for creating RagWeave components.

Provides factories for LLM, Embedder, Reranker, the chunk index and the
SQLite stores, plus the ModelRegistry resolving model references.
"""

from ragweave.core.factory.embedder_factory import EmbedderFactory
from ragweave.core.factory.llm_factory import LLMFactory
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.factory.rerank_factory import RerankerFactory
from ragweave.core.factory.store_factory import StoreFactory
from ragweave.core.factory.vector_factory import VectorStoreFactory

__all__ = [
    "LLMFactory",
    "EmbedderFactory",
    "RerankerFactory",
    "ModelRegistry",
    "StoreFactory",
    "VectorStoreFactory",
]
