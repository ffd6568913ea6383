"""Rerank providers."""

from ragweave.core.rerank.base import Reranker
from ragweave.core.rerank.jina import JinaReranker

__all__ = ["Reranker", "JinaReranker"]
