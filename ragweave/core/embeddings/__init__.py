"""
Embedding providers.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""

from ragweave.core.embeddings.base import Embedder
from ragweave.core.embeddings.ollama import OllamaEmbedder
from ragweave.core.embeddings.openai import OpenAIEmbedder

__all__ = ["Embedder", "OllamaEmbedder", "OpenAIEmbedder"]
