"""
Ollama embedder using native ollama-python SDK.

Batches go through the `/api/embed` endpoint, which accepts a list of
inputs, so a chunk batch costs one request.
"""

import ollama

from ragweave.core.embeddings.base import Embedder
from ragweave.utils.exceptions import EmbeddingError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class OllamaEmbedder(Embedder):
    """
    Ollama embedder for generating text embeddings.

    Supports models like nomic-embed-text, mxbai-embed-large, bge-m3, etc.
    """

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout: float = 120.0,
        dimension: int | None = None,
    ):
        """
        Initialize Ollama embedder.

        Args:
            host: Ollama server URL
            model: Embedding model name (e.g., "nomic-embed-text", "mxbai-embed-large")
            timeout: Request timeout in seconds
            dimension: Known vector size (skips the probe request)
        """
        self.host = host
        self.model = model
        self.timeout = timeout
        self.reference = f"{model}@Ollama"
        self._dimension = dimension

        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")
        (vector,) = await self.batch_embed([text], **kwargs)
        return vector

    async def batch_embed(
        self, texts: list[str], batch_size: int = 32, **kwargs
    ) -> list[list[float]]:
        """
        Embed texts, `batch_size` inputs per request.

        Raises:
            EmbeddingError: If a request fails or returns the wrong number of vectors
        """
        embeddings: list[list[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            try:
                response = await self.client.embed(model=self.model, input=batch, **kwargs)
                vectors = response["embeddings"]
            except Exception as e:
                logger.error(
                    f"Ollama embedding error: {e}",
                    extra={"model": self.model, "host": self.host, "num_texts": len(batch)},
                )
                raise EmbeddingError(f"Ollama embedding error: {e}") from e

            if not vectors or len(vectors) != len(batch):
                raise EmbeddingError(
                    "Ollama returned invalid embedding response",
                    context={"model": self.model, "expected": len(batch)},
                )
            embeddings.extend(list(vector) for vector in vectors)
        return embeddings

    async def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = await super().get_dimension()
        return self._dimension

    async def close(self):
        """Close client (Ollama SDK handles cleanup internally)."""
