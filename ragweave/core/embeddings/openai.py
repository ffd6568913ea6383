"""
OpenAI embedder using official SDK.

text-embedding-3 models can shorten their vectors server side; a configured
`dimension` is sent as the `dimensions` parameter so the chunk collection
and the embedder always agree on the vector size.
"""

from openai import AsyncOpenAI

from ragweave.core.embeddings.base import Embedder
from ragweave.utils.exceptions import EmbeddingError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

# Native vector sizes
_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}
_MAX_INPUTS_PER_REQUEST = 2048


class OpenAIEmbedder(Embedder):
    """OpenAI (or OpenAI-compatible) embedding endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        base_url: str | None = None,
        timeout: float = 120.0,
        dimension: int | None = None,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            api_key: OpenAI API key
            model: Embedding model name (e.g., "text-embedding-3-small")
            base_url: Optional OpenAI-compatible endpoint
            timeout: Request timeout in seconds
            dimension: Requested vector size (text-embedding-3 models only)
        """
        self.model = model
        self.reference = f"{model}@OpenAI"
        self._dimension = dimension

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    async def embed(self, text: str, **kwargs) -> list[float]:
        if not text or not text.strip():
            raise ValidationError("Text cannot be empty")
        (vector,) = await self.batch_embed([text], **kwargs)
        return vector

    async def batch_embed(
        self, texts: list[str], batch_size: int = _MAX_INPUTS_PER_REQUEST, **kwargs
    ) -> list[list[float]]:
        """
        Embed texts through the native batch API.

        Raises:
            ValidationError: If texts list is empty
            EmbeddingError: If a request fails or returns nothing
        """
        if not texts:
            raise ValidationError("Texts list cannot be empty")

        batch_size = min(batch_size, _MAX_INPUTS_PER_REQUEST)
        if self._dimension is not None and self.model.startswith("text-embedding-3"):
            kwargs.setdefault("dimensions", self._dimension)

        embeddings: list[list[float]] = []
        try:
            for i in range(0, len(texts), batch_size):
                batch = texts[i : i + batch_size]
                response = await self.client.embeddings.create(
                    model=self.model, input=batch, **kwargs
                )
                if not response.data:
                    raise EmbeddingError("OpenAI returned empty batch embedding response")
                # Results carry their input index
                ordered = sorted(response.data, key=lambda item: item.index)
                embeddings.extend(list(item.embedding) for item in ordered)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(
                f"OpenAI batch embedding error: {e}",
                extra={"model": self.model, "num_texts": len(texts), "error": str(e)},
            )
            raise EmbeddingError(f"OpenAI batch embedding error: {e}") from e

        return embeddings

    async def get_dimension(self) -> int:
        if self._dimension is None:
            self._dimension = _MODEL_DIMENSIONS.get(self.model) or await super().get_dimension()
        return self._dimension

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
