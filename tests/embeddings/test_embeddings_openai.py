"""
Tests for OpenAI embedder.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ragweave.core.embeddings.openai import OpenAIEmbedder
from ragweave.utils.exceptions import EmbeddingError, ValidationError


@pytest.fixture
def openai_embedder():
    return OpenAIEmbedder(api_key="test-key", model="text-embedding-3-small")


def embedding_response(vectors: list[list[float]]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=vector, index=i) for i, vector in enumerate(vectors)]
    return response


@pytest.mark.unit
class TestOpenAIEmbedder:
    """Test OpenAI embedder."""

    async def test_batch_embed_splits_requests(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, "create", new_callable=AsyncMock) as create:
            create.side_effect = [
                embedding_response([[1.0], [2.0]]),
                embedding_response([[3.0]]),
            ]

            result = await openai_embedder.batch_embed(["a", "b", "c"], batch_size=2)

        assert result == [[1.0], [2.0], [3.0]]
        assert create.call_count == 2
        assert create.call_args_list[1].kwargs["input"] == ["c"]

    async def test_embed_single(self, openai_embedder):
        with patch.object(openai_embedder.client.embeddings, "create", new_callable=AsyncMock) as create:
            create.return_value = embedding_response([[0.5, 0.5]])

            assert await openai_embedder.embed("text") == [0.5, 0.5]

    async def test_known_dimension(self, openai_embedder):
        assert await openai_embedder.get_dimension() == 1536
        assert openai_embedder.reference == "text-embedding-3-small@OpenAI"

    async def test_errors(self, openai_embedder):
        with pytest.raises(ValidationError):
            await openai_embedder.batch_embed([])

        with patch.object(openai_embedder.client.embeddings, "create", new_callable=AsyncMock) as create:
            create.side_effect = RuntimeError("quota")
            with pytest.raises(EmbeddingError, match="OpenAI batch embedding error"):
                await openai_embedder.embed("text")

    async def test_results_ordered_by_index(self, openai_embedder):
        response = MagicMock()
        response.data = [MagicMock(embedding=[2.0], index=1), MagicMock(embedding=[1.0], index=0)]
        with patch.object(openai_embedder.client.embeddings, "create", new_callable=AsyncMock) as create:
            create.return_value = response

            assert await openai_embedder.batch_embed(["a", "b"]) == [[1.0], [2.0]]

    async def test_configured_dimension_requested(self):
        embedder = OpenAIEmbedder(api_key="test-key", model="text-embedding-3-large", dimension=256)
        with patch.object(embedder.client.embeddings, "create", new_callable=AsyncMock) as create:
            create.return_value = embedding_response([[0.0] * 256])

            await embedder.embed("text")

        assert create.call_args.kwargs["dimensions"] == 256
        assert await embedder.get_dimension() == 256
