"""
Tests for Ollama embedder.
"""

from unittest.mock import AsyncMock, patch

import pytest

from ragweave.core.embeddings.ollama import OllamaEmbedder
from ragweave.utils.exceptions import EmbeddingError, ValidationError


@pytest.fixture
def ollama_embedder():
    return OllamaEmbedder(host="http://localhost:11434", model="nomic-embed-text", timeout=60.0)


@pytest.mark.unit
class TestOllamaEmbedder:
    """Test Ollama embedder."""

    def test_reference(self, ollama_embedder):
        assert ollama_embedder.reference == "nomic-embed-text@Ollama"

    async def test_embed(self, ollama_embedder):
        with patch.object(ollama_embedder.client, "embed", new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {"embeddings": [[0.1, 0.2, 0.3]]}

            result = await ollama_embedder.embed("test text")

            assert result == [0.1, 0.2, 0.3]
            mock_embed.assert_called_once_with(model="nomic-embed-text", input=["test text"])

    async def test_batch_embed_one_request_per_batch(self, ollama_embedder):
        with patch.object(ollama_embedder.client, "embed", new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = [
                {"embeddings": [[1.0, 0.0], [0.0, 1.0]]},
                {"embeddings": [[0.5, 0.5]]},
            ]

            result = await ollama_embedder.batch_embed(["a", "b", "c"], batch_size=2)

        assert result == [[1.0, 0.0], [0.0, 1.0], [0.5, 0.5]]
        assert mock_embed.call_args_list[1].kwargs["input"] == ["c"]

    async def test_embed_many_rejects_ragged_vectors(self, ollama_embedder):
        with patch.object(ollama_embedder.client, "embed", new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {"embeddings": [[1.0, 0.0], [1.0]]}

            with pytest.raises(EmbeddingError, match="inconsistent dimensions"):
                await ollama_embedder.embed_many(["a", "b"])

    async def test_dimension_detected_once(self, ollama_embedder):
        with patch.object(ollama_embedder.client, "embed", new_callable=AsyncMock) as mock_embed:
            mock_embed.return_value = {"embeddings": [[0.0] * 768]}

            assert await ollama_embedder.get_dimension() == 768
            assert await ollama_embedder.get_dimension() == 768
            assert mock_embed.call_count == 1

    async def test_configured_dimension(self):
        embedder = OllamaEmbedder(model="nomic-embed-text", dimension=384)

        assert await embedder.get_dimension() == 384

    async def test_errors(self, ollama_embedder):
        with pytest.raises(ValidationError):
            await ollama_embedder.embed("  ")

        with patch.object(ollama_embedder.client, "embed", new_callable=AsyncMock) as mock_embed:
            mock_embed.side_effect = ConnectionError("refused")
            with pytest.raises(EmbeddingError, match="Ollama embedding error"):
                await ollama_embedder.embed("text")

            mock_embed.side_effect = None
            mock_embed.return_value = {"embeddings": []}
            with pytest.raises(EmbeddingError, match="invalid embedding response"):
                await ollama_embedder.embed("text")
