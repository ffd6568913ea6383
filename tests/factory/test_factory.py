"""
Tests for factory classes.

Tests the creation of providers and stores from configuration and the
model registry resolving `model_name@model_factory` references.
"""

import pytest

from ragweave.config import EmbedderConfig, LLMConfig, QdrantConfig, RerankConfig, SQLiteConfig
from ragweave.core.embeddings.base import Embedder
from ragweave.core.embeddings.ollama import OllamaEmbedder
from ragweave.core.embeddings.openai import OpenAIEmbedder
from ragweave.core.factory import (
    EmbedderFactory,
    LLMFactory,
    ModelRegistry,
    RerankerFactory,
    StoreFactory,
    VectorStoreFactory,
)
from ragweave.core.graph_store.sqlite_store import SQLiteGraphStore
from ragweave.core.llm.ollama import OllamaLLM
from ragweave.core.llm.openai import OpenAILLM
from ragweave.core.memory_store.sqlite_store import SQLiteMemoryStore
from ragweave.core.metadata_store.sqlite_store import SQLiteMetadataStore
from ragweave.core.rerank.jina import JinaReranker
from ragweave.core.vector_store.qdrant import QdrantChunkIndex
from ragweave.utils.exceptions import ConfigurationError, ValidationError


@pytest.mark.unit
class TestLLMFactory:
    """Test LLM factory."""

    def test_create_ollama_llm(self):
        llm = LLMFactory.create(LLMConfig(provider="ollama", model="llama3.1:8b"))

        assert isinstance(llm, OllamaLLM)
        assert llm.model == "llama3.1:8b"
        assert llm.host == "http://localhost:11434"

    def test_create_openai_llm(self):
        llm = LLMFactory.create(LLMConfig(provider="OpenAI", model="gpt-4o-mini", api_key="sk-test"))

        assert isinstance(llm, OpenAILLM)
        assert llm.model == "gpt-4o-mini"

    def test_openai_without_api_key(self):
        with pytest.raises(ConfigurationError, match="API key is required"):
            LLMFactory.create(LLMConfig(provider="openai", model="gpt-4o-mini"))

    def test_unsupported_provider(self):
        with pytest.raises(ConfigurationError, match="Unsupported LLM provider"):
            LLMFactory.create(LLMConfig(provider="unsupported", model="some-model"))


@pytest.mark.unit
class TestEmbedderFactory:
    """Test embedder factory."""

    def test_create_ollama_embedder(self):
        embedder = EmbedderFactory.create(
            EmbedderConfig(provider="ollama", model="nomic-embed-text", dimension=768)
        )

        assert isinstance(embedder, OllamaEmbedder)
        assert isinstance(embedder, Embedder)
        assert embedder.reference == "nomic-embed-text@Ollama"

    def test_create_openai_embedder(self):
        embedder = EmbedderFactory.create(
            EmbedderConfig(provider="openai", model="text-embedding-3-small", api_key="sk-test")
        )

        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.reference == "text-embedding-3-small@OpenAI"

    def test_unsupported_provider(self):
        with pytest.raises(ConfigurationError, match="Unsupported embedder provider"):
            EmbedderFactory.create(EmbedderConfig(provider="word2vec", model="x"))


@pytest.mark.unit
class TestRerankerFactory:
    """Test reranker factory."""

    def test_create_jina_reranker(self):
        reranker = RerankerFactory.create(RerankConfig(api_key="jina-test"), model="jina-reranker-v2")

        assert isinstance(reranker, JinaReranker)
        assert reranker.model == "jina-reranker-v2"
        assert reranker.base_url == "https://api.jina.ai/v1"

    def test_unsupported_provider(self):
        with pytest.raises(ConfigurationError, match="Unsupported rerank provider"):
            RerankerFactory.create(RerankConfig(), model="bge", provider="local")


@pytest.mark.unit
class TestStoreFactories:
    """Test store factories."""

    def test_sqlite_stores_share_database(self, tmp_path):
        config = SQLiteConfig(db_path=str(tmp_path / "ragweave.db"))

        assert isinstance(StoreFactory.create_metadata_store(config), SQLiteMetadataStore)
        assert isinstance(StoreFactory.create_graph_store(config), SQLiteGraphStore)
        assert isinstance(StoreFactory.create_memory_store(config), SQLiteMemoryStore)

    def test_chunk_index(self):
        index = VectorStoreFactory.create(QdrantConfig(location=":memory:"))

        assert isinstance(index, QdrantChunkIndex)


@pytest.mark.unit
class TestModelRegistry:
    """Test reference resolution."""

    def test_default_embedding_model(self, config):
        registry = ModelRegistry(config)

        assert registry.default_embedding_model == "hash-embed@test"

    @pytest.mark.parametrize("reference", ["no-factory", "@Ollama", "model@", "  "])
    def test_invalid_reference(self, config, reference):
        registry = ModelRegistry(config)

        with pytest.raises(ValidationError):
            registry.validate_reference(reference)

    def test_validate_reference_splits_on_last_at(self, config):
        registry = ModelRegistry(config)

        assert registry.validate_reference("org@model@Ollama") == ("org@model", "Ollama")

    def test_registered_embedder_factory_case_insensitive(self, config, embedder):
        registry = ModelRegistry(config)
        registry.register_embedder("hash-embed@Test", embedder)

        assert registry.get_embedder("hash-embed@TEST") is embedder
        assert embedder.reference == "hash-embed@Test"

    def test_embedder_built_once_per_reference(self, config):
        registry = ModelRegistry(config)

        first = registry.get_embedder("nomic-embed-text@Ollama")
        second = registry.get_embedder("nomic-embed-text@ollama")

        assert isinstance(first, OllamaEmbedder)
        assert first is second
        assert first.reference == "nomic-embed-text@Ollama"

    def test_unsupported_factory(self, config):
        registry = ModelRegistry(config)

        with pytest.raises(ConfigurationError):
            registry.get_embedder("some-model@Unknown")

    def test_reranker_from_reference(self, config):
        config.rerank.api_key = "jina-test"
        registry = ModelRegistry(config)

        reranker = registry.get_reranker("jina-reranker-v2@Jina")

        assert isinstance(reranker, JinaReranker)
        assert reranker.model == "jina-reranker-v2"

    def test_injected_llm(self, config, llm):
        registry = ModelRegistry(config, llm=llm)

        assert registry.get_llm() is llm
