"""
Tests for configuration management.

Tests config loading from:
1. Environment variables
2. YAML files
3. Combined (env overrides YAML)
"""

import pytest
import yaml
from pydantic import ValidationError as PydanticValidationError

from ragweave.config import Config, EmbedderConfig, LLMConfig


@pytest.mark.unit
class TestConfigDefaults:
    """Test default configuration values."""

    def test_default_config_creation(self):
        """Test creating config with defaults."""
        config = Config()

        assert config.llm.provider == "ollama"
        assert config.llm.model == "llama3.1:8b"
        assert config.llm.temperature == 0.0

        assert config.embedder.reference == "nomic-embed-text@ollama"
        assert config.embedder.dimension is None

        assert config.tokenizer.provider == "tiktoken"
        assert config.chunking.chunk_token_num == 512
        assert config.tasks.num_workers == 4
        assert config.tasks.max_retries == 3
        assert config.retrieval.kg_hops == 1
        assert config.memory.default_memory_size == 5 * 1024 * 1024
        assert config.qdrant.location is None

    def test_llm_config_creation(self):
        """Test creating LLM config."""
        llm_config = LLMConfig(provider="openai", model="gpt-4o", api_key="sk-test", temperature=0.7)

        assert llm_config.provider == "openai"
        assert llm_config.api_key == "sk-test"
        assert llm_config.temperature == 0.7

    def test_embedder_reference(self):
        """Test the model reference of the default embedder."""
        embedder_config = EmbedderConfig(provider="openai", model="text-embedding-3-small")

        assert embedder_config.reference == "text-embedding-3-small@openai"


@pytest.mark.unit
class TestConfigFromEnv:
    """Test loading configuration from environment variables."""

    def test_from_env_basic(self, monkeypatch):
        """Test loading provider settings from environment."""
        monkeypatch.setenv("RAGWEAVE_LLM_PROVIDER", "openai")
        monkeypatch.setenv("RAGWEAVE_LLM_MODEL", "gpt-4o-mini")
        monkeypatch.setenv("RAGWEAVE_LLM_API_KEY", "sk-test-key")
        monkeypatch.setenv("RAGWEAVE_EMBEDDER_PROVIDER", "openai")
        monkeypatch.setenv("RAGWEAVE_EMBEDDER_MODEL", "text-embedding-3-small")

        config = Config.from_env()

        assert config.llm.provider == "openai"
        assert config.llm.model == "gpt-4o-mini"
        assert config.llm.api_key == "sk-test-key"
        assert config.embedder.reference == "text-embedding-3-small@openai"

    def test_from_env_with_numbers(self, monkeypatch):
        """Test numeric values are converted."""
        monkeypatch.setenv("RAGWEAVE_LLM_TEMPERATURE", "0.7")
        monkeypatch.setenv("RAGWEAVE_EMBEDDER_DIMENSION", "768")
        monkeypatch.setenv("RAGWEAVE_TASK_WORKERS", "8")
        monkeypatch.setenv("RAGWEAVE_TASK_RETRY_DELAY", "0.5")

        config = Config.from_env()

        assert config.llm.temperature == 0.7
        assert config.embedder.dimension == 768
        assert config.tasks.num_workers == 8
        assert config.tasks.retry_delay == 0.5

    def test_from_env_with_booleans(self, monkeypatch):
        """Test boolean values are converted."""
        monkeypatch.setenv("RAGWEAVE_QDRANT_USE_GRPC", "true")
        monkeypatch.setenv("RAGWEAVE_LOG_TO_FILE", "0")

        config = Config.from_env()

        assert config.qdrant.use_grpc is True
        assert config.logging.log_to_file is False

    def test_from_env_storage_paths(self, monkeypatch):
        """Test embedded Qdrant and storage locations from environment."""
        monkeypatch.setenv("RAGWEAVE_QDRANT_LOCATION", ":memory:")
        monkeypatch.setenv("RAGWEAVE_SQLITE_PATH", "/tmp/ragweave-test.db")
        monkeypatch.setenv("RAGWEAVE_BLOB_DIR", "/tmp/ragweave-blobs")
        monkeypatch.setenv("RAGWEAVE_TOKENIZER_PROVIDER", "approximate")

        config = Config.from_env()

        assert config.qdrant.location == ":memory:"
        assert config.sqlite.db_path == "/tmp/ragweave-test.db"
        assert config.storage.blob_dir == "/tmp/ragweave-blobs"
        assert config.tokenizer.provider == "approximate"

    def test_from_env_empty_value_uses_default(self, monkeypatch):
        """Test that an empty variable falls back to the default."""
        monkeypatch.setenv("RAGWEAVE_LLM_MODEL", "")

        config = Config.from_env()

        assert config.llm.model == "llama3.1:8b"

    def test_generated_names_cover_every_section(self, monkeypatch):
        monkeypatch.setenv("RAGWEAVE_RETRIEVAL_KG_HOPS", "3")
        monkeypatch.setenv("RAGWEAVE_RAPTOR_MAX_LAYERS", "2")
        monkeypatch.setenv("RAGWEAVE_TASK_NUM_WORKERS", "6")
        monkeypatch.setenv("RAGWEAVE_SQLITE_DB_PATH", "/tmp/generated.db")

        config = Config.from_env()

        assert config.retrieval.kg_hops == 3
        assert config.raptor.max_layers == 2
        assert config.tasks.num_workers == 6
        assert config.sqlite.db_path == "/tmp/generated.db"

    def test_invalid_value_rejected(self, monkeypatch):
        monkeypatch.setenv("RAGWEAVE_TASK_WORKERS", "many")

        with pytest.raises(PydanticValidationError):
            Config.from_env()

    def test_from_env_with_dotenv_file(self, monkeypatch, tmp_path):
        """Test loading from .env file."""
        keys = ["RAGWEAVE_RERANK_API_KEY", "RAGWEAVE_LOG_DIR"]
        for key in keys:
            # Registers the variable with monkeypatch so the file's values are undone
            monkeypatch.setenv(key, "placeholder")
            monkeypatch.delenv(key)

        env_file = tmp_path / ".env.test"
        env_file.write_text("RAGWEAVE_RERANK_API_KEY=jina-from-file\nRAGWEAVE_LOG_DIR=/var/log/rw\n")

        config = Config.from_env(env_file=str(env_file))

        assert config.rerank.api_key == "jina-from-file"
        assert config.logging.log_dir == "/var/log/rw"


@pytest.mark.unit
class TestConfigFromYAML:
    """Test loading configuration from YAML files."""

    def test_from_yaml_basic(self, tmp_path):
        """Test loading config sections from YAML."""
        yaml_file = tmp_path / "config.yaml"
        config_data = {
            "llm": {"provider": "openai", "model": "gpt-4o", "temperature": 0.5},
            "retrieval": {"keyword_weight": 0.2, "kg_hops": 2},
            "raptor": {"umap_n_components": 5},
            "memory": {"default_memory_size": 1024},
        }
        yaml_file.write_text(yaml.dump(config_data))

        config = Config.from_yaml(str(yaml_file))

        assert config.llm.model == "gpt-4o"
        assert config.llm.temperature == 0.5
        assert config.retrieval.keyword_weight == 0.2
        assert config.retrieval.kg_hops == 2
        assert config.raptor.umap_n_components == 5
        assert config.memory.default_memory_size == 1024
        # Untouched sections keep their defaults
        assert config.embedder.model == "nomic-embed-text"

    def test_from_yaml_empty_file(self, tmp_path):
        """Test an empty YAML file yields defaults."""
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text("")

        config = Config.from_yaml(yaml_file)

        assert config == Config()

    def test_from_yaml_missing_file(self, tmp_path):
        """Test a missing YAML file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            Config.from_yaml(tmp_path / "missing.yaml")


@pytest.mark.unit
class TestConfigFromEnvOrYAML:
    """Test env variables override YAML."""

    def test_env_overrides_yaml(self, monkeypatch, tmp_path):
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text(
            yaml.dump({"llm": {"model": "from-yaml"}, "retrieval": {"toc_weight": 0.3}})
        )
        monkeypatch.setenv("RAGWEAVE_LLM_MODEL", "from-env")

        config = Config.from_env_or_yaml(yaml_path=yaml_file)

        assert config.llm.model == "from-env"
        assert config.retrieval.toc_weight == 0.3

    def test_missing_yaml_uses_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RAGWEAVE_TASK_WORKERS", "2")

        config = Config.from_env_or_yaml(yaml_path=tmp_path / "absent.yaml")

        assert config.tasks.num_workers == 2

    def test_env_replaces_single_field(self, monkeypatch, tmp_path):
        """Test the rest of a YAML section survives an env override."""
        yaml_file = tmp_path / "config.yaml"
        yaml_file.write_text(yaml.dump({"llm": {"model": "from-yaml", "temperature": 0.4}}))
        monkeypatch.setenv("RAGWEAVE_LLM_MODEL", "from-env")

        config = Config.from_env_or_yaml(yaml_path=yaml_file)

        assert config.llm.model == "from-env"
        assert config.llm.temperature == 0.4
