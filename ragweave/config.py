"""
Configuration for RagWeave.

Values are resolved per field, highest priority first:
1. Environment variables, `RAGWEAVE_<SECTION>_<FIELD>` (a `.env` file is
   loaded into the environment first)
2. YAML config file
3. Model defaults
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "llama3.1:8b"
    base_url: str | None = None  # Provider default when unset
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int = 2000
    timeout: float = 120.0


class EmbedderConfig(BaseModel):
    """Embedder configuration.

    `provider` and `model` form the default embedding model of new datasets
    ("nomic-embed-text@ollama"); credentials are shared by every embedder the
    model registry builds.
    """

    provider: str = "ollama"  # ollama, openai
    model: str = "nomic-embed-text"
    base_url: str | None = None  # Provider default when unset
    api_key: str | None = None
    timeout: float = 120.0
    # Optional: embedding dimension (fallback to auto-detect)
    dimension: int | None = None

    @property
    def reference(self) -> str:
        """Model reference in `name@factory` form."""
        return f"{self.model}@{self.provider}"


class RerankConfig(BaseModel):
    """Rerank provider configuration."""

    provider: str = "jina"
    base_url: str = "https://api.jina.ai/v1"
    api_key: str | None = None
    timeout: float = 30.0


class TokenizerConfig(BaseModel):
    """Token counting configuration."""

    provider: str = "tiktoken"  # tiktoken, approximate
    model: str = "cl100k_base"
    chars_per_token: float = 4.0


class ChunkingConfig(BaseModel):
    """Defaults for chunk methods whose parser config has no token budget."""

    chunk_token_num: int = 512
    min_section_tokens: int = 32


class QdrantConfig(BaseModel):
    """Qdrant configuration.

    `location=":memory:"` runs the embedded local mode (no server needed).
    """

    url: str = "http://localhost:6333"
    location: str | None = None
    collection_prefix: str = "ragweave"
    use_grpc: bool = False
    hnsw_m: int = 16
    hnsw_ef_construct: int = 100
    use_quantization: bool = False
    on_disk: bool = False
    timeout: int = 30


class SQLiteConfig(BaseModel):
    """SQLite database for metadata, tasks, graphs and memories."""

    db_path: str = "data/ragweave.db"


class StorageConfig(BaseModel):
    """Uploaded file storage."""

    blob_dir: str = "data/blobs"


class TaskConfig(BaseModel):
    """Task scheduler configuration."""

    num_workers: int = 4
    max_retries: int = 3
    retry_delay: float = 1.0
    batch_size: int = 32


class RetrievalConfig(BaseModel):
    """Retrieval scoring knobs not exposed per request."""

    keyword_weight: float = 0.1
    toc_weight: float = 0.1
    kg_hops: int = 1
    kg_max_chunks: int = 32


class RaptorConfig(BaseModel):
    """Clustering knobs for hierarchical summaries."""

    umap_n_components: int = 10
    umap_metric: str = "cosine"
    max_layers: int = 8


class GraphRAGConfig(BaseModel):
    """Knowledge graph extraction configuration."""

    extraction_max_tokens: int = 1024
    pagerank_alpha: float = 0.85


class MemoryConfig(BaseModel):
    """Memory API configuration."""

    default_memory_size: int = 5 * 1024 * 1024
    extraction_max_tokens: int = 1024


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    rerank: RerankConfig = Field(default_factory=RerankConfig)
    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    sqlite: SQLiteConfig = Field(default_factory=SQLiteConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    tasks: TaskConfig = Field(default_factory=TaskConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    raptor: RaptorConfig = Field(default_factory=RaptorConfig)
    graphrag: GraphRAGConfig = Field(default_factory=GraphRAGConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def env_overrides(cls) -> dict[str, dict[str, str]]:
        """
        Collect settings from `RAGWEAVE_*` variables as a nested dict.

        Values stay strings; pydantic coerces them ("8" -> 8, "true" -> True).
        Empty variables are ignored.
        """
        overrides: dict[str, dict[str, str]] = {}
        for section, field in cls.model_fields.items():
            for name in field.annotation.model_fields:
                value = os.getenv(_env_name(section, name))
                if value:
                    overrides.setdefault(section, {})[name] = value
        for env_name, (section, name) in _ENV_ALIASES.items():
            value = os.getenv(env_name)
            if value:
                overrides.setdefault(section, {}).setdefault(name, value)
        return overrides

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Args:
            env_file: Optional .env file; `.env` in the working directory is used when present

        Examples:
            RAGWEAVE_LLM_PROVIDER=openai, RAGWEAVE_LLM_API_KEY=sk-...,
            RAGWEAVE_EMBEDDER_MODEL=text-embedding-3-small,
            RAGWEAVE_QDRANT_LOCATION=:memory:, RAGWEAVE_TASK_WORKERS=8,
            RAGWEAVE_RETRIEVAL_KG_HOPS=2, RAGWEAVE_LOG_LEVEL=DEBUG
        """
        _load_dotenv(env_file)
        return cls.model_validate(cls.env_overrides())

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")
        return cls.model_validate(_read_yaml(yaml_path))

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load YAML (when the file exists) and apply environment overrides field by field.

        A variable replaces only its own field; the rest of a YAML section is kept.
        """
        data = _read_yaml(Path(yaml_path)) if yaml_path and Path(yaml_path).exists() else {}
        _load_dotenv(env_file)
        for section, values in cls.env_overrides().items():
            data[section] = {**(data.get(section) or {}), **values}
        return cls.model_validate(data)


# Section prefixes that differ from the section name
_ENV_SECTIONS = {"tasks": "TASK", "logging": "LOG"}

# Short names kept alongside the generated ones
_ENV_ALIASES = {
    "RAGWEAVE_TASK_WORKERS": ("tasks", "num_workers"),
    "RAGWEAVE_SQLITE_PATH": ("sqlite", "db_path"),
    "RAGWEAVE_BLOB_DIR": ("storage", "blob_dir"),
}


def _env_name(section: str, name: str) -> str:
    """("logging", "log_dir") -> "RAGWEAVE_LOG_DIR"."""
    prefix = _ENV_SECTIONS.get(section, section.upper())
    name = name.removeprefix(f"{prefix.lower()}_")
    return f"RAGWEAVE_{prefix}_{name.upper()}"


def _load_dotenv(env_file: str | Path | None) -> None:
    if env_file:
        load_dotenv(env_file)
    elif Path(".env").exists():
        load_dotenv()


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}

