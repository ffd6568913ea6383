"""Shared fixtures for RagWeave tests.

Fixtures use function scope to avoid event loop issues. Every test gets a
fresh SQLite file, blob directory and in-memory Qdrant collection set under
`tmp_path`, plus deterministic in-process models:

- HashEmbedder: bag-of-words vectors hashed into a fixed dimension
- ScriptedLLM: structured outputs from per-model handlers, text otherwise
- OverlapReranker: share of query words found in the document
"""

import hashlib
import math
import re
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from pydantic import BaseModel

from ragweave.config import (
    Config,
    EmbedderConfig,
    LoggingConfig,
    QdrantConfig,
    SQLiteConfig,
    StorageConfig,
    TaskConfig,
    TokenizerConfig,
)
from ragweave.core.embeddings.base import Embedder
from ragweave.core.factory import ModelRegistry
from ragweave.core.llm.base import LLMProvider
from ragweave.core.rerank.base import Reranker
from ragweave.models import Caller, DatasetCreate, Document, TaskStatus
from ragweave.services import ServiceContainer

EMBEDDING_MODEL = "hash-embed@test"
RERANK_MODEL = "overlap-rerank@test"

_WORD_RE = re.compile(r"[0-9a-z]+")


def _words(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


# ═══════════════════════════════════════════════════════════
# FAKE MODELS
# ═══════════════════════════════════════════════════════════


class HashEmbedder(Embedder):
    """Deterministic embedder: each word adds 1 to a hashed bucket, then L2-normalized."""

    def __init__(self, dimension: int = 256):
        self.dimension = dimension
        self.calls = 0

    async def embed(self, text: str, **kwargs) -> list[float]:
        self.calls += 1
        vector = [0.0] * self.dimension
        words = _words(text)
        if not words:
            vector[0] = 1.0
            return vector
        for word in words:
            bucket = int(hashlib.md5(word.encode("utf-8")).hexdigest(), 16) % self.dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    async def get_dimension(self) -> int:
        return self.dimension

    async def close(self):
        pass


class ScriptedLLM(LLMProvider):
    """
    LLM returning canned answers.

    `handlers` maps a response_format class name to a callable receiving the
    prompt and returning an instance (or a dict to validate). Unhandled
    structured calls return the model's defaults; plain calls go to `text`.
    """

    def __init__(self):
        self.handlers: dict[str, Callable[[str], Any]] = {}
        self.text: Callable[[str], str] = lambda prompt: "Summary of related passages."
        self.prompts: list[str] = []

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        self.prompts.append(prompt)
        if response_format is None:
            return self.text(prompt)
        handler = self.handlers.get(response_format.__name__)
        if handler is None:
            return response_format()
        result = handler(prompt)
        if isinstance(result, dict):
            return response_format.model_validate(result)
        return result

    async def close(self):
        pass


class OverlapReranker(Reranker):
    async def rerank(self, query: str, documents: list[str]) -> list[float]:
        terms = set(_words(query))
        if not terms:
            return [0.0] * len(documents)
        return [len(terms & set(_words(doc))) / len(terms) for doc in documents]

    async def close(self):
        pass


# ═══════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════


def make_config(tmp_path, **overrides) -> Config:
    """Test configuration rooted in a temporary directory."""
    values = {
        "embedder": EmbedderConfig(provider="test", model="hash-embed"),
        "tokenizer": TokenizerConfig(provider="approximate"),
        "qdrant": QdrantConfig(location=":memory:"),
        "sqlite": SQLiteConfig(db_path=str(tmp_path / "ragweave.db")),
        "storage": StorageConfig(blob_dir=str(tmp_path / "blobs")),
        "tasks": TaskConfig(num_workers=2, max_retries=2, retry_delay=0.01, batch_size=8),
        "logging": LoggingConfig(log_to_file=False, serialize=False, level="WARNING"),
    }
    values.update(overrides)
    return Config(**values)


def make_registry(config: Config, llm: LLMProvider, embedder: Embedder) -> ModelRegistry:
    registry = ModelRegistry(config, llm=llm)
    registry.register_embedder(EMBEDDING_MODEL, embedder)
    registry.register_reranker(RERANK_MODEL, OverlapReranker())
    return registry


# ═══════════════════════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def config(tmp_path) -> Config:
    return make_config(tmp_path)


@pytest.fixture
def embedder() -> HashEmbedder:
    return HashEmbedder()


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def registry(config, llm, embedder) -> ModelRegistry:
    return make_registry(config, llm, embedder)


@pytest.fixture
def caller() -> Caller:
    return Caller(tenant_id="tenant-a")


@pytest.fixture
def other_caller() -> Caller:
    return Caller(tenant_id="tenant-b")


@pytest.fixture
async def container(config, registry) -> AsyncGenerator[ServiceContainer, None]:
    """Initialized service container with running task workers."""
    services = ServiceContainer(config, models=registry)
    await services.initialize()
    yield services
    await services.close()


CITY_TEXT = (
    "Paris is the capital city of France.\n"
    "Berlin is the capital city of Germany.\n"
    "Madrid is the capital city of Spain.\n"
    "Bananas are yellow fruits rich in potassium.\n"
)

# One chunk per line of CITY_TEXT
LINE_PARSER_CONFIG = {"chunk_token_num": 8, "delimiter": "\n"}


@pytest.fixture
def create_dataset(container, caller):
    """Create a dataset that chunks one line per chunk."""

    async def _create(name: str = "Cities", owner: Caller | None = None, **kwargs):
        kwargs.setdefault("parser_config", dict(LINE_PARSER_CONFIG))
        request = DatasetCreate(name=name, **kwargs)
        return await container.knowledge_base.create_dataset(owner or caller, request)

    return _create


@pytest.fixture
def ingest(container, caller):
    """Upload a text document, parse it and wait for the parse task."""

    async def _ingest(
        dataset_id: str, filename: str = "cities.txt", text: str = CITY_TEXT, owner: Caller | None = None
    ) -> Document:
        who = owner or caller
        document = await container.knowledge_base.upload_document(
            who, dataset_id, filename, text.encode("utf-8")
        )
        (task,) = await container.knowledge_base.parse_documents(who, dataset_id, [document.id])
        finished = await container.scheduler.wait_for(task.id, timeout=10)
        assert finished.status == TaskStatus.DONE, finished.progress_msg
        await container.scheduler.join()
        return await container.knowledge_base.get_document(who, dataset_id, document.id)

    return _ingest
