"""
Model registry: resolves `model_name@model_factory` references.

Datasets and memory spaces name their embedding model, and retrieval
requests their rerank model, by reference. The registry builds one provider
per reference and caches it; tests register in-process providers under the
references they use.
"""

from ragweave.config import Config
from ragweave.core.embeddings.base import Embedder
from ragweave.core.factory.embedder_factory import EmbedderFactory
from ragweave.core.factory.llm_factory import LLMFactory
from ragweave.core.factory.rerank_factory import RerankerFactory
from ragweave.core.llm.base import LLMProvider
from ragweave.core.rerank.base import Reranker
from ragweave.models.dataset import split_model_reference
from ragweave.utils.exceptions import ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


def _registry_key(reference: str) -> str:
    name, factory = split_model_reference(reference.strip())
    return f"{name}@{factory.lower()}"


class ModelRegistry:
    """Lazily built, cached model providers keyed by reference."""

    def __init__(self, config: Config, llm: LLMProvider | None = None):
        """
        Initialize registry.

        Args:
            config: Main configuration (provider credentials and defaults)
            llm: Optional pre-built chat model; built from `config.llm` otherwise
        """
        self.config = config
        self._llm = llm
        self._embedders: dict[str, Embedder] = {}
        self._rerankers: dict[str, Reranker] = {}

    @property
    def default_embedding_model(self) -> str:
        return self.config.embedder.reference

    def register_embedder(self, reference: str, embedder: Embedder) -> None:
        embedder.reference = reference
        self._embedders[_registry_key(reference)] = embedder

    def register_reranker(self, reference: str, reranker: Reranker) -> None:
        reranker.reference = reference
        self._rerankers[_registry_key(reference)] = reranker

    def validate_reference(self, reference: str) -> tuple[str, str]:
        """
        Check a reference is well formed.

        Returns:
            (model_name, model_factory)

        Raises:
            ValidationError: If the name or the factory part is missing
        """
        name, factory = split_model_reference(reference.strip())
        if not name or not factory:
            raise ValidationError(
                f"Invalid model reference '{reference}', expected model_name@model_factory"
            )
        return name, factory

    def get_embedder(self, reference: str) -> Embedder:
        """
        Resolve the embedder of a reference.

        Raises:
            ValidationError: If the reference is malformed
            ConfigurationError: If the factory is unsupported or lacks credentials
        """
        key = _registry_key(reference)
        if key not in self._embedders:
            name, factory = self.validate_reference(reference)
            defaults = self.config.embedder
            same_provider = factory.lower() == defaults.provider.lower()
            embedder_config = defaults.model_copy(
                update={
                    "provider": factory.lower(),
                    "model": name,
                    "base_url": defaults.base_url if same_provider else None,
                    "dimension": defaults.dimension if name == defaults.model else None,
                }
            )
            embedder = EmbedderFactory.create(embedder_config)
            embedder.reference = reference
            self._embedders[key] = embedder
            logger.info(f"Created embedder for {reference}", extra={"reference": reference})
        return self._embedders[key]

    def get_reranker(self, reference: str) -> Reranker:
        """
        Resolve the reranker of a reference.

        Raises:
            ValidationError: If the reference is malformed
            ConfigurationError: If the factory is unsupported or lacks credentials
        """
        key = _registry_key(reference)
        if key not in self._rerankers:
            name, factory = self.validate_reference(reference)
            reranker = RerankerFactory.create(self.config.rerank, model=name, provider=factory)
            reranker.reference = reference
            self._rerankers[key] = reranker
        return self._rerankers[key]

    def get_llm(self) -> LLMProvider:
        if self._llm is None:
            self._llm = LLMFactory.create(self.config.llm)
        return self._llm

    async def close(self) -> None:
        for embedder in self._embedders.values():
            await embedder.close()
        for reranker in self._rerankers.values():
            await reranker.close()
        if self._llm is not None:
            await self._llm.close()
