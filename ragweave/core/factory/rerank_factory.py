"""
Factory for creating rerank providers.
"""

from ragweave.config import RerankConfig
from ragweave.core.rerank.base import Reranker
from ragweave.core.rerank.jina import JinaReranker
from ragweave.utils.exceptions import ConfigurationError


class RerankerFactory:
    """Factory for creating rerankers from configuration."""

    @staticmethod
    def create(config: RerankConfig, model: str, provider: str | None = None) -> Reranker:
        """
        Create a reranker for a model.

        Args:
            config: Rerank configuration (credentials, endpoint)
            model: Rerank model name
            provider: Provider name; defaults to `config.provider`

        Returns:
            Reranker instance

        Raises:
            ConfigurationError: If provider is not supported
        """
        provider = (provider or config.provider).lower()
        if provider == "jina":
            return JinaReranker(
                api_key=config.api_key,
                model=model,
                base_url=config.base_url,
                timeout=config.timeout,
            )
        raise ConfigurationError(f"Unsupported rerank provider: {provider}")
