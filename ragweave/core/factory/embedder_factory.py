"""
Factory for creating embedder providers.
"""

from collections.abc import Callable

from ragweave.config import EmbedderConfig
from ragweave.core.embeddings.base import Embedder
from ragweave.core.embeddings.ollama import OllamaEmbedder
from ragweave.core.embeddings.openai import OpenAIEmbedder
from ragweave.core.factory.llm_factory import OLLAMA_DEFAULT_HOST
from ragweave.utils.exceptions import ConfigurationError


def _ollama(config: EmbedderConfig) -> Embedder:
    return OllamaEmbedder(
        host=config.base_url or OLLAMA_DEFAULT_HOST,
        model=config.model,
        timeout=config.timeout,
        dimension=config.dimension,
    )


def _openai(config: EmbedderConfig) -> Embedder:
    if not config.api_key:
        raise ConfigurationError("OpenAI API key is required", context={"model": config.model})
    return OpenAIEmbedder(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        timeout=config.timeout,
        dimension=config.dimension,
    )


class EmbedderFactory:
    """
    Builds embedders by provider name.

    The model registry calls this once per embedding model reference and
    caches the result, so one embedder instance serves every dataset that
    names the same model.
    """

    _builders: dict[str, Callable[[EmbedderConfig], Embedder]] = {
        "ollama": _ollama,
        "openai": _openai,
    }

    @classmethod
    def create(cls, config: EmbedderConfig) -> Embedder:
        """
        Raises:
            ConfigurationError: If provider is not supported or credentials are missing
        """
        builder = cls._builders.get(config.provider.lower())
        if builder is None:
            raise ConfigurationError(
                f"Unsupported embedder provider: {config.provider}",
                context={"supported": sorted(cls._builders)},
            )
        return builder(config)
