"""
Factory for creating LLM providers.
"""

from collections.abc import Callable

from ragweave.config import LLMConfig
from ragweave.core.llm.base import LLMProvider
from ragweave.core.llm.ollama import OllamaLLM
from ragweave.core.llm.openai import OpenAILLM
from ragweave.utils.exceptions import ConfigurationError

OLLAMA_DEFAULT_HOST = "http://localhost:11434"


def _ollama(config: LLMConfig) -> LLMProvider:
    return OllamaLLM(
        host=config.base_url or OLLAMA_DEFAULT_HOST,
        model=config.model,
        timeout=config.timeout,
    )


def _openai(config: LLMConfig) -> LLMProvider:
    if not config.api_key:
        raise ConfigurationError("OpenAI API key is required", context={"model": config.model})
    return OpenAILLM(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url,
        timeout=config.timeout,
    )


class LLMFactory:
    """Builds the chat model used for keywords, questions, graphs, RAPTOR and memory."""

    _builders: dict[str, Callable[[LLMConfig], LLMProvider]] = {
        "ollama": _ollama,
        "openai": _openai,
    }

    @classmethod
    def create(cls, config: LLMConfig) -> LLMProvider:
        """
        Create LLM provider from configuration.

        Raises:
            ConfigurationError: If provider is not supported or credentials are missing
        """
        builder = cls._builders.get(config.provider.lower())
        if builder is None:
            raise ConfigurationError(
                f"Unsupported LLM provider: {config.provider}",
                context={"supported": sorted(cls._builders)},
            )
        return builder(config)
