"""
Abstract base class for LLM providers.

Providers implement `complete`. Services call the two typed wrappers:
`generate` for free text (summaries, translations) and `extract` for
structured output (keywords, questions, entities, memories).
"""

from abc import ABC, abstractmethod
from typing import TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ragweave.utils.exceptions import LLMError

ModelT = TypeVar("ModelT", bound=BaseModel)


class LLMProvider(ABC):
    """Abstract base for LLM text generation providers."""

    model: str = ""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion from prompt.

        Args:
            prompt: The input prompt
            response_format: Optional Pydantic model for structured output
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)
            **kwargs: Provider-specific parameters

        Returns:
            Pydantic model instance if response_format provided, else string

        Raises:
            LLMError: If the provider call fails or structured output cannot be parsed
        """

    async def generate(self, prompt: str, max_tokens: int = 2000, temperature: float = 0.0) -> str:
        """
        Free-text completion, stripped.

        Raises:
            LLMError: If the model answers with nothing
        """
        text = str(await self.complete(prompt, max_tokens=max_tokens, temperature=temperature)).strip()
        if not text:
            raise LLMError("LLM returned an empty answer", context={"model": self.model})
        return text

    async def extract(
        self,
        prompt: str,
        response_format: type[ModelT],
        max_tokens: int = 2000,
        temperature: float = 0.0,
    ) -> ModelT:
        """
        Structured completion validated against `response_format`.

        Raises:
            LLMError: If the answer does not validate
        """
        result = await self.complete(
            prompt, response_format=response_format, max_tokens=max_tokens, temperature=temperature
        )
        if isinstance(result, response_format):
            return result
        try:
            if isinstance(result, BaseModel):
                return response_format.model_validate(result.model_dump())
            return response_format.model_validate_json(str(result))
        except PydanticValidationError as e:
            raise LLMError(
                f"LLM output does not match {response_format.__name__}: {e}",
                context={"model": self.model},
            ) from e

    @abstractmethod
    async def close(self):
        """Close any open connections."""
