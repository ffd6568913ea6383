"""
OpenAI LLM provider using official SDK.

Structured calls use the SDK's parse API, which sends the pydantic model as
a strict JSON schema and returns the validated instance. A refusal or an
answer cut off by `max_tokens` is an LLMError rather than a partial object.
"""

from typing import Any

from openai import AsyncOpenAI
from pydantic import BaseModel

from ragweave.core.llm.base import LLMProvider
from ragweave.utils.exceptions import LLMError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class OpenAILLM(LLMProvider):
    """OpenAI (or OpenAI-compatible) chat completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize OpenAI LLM provider.

        Args:
            api_key: OpenAI API key
            model: Model name (e.g., "gpt-4o", "gpt-4o-mini")
            base_url: Optional custom base URL (OpenAI compatible servers)
            timeout: Request timeout in seconds
        """
        self.model = model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    def _params(self, prompt: str, max_tokens: int, temperature: float, **kwargs) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
            "max_tokens": max_tokens,
            **kwargs,
        }

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion using OpenAI.

        Raises:
            ValidationError: If the prompt is empty
            LLMError: If the call fails, is refused, or returns nothing usable
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        params = self._params(prompt, max_tokens, temperature, **kwargs)
        try:
            if response_format:
                response = await self.client.chat.completions.parse(
                    **params, response_format=response_format
                )
            else:
                response = await self.client.chat.completions.create(**params)
        except Exception as e:
            logger.error(
                f"OpenAI API error: {e}",
                extra={"model": self.model, "error": str(e), "error_type": type(e).__name__},
            )
            raise LLMError(f"OpenAI API error: {e}", context={"model": self.model}) from e

        choice = response.choices[0]
        message = choice.message

        if response_format:
            if getattr(message, "refusal", None):
                raise LLMError(f"OpenAI refused the request: {message.refusal}")
            if choice.finish_reason == "length":
                raise LLMError(
                    f"Structured output truncated at {max_tokens} tokens",
                    context={"model": self.model, "response_format": response_format.__name__},
                )
            if not message.parsed:
                raise LLMError("OpenAI returned empty parsed response")
            return message.parsed

        if not message.content:
            raise LLMError("OpenAI returned empty content")
        return message.content

    async def close(self):
        """Close OpenAI client."""
        await self.client.close()
