"""
Ollama LLM provider using native ollama-python SDK.

Structured calls send the pydantic JSON schema as the chat `format`. Local
models still wrap JSON in code fences or prepend a <think> block now and
then, so replies are cleaned before validation.
"""

import re

import ollama
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ragweave.core.llm.base import LLMProvider
from ragweave.utils.exceptions import LLMError, ValidationError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)
_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def clean_reply(content: str) -> str:
    """Drop reasoning blocks and unwrap the first fenced block, if any."""
    content = _THINK_BLOCK.sub("", content).strip()
    fenced = _CODE_FENCE.search(content)
    return fenced.group(1).strip() if fenced else content


class OllamaLLM(LLMProvider):
    """Chat completions against a local or remote Ollama server."""

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        timeout: float = 120.0,
        keep_alive: str | None = None,
    ):
        """
        Args:
            host: Ollama server URL
            model: Model tag (e.g., "llama3.1:8b", "qwen2.5:7b")
            timeout: Request timeout in seconds
            keep_alive: How long the server keeps the model loaded ("5m", "-1")
        """
        self.host = host
        self.model = model
        self.keep_alive = keep_alive
        self.client = ollama.AsyncClient(host=host, timeout=timeout)

    async def complete(
        self,
        prompt: str,
        response_format: type[BaseModel] | None = None,
        max_tokens: int = 2000,
        temperature: float = 0.0,
        **kwargs,
    ) -> BaseModel | str:
        """
        Generate completion using Ollama.

        `options` in kwargs is merged over the sampling options; other
        kwargs go to the chat call unchanged.

        Raises:
            ValidationError: If the prompt is empty
            LLMError: If the request fails or structured output does not validate
        """
        if not prompt or not prompt.strip():
            raise ValidationError("Prompt cannot be empty")

        options = {"temperature": temperature, "num_predict": max_tokens, **kwargs.pop("options", {})}
        if self.keep_alive is not None:
            kwargs.setdefault("keep_alive", self.keep_alive)

        try:
            response = await self.client.chat(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                format=response_format.model_json_schema() if response_format else None,
                options=options,
                **kwargs,
            )
        except Exception as e:
            logger.error(
                f"Ollama API error: {e}",
                extra={"model": self.model, "host": self.host, "error_type": type(e).__name__},
            )
            raise LLMError(f"Ollama API error: {e}", context={"model": self.model}) from e

        content = response["message"]["content"] or ""
        if not response_format:
            return _THINK_BLOCK.sub("", content).strip()

        try:
            return response_format.model_validate_json(clean_reply(content))
        except PydanticValidationError as e:
            raise LLMError(
                f"Failed to parse structured output as {response_format.__name__}: "
                f"{content[:200]!r}",
                context={"model": self.model, "done_reason": response.get("done_reason")},
            ) from e

    async def close(self):
        """Nothing to release; the SDK client closes with the event loop."""
