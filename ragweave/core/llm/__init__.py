"""
LLM provider abstraction layer for text generation.

Supported providers:
- Ollama (native SDK)
- OpenAI (official SDK)
"""

from ragweave.core.llm.base import LLMProvider
from ragweave.core.llm.ollama import OllamaLLM
from ragweave.core.llm.openai import OpenAILLM

__all__ = [
    "LLMProvider",
    "OllamaLLM",
    "OpenAILLM",
]
