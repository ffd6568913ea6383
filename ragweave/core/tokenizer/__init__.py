"""
Tokenizer module for token counting.

Provides accurate token counting using tiktoken with fast approximation fallback.
"""

from ragweave.config import TokenizerConfig
from ragweave.core.tokenizer.tokenizer import Tokenizer

__all__ = ["Tokenizer", "TokenizerConfig"]
