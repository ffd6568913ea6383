"""
Token counting for chunk budgets and summary truncation.

Counts with tiktoken. When the encoding cannot be loaded (tiktoken fetches
BPE files on first use) the tokenizer degrades to the character ratio and
logs a warning once.
"""

import math

import tiktoken

from ragweave.config import TokenizerConfig
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


def _load_encoding(name: str) -> tiktoken.Encoding:
    """Encoding by name ("cl100k_base") or by model ("gpt-4o")."""
    try:
        return tiktoken.get_encoding(name)
    except ValueError:
        return tiktoken.encoding_for_model(name)


class Tokenizer:
    """
    Token counter shared by chunkers, the indexer and RAPTOR.

    Chunkers merge sections while `count_tokens` stays within the chunk
    budget; RAPTOR truncates summaries with `truncate`.
    """

    def __init__(self, config: TokenizerConfig | None = None):
        self.config = config or TokenizerConfig()
        self._encoder: tiktoken.Encoding | None = None
        self._fallback = self.config.provider == "approximate"

    @property
    def approximate(self) -> bool:
        """True when counting by character ratio."""
        if not self._fallback and self._encoder is None:
            self._load()
        return self._fallback

    def _load(self) -> None:
        try:
            self._encoder = _load_encoding(self.config.model)
        except Exception as e:
            logger.warning(
                f"Tokenizer encoding '{self.config.model}' unavailable, "
                f"counting {self.config.chars_per_token} chars per token: {e}",
                extra={"encoding": self.config.model, "error_type": type(e).__name__},
            )
            self._fallback = True

    def count_tokens(self, text: str) -> int:
        if not text:
            return 0
        if self.approximate:
            return self.estimate_tokens(text)
        return len(self._encoder.encode(text, disallowed_special=()))

    def estimate_tokens(self, text: str) -> int:
        """Character-ratio estimate; non-empty text counts at least one token."""
        if not text:
            return 0
        return max(1, math.ceil(len(text) / self.config.chars_per_token))

    def truncate(self, text: str, max_tokens: int) -> str:
        """
        Cut text down to at most `max_tokens` tokens.

        Returns:
            Text unchanged when it fits, else its leading part
        """
        if max_tokens <= 0 or not text:
            return ""
        if self.approximate:
            return text[: int(max_tokens * self.config.chars_per_token)]
        tokens = self._encoder.encode(text, disallowed_special=())
        if len(tokens) <= max_tokens:
            return text
        return self._encoder.decode(tokens[:max_tokens])
