"""
Shared pieces of the chunk method implementations.
"""

from collections.abc import Callable
from dataclasses import dataclass

from ragweave.core.chunking.text import MergedChunk, naive_merge, parse_delimiters, split_sections
from ragweave.core.tokenizer import Tokenizer
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import DEFAULT_DELIMITER, ParserConfig


@dataclass
class ChunkingContext:
    """Token budget and counter handed to every chunk method."""

    tokenizer: Tokenizer
    chunk_token_num: int
    min_section_tokens: int

    def count(self, text: str) -> int:
        return self.tokenizer.count_tokens(text)

    def merge_text(
        self, pages: list[str], delimiter: str = DEFAULT_DELIMITER, budget: int | None = None
    ) -> list[MergedChunk]:
        """Delimiter split plus token-bounded merge."""
        sections = split_sections(pages, parse_delimiters(delimiter))
        return naive_merge(sections, self.tokenizer, budget or self.chunk_token_num)


ChunkMethodFn = Callable[[ParsedDocument, ParserConfig, ChunkingContext], list[ChunkDraft]]


def drafts_from_merged(
    merged: list[MergedChunk], section: str | None = None, **metadata
) -> list[ChunkDraft]:
    return [
        ChunkDraft(text=chunk.text, positions=list(chunk.pages), section=section, metadata=dict(metadata))
        for chunk in merged
    ]
