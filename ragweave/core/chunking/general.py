"""
Chunk methods that need no document structure: naive, one, presentation
and picture.
"""

import re

from ragweave.core.chunking.base import ChunkingContext, drafts_from_merged
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import NaiveParserConfig, ParserConfig

_SLIDE_BREAK = re.compile(r"^\s*---+\s*$", re.MULTILINE)


def chunk_naive(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """Split on the delimiter and merge pieces up to `chunk_token_num` tokens."""
    if not isinstance(params, NaiveParserConfig):
        params = NaiveParserConfig()
    merged = ctx.merge_text(document.pages, params.delimiter, params.chunk_token_num)
    return drafts_from_merged(merged)


def chunk_one(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """Whole document as a single chunk."""
    text = document.text.strip()
    if not text:
        return []
    positions = [i for i, page in enumerate(document.pages, start=1) if page.strip()]
    return [ChunkDraft(text=text, positions=positions)]


def chunk_presentation(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """
    One chunk per page.

    A single-page document written as a markdown deck is split on `---`
    slide separators instead.
    """
    pages = document.pages
    if len(pages) == 1:
        pages = _SLIDE_BREAK.split(pages[0])

    drafts = []
    for slide_no, slide in enumerate(pages, start=1):
        text = slide.strip()
        if text:
            drafts.append(ChunkDraft(text=text, positions=[slide_no], metadata={"slide": slide_no}))
    return drafts


def chunk_picture(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """A single chunk pointing at the image blob; accompanying text becomes its content."""
    text = document.text.strip() or f"Image: {document.name}"
    return [
        ChunkDraft(
            text=text,
            positions=[1],
            image_id=document.blob_key or document.name,
            metadata={"file_name": document.name},
        )
    ]
