"""
Heading-aware chunk methods: book, laws, manual and paper.
"""

import re

from ragweave.core.chunking.base import ChunkingContext, drafts_from_merged
from ragweave.core.chunking.text import (
    OutlineSection,
    Section,
    build_outline,
    heading_level,
    heading_title,
    is_article_heading,
    lines_with_pages,
    naive_merge,
)
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import ParserConfig

_ABSTRACT = re.compile(r"^\s*(#{1,6}\s*)?(abstract|摘要)\b", re.IGNORECASE)


def _merge_lines(lines: list[Section], ctx: ChunkingContext):
    return naive_merge(
        [Section(line.text + "\n", line.page) for line in lines], ctx.tokenizer, ctx.chunk_token_num
    )


def _chunk_outline(outline: list[OutlineSection], ctx: ChunkingContext) -> list[ChunkDraft]:
    drafts = []
    for section in outline:
        drafts.extend(drafts_from_merged(_merge_lines(section.lines, ctx), section=section.section))
    return drafts


def chunk_book(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """Chapters and sections merged up to the token budget, heading path kept."""
    return _chunk_outline(build_outline(document.pages), ctx)


def chunk_laws(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """
    One chunk per article, prefixed by the headings it sits under.

    Text outside any article (preambles, chapter introductions) is kept as
    its own chunk.
    """
    stack: list[tuple[int, str]] = []
    units: list[tuple[list[str], list[Section], bool]] = []
    current: tuple[list[str], list[Section], bool] | None = None

    for line in lines_with_pages(document.pages):
        if is_article_heading(line.text):
            current = ([title for _, title in stack], [line], True)
            units.append(current)
            continue
        level = heading_level(line.text)
        if level is not None:
            while stack and stack[-1][0] >= level:
                stack.pop()
            stack.append((level, heading_title(line.text)))
            current = None
            continue
        if current is None:
            if not line.text.strip():
                continue
            current = ([title for _, title in stack], [], False)
            units.append(current)
        current[1].append(line)

    drafts = []
    for path, lines, is_article in units:
        body = "\n".join(line.text for line in lines).strip()
        if not body:
            continue
        heading = "\n".join(path)
        pages = sorted({line.page for line in lines if line.text.strip()})
        drafts.append(
            ChunkDraft(
                text=f"{heading}\n{body}" if heading else body,
                positions=pages,
                section=" > ".join(path) or None,
                metadata={"article": heading_title(lines[0].text)} if is_article else {},
            )
        )
    return drafts


def chunk_manual(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """One chunk per section; tiny sections join the previous chunk."""
    drafts: list[ChunkDraft] = []
    last_tokens = 0
    for section in build_outline(document.pages):
        body = section.body
        tokens = ctx.count(body)
        if (
            drafts
            and tokens < ctx.min_section_tokens
            and last_tokens + tokens <= ctx.chunk_token_num
        ):
            previous = drafts[-1]
            previous.text = f"{previous.text}\n{body}"
            previous.positions = sorted(set(previous.positions) | set(section.pages))
            last_tokens += tokens
            continue
        if tokens > ctx.chunk_token_num:
            pieces = drafts_from_merged(_merge_lines(section.lines, ctx), section=section.section)
            drafts.extend(pieces)
            last_tokens = ctx.count(pieces[-1].text) if pieces else 0
            continue
        drafts.append(ChunkDraft(text=body, positions=section.pages, section=section.section))
        last_tokens = tokens
    return drafts


def chunk_paper(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """The abstract as one chunk, then the remaining sections like a book."""
    lines = lines_with_pages(document.pages)
    start = next((i for i, line in enumerate(lines) if _ABSTRACT.match(line.text)), None)
    if start is None:
        return chunk_book(document, params, ctx)

    end = start + 1
    while end < len(lines) and heading_level(lines[end].text) is None:
        end += 1

    abstract_lines = lines[start:end]
    abstract = "\n".join(line.text for line in abstract_lines).strip()
    drafts = [
        ChunkDraft(
            text=abstract,
            positions=sorted({line.page for line in abstract_lines if line.text.strip()}),
            section="Abstract",
            metadata={"abstract": True},
        )
    ]

    remaining: dict[int, list[str]] = {}
    for line in lines[:start] + lines[end:]:
        remaining.setdefault(line.page, []).append(line.text)
    page_count = max((line.page for line in lines), default=0)
    pages = ["\n".join(remaining.get(page, [])) for page in range(1, page_count + 1)]

    drafts.extend(_chunk_outline(build_outline(pages), ctx))
    return drafts
