"""
Text splitting helpers shared by the chunkers.

Sections are (text, page) pairs; merging keeps track of the pages each
chunk covers.
"""

import re
from dataclasses import dataclass, field

from ragweave.core.tokenizer import Tokenizer

_MULTI_CHAR_DELIMITER = re.compile(r"`([^`]+)`")


@dataclass
class Section:
    """A run of text and the page it came from."""

    text: str
    page: int


@dataclass
class MergedChunk:
    text: str = ""
    tokens: int = 0
    pages: list[int] = field(default_factory=list)

    def add(self, section: Section, tokens: int) -> None:
        self.text += section.text
        self.tokens += tokens
        if section.text.strip() and section.page not in self.pages:
            self.pages.append(section.page)


def parse_delimiters(delimiter: str) -> list[str]:
    """
    Expand a delimiter string.

    Every character is a delimiter on its own, except back-quoted runs which
    are multi-character delimiters: "`##`\\n!" -> ["##", "\\n", "!"].
    """
    delimiters = []
    for multi in _MULTI_CHAR_DELIMITER.findall(delimiter):
        if multi not in delimiters:
            delimiters.append(multi)
    for char in _MULTI_CHAR_DELIMITER.sub("", delimiter):
        if char not in delimiters:
            delimiters.append(char)
    return delimiters


def split_sections(pages: list[str], delimiters: list[str]) -> list[Section]:
    """
    Split pages on delimiters.

    Each piece keeps its trailing delimiter so that merging pieces back
    together reproduces the original text.
    """
    if not delimiters:
        return [Section(page, i + 1) for i, page in enumerate(pages) if page]

    pattern = re.compile(
        "(" + "|".join(re.escape(d) for d in sorted(delimiters, key=len, reverse=True)) + ")"
    )
    sections = []
    for page_no, page in enumerate(pages, start=1):
        parts = pattern.split(page)
        # parts alternates text, delimiter, text, delimiter, ..., text
        for i in range(0, len(parts), 2):
            piece = parts[i] + (parts[i + 1] if i + 1 < len(parts) else "")
            if piece:
                sections.append(Section(piece, page_no))
    return sections


def naive_merge(
    sections: list[Section], tokenizer: Tokenizer, chunk_token_num: int
) -> list[MergedChunk]:
    """
    Merge consecutive sections while the chunk stays within `chunk_token_num`.

    A section larger than the budget becomes a chunk on its own; sections are
    never cut.
    """
    chunks: list[MergedChunk] = []
    current = MergedChunk()
    for section in sections:
        tokens = tokenizer.count_tokens(section.text)
        if current.text and current.tokens + tokens > chunk_token_num:
            chunks.append(current)
            current = MergedChunk()
        current.add(section, tokens)
    if current.text:
        chunks.append(current)

    result = []
    for chunk in chunks:
        chunk.text = chunk.text.strip()
        if chunk.text:
            result.append(chunk)
    return result


def lines_with_pages(pages: list[str]) -> list[Section]:
    """Split pages into lines (without newline), keeping empty lines."""
    return [
        Section(line, page_no)
        for page_no, page in enumerate(pages, start=1)
        for line in page.split("\n")
    ]


# Heading detection

_MARKDOWN_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_PART_HEADING = re.compile(r"^(part\s+[\divxlc]+\b|第[\d一二三四五六七八九十百千零]+[编部篇])", re.IGNORECASE)
_CHAPTER_HEADING = re.compile(r"^(chapter\s+[\divxlc]+\b|第[\d一二三四五六七八九十百千零]+章)", re.IGNORECASE)
_SECTION_HEADING = re.compile(r"^(section\s+[\d.]+\b|第[\d一二三四五六七八九十百千零]+节)", re.IGNORECASE)
_NUMBERED_HEADING = re.compile(r"^(\d+(?:\.\d+){0,3})\.?\s+([A-Z一-鿿].{0,80})$")
_ARTICLE_HEADING = re.compile(r"^(article\s+\d+\b|art\.\s*\d+\b|第[\d一二三四五六七八九十百千零]+条)", re.IGNORECASE)


def heading_level(line: str) -> int | None:
    """
    Outline level of a heading line, or None for body text.

    Markdown headings use their `#` count; "Part" is level 1, "Chapter"
    level 1, "Section" level 2 and numbered headings ("2.1 Methods") one
    level per number below the chapter.
    """
    stripped = line.strip()
    if not stripped or len(stripped) > 120:
        return None
    match = _MARKDOWN_HEADING.match(stripped)
    if match:
        return len(match.group(1))
    if _PART_HEADING.match(stripped) or _CHAPTER_HEADING.match(stripped):
        return 1
    if _SECTION_HEADING.match(stripped):
        return 2
    match = _NUMBERED_HEADING.match(stripped)
    if match and not stripped.endswith((".", "。", ",", ";")):
        return match.group(1).count(".") + 2
    return None


def is_article_heading(line: str) -> bool:
    return bool(_ARTICLE_HEADING.match(line.strip()))


def heading_title(line: str) -> str:
    """Heading text without markdown markers."""
    stripped = line.strip()
    match = _MARKDOWN_HEADING.match(stripped)
    if match:
        return match.group(2).strip()
    return stripped


@dataclass
class OutlineSection:
    """Body lines under one heading."""

    path: list[str]
    heading: str | None
    lines: list[Section] = field(default_factory=list)

    @property
    def section(self) -> str | None:
        return " > ".join(self.path) if self.path else None

    @property
    def body(self) -> str:
        return "\n".join(line.text for line in self.lines).strip()

    @property
    def pages(self) -> list[int]:
        pages = []
        for line in self.lines:
            if line.text.strip() and line.page not in pages:
                pages.append(line.page)
        return pages


def build_outline(pages: list[str]) -> list[OutlineSection]:
    """
    Group lines under their headings.

    Text before the first heading forms a section with an empty path. The
    heading line itself is the first line of its section.
    """
    outline = [OutlineSection(path=[], heading=None)]
    stack: list[tuple[int, str]] = []
    for line in lines_with_pages(pages):
        level = heading_level(line.text)
        if level is None:
            outline[-1].lines.append(line)
            continue
        while stack and stack[-1][0] >= level:
            stack.pop()
        stack.append((level, heading_title(line.text)))
        outline.append(
            OutlineSection(path=[title for _, title in stack], heading=heading_title(line.text))
        )
        outline[-1].lines.append(line)
    return [section for section in outline if section.body]
