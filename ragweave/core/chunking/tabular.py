"""
Row oriented chunk methods: qa, table and tag.
"""

import csv
import io
import re

from ragweave.core.chunking.base import ChunkingContext
from ragweave.core.chunking.text import heading_title
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import ParserConfig
from ragweave.utils.exceptions import DocumentFormatError

_QUESTION_PREFIX = re.compile(r"^\s*(q|question|问|问题)\s*[:：]\s*", re.IGNORECASE)
_ANSWER_PREFIX = re.compile(r"^\s*(a|answer|答|答案)\s*[:：]\s*", re.IGNORECASE)
_MARKDOWN_QUESTION = re.compile(r"^\s*#{1,6}\s+\S")


def _dialect_delimiter(document: ParsedDocument, sample: str) -> str:
    if document.suffix == "tsv":
        return "\t"
    if document.suffix == "csv":
        return ","
    first_line = sample.split("\n", 1)[0]
    return "\t" if "\t" in first_line else ","


def _read_rows(document: ParsedDocument) -> list[tuple[list[str], int]]:
    """Non-empty CSV/TSV rows with the page they are on."""
    rows = []
    for page_no, page in enumerate(document.pages, start=1):
        delimiter = _dialect_delimiter(document, page)
        for row in csv.reader(io.StringIO(page), delimiter=delimiter):
            cells = [cell.strip() for cell in row]
            if any(cells):
                rows.append((cells, page_no))
    return rows


def _qa_draft(question: str, answer: str, page: int) -> ChunkDraft:
    return ChunkDraft(
        text=f"Question: {question}\nAnswer: {answer}",
        positions=[page],
        metadata={"question": question, "answer": answer},
    )


def chunk_qa(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """
    One chunk per question / answer pair.

    Accepted layouts: two-column CSV/TSV rows, `Q:` / `A:` prefixed lines,
    or markdown headings as questions followed by their answer text.

    Raises:
        DocumentFormatError: If the document has text but no pairs
    """
    if not document.text.strip():
        return []

    if document.suffix in ("csv", "tsv"):
        drafts = []
        for cells, page in _read_rows(document):
            if len(cells) < 2 or not cells[0]:
                continue
            if not drafts and cells[0].lower() in ("question", "q") and cells[1].lower() in ("answer", "a"):
                continue
            drafts.append(_qa_draft(cells[0], " ".join(c for c in cells[1:] if c), page))
    else:
        drafts = _chunk_qa_lines(document)

    if not drafts:
        raise DocumentFormatError(
            f"No question/answer pairs found in '{document.name}'",
            context={"name": document.name},
        )
    return drafts


def _chunk_qa_lines(document: ParsedDocument) -> list[ChunkDraft]:
    drafts: list[ChunkDraft] = []
    question: list[str] = []
    answer: list[str] = []
    page = 1
    mode = None  # "q" while reading a question, "a" while reading its answer

    def flush():
        text = "\n".join(question).strip()
        if text:
            drafts.append(_qa_draft(text, "\n".join(answer).strip(), page))

    for page_no, text in enumerate(document.pages, start=1):
        for line in text.split("\n"):
            if _QUESTION_PREFIX.match(line):
                flush()
                question, answer, page, mode = [_QUESTION_PREFIX.sub("", line, count=1)], [], page_no, "q"
            elif _MARKDOWN_QUESTION.match(line):
                flush()
                question, answer, page, mode = [heading_title(line)], [], page_no, "a"
            elif _ANSWER_PREFIX.match(line) and question:
                answer.append(_ANSWER_PREFIX.sub("", line, count=1))
                mode = "a"
            elif mode == "q":
                question.append(line)
            elif mode == "a":
                answer.append(line)
    flush()
    return drafts


def chunk_table(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """One chunk per row rendered as `column: value` pairs; the first row is the header."""
    rows = _read_rows(document)
    if len(rows) < 2:
        return []

    header = [name or f"column_{i + 1}" for i, name in enumerate(rows[0][0])]
    drafts = []
    for row_no, (cells, page) in enumerate(rows[1:], start=1):
        record = {}
        for i, value in enumerate(cells):
            column = header[i] if i < len(header) else f"column_{i + 1}"
            if value:
                record[column] = value
        if not record:
            continue
        drafts.append(
            ChunkDraft(
                text="; ".join(f"{column}: {value}" for column, value in record.items()),
                positions=[page],
                metadata={"row": row_no, "fields": record},
            )
        )
    return drafts


def _split_tags(raw: str) -> list[str]:
    tags = []
    for tag in raw.split(","):
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def chunk_tag(
    document: ParsedDocument, params: ParserConfig, ctx: ChunkingContext
) -> list[ChunkDraft]:
    """
    One chunk per `content<TAB>tag1,tag2` line.

    Lines without a tab are read as CSV: the first column is the content and
    the remaining columns hold tags.
    """
    drafts = []
    for page_no, page in enumerate(document.pages, start=1):
        for line in page.split("\n"):
            if not line.strip():
                continue
            if "\t" in line:
                content, _, raw_tags = line.rpartition("\t")
            else:
                cells = next(csv.reader([line]), [])
                content, raw_tags = (cells[0], ",".join(cells[1:])) if cells else ("", "")
            content = content.strip()
            if not content or (not drafts and content.lower() == "content"):
                continue
            tags = _split_tags(raw_tags)
            drafts.append(
                ChunkDraft(text=content, positions=[page_no], metadata={"tags": tags})
            )
    return drafts
