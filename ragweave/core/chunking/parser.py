"""
Document decoding.

Uploaded bytes become a ParsedDocument: UTF-8 text split into pages on form
feed characters. Images are kept opaque for the picture chunk method.
"""

import html
import re

from ragweave.models.document import ParsedDocument
from ragweave.models.parser_config import ChunkMethod
from ragweave.utils.exceptions import DocumentFormatError

TEXT_SUFFIXES = {"txt", "md", "markdown", "csv", "tsv", "json", "eml", "html", "htm"}
IMAGE_SUFFIXES = {"png", "jpg", "jpeg", "gif", "bmp", "webp", "tif", "tiff"}

PAGE_SEPARATOR = "\f"

_HTML_BLOCK = re.compile(r"<\s*(br|/p|/div|/h[1-6]|/li|/tr)\s*/?>", re.IGNORECASE)
_HTML_DROP = re.compile(r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_HTML_TAG = re.compile(r"<[^>]+>")


def file_suffix(name: str) -> str:
    _, dot, suffix = name.rpartition(".")
    return suffix.lower() if dot else ""


def is_supported(name: str) -> bool:
    suffix = file_suffix(name)
    return suffix in TEXT_SUFFIXES or suffix in IMAGE_SUFFIXES


def html_to_text(markup: str) -> str:
    markup = _HTML_DROP.sub("", markup)
    markup = _HTML_BLOCK.sub("\n", markup)
    return html.unescape(_HTML_TAG.sub("", markup))


def parse_document(
    name: str,
    data: bytes,
    method: ChunkMethod = ChunkMethod.NAIVE,
    blob_key: str | None = None,
) -> ParsedDocument:
    """
    Decode an uploaded file.

    Args:
        name: File name (the suffix selects the decoder)
        data: Raw file bytes
        method: Effective chunk method
        blob_key: Blob store key of the file

    Returns:
        ParsedDocument with one entry per page

    Raises:
        DocumentFormatError: If the file type is unsupported for the method or
            the bytes are not UTF-8 text
    """
    suffix = file_suffix(name)

    if suffix in IMAGE_SUFFIXES:
        if method != ChunkMethod.PICTURE:
            raise DocumentFormatError(
                f"Image file '{name}' requires the picture chunk method",
                context={"suffix": suffix, "chunk_method": method.value},
            )
        return ParsedDocument(name=name, pages=[], blob_key=blob_key)

    if suffix and suffix not in TEXT_SUFFIXES:
        raise DocumentFormatError(
            f"Unsupported file type: .{suffix}", context={"suffix": suffix}
        )

    if b"\x00" in data:
        raise DocumentFormatError(f"'{name}' looks like a binary file", context={"name": name})

    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DocumentFormatError(f"'{name}' is not valid UTF-8 text: {e}") from e

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    if suffix in ("html", "htm"):
        text = html_to_text(text)

    pages = text.split(PAGE_SEPARATOR)
    if not any(page.strip() for page in pages):
        pages = []

    return ParsedDocument(name=name, pages=pages, blob_key=blob_key)
