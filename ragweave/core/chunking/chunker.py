"""
Chunker: dispatches a parsed document to the chunk method implementation.
"""

from ragweave.config import ChunkingConfig
from ragweave.core.chunking.base import ChunkingContext, ChunkMethodFn
from ragweave.core.chunking.general import chunk_naive, chunk_one, chunk_picture, chunk_presentation
from ragweave.core.chunking.mail import chunk_email
from ragweave.core.chunking.structured import chunk_book, chunk_laws, chunk_manual, chunk_paper
from ragweave.core.chunking.tabular import chunk_qa, chunk_table, chunk_tag
from ragweave.core.tokenizer import Tokenizer
from ragweave.models.document import ChunkDraft, ParsedDocument
from ragweave.models.parser_config import ChunkMethod, ParserConfig, default_parser_config
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

CHUNK_METHODS: dict[ChunkMethod, ChunkMethodFn] = {
    ChunkMethod.NAIVE: chunk_naive,
    ChunkMethod.BOOK: chunk_book,
    ChunkMethod.LAWS: chunk_laws,
    ChunkMethod.MANUAL: chunk_manual,
    ChunkMethod.PAPER: chunk_paper,
    ChunkMethod.PRESENTATION: chunk_presentation,
    ChunkMethod.PICTURE: chunk_picture,
    ChunkMethod.EMAIL: chunk_email,
    ChunkMethod.QA: chunk_qa,
    ChunkMethod.TABLE: chunk_table,
    ChunkMethod.TAG: chunk_tag,
    ChunkMethod.ONE: chunk_one,
}


class Chunker:
    """
    Split documents into ordered chunk drafts.

    Usage:
        chunker = Chunker(Tokenizer())
        drafts = chunker.chunk(parsed, ChunkMethod.NAIVE, NaiveParserConfig())
    """

    def __init__(self, tokenizer: Tokenizer, config: ChunkingConfig | None = None):
        self.tokenizer = tokenizer
        self.config = config or ChunkingConfig()

    def chunk(
        self,
        document: ParsedDocument,
        method: ChunkMethod,
        params: ParserConfig | None = None,
    ) -> list[ChunkDraft]:
        """
        Chunk a document with a chunk method.

        Args:
            document: Decoded document
            method: Chunk method
            params: Parser config of the method (defaults when omitted)

        Returns:
            Ordered drafts; empty for an empty document

        Raises:
            DocumentFormatError: If the content does not fit the method's layout
        """
        method = ChunkMethod(method)
        params = params or default_parser_config(method)
        budget = getattr(params, "chunk_token_num", self.config.chunk_token_num)
        ctx = ChunkingContext(
            tokenizer=self.tokenizer,
            chunk_token_num=budget,
            min_section_tokens=self.config.min_section_tokens,
        )

        if not document.pages and method != ChunkMethod.PICTURE:
            return []

        drafts = [d for d in CHUNK_METHODS[method](document, params, ctx) if d.text.strip()]
        logger.debug(
            f"Chunked {document.name} into {len(drafts)} chunks",
            extra={"document": document.name, "chunk_method": method.value, "chunks": len(drafts)},
        )
        return drafts
