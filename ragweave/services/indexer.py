"""
Embedder / Indexer gateway.

Turns chunk drafts into embedded chunks and writes them to the chunk index
in batches. Re-indexing a document first removes its chunks of the same
kind; chunk ids are deterministic so the same input yields the same chunk
set. Manual chunk edits go through here too so they are embedded with the
dataset's model.
"""

from pydantic import BaseModel, Field

from ragweave.config import TaskConfig
from ragweave.core.embeddings.base import Embedder
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.tokenizer import Tokenizer
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.models.dataset import Dataset
from ragweave.models.document import (
    Chunk,
    ChunkCreate,
    ChunkDraft,
    ChunkKind,
    ChunkUpdate,
    Document,
)
from ragweave.services.task_scheduler import TaskContext
from ragweave.utils.exceptions import NotFoundError, ValidationError
from ragweave.utils.id_generator import generate_chunk_id
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

MIXED_MODEL_MESSAGE = "documents must use the same embedding model"


class KeywordList(BaseModel):
    """Keywords of a chunk (structured output)."""

    model_config = {"extra": "ignore"}

    keywords: list[str] = Field(default_factory=list, description="Most important keywords")


class QuestionList(BaseModel):
    """Questions a chunk answers (structured output)."""

    model_config = {"extra": "ignore"}

    questions: list[str] = Field(default_factory=list, description="Questions the text answers")


KEYWORD_PROMPT = """Extract the {top_n} most important keywords or short phrases from the text below.
Use the language of the text. Return JSON: {{"keywords": [...]}}

Text:
{content}"""

QUESTION_PROMPT = """Write {top_n} questions that the text below answers.
Use the language of the text. Return JSON: {{"questions": [...]}}

Text:
{content}"""


class IndexerGateway:
    """
    Embeds chunks and commits them to the chunk index.

    Each batch of `TaskConfig.batch_size` chunks is one upsert; cancellation
    is checked between batches, so committed batches stay queryable.
    """

    def __init__(
        self,
        chunk_index: ChunkIndex,
        metadata_store: MetadataStore,
        models: ModelRegistry,
        tokenizer: Tokenizer,
        config: TaskConfig | None = None,
    ):
        """
        Initialize indexer.

        Args:
            chunk_index: Chunk vector index
            metadata_store: Metadata store (document counters)
            models: Model registry resolving the dataset embedder
            tokenizer: Token counter
            config: Batch size
        """
        self.chunk_index = chunk_index
        self.metadata_store = metadata_store
        self.models = models
        self.tokenizer = tokenizer
        self.config = config or TaskConfig()

    def embedder_for(self, dataset: Dataset) -> Embedder:
        return self.models.get_embedder(dataset.embedding_model)

    # ═══════════════════════════════════════════════════════════
    # TASK PATH
    # ═══════════════════════════════════════════════════════════

    def build_chunks(self, dataset: Dataset, document: Document, drafts: list[ChunkDraft]) -> list[Chunk]:
        """Turn drafts into (not yet embedded) chunks with deterministic ids."""
        chunks = []
        for order, draft in enumerate(drafts):
            tags = draft.metadata.get("tags") or []
            chunks.append(
                Chunk(
                    id=generate_chunk_id(document.id, order, draft.text),
                    document_id=document.id,
                    dataset_id=dataset.id,
                    document_name=document.name,
                    content=draft.text,
                    positions=draft.positions,
                    section=draft.section,
                    image_id=draft.image_id,
                    tags=[str(tag) for tag in tags],
                    kind=ChunkKind.BASE,
                    order=order,
                    embedding_model=dataset.embedding_model,
                    token_count=self.tokenizer.count_tokens(draft.text),
                )
            )
        return chunks

    async def index(
        self,
        dataset: Dataset,
        document: Document,
        drafts: list[ChunkDraft],
        ctx: TaskContext | None = None,
    ) -> list[Chunk]:
        """
        Replace a document's base chunks with the drafts.

        Args:
            dataset: Owning dataset (embedding model)
            document: Document being indexed
            drafts: Ordered chunker output
            ctx: Task context for progress and cancellation

        Returns:
            Committed chunks

        Raises:
            TaskCancelledError: If cancelled between batches
            ValidationError: On mixed embedding models
            EmbeddingError, LLMError, VectorStoreError: Transient backend failures
        """
        chunks = self.build_chunks(dataset, document, drafts)
        params = document.effective_parser_config(dataset)

        auto_keywords = getattr(params, "auto_keywords", 0)
        auto_questions = getattr(params, "auto_questions", 0)
        if chunks and (auto_keywords or auto_questions):
            await self.enrich(chunks, auto_keywords, auto_questions, ctx)

        return await self.write_chunks(dataset, document, chunks, ChunkKind.BASE, ctx)

    async def enrich(
        self,
        chunks: list[Chunk],
        auto_keywords: int,
        auto_questions: int,
        ctx: TaskContext | None = None,
    ) -> None:
        """Ask the LLM for keywords and / or questions of each chunk."""
        llm = self.models.get_llm()
        for i, chunk in enumerate(chunks):
            if ctx:
                ctx.check_cancelled()
            if auto_keywords:
                result = await llm.extract(
                    KEYWORD_PROMPT.format(top_n=auto_keywords, content=chunk.content),
                    KeywordList,
                )
                chunk.important_keywords = _clean(result.keywords)[:auto_keywords]
            if auto_questions:
                result = await llm.extract(
                    QUESTION_PROMPT.format(top_n=auto_questions, content=chunk.content),
                    QuestionList,
                )
                chunk.questions = _clean(result.questions)[:auto_questions]
        if ctx:
            await ctx.progress(message=f"Generated keywords/questions for {len(chunks)} chunks.")

    async def write_chunks(
        self,
        dataset: Dataset,
        document: Document,
        chunks: list[Chunk],
        kind: ChunkKind,
        ctx: TaskContext | None = None,
        progress_range: tuple[float, float] = (0.1, 0.95),
    ) -> list[Chunk]:
        """
        Delete the document's chunks of `kind`, then embed and upsert in batches.

        Chunks that already carry an embedding are not re-embedded.
        """
        for chunk in chunks:
            if chunk.embedding_model != dataset.embedding_model:
                raise ValidationError(
                    MIXED_MODEL_MESSAGE,
                    context={"chunk_id": chunk.id, "embedding_model": chunk.embedding_model},
                )

        embedder = self.embedder_for(dataset)
        batch_size = max(1, self.config.batch_size)
        low, high = progress_range
        committed: list[Chunk] = []
        cleared = False

        try:
            if not chunks:
                await self.chunk_index.delete_chunks(dataset.id, document_id=document.id, kind=kind)
                return committed

            for start in range(0, len(chunks), batch_size):
                if ctx:
                    ctx.check_cancelled()
                batch = chunks[start : start + batch_size]
                question_embeddings = await self._embed(embedder, batch)
                if ctx:
                    ctx.check_cancelled()

                if not cleared:
                    await self.chunk_index.ensure_collection(dataset.id, len(batch[0].embedding))
                    await self.chunk_index.delete_chunks(
                        dataset.id, document_id=document.id, kind=kind
                    )
                    cleared = True

                await self.chunk_index.upsert_chunks(dataset.id, batch, question_embeddings)
                committed.extend(batch)

                if ctx:
                    done = len(committed) / len(chunks)
                    await ctx.progress(
                        progress=low + (high - low) * done,
                        message=f"Indexed {len(committed)}/{len(chunks)} chunks.",
                    )
        finally:
            await self.refresh_document_counts(dataset.id, document.id)

        logger.info(
            f"Indexed {len(committed)} {kind.value} chunks",
            extra={"dataset_id": dataset.id, "document_id": document.id},
        )
        return committed

    async def _embed(self, embedder: Embedder, batch: list[Chunk]) -> dict[str, list[list[float]]]:
        pending = [chunk for chunk in batch if not chunk.embedding]
        if pending:
            vectors = await embedder.embed_many([chunk.content for chunk in pending])
            for chunk, vector in zip(pending, vectors):
                chunk.embedding = vector

        question_embeddings = {}
        questions = [(chunk.id, q) for chunk in batch for q in chunk.questions]
        if questions:
            vectors = await embedder.embed_many([q for _, q in questions])
            for (chunk_id, _), vector in zip(questions, vectors):
                question_embeddings.setdefault(chunk_id, []).append(vector)
        return question_embeddings

    async def refresh_document_counts(self, dataset_id: str, document_id: str) -> tuple[int, int]:
        """Recompute a document's available chunk and token counts from the index."""
        chunks = await self.chunk_index.list_chunks(dataset_id, document_id=document_id, available=True)
        chunk_count = len(chunks)
        token_count = sum(chunk.token_count for chunk in chunks)
        await self.metadata_store.set_document_counts(document_id, chunk_count, token_count)
        return chunk_count, token_count

    # ═══════════════════════════════════════════════════════════
    # MANUAL CHUNK MANAGEMENT
    # ═══════════════════════════════════════════════════════════

    async def add_chunk(self, dataset: Dataset, document: Document, request: ChunkCreate) -> Chunk:
        """
        Add a chunk by hand at the end of the document.

        Raises:
            ValidationError: If the content is blank
        """
        content = request.content.strip()
        if not content:
            raise ValidationError("Chunk content must not be empty")

        existing = await self.chunk_index.list_chunks(dataset.id, document_id=document.id)
        order = max((c.order for c in existing if c.kind == ChunkKind.BASE), default=-1) + 1
        chunk = Chunk(
            id=generate_chunk_id(document.id, f"manual-{order}", content),
            document_id=document.id,
            dataset_id=dataset.id,
            document_name=document.name,
            content=content,
            important_keywords=_clean(request.important_keywords),
            questions=_clean(request.questions),
            order=order,
            embedding_model=dataset.embedding_model,
            token_count=self.tokenizer.count_tokens(content),
        )
        await self._upsert_one(dataset, chunk)
        await self.refresh_document_counts(dataset.id, document.id)
        logger.info("Chunk added", extra={"chunk_id": chunk.id, "document_id": document.id})
        return chunk

    async def update_chunk(
        self, dataset: Dataset, document: Document, chunk_id: str, request: ChunkUpdate
    ) -> Chunk:
        """
        Update content, keywords, questions or availability of a chunk.

        Raises:
            NotFoundError: If the chunk is not in the document
            ValidationError: If the new content is blank
        """
        chunk = await self._get_document_chunk(dataset, document, chunk_id, with_vectors=True)

        reembed = False
        if request.content is not None:
            content = request.content.strip()
            if not content:
                raise ValidationError("Chunk content must not be empty")
            if content != chunk.content:
                chunk.content = content
                chunk.token_count = self.tokenizer.count_tokens(content)
                chunk.embedding = []
                reembed = True
        if request.important_keywords is not None:
            chunk.important_keywords = _clean(request.important_keywords)
        if request.questions is not None:
            chunk.questions = _clean(request.questions)
            reembed = True
        if request.available is not None:
            chunk.available = request.available

        if chunk.embedding_model != dataset.embedding_model:
            chunk.embedding = []
            chunk.embedding_model = dataset.embedding_model
            reembed = True

        if reembed or not chunk.embedding:
            await self.chunk_index.delete_chunks(dataset.id, chunk_ids=[chunk.id])
        await self._upsert_one(dataset, chunk)
        await self.refresh_document_counts(dataset.id, document.id)
        return chunk

    async def delete_chunks(
        self, dataset: Dataset, document: Document, chunk_ids: list[str] | None = None
    ) -> int:
        """
        Delete chunks of a document; all of them when `chunk_ids` is None.

        Raises:
            NotFoundError: If an id is not a chunk of the document
        """
        if chunk_ids is None:
            count = len(await self.chunk_index.list_chunks(dataset.id, document_id=document.id))
            await self.chunk_index.delete_chunks(dataset.id, document_id=document.id)
        else:
            found = await self.chunk_index.get_chunks(dataset.id, chunk_ids)
            owned = {c.id for c in found if c.document_id == document.id}
            missing = [chunk_id for chunk_id in chunk_ids if chunk_id not in owned]
            if missing:
                raise NotFoundError(
                    f"Chunks not found in document {document.id}: {', '.join(missing)}",
                    context={"document_id": document.id, "chunk_ids": missing},
                )
            count = len(owned)
            if owned:
                await self.chunk_index.delete_chunks(dataset.id, chunk_ids=sorted(owned))

        await self.refresh_document_counts(dataset.id, document.id)
        return count

    async def set_availability(
        self, dataset: Dataset, document: Document, chunk_ids: list[str], available: bool
    ) -> None:
        """Soft delete or restore chunks."""
        for chunk_id in chunk_ids:
            await self._get_document_chunk(dataset, document, chunk_id)
        await self.chunk_index.set_availability(dataset.id, chunk_ids, available)
        await self.refresh_document_counts(dataset.id, document.id)

    async def _get_document_chunk(
        self, dataset: Dataset, document: Document, chunk_id: str, with_vectors: bool = False
    ) -> Chunk:
        chunk = await self.chunk_index.get_chunk(dataset.id, chunk_id, with_vectors=with_vectors)
        if chunk is None or chunk.document_id != document.id:
            raise NotFoundError(
                f"Chunk {chunk_id} not found in document {document.id}",
                context={"chunk_id": chunk_id, "document_id": document.id},
            )
        return chunk

    async def _upsert_one(self, dataset: Dataset, chunk: Chunk) -> None:
        embedder = self.embedder_for(dataset)
        question_embeddings = await self._embed(embedder, [chunk])
        await self.chunk_index.ensure_collection(dataset.id, len(chunk.embedding))
        await self.chunk_index.upsert_chunks(dataset.id, [chunk], question_embeddings)


def _clean(values: list[str]) -> list[str]:
    """Strip, drop blanks and duplicates, keep order."""
    seen: dict[str, None] = {}
    for value in values:
        value = str(value).strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)
