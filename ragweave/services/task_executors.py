"""
Executors for parse, RAPTOR and knowledge graph tasks.

Document-scoped tasks work on their document; dataset-level raptor and
graphrag tasks work on every document of the dataset whose parse is DONE,
one document lock at a time.
"""

import asyncio

from ragweave.config import RaptorConfig
from ragweave.core.blob_store.base import BlobStore
from ragweave.core.chunking import Chunker, parse_document
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.tokenizer import Tokenizer
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.models.dataset import Dataset
from ragweave.models.document import Chunk, ChunkKind, Document
from ragweave.models.task import IndexingTask, TaskStatus, TaskType
from ragweave.services.indexer import IndexerGateway
from ragweave.services.knowledge_graph import KnowledgeGraphBuilder
from ragweave.services.raptor import RaptorSummarizer
from ragweave.services.task_scheduler import TaskContext, TaskExecutor
from ragweave.utils.exceptions import NotFoundError, ValidationError
from ragweave.utils.id_generator import generate_chunk_id
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


async def _load_dataset(metadata_store: MetadataStore, task: IndexingTask) -> Dataset:
    dataset = await metadata_store.get_dataset(task.dataset_id)
    if dataset is None:
        raise NotFoundError(f"Dataset {task.dataset_id} not found", context={"task_id": task.id})
    return dataset


async def _target_documents(metadata_store: MetadataStore, task: IndexingTask) -> list[Document]:
    """The task's document, or every parsed document of its dataset."""
    if task.document_id:
        document = await metadata_store.get_document(task.document_id)
        if document is None:
            raise NotFoundError(
                f"Document {task.document_id} not found", context={"task_id": task.id}
            )
        if document.run != TaskStatus.DONE:
            raise ValidationError(
                f"Document {document.name} is not parsed yet",
                context={"document_id": document.id, "run": document.run.value},
            )
        return [document]

    documents, _ = await metadata_store.list_documents(
        task.dataset_id, run=[TaskStatus.DONE], orderby="create_time", desc=False
    )
    if not documents:
        raise ValidationError(
            "No parsed documents in dataset", context={"dataset_id": task.dataset_id}
        )
    return documents


class ParseExecutor(TaskExecutor):
    """Blob -> parsed pages -> chunk drafts -> embedded chunks."""

    task_type = TaskType.PARSE

    def __init__(
        self,
        metadata_store: MetadataStore,
        blob_store: BlobStore,
        chunker: Chunker,
        indexer: IndexerGateway,
    ):
        self.metadata_store = metadata_store
        self.blob_store = blob_store
        self.chunker = chunker
        self.indexer = indexer

    async def execute(self, task: IndexingTask, ctx: TaskContext) -> list[TaskType]:
        dataset = await _load_dataset(self.metadata_store, task)
        document = await self.metadata_store.get_document(task.document_id)
        if document is None:
            raise NotFoundError(
                f"Document {task.document_id} not found", context={"task_id": task.id}
            )

        method = document.effective_chunk_method(dataset)
        params = document.effective_parser_config(dataset)
        await ctx.progress(progress=0.01, message=f"Start to parse {document.name} ({method.value}).")

        data = await self.blob_store.get(document.location)
        parsed = await asyncio.to_thread(
            parse_document, document.name, data, method, document.location
        )
        drafts = await asyncio.to_thread(self.chunker.chunk, parsed, method, params)
        await ctx.progress(
            progress=0.1,
            message=f"Parsed {len(parsed.pages)} pages into {len(drafts)} chunks.",
        )
        ctx.check_cancelled()

        chunks = await self.indexer.index(dataset, document, drafts, ctx)
        await ctx.progress(message=f"Indexed {len(chunks)} chunks.")

        if params.raptor.use_raptor:
            return [TaskType.RAPTOR]
        if params.graphrag.use_graphrag:
            return [TaskType.GRAPHRAG]
        return []


class RaptorExecutor(TaskExecutor):
    """Replaces the RAPTOR summary chunks of one or all documents."""

    task_type = TaskType.RAPTOR

    def __init__(
        self,
        metadata_store: MetadataStore,
        chunk_index: ChunkIndex,
        indexer: IndexerGateway,
        models: ModelRegistry,
        tokenizer: Tokenizer,
        config: RaptorConfig | None = None,
    ):
        self.metadata_store = metadata_store
        self.chunk_index = chunk_index
        self.indexer = indexer
        self.models = models
        self.tokenizer = tokenizer
        self.config = config or RaptorConfig()

    async def execute(self, task: IndexingTask, ctx: TaskContext) -> list[TaskType]:
        dataset = await _load_dataset(self.metadata_store, task)
        documents = await _target_documents(self.metadata_store, task)
        summarizer = RaptorSummarizer(
            llm=self.models.get_llm(),
            embedder=self.indexer.embedder_for(dataset),
            tokenizer=self.tokenizer,
            config=self.config,
        )

        for i, document in enumerate(documents):
            ctx.check_cancelled()
            async with ctx.document_lock(document.id):
                count = await self._summarize_document(dataset, document, summarizer, ctx)
            await ctx.progress(
                progress=(i + 1) / len(documents),
                message=f"{document.name}: {count} summary chunks.",
            )

        if task.document_id:
            params = documents[0].effective_parser_config(dataset)
            if params.graphrag.use_graphrag:
                return [TaskType.GRAPHRAG]
        return []

    async def _summarize_document(
        self,
        dataset: Dataset,
        document: Document,
        summarizer: RaptorSummarizer,
        ctx: TaskContext,
    ) -> int:
        settings = document.effective_parser_config(dataset).raptor
        base_chunks = await self.chunk_index.list_chunks(
            dataset.id,
            document_id=document.id,
            kind=ChunkKind.BASE,
            available=True,
            with_vectors=True,
        )
        nodes = await summarizer.build(
            [(chunk.content, chunk.embedding) for chunk in base_chunks], settings, ctx
        )

        summaries = []
        for order, node in enumerate(nodes):
            summaries.append(
                Chunk(
                    id=generate_chunk_id(document.id, f"raptor-{node.layer}-{order}", node.content),
                    document_id=document.id,
                    dataset_id=dataset.id,
                    document_name=document.name,
                    content=node.content,
                    embedding=node.embedding,
                    kind=ChunkKind.RAPTOR,
                    raptor_layer=node.layer,
                    order=order,
                    embedding_model=dataset.embedding_model,
                    token_count=self.tokenizer.count_tokens(node.content),
                )
            )

        await self.indexer.write_chunks(dataset, document, summaries, ChunkKind.RAPTOR)
        return len(summaries)


class GraphRAGExecutor(TaskExecutor):
    """Extracts document subgraphs and merges them into the dataset graph."""

    task_type = TaskType.GRAPHRAG

    def __init__(
        self,
        metadata_store: MetadataStore,
        chunk_index: ChunkIndex,
        builder: KnowledgeGraphBuilder,
    ):
        self.metadata_store = metadata_store
        self.chunk_index = chunk_index
        self.builder = builder

    async def execute(self, task: IndexingTask, ctx: TaskContext) -> list[TaskType]:
        dataset = await _load_dataset(self.metadata_store, task)
        documents = await _target_documents(self.metadata_store, task)

        for i, document in enumerate(documents):
            ctx.check_cancelled()
            async with ctx.document_lock(document.id):
                merged = await self._process_document(dataset, document, ctx)
            await ctx.progress(
                progress=(i + 1) / len(documents),
                message=f"{document.name}: {'merged' if merged else 'no available chunks, skip'}.",
            )
        return []

    async def _process_document(
        self, dataset: Dataset, document: Document, ctx: TaskContext
    ) -> bool:
        chunks = await self.chunk_index.list_chunks(
            dataset.id, document_id=document.id, kind=ChunkKind.BASE, available=True
        )
        entity_types = document.effective_parser_config(dataset).graphrag.entity_types

        subgraph = None
        if chunks:
            subgraph = await self.builder.build_subgraph(document, chunks, entity_types, ctx)
        if subgraph is None or not subgraph.nodes:
            logger.info(
                f"{document.name}: no available chunks, skip",
                extra={"document_id": document.id},
            )
            return False

        ctx.check_cancelled()
        await self.builder.merge_document(dataset.id, subgraph)
        return True
