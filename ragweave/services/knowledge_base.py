"""
Knowledge base service.

Dataset, document, chunk, knowledge graph and task operations with
validation and ownership checks. Indexing work is handed to the task
scheduler; everything here returns synchronously.
"""

from datetime import datetime

from ragweave.core.blob_store.base import BlobStore
from ragweave.core.chunking import IMAGE_SUFFIXES, file_suffix, is_supported
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.models.dataset import Caller, Dataset, DatasetCreate, DatasetUpdate
from ragweave.models.document import (
    Chunk,
    ChunkCreate,
    ChunkUpdate,
    Document,
    DocumentUpdate,
)
from ragweave.models.graph import KnowledgeGraph
from ragweave.models.parser_config import ChunkMethod, build_parser_config
from ragweave.models.task import IndexingTask, TaskStatus, TaskType
from ragweave.services.indexer import IndexerGateway
from ragweave.services.knowledge_graph import KnowledgeGraphBuilder
from ragweave.services.task_scheduler import TaskScheduler
from ragweave.utils.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ragweave.utils.id_generator import generate_dataset_id, generate_document_id
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

ACTIVE_STATUSES = [TaskStatus.UNSTART, TaskStatus.RUNNING]


def _clean_name(name: str, what: str = "Dataset name") -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{what} must not be empty")
    if len(cleaned) > 128:
        raise ValidationError(f"{what} must be at most 128 characters")
    return cleaned


def _require_ids(ids: list[str] | None, field: str) -> list[str]:
    if not ids:
        raise ValidationError(f"`{field}` is required")
    return list(dict.fromkeys(ids))


class KnowledgeBaseService:
    """
    Lifecycle operations over datasets and their content.

    Ownership: owners may do anything; callers whose team list holds the
    owner tenant may read and use `team` datasets (upload, parse, edit
    chunks, retrieve); only owners update or delete datasets.
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        chunk_index: ChunkIndex,
        blob_store: BlobStore,
        scheduler: TaskScheduler,
        indexer: IndexerGateway,
        graph_builder: KnowledgeGraphBuilder,
        models: ModelRegistry,
    ):
        """
        Initialize knowledge base service.

        Args:
            metadata_store: Datasets, documents and tasks
            chunk_index: Chunk vector index
            blob_store: Uploaded file bytes
            scheduler: Indexing task scheduler
            indexer: Chunk write path
            graph_builder: Dataset knowledge graphs
            models: Model reference validation and defaults
        """
        self.metadata_store = metadata_store
        self.chunk_index = chunk_index
        self.blob_store = blob_store
        self.scheduler = scheduler
        self.indexer = indexer
        self.graph_builder = graph_builder
        self.models = models

    # ═══════════════════════════════════════════════════════════
    # ACCESS
    # ═══════════════════════════════════════════════════════════

    async def _dataset(self, caller: Caller, dataset_id: str, owner: bool = False) -> Dataset:
        dataset = await self.metadata_store.get_dataset(dataset_id)
        if dataset is None:
            raise NotFoundError(f"Dataset {dataset_id} not found", context={"dataset_id": dataset_id})
        allowed = dataset.is_owned_by(caller) if owner else dataset.is_accessible_by(caller)
        if not allowed:
            raise PermissionDeniedError(
                f"No {'owner ' if owner else ''}access to dataset {dataset_id}",
                context={"dataset_id": dataset_id, "tenant_id": caller.tenant_id},
            )
        return dataset

    async def _document(self, dataset: Dataset, document_id: str) -> Document:
        document = await self.metadata_store.get_document(document_id)
        if document is None or document.dataset_id != dataset.id:
            raise NotFoundError(
                f"Document {document_id} not found in dataset {dataset.id}",
                context={"dataset_id": dataset.id, "document_id": document_id},
            )
        return document

    async def _active_tasks(self, document_id: str) -> list[IndexingTask]:
        return await self.metadata_store.list_tasks(
            document_id=document_id, statuses=ACTIVE_STATUSES
        )

    # ═══════════════════════════════════════════════════════════
    # DATASETS
    # ═══════════════════════════════════════════════════════════

    async def create_dataset(self, caller: Caller, request: DatasetCreate) -> Dataset:
        """
        Create a dataset owned by the caller.

        Raises:
            ValidationError: On a bad name, model reference or parser config
            ConflictError: If the caller already has a dataset with that name
        """
        name = _clean_name(request.name)
        embedding_model = (request.embedding_model or self.models.default_embedding_model).strip()
        self.models.validate_reference(embedding_model)
        parser_config = build_parser_config(request.chunk_method, request.parser_config)

        dataset = Dataset(
            id=generate_dataset_id(),
            tenant_id=caller.tenant_id,
            name=name,
            description=request.description,
            embedding_model=embedding_model,
            chunk_method=request.chunk_method,
            parser_config=parser_config,
            permission=request.permission,
            pagerank=request.pagerank,
            language=request.language,
        )
        created = await self.metadata_store.create_dataset(dataset)
        logger.info(
            f"Created dataset '{name}'",
            extra={"dataset_id": dataset.id, "tenant_id": caller.tenant_id},
        )
        return created

    async def list_datasets(
        self,
        caller: Caller,
        name: str | None = None,
        dataset_id: str | None = None,
        page: int = 1,
        page_size: int = 30,
        orderby: str = "create_time",
        desc: bool = True,
    ) -> tuple[list[Dataset], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("`page` and `page_size` must be positive")
        return await self.metadata_store.list_datasets(
            caller,
            name=name,
            dataset_id=dataset_id,
            page=page,
            page_size=page_size,
            orderby=orderby,
            desc=desc,
        )

    async def get_dataset(self, caller: Caller, dataset_id: str) -> Dataset:
        return await self._dataset(caller, dataset_id)

    async def update_dataset(self, caller: Caller, dataset_id: str, request: DatasetUpdate) -> Dataset:
        """
        Update a dataset (owner only).

        Raises:
            ValidationError: On a bad field, or an embedding model change once
                the dataset has chunks
            ConflictError: If the new name is taken
        """
        dataset = await self._dataset(caller, dataset_id, owner=True)
        changes = request.model_dump(exclude_unset=True)

        if request.name is not None:
            dataset.name = _clean_name(request.name)
        if request.description is not None:
            dataset.description = request.description

        if request.embedding_model is not None:
            embedding_model = request.embedding_model.strip()
            self.models.validate_reference(embedding_model)
            if embedding_model != dataset.embedding_model and dataset.chunk_count > 0:
                raise ValidationError(
                    "Cannot change embedding model of a dataset with chunks",
                    context={"dataset_id": dataset_id, "chunk_count": dataset.chunk_count},
                )
            dataset.embedding_model = embedding_model

        method = request.chunk_method or dataset.chunk_method
        if request.parser_config is not None:
            dataset.parser_config = build_parser_config(method, request.parser_config)
        elif method != dataset.chunk_method:
            dataset.parser_config = build_parser_config(method, None)
        dataset.chunk_method = ChunkMethod(method)

        if request.permission is not None:
            dataset.permission = request.permission
        if request.pagerank is not None:
            dataset.pagerank = request.pagerank
        if request.language is not None:
            dataset.language = request.language

        dataset.update_time = datetime.now()
        updated = await self.metadata_store.update_dataset(dataset)
        logger.info("Updated dataset", extra={"dataset_id": dataset_id, "fields": sorted(changes)})
        return updated

    async def delete_datasets(self, caller: Caller, dataset_ids: list[str]) -> int:
        """
        Delete datasets with their documents, chunks, graphs and files (owner only).

        Every id is checked before anything is deleted.
        """
        ids = _require_ids(dataset_ids, "ids")
        datasets = [await self._dataset(caller, dataset_id, owner=True) for dataset_id in ids]

        for dataset in datasets:
            active = await self.metadata_store.list_tasks(
                dataset_id=dataset.id, statuses=ACTIVE_STATUSES
            )
            for task in active:
                await self.scheduler.cancel(task.id, "Dataset deleted.")
            await self.scheduler.settle(active)
            await self.chunk_index.drop_dataset(dataset.id)
            await self.graph_builder.delete_graph(dataset.id)
            await self.blob_store.delete_prefix(dataset.id)
            await self.metadata_store.delete_dataset(dataset.id)
            logger.info(f"Deleted dataset '{dataset.name}'", extra={"dataset_id": dataset.id})
        return len(datasets)

    # ═══════════════════════════════════════════════════════════
    # DOCUMENTS
    # ═══════════════════════════════════════════════════════════

    async def upload_document(
        self, caller: Caller, dataset_id: str, filename: str, data: bytes
    ) -> Document:
        """
        Store an uploaded file as an UNSTART document.

        Images are given the picture chunk method.

        Raises:
            ValidationError: On an empty name or an unsupported file type
        """
        dataset = await self._dataset(caller, dataset_id)
        name = _clean_name(filename, "File name")
        if not is_supported(name):
            raise ValidationError(
                f"File type of '{name}' is not supported", context={"name": name}
            )

        document_id = generate_document_id()
        location = f"{dataset.id}/{document_id}"
        await self.blob_store.put(location, data)

        suffix = file_suffix(name)
        chunk_method = None
        if suffix in IMAGE_SUFFIXES and dataset.chunk_method != ChunkMethod.PICTURE:
            chunk_method = ChunkMethod.PICTURE

        document = Document(
            id=document_id,
            dataset_id=dataset.id,
            name=name,
            location=location,
            size=len(data),
            type=suffix,
            chunk_method=chunk_method,
        )
        created = await self.metadata_store.create_document(document)
        logger.info(
            f"Uploaded '{name}' ({len(data)} bytes)",
            extra={"dataset_id": dataset.id, "document_id": document_id},
        )
        return created

    async def list_documents(
        self,
        caller: Caller,
        dataset_id: str,
        name: str | None = None,
        run: list[TaskStatus] | None = None,
        document_id: str | None = None,
        page: int = 1,
        page_size: int = 30,
        orderby: str = "create_time",
        desc: bool = True,
    ) -> tuple[list[Document], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("`page` and `page_size` must be positive")
        dataset = await self._dataset(caller, dataset_id)
        return await self.metadata_store.list_documents(
            dataset.id,
            name=name,
            run=run,
            document_ids=[document_id] if document_id else None,
            page=page,
            page_size=page_size,
            orderby=orderby,
            desc=desc,
        )

    async def get_document(self, caller: Caller, dataset_id: str, document_id: str) -> Document:
        dataset = await self._dataset(caller, dataset_id)
        return await self._document(dataset, document_id)

    async def download_document(
        self, caller: Caller, dataset_id: str, document_id: str
    ) -> tuple[Document, bytes]:
        dataset = await self._dataset(caller, dataset_id)
        document = await self._document(dataset, document_id)
        return document, await self.blob_store.get(document.location)

    async def update_document(
        self, caller: Caller, dataset_id: str, document_id: str, request: DocumentUpdate
    ) -> Document:
        """
        Rename, retag, re-configure or enable / disable a document.

        Changing the chunk method or parser config drops the document's
        chunks; the document has to be parsed again.

        Raises:
            ValidationError: On an empty name, a changed file extension or a
                bad parser config
            ConflictError: If the chunking is changed while a parse is active
        """
        dataset = await self._dataset(caller, dataset_id)
        document = await self._document(dataset, document_id)

        if request.name is not None:
            name = _clean_name(request.name, "File name")
            if file_suffix(name) != file_suffix(document.name):
                raise ValidationError("The extension of a file can't be changed")
            document.name = name
        if request.meta_fields is not None:
            document.meta_fields = request.meta_fields
        if request.enabled is not None:
            document.enabled = request.enabled

        rechunk = False
        if request.chunk_method is not None or request.parser_config is not None:
            method = request.chunk_method or document.effective_chunk_method(dataset)
            parser_config = build_parser_config(method, request.parser_config)
            previous = document.effective_parser_config(dataset)
            rechunk = parser_config.model_dump() != previous.model_dump()
            document.chunk_method = ChunkMethod(method)
            document.parser_config = parser_config

        if rechunk:
            if await self._active_tasks(document.id):
                raise ConflictError(
                    "Can't change the chunk method while the document is being parsed",
                    context={"document_id": document_id},
                )
            if document.chunk_count or document.run != TaskStatus.UNSTART:
                await self.indexer.delete_chunks(dataset, document)
                await self.graph_builder.remove_document(dataset.id, document.id)
                await self.metadata_store.mirror_parse_state(
                    document.id, TaskStatus.UNSTART, 0.0, "", chunk_count=0, token_count=0
                )
                document.run = TaskStatus.UNSTART
                document.progress = 0.0
                document.progress_msg = ""
                document.chunk_count = 0
                document.token_count = 0

        updated = await self.metadata_store.update_document(document)
        logger.info("Updated document", extra={"document_id": document_id, "rechunk": rechunk})
        return updated

    async def delete_documents(
        self, caller: Caller, dataset_id: str, document_ids: list[str] | None = None
    ) -> int:
        """
        Delete documents; every document of the dataset when `document_ids` is None.

        Active tasks are cancelled first; chunks, graph contributions and the
        file go with the document.
        """
        dataset = await self._dataset(caller, dataset_id)
        if document_ids is None:
            documents, _ = await self.metadata_store.list_documents(dataset.id)
        else:
            documents = [await self._document(dataset, doc_id) for doc_id in _require_ids(document_ids, "ids")]

        for document in documents:
            for task in await self._active_tasks(document.id):
                await self.scheduler.cancel(task.id, "Document deleted.")

            async with self.scheduler.document_lock(document.id):
                await self.chunk_index.delete_chunks(dataset.id, document_id=document.id)
                await self.graph_builder.remove_document(dataset.id, document.id)
                await self.blob_store.delete(document.location)
                await self.metadata_store.delete_document(document.id)
            logger.info(
                f"Deleted document '{document.name}'",
                extra={"dataset_id": dataset.id, "document_id": document.id},
            )
        return len(documents)

    # ═══════════════════════════════════════════════════════════
    # PARSING
    # ═══════════════════════════════════════════════════════════

    async def parse_documents(
        self, caller: Caller, dataset_id: str, document_ids: list[str]
    ) -> list[IndexingTask]:
        """
        Queue a parse task per document.

        Raises:
            ValidationError: If `document_ids` is empty
            NotFoundError: If a document is not in the dataset
            ConflictError: If a document already has an active task
        """
        dataset = await self._dataset(caller, dataset_id)
        ids = _require_ids(document_ids, "document_ids")
        documents = [await self._document(dataset, doc_id) for doc_id in ids]

        busy = [d.id for d in documents if await self._active_tasks(d.id)]
        if busy:
            raise ConflictError(
                "Documents are already being parsed", context={"document_ids": busy}
            )

        tasks = []
        for document in documents:
            tasks.append(await self.scheduler.submit(TaskType.PARSE, dataset.id, document.id))
        return tasks

    async def stop_parsing(self, caller: Caller, dataset_id: str, document_ids: list[str]) -> int:
        """
        Cancel the active tasks of documents.

        Raises:
            ValidationError: If `document_ids` is empty or a document has no active task
        """
        dataset = await self._dataset(caller, dataset_id)
        ids = _require_ids(document_ids, "document_ids")
        documents = [await self._document(dataset, doc_id) for doc_id in ids]

        active: list[IndexingTask] = []
        for document in documents:
            tasks = await self._active_tasks(document.id)
            if not tasks:
                raise ValidationError(
                    f"Document {document.name} is not being parsed",
                    context={"document_id": document.id, "run": document.run.value},
                )
            active.extend(tasks)

        stopped = 0
        for task in active:
            if await self.scheduler.cancel(task.id):
                stopped += 1
        return stopped

    # ═══════════════════════════════════════════════════════════
    # CHUNKS
    # ═══════════════════════════════════════════════════════════

    async def list_chunks(
        self,
        caller: Caller,
        dataset_id: str,
        document_id: str,
        keywords: str | None = None,
        page: int = 1,
        page_size: int = 30,
    ) -> tuple[Document, list[Chunk], int]:
        """Chunks of a document in reading order, summaries after base chunks."""
        if page < 1 or page_size < 1:
            raise ValidationError("`page` and `page_size` must be positive")
        dataset = await self._dataset(caller, dataset_id)
        document = await self._document(dataset, document_id)

        chunks = await self.chunk_index.list_chunks(dataset.id, document_id=document.id)
        if keywords and keywords.strip():
            needle = keywords.strip().lower()
            chunks = [c for c in chunks if needle in c.content.lower()]
        chunks.sort(key=lambda c: (c.raptor_layer, c.order, c.id))

        offset = (page - 1) * page_size
        return document, chunks[offset : offset + page_size], len(chunks)

    async def _editable_document(
        self, caller: Caller, dataset_id: str, document_id: str
    ) -> tuple[Dataset, Document]:
        dataset = await self._dataset(caller, dataset_id)
        document = await self._document(dataset, document_id)
        if document.run == TaskStatus.RUNNING:
            raise ConflictError(
                "Document is being parsed", context={"document_id": document_id}
            )
        return dataset, document

    async def add_chunk(
        self, caller: Caller, dataset_id: str, document_id: str, request: ChunkCreate
    ) -> Chunk:
        dataset, document = await self._editable_document(caller, dataset_id, document_id)
        return await self.indexer.add_chunk(dataset, document, request)

    async def update_chunk(
        self,
        caller: Caller,
        dataset_id: str,
        document_id: str,
        chunk_id: str,
        request: ChunkUpdate,
    ) -> Chunk:
        dataset, document = await self._editable_document(caller, dataset_id, document_id)
        return await self.indexer.update_chunk(dataset, document, chunk_id, request)

    async def delete_chunks(
        self,
        caller: Caller,
        dataset_id: str,
        document_id: str,
        chunk_ids: list[str] | None = None,
    ) -> int:
        dataset, document = await self._editable_document(caller, dataset_id, document_id)
        return await self.indexer.delete_chunks(dataset, document, chunk_ids)

    # ═══════════════════════════════════════════════════════════
    # KNOWLEDGE GRAPH AND RAPTOR
    # ═══════════════════════════════════════════════════════════

    async def _submit_dataset_task(
        self, caller: Caller, dataset_id: str, task_type: TaskType
    ) -> IndexingTask:
        dataset = await self._dataset(caller, dataset_id)
        _, parsed_count = await self.metadata_store.list_documents(
            dataset.id, run=[TaskStatus.DONE], page=1, page_size=1
        )
        if not parsed_count:
            raise ValidationError(
                "No parsed documents in dataset", context={"dataset_id": dataset.id}
            )
        return await self.scheduler.submit(task_type, dataset.id)

    async def _trace(
        self, caller: Caller, dataset_id: str, task_type: TaskType
    ) -> IndexingTask | None:
        dataset = await self._dataset(caller, dataset_id)
        tasks = await self.metadata_store.list_tasks(dataset_id=dataset.id, task_type=task_type)
        dataset_tasks = [t for t in tasks if t.document_id is None]
        if dataset_tasks:
            return dataset_tasks[-1]
        return tasks[-1] if tasks else None

    async def run_graphrag(self, caller: Caller, dataset_id: str) -> IndexingTask:
        return await self._submit_dataset_task(caller, dataset_id, TaskType.GRAPHRAG)

    async def trace_graphrag(self, caller: Caller, dataset_id: str) -> IndexingTask | None:
        """Latest knowledge graph task of the dataset, None when it never ran."""
        return await self._trace(caller, dataset_id, TaskType.GRAPHRAG)

    async def run_raptor(self, caller: Caller, dataset_id: str) -> IndexingTask:
        return await self._submit_dataset_task(caller, dataset_id, TaskType.RAPTOR)

    async def trace_raptor(self, caller: Caller, dataset_id: str) -> IndexingTask | None:
        """Latest RAPTOR task of the dataset, None when it never ran."""
        return await self._trace(caller, dataset_id, TaskType.RAPTOR)

    async def get_knowledge_graph(self, caller: Caller, dataset_id: str) -> KnowledgeGraph:
        """The dataset graph; an empty graph when none was built."""
        dataset = await self._dataset(caller, dataset_id)
        graph = await self.graph_builder.get_graph(dataset.id)
        return graph or KnowledgeGraph(dataset_id=dataset.id)

    async def delete_knowledge_graph(self, caller: Caller, dataset_id: str) -> bool:
        """Drop the dataset graph. Succeeds whether or not a graph was stored."""
        dataset = await self._dataset(caller, dataset_id)
        deleted = await self.graph_builder.delete_graph(dataset.id)
        logger.info(
            "Knowledge graph deleted" if deleted else "No knowledge graph to delete",
            extra={"dataset_id": dataset.id},
        )
        return True

    # ═══════════════════════════════════════════════════════════
    # TASKS
    # ═══════════════════════════════════════════════════════════

    async def get_task(self, caller: Caller, task_id: str) -> IndexingTask:
        task = await self.metadata_store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found", context={"task_id": task_id})
        await self._dataset(caller, task.dataset_id)
        return task
