"""
Service container.

Builds every store, model provider and service from a Config and owns
their lifecycle.
"""

from ragweave.config import Config
from ragweave.core.blob_store import FileSystemBlobStore
from ragweave.core.chunking import Chunker
from ragweave.core.factory import ModelRegistry, StoreFactory, VectorStoreFactory
from ragweave.core.llm.base import LLMProvider
from ragweave.core.tokenizer import Tokenizer
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.services.indexer import IndexerGateway
from ragweave.services.knowledge_base import KnowledgeBaseService
from ragweave.services.knowledge_graph import KnowledgeGraphBuilder
from ragweave.services.memory_service import MemoryService
from ragweave.services.retrieval_engine import RetrievalEngine
from ragweave.services.task_executors import GraphRAGExecutor, ParseExecutor, RaptorExecutor
from ragweave.services.task_scheduler import TaskScheduler
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """
    All RagWeave services wired together.

    Usage:
        container = ServiceContainer(Config.from_env())
        await container.initialize()
        dataset = await container.knowledge_base.create_dataset(caller, request)
        ...
        await container.close()
    """

    def __init__(
        self,
        config: Config,
        models: ModelRegistry | None = None,
        llm: LLMProvider | None = None,
        chunk_index: ChunkIndex | None = None,
    ):
        """
        Build the service graph.

        Args:
            config: Main configuration
            models: Optional pre-built model registry (e.g. with registered embedders)
            llm: Optional chat model, used when `models` is not given
            chunk_index: Optional chunk index; built from `config.qdrant` otherwise
        """
        self.config = config
        self.tokenizer = Tokenizer(config.tokenizer)
        self.models = models or ModelRegistry(config, llm=llm)

        self.metadata_store = StoreFactory.create_metadata_store(config.sqlite)
        self.graph_store = StoreFactory.create_graph_store(config.sqlite)
        self.memory_store = StoreFactory.create_memory_store(config.sqlite)
        self.chunk_index = chunk_index or VectorStoreFactory.create(config.qdrant)
        self.blob_store = FileSystemBlobStore(config.storage.blob_dir)

        self.chunker = Chunker(self.tokenizer, config.chunking)
        self.indexer = IndexerGateway(
            chunk_index=self.chunk_index,
            metadata_store=self.metadata_store,
            models=self.models,
            tokenizer=self.tokenizer,
            config=config.tasks,
        )
        self.graph_builder = KnowledgeGraphBuilder(
            llm=self.models.get_llm(),
            graph_store=self.graph_store,
            config=config.graphrag,
        )

        self.scheduler = TaskScheduler(
            metadata_store=self.metadata_store,
            executors=[
                ParseExecutor(self.metadata_store, self.blob_store, self.chunker, self.indexer),
                RaptorExecutor(
                    self.metadata_store,
                    self.chunk_index,
                    self.indexer,
                    self.models,
                    self.tokenizer,
                    config.raptor,
                ),
                GraphRAGExecutor(self.metadata_store, self.chunk_index, self.graph_builder),
            ],
            config=config.tasks,
        )

        self.knowledge_base = KnowledgeBaseService(
            metadata_store=self.metadata_store,
            chunk_index=self.chunk_index,
            blob_store=self.blob_store,
            scheduler=self.scheduler,
            indexer=self.indexer,
            graph_builder=self.graph_builder,
            models=self.models,
        )
        self.retrieval = RetrievalEngine(
            metadata_store=self.metadata_store,
            chunk_index=self.chunk_index,
            graph_store=self.graph_store,
            models=self.models,
            config=config.retrieval,
        )
        self.memory = MemoryService(self.memory_store, self.models, config.memory)

    async def initialize(self, start_scheduler: bool = True) -> None:
        """Create schemas and start the task workers."""
        logger.info("Initializing RagWeave services")
        await self.metadata_store.initialize()
        await self.graph_store.initialize()
        await self.memory_store.initialize()
        await self.chunk_index.initialize()
        if start_scheduler:
            await self.scheduler.start()
        logger.info("RagWeave services ready")

    async def close(self) -> None:
        logger.info("Shutting down RagWeave services")
        await self.scheduler.stop()
        await self.memory.close()
        await self.models.close()
        await self.chunk_index.close()
        await self.memory_store.close()
        await self.graph_store.close()
        await self.metadata_store.close()
