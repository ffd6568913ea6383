"""
Base interface for dataset, document and task metadata.

The task table doubles as the persistent task queue: every status change
is a guarded single-statement update so that a stale worker can never
overwrite a terminal state.
"""

from abc import ABC, abstractmethod

from ragweave.models.dataset import Caller, Dataset
from ragweave.models.document import Document
from ragweave.models.task import IndexingTask, TaskStatus, TaskType


class MetadataStore(ABC):
    """Abstract base class for metadata storage implementations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create the schema."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""

    # Datasets

    @abstractmethod
    async def create_dataset(self, dataset: Dataset) -> Dataset:
        """
        Insert a dataset.

        Raises:
            ConflictError: If the tenant already has a dataset with that name
        """

    @abstractmethod
    async def get_dataset(self, dataset_id: str) -> Dataset | None:
        """Dataset with derived document / chunk counts."""

    @abstractmethod
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
        """Datasets visible to the caller and their total count."""

    @abstractmethod
    async def update_dataset(self, dataset: Dataset) -> Dataset:
        """
        Replace a dataset's editable fields.

        Raises:
            ConflictError: If the new name is taken
        """

    @abstractmethod
    async def delete_dataset(self, dataset_id: str) -> bool:
        """Delete a dataset with its documents and tasks."""

    # Documents

    @abstractmethod
    async def create_document(self, document: Document) -> Document:
        """Insert a document."""

    @abstractmethod
    async def get_document(self, document_id: str) -> Document | None:
        """Get a document by ID."""

    @abstractmethod
    async def list_documents(
        self,
        dataset_id: str,
        name: str | None = None,
        run: list[TaskStatus] | None = None,
        document_ids: list[str] | None = None,
        page: int | None = None,
        page_size: int | None = None,
        orderby: str = "create_time",
        desc: bool = True,
    ) -> tuple[list[Document], int]:
        """Documents of a dataset and their total count; no paging when page is None."""

    @abstractmethod
    async def update_document(self, document: Document) -> Document:
        """Replace a document's editable fields."""

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a document and its tasks."""

    @abstractmethod
    async def mirror_parse_state(
        self,
        document_id: str,
        run: TaskStatus,
        progress: float,
        progress_msg: str,
        chunk_count: int | None = None,
        token_count: int | None = None,
    ) -> None:
        """Copy the latest parse task state onto its document."""

    @abstractmethod
    async def set_document_counts(self, document_id: str, chunk_count: int, token_count: int) -> None:
        """Set available chunk and token counts of a document."""

    # Tasks

    @abstractmethod
    async def create_task(self, task: IndexingTask) -> IndexingTask:
        """
        Insert an UNSTART task.

        Raises:
            ConflictError: If the target already has a non-terminal task
        """

    @abstractmethod
    async def get_task(self, task_id: str) -> IndexingTask | None:
        """Get a task by ID."""

    @abstractmethod
    async def list_tasks(
        self,
        dataset_id: str | None = None,
        document_id: str | None = None,
        task_type: TaskType | None = None,
        statuses: list[TaskStatus] | None = None,
    ) -> list[IndexingTask]:
        """Tasks ordered by creation time."""

    @abstractmethod
    async def claim_task(self, task_id: str) -> bool:
        """UNSTART -> RUNNING. False if the task is not UNSTART."""

    @abstractmethod
    async def update_task_progress(
        self, task_id: str, progress: float | None = None, message: str | None = None
    ) -> bool:
        """Raise progress (never lowers it) and append a message while RUNNING."""

    @abstractmethod
    async def finish_task(self, task_id: str, status: TaskStatus, message: str) -> bool:
        """RUNNING -> DONE (progress 1) or FAIL (progress -1)."""

    @abstractmethod
    async def cancel_task(self, task_id: str, message: str) -> bool:
        """UNSTART / RUNNING -> CANCEL. False if already terminal."""

    @abstractmethod
    async def requeue_task(self, task_id: str, message: str) -> bool:
        """RUNNING -> UNSTART with retry_count + 1."""

    @abstractmethod
    async def recover_running_tasks(self) -> list[str]:
        """Put RUNNING tasks of a previous process back to UNSTART."""

    @abstractmethod
    async def pending_task_ids(self) -> list[str]:
        """UNSTART task IDs, oldest first."""
