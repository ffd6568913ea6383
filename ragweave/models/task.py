"""
Indexing task model.

Lifecycle: UNSTART -> RUNNING -> {DONE, FAIL, CANCEL}; any non-terminal
state may move to CANCEL on a stop request.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class TaskStatus(str, Enum):
    """Task (and document parse) status."""

    UNSTART = "UNSTART"
    RUNNING = "RUNNING"
    CANCEL = "CANCEL"
    DONE = "DONE"
    FAIL = "FAIL"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.CANCEL, TaskStatus.DONE, TaskStatus.FAIL)


class TaskType(str, Enum):
    """Kinds of indexing work."""

    PARSE = "parse"
    RAPTOR = "raptor"
    GRAPHRAG = "graphrag"


class IndexingTask(BaseModel):
    """
    A unit of indexing work persisted in the task queue.

    Document-scoped tasks carry a `document_id`; dataset-level raptor and
    graphrag jobs leave it unset.
    """

    id: str = Field(..., description="Unique task ID (task_xxx)")
    task_type: TaskType = Field(..., description="parse, raptor or graphrag")
    dataset_id: str = Field(..., description="Owning dataset ID")
    document_id: str | None = Field(default=None, description="Target document (None for dataset jobs)")

    status: TaskStatus = Field(default=TaskStatus.UNSTART)
    progress: float = Field(default=0.0, ge=-1.0, le=1.0, description="0..1, -1 on failure")
    progress_msg: str = Field(default="", description="Append-only timestamped log")
    retry_count: int = Field(default=0, ge=0)

    create_time: datetime = Field(default_factory=datetime.now)
    begin_at: datetime | None = None
    update_time: datetime = Field(default_factory=datetime.now)
    finish_at: datetime | None = None

    @property
    def target(self) -> str:
        """Key identifying what the task works on; one active task per target."""
        if self.document_id:
            return self.document_id
        return f"{self.dataset_id}:{self.task_type.value}"
