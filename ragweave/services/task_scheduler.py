"""
Task scheduler: persistent task queue and worker pool.

Tasks live in the metadata store. An in-process asyncio.Queue carries task
ids to N worker coroutines, and each worker owns a task from claim to
terminal state:

    UNSTART -> RUNNING -> DONE | FAIL | CANCEL

Execution is serialized per target (a document, or a dataset and task type
for dataset-level jobs) so a cancelled task still winding down never
overlaps its successor.
"""

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections import defaultdict

from ragweave.config import TaskConfig
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.models.task import IndexingTask, TaskStatus, TaskType
from ragweave.utils.exceptions import (
    ConflictError,
    EmbeddingError,
    LLMError,
    NotFoundError,
    StoreError,
    TaskCancelledError,
    TaskError,
    TransientTaskError,
)
from ragweave.utils.id_generator import generate_task_id
from ragweave.utils.logger import get_logger, task_log_context

logger = get_logger(__name__)

RETRYABLE_ERRORS = (TransientTaskError, StoreError, EmbeddingError, LLMError)


class TaskContext:
    """
    Handle an executor uses to report progress and observe cancellation.

    Progress and messages are written only while the task is RUNNING; parse
    tasks mirror them onto their document.
    """

    def __init__(
        self,
        task: IndexingTask,
        metadata_store: MetadataStore,
        cancel_event: asyncio.Event,
        scheduler: "TaskScheduler",
    ):
        self.task = task
        self.metadata_store = metadata_store
        self._cancel_event = cancel_event
        self._scheduler = scheduler

    @property
    def task_id(self) -> str:
        return self.task.id

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def check_cancelled(self) -> None:
        """
        Raises:
            TaskCancelledError: If a stop was requested
        """
        if self._cancel_event.is_set():
            raise TaskCancelledError("Task cancelled", context={"task_id": self.task.id})

    async def progress(self, progress: float | None = None, message: str | None = None) -> None:
        """Record progress (monotonic) and append a timestamped message."""
        updated = await self.metadata_store.update_task_progress(
            self.task.id, progress=progress, message=message
        )
        if updated and self.task.task_type == TaskType.PARSE:
            await self._scheduler.mirror_document(self.task.id)

    def document_lock(self, document_id: str) -> contextlib.AbstractAsyncContextManager:
        """Lock of a document; a no-op for the document this task already holds."""
        if self.task.document_id == document_id:
            return contextlib.nullcontext()
        return self._scheduler.document_lock(document_id)


class TaskExecutor(ABC):
    """Runs one kind of indexing task."""

    task_type: TaskType

    @abstractmethod
    async def execute(self, task: IndexingTask, ctx: TaskContext) -> list[TaskType]:
        """
        Run the task to completion.

        Args:
            task: Claimed task (RUNNING)
            ctx: Progress and cancellation handle

        Returns:
            Task types to queue next for the same target, in order

        Raises:
            TaskCancelledError: When ctx.check_cancelled() observes a stop
            RagWeaveError: Retryable or permanent failures
        """


class TaskScheduler:
    """
    Persistent queue with a pool of worker coroutines.

    Retry policy: transient failures (TransientTaskError, store, embedding and
    LLM errors) go back to UNSTART after `retry_delay * 2**attempt` seconds,
    up to `max_retries`; everything else fails the task at once.
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        executors: list[TaskExecutor],
        config: TaskConfig | None = None,
    ):
        """
        Initialize scheduler.

        Args:
            metadata_store: Store holding the task queue
            executors: One executor per task type
            config: Worker pool and retry settings
        """
        self.metadata_store = metadata_store
        self.executors = {executor.task_type: executor for executor in executors}
        self.config = config or TaskConfig()

        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._delayed: set[asyncio.Task] = set()
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._target_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def running(self) -> bool:
        return bool(self._workers)

    async def start(self) -> None:
        """Recover interrupted tasks, enqueue pending ones and start the workers."""
        if self._workers:
            return
        await self.metadata_store.recover_running_tasks()
        for task_id in await self.metadata_store.pending_task_ids():
            self._queue.put_nowait(task_id)

        self._workers = [
            asyncio.create_task(self._worker(i), name=f"task-worker-{i}")
            for i in range(self.config.num_workers)
        ]
        logger.info(
            f"Task scheduler started with {self.config.num_workers} workers",
            extra={"pending": self._queue.qsize()},
        )

    async def stop(self) -> None:
        """Stop the workers. RUNNING tasks are recovered on the next start."""
        for task in [*self._workers, *self._delayed]:
            task.cancel()
        await asyncio.gather(*self._workers, *self._delayed, return_exceptions=True)
        self._workers = []
        self._delayed.clear()
        logger.info("Task scheduler stopped")

    async def join(self) -> None:
        """Wait until every queued and delayed task has been processed."""
        while True:
            await self._queue.join()
            if not self._delayed:
                return
            await asyncio.gather(*list(self._delayed), return_exceptions=True)

    def document_lock(self, document_id: str) -> asyncio.Lock:
        return self._target_locks[document_id]

    async def settle(self, tasks: list[IndexingTask]) -> None:
        """Wait until no worker is executing any of `tasks`."""
        for target in {task.target for task in tasks}:
            async with self._target_locks[target]:
                pass

    # ═══════════════════════════════════════════════════════════
    # PUBLIC OPERATIONS
    # ═══════════════════════════════════════════════════════════

    async def submit(
        self, task_type: TaskType, dataset_id: str, document_id: str | None = None
    ) -> IndexingTask:
        """
        Create an UNSTART task and queue it.

        Raises:
            ConflictError: If the target already has a non-terminal task
            TaskError: If no executor handles the task type
        """
        if task_type not in self.executors:
            raise TaskError(f"No executor for task type {task_type.value}")

        task = IndexingTask(
            id=generate_task_id(),
            task_type=task_type,
            dataset_id=dataset_id,
            document_id=document_id,
        )
        await self.metadata_store.create_task(task)
        if task_type == TaskType.PARSE and document_id:
            await self.metadata_store.mirror_parse_state(document_id, TaskStatus.UNSTART, 0.0, "")

        self._queue.put_nowait(task.id)
        logger.info(
            f"Queued {task_type.value} task",
            extra={"task_id": task.id, "dataset_id": dataset_id, "document_id": document_id},
        )
        return task

    async def cancel(self, task_id: str, message: str = "Task cancelled by user.") -> bool:
        """
        Move a non-terminal task to CANCEL and signal its worker.

        Returns:
            False if the task was already terminal

        Raises:
            NotFoundError: If the task doesn't exist
        """
        task = await self.metadata_store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found", context={"task_id": task_id})

        cancelled = await self.metadata_store.cancel_task(task_id, message)
        event = self._cancel_events.get(task_id)
        if event is not None:
            event.set()
        if cancelled:
            await self.mirror_document(task_id)
            logger.info("Task cancelled", extra={"task_id": task_id})
        return cancelled

    async def wait_for(
        self, task_id: str, timeout: float = 60.0, poll_interval: float = 0.05
    ) -> IndexingTask:
        """
        Poll a task until it reaches a terminal state.

        Raises:
            NotFoundError: If the task doesn't exist
            TaskError: On timeout
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            task = await self.metadata_store.get_task(task_id)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found", context={"task_id": task_id})
            if task.status.is_terminal:
                return task
            if loop.time() >= deadline:
                raise TaskError(
                    f"Timed out waiting for task {task_id}",
                    context={"task_id": task_id, "status": task.status.value},
                )
            await asyncio.sleep(poll_interval)

    async def mirror_document(self, task_id: str) -> None:
        """Copy a parse task's state onto its document."""
        task = await self.metadata_store.get_task(task_id)
        if task is None or task.task_type != TaskType.PARSE or not task.document_id:
            return
        await self.metadata_store.mirror_parse_state(
            task.document_id, task.status, task.progress, task.progress_msg
        )

    # ═══════════════════════════════════════════════════════════
    # WORKERS
    # ═══════════════════════════════════════════════════════════

    async def _worker(self, worker_id: int) -> None:
        while True:
            task_id = await self._queue.get()
            try:
                await self._run(task_id)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Worker {worker_id} crashed on task {task_id}: {e}",
                    extra={"task_id": task_id, "error_type": type(e).__name__},
                )
            finally:
                self._queue.task_done()

    async def _run(self, task_id: str) -> None:
        task = await self.metadata_store.get_task(task_id)
        if task is None or task.status != TaskStatus.UNSTART:
            return

        with task_log_context(task_id, task.dataset_id, task.document_id):
            async with self._target_locks[task.target]:
                await self._execute(task)

    async def _execute(self, task: IndexingTask) -> None:
        task_id = task.id
        # Registered before the claim so a cancel committed meanwhile still reaches it
        event = self._cancel_events.setdefault(task_id, asyncio.Event())
        if not await self.metadata_store.claim_task(task_id):
            self._cancel_events.pop(task_id, None)
            return
        task.status = TaskStatus.RUNNING

        ctx = TaskContext(task, self.metadata_store, event, self)
        attempt = task.retry_count + 1
        logger.info(
            f"Running {task.task_type.value} task",
            extra={"task_id": task_id, "target": task.target, "attempt": attempt},
        )
        await ctx.progress(message=f"Task started (attempt {attempt}).")

        try:
            follow_ups = await self.executors[task.task_type].execute(task, ctx)
        except TaskCancelledError:
            logger.info("Task stopped after cancellation", extra={"task_id": task_id})
        except RETRYABLE_ERRORS as e:
            await self._retry_or_fail(task, e)
        except Exception as e:
            logger.error(
                f"Task {task_id} failed: {e}",
                extra={"task_id": task_id, "error_type": type(e).__name__},
            )
            await self.metadata_store.finish_task(
                task_id, TaskStatus.FAIL, f"[ERROR] {type(e).__name__}: {e}"
            )
        else:
            if await self.metadata_store.finish_task(task_id, TaskStatus.DONE, "Task done."):
                logger.info("Task done", extra={"task_id": task_id})
                await self._queue_follow_ups(task, follow_ups)
        finally:
            self._cancel_events.pop(task_id, None)
            await self.mirror_document(task_id)

    async def _retry_or_fail(self, task: IndexingTask, error: Exception) -> None:
        attempt = task.retry_count
        if attempt < self.config.max_retries:
            delay = self.config.retry_delay * (2**attempt)
            logger.warning(
                f"Task {task.id} failed (attempt {attempt + 1}/{self.config.max_retries + 1}): "
                f"{error}. Retrying in {delay}s...",
                extra={"task_id": task.id, "error_type": type(error).__name__},
            )
            requeued = await self.metadata_store.requeue_task(
                task.id, f"[WARN] {type(error).__name__}: {error}. Retrying in {delay}s."
            )
            if requeued:
                delayed = asyncio.create_task(self._enqueue_later(task.id, delay))
                self._delayed.add(delayed)
                delayed.add_done_callback(self._delayed.discard)
            return

        logger.error(
            f"Task {task.id} failed after {attempt + 1} attempts",
            extra={"task_id": task.id, "error": str(error), "error_type": type(error).__name__},
        )
        await self.metadata_store.finish_task(
            task.id, TaskStatus.FAIL, f"[ERROR] {type(error).__name__}: {error}"
        )

    async def _enqueue_later(self, task_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self._queue.put_nowait(task_id)

    async def _queue_follow_ups(self, task: IndexingTask, follow_ups: list[TaskType]) -> None:
        if not follow_ups:
            return
        next_type = follow_ups[0]
        try:
            await self.submit(next_type, task.dataset_id, task.document_id)
        except (ConflictError, TaskError) as e:
            logger.warning(
                f"Could not queue follow-up {next_type.value} task: {e}",
                extra={"task_id": task.id},
            )
