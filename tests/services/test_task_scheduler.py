"""
Tests for the task scheduler.

Executors here are small fakes so the tests exercise only the queue:
claim, retries with backoff, cancellation, follow-ups and recovery.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable

import pytest

from ragweave.config import TaskConfig
from ragweave.core.metadata_store.sqlite_store import SQLiteMetadataStore
from ragweave.models import Dataset, Document, IndexingTask, TaskStatus, TaskType
from ragweave.services.task_scheduler import TaskContext, TaskExecutor, TaskScheduler
from ragweave.utils.exceptions import ConflictError, TaskError, TransientTaskError


class FakeExecutor(TaskExecutor):
    """Executor delegating to a coroutine function, counting calls."""

    def __init__(self, task_type: TaskType, run: Callable | None = None):
        self.task_type = task_type
        self.run = run
        self.calls = 0

    async def execute(self, task: IndexingTask, ctx: TaskContext) -> list[TaskType]:
        self.calls += 1
        if self.run is None:
            return []
        return await self.run(task, ctx, self.calls)


@pytest.fixture
async def store(tmp_path) -> AsyncGenerator[SQLiteMetadataStore, None]:
    metadata_store = SQLiteMetadataStore(db_path=str(tmp_path / "tasks.db"))
    await metadata_store.initialize()
    await metadata_store.create_dataset(
        Dataset(id="ds_1", tenant_id="tenant-a", name="Docs", embedding_model="m@f")
    )
    await metadata_store.create_document(Document(id="doc_1", dataset_id="ds_1", name="a.txt"))
    yield metadata_store
    await metadata_store.close()


def task_config() -> TaskConfig:
    return TaskConfig(num_workers=2, max_retries=2, retry_delay=0.01)


async def start_scheduler(store, *executors) -> TaskScheduler:
    scheduler = TaskScheduler(store, list(executors), task_config())
    await scheduler.start()
    return scheduler


async def wait_until_running(store, task_id: str) -> None:
    for _ in range(200):
        task = await store.get_task(task_id)
        if task.status == TaskStatus.RUNNING:
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"task {task_id} never started")


@pytest.mark.unit
class TestTaskLifecycle:
    """Tests for the happy path and failures."""

    async def test_task_runs_to_done(self, store):
        executor = FakeExecutor(TaskType.RAPTOR)
        scheduler = await start_scheduler(store, executor)
        try:
            task = await scheduler.submit(TaskType.RAPTOR, "ds_1")
            finished = await scheduler.wait_for(task.id, timeout=5)
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.DONE
        assert finished.progress == 1.0
        assert "Task started (attempt 1)." in finished.progress_msg
        assert finished.progress_msg.rstrip().endswith("Task done.")
        assert executor.calls == 1

    async def test_parse_state_mirrored_on_document(self, store):
        async def run(task, ctx, calls):
            await ctx.progress(0.5, "Halfway.")
            return []

        scheduler = await start_scheduler(store, FakeExecutor(TaskType.PARSE, run))
        try:
            task = await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            await scheduler.wait_for(task.id, timeout=5)
        finally:
            await scheduler.stop()

        document = await store.get_document("doc_1")
        assert document.run == TaskStatus.DONE
        assert document.progress == 1.0
        assert "Halfway." in document.progress_msg

    async def test_permanent_failure(self, store):
        async def run(task, ctx, calls):
            raise ValueError("broken input")

        executor = FakeExecutor(TaskType.RAPTOR, run)
        scheduler = await start_scheduler(store, executor)
        try:
            task = await scheduler.submit(TaskType.RAPTOR, "ds_1")
            finished = await scheduler.wait_for(task.id, timeout=5)
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.FAIL
        assert finished.progress == -1.0
        assert "[ERROR] ValueError: broken input" in finished.progress_msg
        assert executor.calls == 1

    async def test_transient_failure_retried(self, store):
        async def run(task, ctx, calls):
            if calls == 1:
                raise TransientTaskError("model busy")
            return []

        executor = FakeExecutor(TaskType.RAPTOR, run)
        scheduler = await start_scheduler(store, executor)
        try:
            task = await scheduler.submit(TaskType.RAPTOR, "ds_1")
            finished = await scheduler.wait_for(task.id, timeout=5)
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.DONE
        assert finished.retry_count == 1
        assert "Retrying" in finished.progress_msg
        assert executor.calls == 2

    async def test_retries_exhausted(self, store):
        async def run(task, ctx, calls):
            raise TransientTaskError("still busy")

        executor = FakeExecutor(TaskType.RAPTOR, run)
        scheduler = await start_scheduler(store, executor)
        try:
            task = await scheduler.submit(TaskType.RAPTOR, "ds_1")
            finished = await scheduler.wait_for(task.id, timeout=5)
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.FAIL
        assert finished.retry_count == 2
        assert executor.calls == 3

    async def test_follow_up_queued(self, store):
        async def run(task, ctx, calls):
            return [TaskType.GRAPHRAG]

        graph_executor = FakeExecutor(TaskType.GRAPHRAG)
        scheduler = await start_scheduler(store, FakeExecutor(TaskType.RAPTOR, run), graph_executor)
        try:
            await scheduler.submit(TaskType.RAPTOR, "ds_1")
            await scheduler.join()
        finally:
            await scheduler.stop()

        tasks = await store.list_tasks(dataset_id="ds_1", task_type=TaskType.GRAPHRAG)
        assert [t.status for t in tasks] == [TaskStatus.DONE]
        assert graph_executor.calls == 1


@pytest.mark.unit
class TestTaskControl:
    """Tests for submission rules and cancellation."""

    async def test_unknown_task_type(self, store):
        scheduler = TaskScheduler(store, [FakeExecutor(TaskType.RAPTOR)], task_config())

        with pytest.raises(TaskError):
            await scheduler.submit(TaskType.GRAPHRAG, "ds_1")

    async def test_one_active_task_per_target(self, store):
        release = asyncio.Event()

        async def run(task, ctx, calls):
            await release.wait()
            return []

        scheduler = await start_scheduler(store, FakeExecutor(TaskType.PARSE, run))
        try:
            task = await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            with pytest.raises(ConflictError):
                await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            release.set()
            await scheduler.wait_for(task.id, timeout=5)

            # A terminal task frees the target
            again = await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            assert (await scheduler.wait_for(again.id, timeout=5)).status == TaskStatus.DONE
        finally:
            await scheduler.stop()

    async def test_cancel_running_task(self, store):
        async def run(task, ctx, calls):
            while True:
                ctx.check_cancelled()
                await asyncio.sleep(0.01)

        scheduler = await start_scheduler(store, FakeExecutor(TaskType.PARSE, run))
        try:
            task = await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            await wait_until_running(store, task.id)

            assert await scheduler.cancel(task.id) is True
            finished = await scheduler.wait_for(task.id, timeout=5)
            await scheduler.join()
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.CANCEL
        assert await scheduler.cancel(task.id) is False
        document = await store.get_document("doc_1")
        assert document.run == TaskStatus.CANCEL

    async def test_cancel_committed_during_claim_stops_executor(self, store, monkeypatch):
        scheduler = None
        claim = store.claim_task

        async def claim_then_cancel(task_id):
            claimed = await claim(task_id)
            await scheduler.cancel(task_id)
            return claimed

        reached = []

        async def run(task, ctx, calls):
            ctx.check_cancelled()
            reached.append(task.id)
            return []

        monkeypatch.setattr(store, "claim_task", claim_then_cancel)
        scheduler = await start_scheduler(store, FakeExecutor(TaskType.PARSE, run))
        try:
            task = await scheduler.submit(TaskType.PARSE, "ds_1", "doc_1")
            finished = await scheduler.wait_for(task.id, timeout=5)
            await scheduler.join()
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.CANCEL
        assert reached == []

    async def test_running_task_recovered_on_start(self, store):
        task = IndexingTask(id="task_1", task_type=TaskType.RAPTOR, dataset_id="ds_1")
        await store.create_task(task)
        await store.claim_task("task_1")

        executor = FakeExecutor(TaskType.RAPTOR)
        scheduler = await start_scheduler(store, executor)
        try:
            finished = await scheduler.wait_for("task_1", timeout=5)
        finally:
            await scheduler.stop()

        assert finished.status == TaskStatus.DONE
        assert executor.calls == 1
