"""
Tests for the SQLite metadata store.

Tests cover:
1. Dataset names unique per tenant, team visibility
2. Counters derived from documents
3. Document filters and paging
4. Guarded task transitions and monotonic progress
5. Crash recovery of RUNNING tasks
"""

from collections.abc import AsyncGenerator

import pytest

from ragweave.core.metadata_store.sqlite_store import SQLiteMetadataStore
from ragweave.models import (
    Caller,
    Dataset,
    DatasetPermission,
    Document,
    IndexingTask,
    TaskStatus,
    TaskType,
)
from ragweave.utils.exceptions import ConflictError, ValidationError


@pytest.fixture
async def store(tmp_path) -> AsyncGenerator[SQLiteMetadataStore, None]:
    metadata_store = SQLiteMetadataStore(db_path=str(tmp_path / "meta.db"))
    await metadata_store.initialize()
    yield metadata_store
    await metadata_store.close()


def make_dataset(dataset_id: str = "ds_1", tenant_id: str = "tenant-a", name: str = "Docs", **kw) -> Dataset:
    return Dataset(id=dataset_id, tenant_id=tenant_id, name=name, embedding_model="m@f", **kw)


def make_document(document_id: str, dataset_id: str = "ds_1", **kw) -> Document:
    return Document(id=document_id, dataset_id=dataset_id, name=f"{document_id}.txt", **kw)


def make_task(task_id: str, document_id: str | None = "doc_1", task_type=TaskType.PARSE) -> IndexingTask:
    return IndexingTask(id=task_id, task_type=task_type, dataset_id="ds_1", document_id=document_id)


@pytest.mark.unit
class TestDatasets:
    """Tests for dataset rows."""

    async def test_create_and_get(self, store):
        await store.create_dataset(make_dataset())

        dataset = await store.get_dataset("ds_1")

        assert dataset.name == "Docs"
        assert dataset.document_count == 0
        assert await store.get_dataset("ds_missing") is None

    async def test_name_unique_per_tenant_case_insensitive(self, store):
        await store.create_dataset(make_dataset())

        with pytest.raises(ConflictError):
            await store.create_dataset(make_dataset("ds_2", name="docs"))

        # Another tenant may reuse the name
        await store.create_dataset(make_dataset("ds_3", tenant_id="tenant-b", name="Docs"))

    async def test_rename_to_taken_name(self, store):
        await store.create_dataset(make_dataset())
        other = await store.create_dataset(make_dataset("ds_2", name="Other"))

        other.name = "DOCS"
        with pytest.raises(ConflictError):
            await store.update_dataset(other)

    async def test_list_with_team_visibility(self, store):
        await store.create_dataset(make_dataset("ds_1", tenant_id="tenant-a", name="Mine"))
        await store.create_dataset(
            make_dataset("ds_2", tenant_id="tenant-b", name="Shared", permission=DatasetPermission.TEAM)
        )
        await store.create_dataset(make_dataset("ds_3", tenant_id="tenant-b", name="Private"))

        datasets, total = await store.list_datasets(
            Caller(tenant_id="tenant-a", team_ids=["tenant-b"]), orderby="name", desc=False
        )

        assert total == 2
        assert [d.name for d in datasets] == ["Mine", "Shared"]

    async def test_invalid_orderby(self, store):
        with pytest.raises(ValidationError):
            await store.list_datasets(Caller(tenant_id="tenant-a"), orderby="size; DROP TABLE")

    async def test_counters_derived_from_documents(self, store):
        await store.create_dataset(make_dataset())
        await store.create_document(make_document("doc_1"))
        await store.create_document(make_document("doc_2"))
        await store.set_document_counts("doc_1", chunk_count=3, token_count=30)
        await store.set_document_counts("doc_2", chunk_count=2, token_count=12)

        dataset = await store.get_dataset("ds_1")

        assert dataset.document_count == 2
        assert dataset.chunk_count == 5
        assert dataset.token_count == 42

    async def test_delete_cascades(self, store):
        await store.create_dataset(make_dataset())
        await store.create_document(make_document("doc_1"))

        assert await store.delete_dataset("ds_1") is True
        assert await store.get_document("doc_1") is None
        assert await store.delete_dataset("ds_1") is False


@pytest.mark.unit
class TestDocuments:
    """Tests for document rows."""

    async def test_filters_and_paging(self, store):
        await store.create_dataset(make_dataset())
        for i in range(5):
            await store.create_document(make_document(f"doc_{i}", meta_fields={"i": i}))
        await store.mirror_parse_state("doc_1", TaskStatus.DONE, 1.0, "done")
        await store.mirror_parse_state("doc_2", TaskStatus.FAIL, -1.0, "failed")

        page, total = await store.list_documents("ds_1", page=1, page_size=2, orderby="name", desc=False)
        assert total == 5
        assert [d.id for d in page] == ["doc_0", "doc_1"]

        done, total = await store.list_documents("ds_1", run=[TaskStatus.DONE, TaskStatus.FAIL])
        assert total == 2
        assert {d.id for d in done} == {"doc_1", "doc_2"}

        selected, _ = await store.list_documents("ds_1", document_ids=["doc_3"])
        assert [d.meta_fields for d in selected] == [{"i": 3}]

        assert await store.list_documents("ds_1", document_ids=[]) == ([], 0)

    async def test_update_keeps_parse_state(self, store):
        await store.create_dataset(make_dataset())
        await store.create_document(make_document("doc_1"))
        await store.mirror_parse_state("doc_1", TaskStatus.DONE, 1.0, "done", chunk_count=4, token_count=9)

        document = await store.get_document("doc_1")
        document.enabled = False
        document.run = TaskStatus.UNSTART
        await store.update_document(document)

        stored = await store.get_document("doc_1")
        assert stored.enabled is False
        assert stored.run == TaskStatus.DONE
        assert stored.chunk_count == 4


@pytest.mark.unit
class TestTasks:
    """Tests for task transitions."""

    @pytest.fixture(autouse=True)
    async def dataset(self, store):
        await store.create_dataset(make_dataset())
        await store.create_document(make_document("doc_1"))

    async def test_one_active_task_per_target(self, store):
        await store.create_task(make_task("task_1"))

        with pytest.raises(ConflictError):
            await store.create_task(make_task("task_2"))

        # Dataset level tasks have their own target
        await store.create_task(make_task("task_3", document_id=None, task_type=TaskType.GRAPHRAG))

    async def test_new_task_after_terminal(self, store):
        await store.create_task(make_task("task_1"))
        await store.cancel_task("task_1", "stop")

        await store.create_task(make_task("task_2"))

        assert (await store.get_task("task_2")).status == TaskStatus.UNSTART

    async def test_claim_only_once(self, store):
        await store.create_task(make_task("task_1"))

        assert await store.claim_task("task_1") is True
        assert await store.claim_task("task_1") is False
        assert (await store.get_task("task_1")).begin_at is not None

    async def test_progress_is_monotonic(self, store):
        await store.create_task(make_task("task_1"))
        await store.claim_task("task_1")

        await store.update_task_progress("task_1", progress=0.6, message="chunked")
        await store.update_task_progress("task_1", progress=0.3, message="late report")

        task = await store.get_task("task_1")
        assert task.progress == 0.6
        assert "chunked" in task.progress_msg
        assert task.progress_msg.index("chunked") < task.progress_msg.index("late report")

    async def test_progress_ignored_unless_running(self, store):
        await store.create_task(make_task("task_1"))

        assert await store.update_task_progress("task_1", progress=0.5) is False

    async def test_finish_sets_progress(self, store):
        await store.create_task(make_task("task_1"))
        await store.claim_task("task_1")
        assert await store.finish_task("task_1", TaskStatus.DONE, "done") is True
        assert (await store.get_task("task_1")).progress == 1.0

        await store.create_task(make_task("task_2"))
        await store.claim_task("task_2")
        await store.finish_task("task_2", TaskStatus.FAIL, "boom")
        assert (await store.get_task("task_2")).progress == -1.0

    async def test_finish_requires_running(self, store):
        await store.create_task(make_task("task_1"))

        assert await store.finish_task("task_1", TaskStatus.DONE, "done") is False
        with pytest.raises(ValidationError):
            await store.finish_task("task_1", TaskStatus.CANCEL, "nope")

    async def test_cancelled_task_cannot_finish(self, store):
        await store.create_task(make_task("task_1"))
        await store.claim_task("task_1")

        assert await store.cancel_task("task_1", "stop") is True
        assert await store.finish_task("task_1", TaskStatus.DONE, "done") is False
        assert (await store.get_task("task_1")).status == TaskStatus.CANCEL
        assert await store.cancel_task("task_1", "again") is False

    async def test_requeue_counts_retries(self, store):
        await store.create_task(make_task("task_1"))
        await store.claim_task("task_1")

        assert await store.requeue_task("task_1", "retry") is True

        task = await store.get_task("task_1")
        assert task.status == TaskStatus.UNSTART
        assert task.retry_count == 1

    async def test_recover_running_tasks(self, store):
        await store.create_task(make_task("task_1"))
        await store.claim_task("task_1")

        recovered = await store.recover_running_tasks()

        assert recovered == ["task_1"]
        assert (await store.get_task("task_1")).status == TaskStatus.UNSTART
        assert await store.pending_task_ids() == ["task_1"]

    async def test_list_tasks_filters(self, store):
        await store.create_task(make_task("task_1"))
        await store.create_task(make_task("task_2", document_id=None, task_type=TaskType.RAPTOR))

        raptor = await store.list_tasks(dataset_id="ds_1", task_type=TaskType.RAPTOR)
        active = await store.list_tasks(statuses=[TaskStatus.UNSTART])

        assert [t.id for t in raptor] == ["task_2"]
        assert {t.id for t in active} == {"task_1", "task_2"}
