"""
Tests for RAPTOR summaries.
"""

import pytest

from ragweave.config import RaptorConfig, TokenizerConfig
from ragweave.core.tokenizer import Tokenizer
from ragweave.models import ChunkKind, RaptorSettings, TaskStatus, TaskType
from ragweave.services.raptor import RaptorSummarizer
from ragweave.utils.exceptions import LLMError


@pytest.fixture
def summarizer(llm, embedder) -> RaptorSummarizer:
    return RaptorSummarizer(
        llm=llm,
        embedder=embedder,
        tokenizer=Tokenizer(TokenizerConfig(provider="approximate")),
        config=RaptorConfig(),
    )


@pytest.mark.unit
class TestRaptorSummarizer:
    """Tests for the cluster-and-summarize loop."""

    async def test_two_nodes_form_one_cluster(self, summarizer, llm):
        nodes = await summarizer.build(
            [("Paris is in France.", [1.0, 0.0]), ("Berlin is in Germany.", [0.0, 1.0])],
            RaptorSettings(),
        )

        assert len(nodes) == 1
        assert nodes[0].layer == 1
        assert nodes[0].children == [0, 1]
        assert nodes[0].content == "Summary of related passages."
        assert "Paris is in France.\nBerlin is in Germany." in llm.prompts[0]

    async def test_single_chunk_has_no_summary(self, summarizer, llm):
        nodes = await summarizer.build([("Only one.", [1.0, 0.0])], RaptorSettings())

        assert nodes == []
        assert llm.prompts == []

    async def test_summary_truncated_to_max_token(self, summarizer, llm):
        llm.text = lambda prompt: "word " * 100

        nodes = await summarizer.build(
            [("a", [1.0, 0.0]), ("b", [0.0, 1.0])], RaptorSettings(max_token=5)
        )

        assert len(nodes[0].content) <= 20

    async def test_empty_summary_fails(self, summarizer, llm):
        llm.text = lambda prompt: "   "

        with pytest.raises(LLMError):
            await summarizer.build([("a", [1.0, 0.0]), ("b", [0.0, 1.0])], RaptorSettings())

    def test_clusters_cover_every_vector(self, summarizer):
        vectors = [
            [1.0, 0.0, 0.0, 0.0],
            [0.9, 0.1, 0.0, 0.0],
            [0.95, 0.05, 0.0, 0.0],
            [0.0, 0.0, 1.0, 0.0],
            [0.0, 0.1, 0.9, 0.0],
            [0.0, 0.05, 0.95, 0.0],
        ]

        clusters = summarizer.cluster(vectors, RaptorSettings(max_cluster=2))

        assert {i for members in clusters for i in members} == set(range(6))
        assert all(1 <= len(members) <= 2 for members in clusters)


@pytest.mark.unit
class TestRaptorTask:
    """Tests for RAPTOR as a follow-up of parsing."""

    async def test_parse_queues_raptor(self, container, caller, create_dataset, ingest):
        dataset = await create_dataset(
            parser_config={"chunk_token_num": 8, "delimiter": "\n", "raptor": {"use_raptor": True}}
        )

        document = await ingest(dataset.id)

        tasks = await container.metadata_store.list_tasks(
            document_id=document.id, task_type=TaskType.RAPTOR
        )
        assert [t.status for t in tasks] == [TaskStatus.DONE]
        summaries = await container.chunk_index.list_chunks(
            dataset.id, document_id=document.id, kind=ChunkKind.RAPTOR
        )
        assert summaries
        assert all(s.raptor_layer >= 1 for s in summaries)
        assert all(s.embedding_model == dataset.embedding_model for s in summaries)

    async def test_rerun_replaces_summaries(self, container, caller, create_dataset, ingest):
        dataset = await create_dataset(
            parser_config={"chunk_token_num": 8, "delimiter": "\n", "raptor": {"use_raptor": True}}
        )
        document = await ingest(dataset.id)
        before = await container.chunk_index.list_chunks(
            dataset.id, document_id=document.id, kind=ChunkKind.RAPTOR
        )

        task = await container.knowledge_base.run_raptor(caller, dataset.id)
        finished = await container.scheduler.wait_for(task.id, timeout=10)

        assert finished.status == TaskStatus.DONE
        assert (await container.knowledge_base.trace_raptor(caller, dataset.id)).id == task.id
        after = await container.chunk_index.list_chunks(
            dataset.id, document_id=document.id, kind=ChunkKind.RAPTOR
        )
        assert [c.id for c in after] == [c.id for c in before]
