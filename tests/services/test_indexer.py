"""
Tests for the embedder / indexer gateway.
"""

import pytest

from ragweave.models import Chunk, ChunkDraft, ChunkKind
from ragweave.utils.exceptions import ValidationError


@pytest.mark.unit
class TestIndexerGateway:
    """Tests for chunk building and writing."""

    async def test_enrichment_adds_keywords_and_questions(
        self, container, caller, llm, create_dataset, ingest
    ):
        llm.handlers["KeywordList"] = lambda prompt: {"keywords": [" capital ", "capital", "", "city", "extra"]}
        llm.handlers["QuestionList"] = lambda prompt: {"questions": ["Which city is the capital?"]}
        dataset = await create_dataset(
            parser_config={
                "chunk_token_num": 8,
                "delimiter": "\n",
                "auto_keywords": 2,
                "auto_questions": 1,
            }
        )

        document = await ingest(dataset.id)

        _, chunks, _ = await container.knowledge_base.list_chunks(caller, dataset.id, document.id)
        assert chunks[0].important_keywords == ["capital", "city"]
        assert chunks[0].questions == ["Which city is the capital?"]

        vector = await container.models.get_embedder(dataset.embedding_model).embed(
            "Which city is the capital?"
        )
        hits = await container.chunk_index.search(dataset.id, vector, limit=1)
        assert hits[0].anchor == "q0"
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    async def test_build_chunks_is_deterministic(self, container, caller, create_dataset):
        dataset = await create_dataset()
        document = await container.knowledge_base.upload_document(caller, dataset.id, "a.txt", b"x")
        drafts = [ChunkDraft(text="one", positions=[1]), ChunkDraft(text="two", positions=[2])]

        first = container.indexer.build_chunks(dataset, document, drafts)
        second = container.indexer.build_chunks(dataset, document, drafts)

        assert [c.id for c in first] == [c.id for c in second]
        assert len({c.id for c in first}) == 2
        assert [c.order for c in first] == [0, 1]
        assert all(c.id.startswith(f"{document.id}_chunk_") for c in first)

    async def test_mixed_embedding_model_rejected(self, container, caller, create_dataset):
        dataset = await create_dataset()
        document = await container.knowledge_base.upload_document(caller, dataset.id, "a.txt", b"x")
        chunk = Chunk(
            id="c1",
            document_id=document.id,
            dataset_id=dataset.id,
            content="text",
            embedding_model="other-embed@test",
        )

        with pytest.raises(ValidationError, match="same embedding model"):
            await container.indexer.write_chunks(dataset, document, [chunk], ChunkKind.BASE)

    async def test_empty_write_clears_kind(self, container, caller, create_dataset, ingest):
        dataset = await create_dataset()
        document = await ingest(dataset.id)

        written = await container.indexer.write_chunks(dataset, document, [], ChunkKind.BASE)

        assert written == []
        assert await container.chunk_index.count_chunks(dataset.id, document_id=document.id) == 0
        refreshed = await container.metadata_store.get_document(document.id)
        assert refreshed.chunk_count == 0
