"""
Tests for hybrid retrieval over parsed datasets.

Embeddings come from the hashing embedder, so a chunk sharing more words
with the question ranks higher.
"""

import pytest

from ragweave.models import (
    Caller,
    ComparisonOperator,
    Condition,
    DatasetCreate,
    DocumentUpdate,
    MetadataCondition,
    RetrievalRequest,
)
from ragweave.utils.exceptions import NotFoundError, PermissionDeniedError, ValidationError

RERANK_MODEL = "overlap-rerank@test"

FRUIT_TEXT = (
    "Apples are red or green fruits grown in orchards.\n"
    "Germany grows many apples in the capital region.\n"
)


@pytest.fixture
async def cities(create_dataset, ingest):
    dataset = await create_dataset()
    document = await ingest(dataset.id)
    return dataset, document


@pytest.mark.unit
class TestRetrieve:
    """Tests for ranking and filtering."""

    async def test_best_match_first(self, container, caller, cities):
        dataset, document = cities

        result = await container.retrieval.retrieve(
            RetrievalRequest(question="capital of Germany", dataset_ids=[dataset.id]), caller
        )

        assert result.total >= 1
        top = result.chunks[0]
        assert top.content == "Berlin is the capital city of Germany."
        assert top.document_id == document.id
        assert top.document_keyword == "cities.txt"
        assert top.dataset_id == dataset.id
        assert not any("Bananas" in chunk.content for chunk in result.chunks)
        similarities = [chunk.similarity for chunk in result.chunks]
        assert similarities == sorted(similarities, reverse=True)

    async def test_threshold_filters_everything(self, container, caller, cities):
        dataset, _ = cities

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital of Germany", dataset_ids=[dataset.id], similarity_threshold=0.99
            ),
            caller,
        )

        assert result.chunks == []
        assert result.total == 0

    async def test_doc_aggs_count_ranked_chunks(self, container, caller, cities, ingest):
        dataset, _ = cities
        await ingest(dataset.id, filename="fruit.txt", text=FRUIT_TEXT)

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital of Germany", dataset_ids=[dataset.id], similarity_threshold=0.0
            ),
            caller,
        )

        assert {agg.doc_name for agg in result.doc_aggs} == {"cities.txt", "fruit.txt"}
        assert sum(agg.count for agg in result.doc_aggs) == result.total
        counts = [agg.count for agg in result.doc_aggs]
        assert counts == sorted(counts, reverse=True)

    async def test_top_k_spans_all_datasets(self, container, caller, cities, create_dataset, ingest):
        dataset, _ = cities
        second = await create_dataset(name="More cities")
        await ingest(second.id)

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital city",
                dataset_ids=[dataset.id, second.id],
                top_k=2,
                similarity_threshold=0.0,
            ),
            caller,
        )

        assert result.total == 2

    async def test_pagination(self, container, caller, cities):
        dataset, _ = cities
        request = dict(question="capital city", dataset_ids=[dataset.id], similarity_threshold=0.0)

        full = await container.retrieval.retrieve(RetrievalRequest(**request), caller)
        second = await container.retrieval.retrieve(
            RetrievalRequest(**request, page=2, page_size=2), caller
        )

        assert second.total == full.total
        assert [c.id for c in second.chunks] == [c.id for c in full.chunks[2:4]]

    async def test_disabled_document_excluded(self, container, caller, cities):
        dataset, document = cities
        await container.knowledge_base.update_document(
            caller, dataset.id, document.id, DocumentUpdate(enabled=False)
        )

        result = await container.retrieval.retrieve(
            RetrievalRequest(question="capital of Germany", dataset_ids=[dataset.id]), caller
        )

        assert result.chunks == []

    async def test_document_filter(self, container, caller, cities, ingest):
        dataset, document = cities
        fruit = await ingest(dataset.id, filename="fruit.txt", text=FRUIT_TEXT)

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital of Germany",
                document_ids=[fruit.id],
                similarity_threshold=0.0,
            ),
            caller,
        )

        assert result.chunks
        assert {chunk.document_id for chunk in result.chunks} == {fruit.id}

    async def test_metadata_condition(self, container, caller, cities, ingest):
        dataset, document = cities
        fruit = await ingest(dataset.id, filename="fruit.txt", text=FRUIT_TEXT)
        await container.knowledge_base.update_document(
            caller, dataset.id, fruit.id, DocumentUpdate(meta_fields={"topic": "food"})
        )

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital of Germany",
                dataset_ids=[dataset.id],
                similarity_threshold=0.0,
                metadata_condition=MetadataCondition(
                    conditions=[
                        Condition(name="topic", comparison_operator=ComparisonOperator.IS, value="food")
                    ]
                ),
            ),
            caller,
        )

        assert {chunk.document_id for chunk in result.chunks} == {fruit.id}

    async def test_rerank_replaces_vector_similarity(self, container, caller, cities):
        dataset, _ = cities

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="capital of Germany", dataset_ids=[dataset.id], rerank_id=RERANK_MODEL
            ),
            caller,
        )

        top = result.chunks[0]
        assert top.content == "Berlin is the capital city of Germany."
        assert top.vector_similarity == pytest.approx(1.0)

    async def test_highlight(self, container, caller, cities):
        dataset, _ = cities

        result = await container.retrieval.retrieve(
            RetrievalRequest(question="Germany", dataset_ids=[dataset.id], highlight=True),
            caller,
        )

        assert "<em>Germany</em>" in result.chunks[0].highlight

    async def test_keyword_expansion_uses_llm(self, container, caller, cities, llm):
        dataset, _ = cities
        llm.handlers["KeywordList"] = lambda prompt: {"keywords": ["Germany"]}

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="Which city?",
                dataset_ids=[dataset.id],
                keyword=True,
                similarity_threshold=0.0,
            ),
            caller,
        )

        assert any("Which city?" in prompt for prompt in llm.prompts)
        by_city = {chunk.content.split()[0]: chunk for chunk in result.chunks}
        assert by_city["Berlin"].term_similarity > by_city["Paris"].term_similarity


@pytest.mark.unit
class TestRetrieveValidation:
    """Tests for request validation."""

    async def test_blank_question(self, container, caller, cities):
        dataset, _ = cities

        with pytest.raises(ValidationError):
            await container.retrieval.retrieve(
                RetrievalRequest(question="  ", dataset_ids=[dataset.id]), caller
            )

    async def test_scope_required(self, container, caller):
        with pytest.raises(ValidationError):
            await container.retrieval.retrieve(RetrievalRequest(question="anything"), caller)

    async def test_unknown_dataset(self, container, caller):
        with pytest.raises(NotFoundError):
            await container.retrieval.retrieve(
                RetrievalRequest(question="anything", dataset_ids=["ds_missing"]), caller
            )

    async def test_other_tenant(self, container, other_caller, cities):
        dataset, _ = cities

        with pytest.raises(PermissionDeniedError):
            await container.retrieval.retrieve(
                RetrievalRequest(question="capital", dataset_ids=[dataset.id]), other_caller
            )

    async def test_document_outside_datasets(self, container, caller, cities, create_dataset):
        _, document = cities
        other = await create_dataset("Other")

        with pytest.raises(ValidationError):
            await container.retrieval.retrieve(
                RetrievalRequest(question="capital", dataset_ids=[other.id], document_ids=[document.id]),
                caller,
            )

    async def test_mixed_embedding_models(self, container, caller, cities):
        dataset, _ = cities
        other = await container.knowledge_base.create_dataset(
            caller, DatasetCreate(name="Other model", embedding_model="other-embed@test")
        )

        with pytest.raises(ValidationError):
            await container.retrieval.retrieve(
                RetrievalRequest(question="capital", dataset_ids=[dataset.id, other.id]), caller
            )

    async def test_team_member_may_retrieve(self, container, caller, create_dataset, ingest):
        dataset = await create_dataset("Shared", permission="team")
        await ingest(dataset.id)
        teammate = Caller(tenant_id="tenant-b", team_ids=["tenant-a"])

        result = await container.retrieval.retrieve(
            RetrievalRequest(question="capital of Germany", dataset_ids=[dataset.id]), teammate
        )

        assert result.chunks[0].content == "Berlin is the capital city of Germany."


@pytest.mark.unit
class TestCrossLanguages:
    """Tests for searching translated questions."""

    async def test_translation_searched(self, container, caller, cities, llm):
        dataset, _ = cities
        llm.text = lambda prompt: "Madrid capital Spain"

        result = await container.retrieval.retrieve(
            RetrievalRequest(
                question="Hauptstadt von Spanien",
                dataset_ids=[dataset.id],
                cross_languages=["English"],
                similarity_threshold=0.0,
            ),
            caller,
        )

        assert any("into English" in prompt for prompt in llm.prompts)
        assert result.chunks[0].content == "Madrid is the capital city of Spain."
