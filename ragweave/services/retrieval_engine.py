"""
Hybrid retrieval engine.

Pipeline:
validate -> metadata filter (document pool) -> vector candidates per
dataset -> hybrid score (+ keyword, TOC and pagerank bonuses) -> threshold
-> knowledge graph expansion -> sort, aggregate, paginate
"""

import time
from dataclasses import dataclass, field

import numpy as np

from ragweave.config import RetrievalConfig
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.graph_store.base import GraphStore
from ragweave.core.metadata_store.base import MetadataStore
from ragweave.core.vector_store.base import ChunkIndex
from ragweave.models.dataset import Caller, Dataset
from ragweave.models.document import Chunk, Document
from ragweave.models.retrieval import (
    DocAggregate,
    RetrievalRequest,
    RetrievalResult,
    RetrievedChunk,
)
from ragweave.services import scoring
from ragweave.services.indexer import KeywordList
from ragweave.services.knowledge_graph import mentions, normalize_name
from ragweave.services.metadata_filter import filter_documents
from ragweave.utils.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

KEYWORD_PROMPT = """Extract up to 8 keywords from the question below that would help find relevant passages.
Return JSON: {{"keywords": [...]}}

Question: {question}"""

TRANSLATE_PROMPT = """Translate the question below into {language}.
Return only the translation, without quotes or explanations.

Question: {question}"""


@dataclass
class _Candidate:
    chunk: Chunk
    dataset: Dataset
    vector_similarity: float
    term_similarity: float = 0.0
    similarity: float = 0.0
    kg: bool = False


@dataclass
class _Scope:
    """Datasets and document pool a request may touch."""

    datasets: dict[str, Dataset]
    documents: dict[str, Document] = field(default_factory=dict)

    def pool(self, dataset_id: str) -> list[str]:
        return sorted(d.id for d in self.documents.values() if d.dataset_id == dataset_id)


def _cosine(a: list[float], b: list[float]) -> float:
    if not a or not b:
        return 0.0
    va, vb = np.asarray(a, dtype=np.float64), np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class RetrievalEngine:
    """
    Answers retrieval requests over one or more datasets.

    Score = w * vector_sim + (1 - w) * term_sim, where a rerank score
    replaces vector_sim when `rerank_id` is set, plus additive keyword, TOC
    and dataset pagerank bonuses.
    """

    def __init__(
        self,
        metadata_store: MetadataStore,
        chunk_index: ChunkIndex,
        graph_store: GraphStore,
        models: ModelRegistry,
        config: RetrievalConfig | None = None,
    ):
        """
        Initialize retrieval engine.

        Args:
            metadata_store: Datasets and documents
            chunk_index: Chunk vector index
            graph_store: Dataset knowledge graphs
            models: Embedder, reranker and LLM resolution
            config: Bonus weights and knowledge graph limits
        """
        self.metadata_store = metadata_store
        self.chunk_index = chunk_index
        self.graph_store = graph_store
        self.models = models
        self.config = config or RetrievalConfig()

    async def retrieve(self, request: RetrievalRequest, caller: Caller) -> RetrievalResult:
        """
        Rank chunks for a question.

        Raises:
            ValidationError: On an empty question, no scope, documents outside the
                selected datasets or mixed embedding models
            NotFoundError: If a dataset or document doesn't exist
            PermissionDeniedError: If a dataset is not accessible to the caller
        """
        start = time.time()
        question = request.question.strip()
        if not question:
            raise ValidationError("`question` is required")

        scope = await self._resolve_scope(request, caller)
        if not scope.documents:
            logger.debug("No document left after filtering, empty result")
            return RetrievalResult()

        embedding_model = next(iter(scope.datasets.values())).embedding_model
        embedder = self.models.get_embedder(embedding_model)

        keywords: list[str] = []
        if request.keyword:
            keywords = await self._extract_keywords(question)

        queries = [question]
        for language in request.cross_languages:
            translated = await self._translate(question, language)
            if translated and translated not in queries:
                queries.append(translated)

        ranked: dict[str, _Candidate] = {}
        question_vector: list[float] = []
        for query in queries:
            vector = await embedder.embed(query)
            if query == question:
                question_vector = vector
            candidates = await self._search(scope, vector, request.top_k)
            await self._score(query, candidates, request, keywords)
            for candidate in candidates:
                if candidate.similarity < request.similarity_threshold:
                    continue
                best = ranked.get(candidate.chunk.id)
                if best is None or candidate.similarity > best.similarity:
                    ranked[candidate.chunk.id] = candidate

        primary = sorted(ranked.values(), key=lambda c: (-c.similarity, c.chunk.id))

        secondary: list[_Candidate] = []
        if request.use_kg:
            secondary = await self._graph_candidates(
                scope, question, question_vector, primary, request, keywords
            )

        all_ranked = primary + secondary
        result = self._build_result(all_ranked, question, keywords, request)
        logger.info(
            f"Retrieved {result.total} chunks in {(time.time() - start) * 1000:.1f}ms",
            extra={
                "datasets": sorted(scope.datasets),
                "queries": len(queries),
                "kg_chunks": len(secondary),
            },
        )
        return result

    # ═══════════════════════════════════════════════════════════
    # SCOPE
    # ═══════════════════════════════════════════════════════════

    async def _resolve_scope(self, request: RetrievalRequest, caller: Caller) -> _Scope:
        if not request.dataset_ids and not request.document_ids:
            raise ValidationError("`dataset_ids` or `document_ids` is required")

        requested_docs: dict[str, Document] = {}
        for document_id in dict.fromkeys(request.document_ids):
            document = await self.metadata_store.get_document(document_id)
            if document is None:
                raise NotFoundError(
                    f"Document {document_id} not found", context={"document_id": document_id}
                )
            requested_docs[document_id] = document

        dataset_ids = list(dict.fromkeys(request.dataset_ids))
        if dataset_ids:
            outside = [d.id for d in requested_docs.values() if d.dataset_id not in dataset_ids]
            if outside:
                raise ValidationError(
                    "Documents do not belong to the selected datasets",
                    context={"document_ids": outside},
                )
        else:
            dataset_ids = list(dict.fromkeys(d.dataset_id for d in requested_docs.values()))

        datasets: dict[str, Dataset] = {}
        for dataset_id in dataset_ids:
            dataset = await self.metadata_store.get_dataset(dataset_id)
            if dataset is None:
                raise NotFoundError(
                    f"Dataset {dataset_id} not found", context={"dataset_id": dataset_id}
                )
            if not dataset.is_accessible_by(caller):
                raise PermissionDeniedError(
                    f"No access to dataset {dataset_id}", context={"dataset_id": dataset_id}
                )
            datasets[dataset_id] = dataset

        if len({d.embedding_model for d in datasets.values()}) > 1:
            raise ValidationError(
                "Datasets use different embedding models",
                context={"embedding_models": sorted({d.embedding_model for d in datasets.values()})},
            )

        documents: list[Document] = []
        for dataset_id in dataset_ids:
            dataset_docs, _ = await self.metadata_store.list_documents(dataset_id)
            documents.extend(dataset_docs)
        documents = [d for d in documents if d.enabled]
        if requested_docs:
            documents = [d for d in documents if d.id in requested_docs]
        documents = filter_documents(documents, request.metadata_condition)

        return _Scope(datasets=datasets, documents={d.id: d for d in documents})

    # ═══════════════════════════════════════════════════════════
    # CANDIDATES AND SCORING
    # ═══════════════════════════════════════════════════════════

    async def _search(self, scope: _Scope, vector: list[float], top_k: int) -> list[_Candidate]:
        candidates = []
        for dataset_id, dataset in scope.datasets.items():
            pool = scope.pool(dataset_id)
            if not pool:
                continue
            hits = await self.chunk_index.search(dataset_id, vector, limit=top_k, document_ids=pool)
            for hit in hits:
                if hit.chunk.available and hit.chunk.document_id in scope.documents:
                    candidates.append(
                        _Candidate(chunk=hit.chunk, dataset=dataset, vector_similarity=hit.score)
                    )
        candidates.sort(key=lambda c: (-c.vector_similarity, c.chunk.id))
        return candidates[:top_k]

    async def _score(
        self,
        query: str,
        candidates: list[_Candidate],
        request: RetrievalRequest,
        keywords: list[str],
    ) -> None:
        if not candidates:
            return
        terms = scoring.query_terms(query, extra=keywords)
        pool_terms = [self._chunk_terms(c.chunk) for c in candidates]
        idf = scoring.idf_weights(terms, pool_terms)

        if request.rerank_id:
            reranker = self.models.get_reranker(request.rerank_id)
            scores = await reranker.rerank(query, [c.chunk.content for c in candidates])
            for candidate, score in zip(candidates, scores):
                candidate.vector_similarity = float(score)

        for candidate, doc_terms in zip(candidates, pool_terms):
            candidate.term_similarity = scoring.term_similarity(terms, doc_terms, idf)
            candidate.similarity = self._combine(candidate, terms, idf, request)

    def _combine(
        self,
        candidate: _Candidate,
        terms: list[str],
        idf: dict[str, float],
        request: RetrievalRequest,
    ) -> float:
        score = scoring.hybrid_similarity(
            candidate.vector_similarity,
            candidate.term_similarity,
            request.vector_similarity_weight,
        )
        if request.keyword:
            score += self.config.keyword_weight * scoring.keyword_share(
                terms, candidate.chunk.important_keywords
            )
        if request.toc_enhance and candidate.chunk.section:
            section_terms = set(scoring.tokenize_terms(candidate.chunk.section))
            score += self.config.toc_weight * scoring.term_similarity(terms, section_terms, idf)
        score += candidate.dataset.pagerank / 100.0
        return score

    @staticmethod
    def _chunk_terms(chunk: Chunk) -> set[str]:
        text = " ".join([chunk.content, *chunk.important_keywords, *chunk.questions])
        return set(scoring.tokenize_terms(text))

    # ═══════════════════════════════════════════════════════════
    # KNOWLEDGE GRAPH
    # ═══════════════════════════════════════════════════════════

    async def _graph_candidates(
        self,
        scope: _Scope,
        question: str,
        question_vector: list[float],
        primary: list[_Candidate],
        request: RetrievalRequest,
        keywords: list[str],
    ) -> list[_Candidate]:
        primary_ids = {c.chunk.id for c in primary}
        normalized_question = normalize_name(question)
        candidates: list[_Candidate] = []

        for dataset_id, dataset in scope.datasets.items():
            graph = await self.graph_store.get_graph(dataset_id)
            if graph is None or not graph.nodes:
                continue

            seeds = {
                name
                for name, node in graph.nodes.items()
                if mentions(normalized_question, name) or primary_ids.intersection(node.chunk_ids)
            }
            entities = set(seeds)
            frontier = set(seeds)
            for _ in range(self.config.kg_hops):
                frontier = {n for name in frontier for n in graph.neighbours(name)} - entities
                entities |= frontier

            chunk_ids: list[str] = []
            for name in sorted(entities, key=lambda n: (-graph.nodes[n].pagerank, n)):
                for chunk_id in graph.nodes[name].chunk_ids:
                    if chunk_id not in primary_ids and chunk_id not in chunk_ids:
                        chunk_ids.append(chunk_id)
            chunk_ids = chunk_ids[: self.config.kg_max_chunks]
            if not chunk_ids:
                continue

            chunks = await self.chunk_index.get_chunks(dataset_id, chunk_ids, with_vectors=True)
            for chunk in chunks:
                if chunk.available and chunk.document_id in scope.documents:
                    candidates.append(
                        _Candidate(
                            chunk=chunk,
                            dataset=dataset,
                            vector_similarity=_cosine(question_vector, chunk.embedding),
                            kg=True,
                        )
                    )

        await self._score(question, candidates, request, keywords)
        kept = [c for c in candidates if c.similarity >= request.similarity_threshold]
        kept.sort(key=lambda c: (-c.similarity, c.chunk.id))
        return kept

    # ═══════════════════════════════════════════════════════════
    # LLM HELPERS
    # ═══════════════════════════════════════════════════════════

    async def _extract_keywords(self, question: str) -> list[str]:
        llm = self.models.get_llm()
        result = await llm.extract(KEYWORD_PROMPT.format(question=question), KeywordList)
        return [k.strip() for k in result.keywords if k.strip()]

    async def _translate(self, question: str, language: str) -> str:
        llm = self.models.get_llm()
        return await llm.generate(TRANSLATE_PROMPT.format(question=question, language=language))

    # ═══════════════════════════════════════════════════════════
    # RESULT
    # ═══════════════════════════════════════════════════════════

    def _build_result(
        self,
        ranked: list[_Candidate],
        question: str,
        keywords: list[str],
        request: RetrievalRequest,
    ) -> RetrievalResult:
        counts: dict[str, int] = {}
        names: dict[str, str] = {}
        for candidate in ranked:
            doc_id = candidate.chunk.document_id
            counts[doc_id] = counts.get(doc_id, 0) + 1
            names[doc_id] = candidate.chunk.document_name
        doc_aggs = [
            DocAggregate(doc_id=doc_id, doc_name=names[doc_id], count=count)
            for doc_id, count in counts.items()
        ]
        doc_aggs.sort(key=lambda agg: (-agg.count, agg.doc_name, agg.doc_id))

        terms = scoring.query_terms(question, extra=keywords)
        offset = (request.page - 1) * request.page_size
        page = ranked[offset : offset + request.page_size]
        chunks = [
            RetrievedChunk(
                id=c.chunk.id,
                content=c.chunk.content,
                document_id=c.chunk.document_id,
                document_keyword=c.chunk.document_name,
                dataset_id=c.chunk.dataset_id,
                important_keywords=c.chunk.important_keywords,
                questions=c.chunk.questions,
                positions=c.chunk.positions,
                section=c.chunk.section,
                image_id=c.chunk.image_id,
                similarity=round(c.similarity, 6),
                vector_similarity=round(c.vector_similarity, 6),
                term_similarity=round(c.term_similarity, 6),
                highlight=scoring.highlight(c.chunk.content, terms) if request.highlight else None,
                kg=c.kg,
            )
            for c in page
        ]
        return RetrievalResult(chunks=chunks, doc_aggs=doc_aggs, total=len(ranked))
