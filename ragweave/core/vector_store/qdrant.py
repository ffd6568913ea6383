"""
Qdrant chunk index.

Collection per dataset ("<prefix>_<dataset_id>"), one point per chunk
anchor. Point ids are UUIDv5 of "<chunk_id>#<anchor>" so re-indexing the
same chunk overwrites its points.
"""

from typing import Any
from uuid import NAMESPACE_DNS, uuid5

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    HnswConfigDiff,
    MatchAny,
    MatchValue,
    PointStruct,
    ScalarQuantization,
    ScalarQuantizationConfig,
    ScalarType,
    VectorParams,
)

from ragweave.core.vector_store.base import ChunkIndex, ChunkSearchHit
from ragweave.models.document import Chunk, ChunkKind
from ragweave.utils.exceptions import ValidationError, VectorStoreError
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

CONTENT_ANCHOR = "content"
SCROLL_PAGE = 256
_KEYWORD_INDEXES = ("chunk_id", "document_id", "anchor", "kind")


class QdrantChunkIndex(ChunkIndex):
    """
    Qdrant chunk index.

    Features:
    - HNSW indexing for fast search
    - Optional int8 quantization
    - Payload indexes on chunk_id / document_id / anchor / kind / available
    - Embedded mode with location=":memory:"
    """

    def __init__(
        self,
        url: str = "http://localhost:6333",
        location: str | None = None,
        collection_prefix: str = "ragweave",
        use_grpc: bool = False,
        use_quantization: bool = False,
        hnsw_m: int = 16,
        hnsw_ef_construct: int = 100,
        on_disk: bool = False,
        timeout: int = 30,
    ):
        """
        Initialize Qdrant chunk index.

        Args:
            url: Qdrant server URL
            location: ":memory:" or a local path for embedded mode (overrides url)
            collection_prefix: Collection name prefix
            use_grpc: Use gRPC connection
            use_quantization: Use int8 quantization
            hnsw_m: HNSW M parameter (connections per node)
            hnsw_ef_construct: HNSW ef_construct parameter
            on_disk: Store vectors on disk
            timeout: Request timeout in seconds
        """
        self.url = url
        self.location = location
        self.collection_prefix = collection_prefix
        self.use_grpc = use_grpc
        self.use_quantization = use_quantization
        self.hnsw_m = hnsw_m
        self.hnsw_ef_construct = hnsw_ef_construct
        self.on_disk = on_disk
        self.timeout = timeout
        self.client: AsyncQdrantClient | None = None

    def collection_name(self, dataset_id: str) -> str:
        return f"{self.collection_prefix}_{dataset_id}"

    @staticmethod
    def _point_id(chunk_id: str, anchor: str) -> str:
        return str(uuid5(NAMESPACE_DNS, f"{chunk_id}#{anchor}"))

    async def connect(self) -> None:
        """
        Establish connection to Qdrant.

        Raises:
            VectorStoreError: If connection fails
        """
        if self.client is not None:
            return
        try:
            if self.location == ":memory:":
                self.client = AsyncQdrantClient(location=":memory:")
            elif self.location:
                self.client = AsyncQdrantClient(path=self.location)
            else:
                self.client = AsyncQdrantClient(
                    url=self.url, prefer_grpc=self.use_grpc, timeout=self.timeout
                )
        except Exception as e:
            logger.error(
                f"Failed to connect to Qdrant: {e}",
                extra={"url": self.url, "location": self.location, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to connect to Qdrant: {e}") from e

    async def initialize(self) -> None:
        await self.connect()

    async def _collection_exists(self, name: str) -> bool:
        collections = await self.client.get_collections()
        return name in {col.name for col in collections.collections}

    async def ensure_collection(self, dataset_id: str, vector_size: int) -> None:
        await self.connect()
        name = self.collection_name(dataset_id)
        try:
            if await self._collection_exists(name):
                info = await self.client.get_collection(name)
                existing = info.config.params.vectors.size
                if existing != vector_size:
                    raise ValidationError(
                        "documents must use the same embedding model",
                        context={"dataset_id": dataset_id, "expected": existing, "got": vector_size},
                    )
                return

            vectors_config = VectorParams(
                size=vector_size,
                distance=Distance.COSINE,
                hnsw_config=HnswConfigDiff(m=self.hnsw_m, ef_construct=self.hnsw_ef_construct),
                on_disk=self.on_disk,
            )
            if self.use_quantization:
                vectors_config.quantization_config = ScalarQuantization(
                    scalar=ScalarQuantizationConfig(type=ScalarType.INT8, quantile=0.99, always_ram=True)
                )
            await self.client.create_collection(collection_name=name, vectors_config=vectors_config)

            for field_name in _KEYWORD_INDEXES:
                await self.client.create_payload_index(
                    collection_name=name, field_name=field_name, field_schema="keyword"
                )
            await self.client.create_payload_index(
                collection_name=name, field_name="available", field_schema="bool"
            )
            logger.info(
                f"Created collection {name}",
                extra={"dataset_id": dataset_id, "vector_size": vector_size},
            )
        except ValidationError:
            raise
        except Exception as e:
            logger.error(
                f"Failed to initialize Qdrant collection {name}: {e}",
                extra={"collection": name, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to initialize Qdrant collection: {e}") from e

    def _chunk_to_payload(self, chunk: Chunk, anchor: str, anchor_text: str) -> dict[str, Any]:
        return {
            "chunk_id": chunk.id,
            "document_id": chunk.document_id,
            "dataset_id": chunk.dataset_id,
            "document_name": chunk.document_name,
            "anchor": anchor,
            "anchor_text": anchor_text,
            "content": chunk.content,
            "important_keywords": chunk.important_keywords,
            "questions": chunk.questions,
            "available": chunk.available,
            "positions": chunk.positions,
            "section": chunk.section,
            "image_id": chunk.image_id,
            "tags": chunk.tags,
            "kind": chunk.kind.value,
            "raptor_layer": chunk.raptor_layer,
            "order": chunk.order,
            "embedding_model": chunk.embedding_model,
            "token_count": chunk.token_count,
        }

    def _payload_to_chunk(self, payload: dict[str, Any], vector: Any = None) -> Chunk:
        return Chunk(
            id=payload["chunk_id"],
            document_id=payload["document_id"],
            dataset_id=payload["dataset_id"],
            document_name=payload.get("document_name", ""),
            content=payload["content"],
            embedding=list(vector) if isinstance(vector, list) else [],
            important_keywords=payload.get("important_keywords") or [],
            questions=payload.get("questions") or [],
            available=payload.get("available", True),
            positions=payload.get("positions") or [],
            section=payload.get("section"),
            image_id=payload.get("image_id"),
            tags=payload.get("tags") or [],
            kind=ChunkKind(payload.get("kind", ChunkKind.BASE.value)),
            raptor_layer=payload.get("raptor_layer", 0),
            order=payload.get("order", 0),
            embedding_model=payload.get("embedding_model", ""),
            token_count=payload.get("token_count", 0),
        )

    @staticmethod
    def _build_filter(
        document_id: str | None = None,
        document_ids: list[str] | None = None,
        chunk_ids: list[str] | None = None,
        kind: ChunkKind | None = None,
        available: bool | None = None,
        content_only: bool = False,
    ) -> Filter | None:
        conditions = []
        if document_id is not None:
            conditions.append(FieldCondition(key="document_id", match=MatchValue(value=document_id)))
        if document_ids is not None:
            conditions.append(FieldCondition(key="document_id", match=MatchAny(any=document_ids)))
        if chunk_ids is not None:
            conditions.append(FieldCondition(key="chunk_id", match=MatchAny(any=chunk_ids)))
        if kind is not None:
            conditions.append(FieldCondition(key="kind", match=MatchValue(value=kind.value)))
        if available is not None:
            conditions.append(FieldCondition(key="available", match=MatchValue(value=available)))
        if content_only:
            conditions.append(FieldCondition(key="anchor", match=MatchValue(value=CONTENT_ANCHOR)))
        return Filter(must=conditions) if conditions else None

    async def upsert_chunks(
        self,
        dataset_id: str,
        chunks: list[Chunk],
        question_embeddings: dict[str, list[list[float]]] | None = None,
    ) -> None:
        if not chunks:
            return
        question_embeddings = question_embeddings or {}

        points = []
        for chunk in chunks:
            if not chunk.embedding:
                raise ValidationError(f"Chunk {chunk.id} must have an embedding")
            points.append(
                PointStruct(
                    id=self._point_id(chunk.id, CONTENT_ANCHOR),
                    vector=chunk.embedding,
                    payload=self._chunk_to_payload(chunk, CONTENT_ANCHOR, chunk.content),
                )
            )
            for i, (question, vector) in enumerate(
                zip(chunk.questions, question_embeddings.get(chunk.id, []))
            ):
                anchor = f"q{i}"
                points.append(
                    PointStruct(
                        id=self._point_id(chunk.id, anchor),
                        vector=vector,
                        payload=self._chunk_to_payload(chunk, anchor, question),
                    )
                )

        await self.connect()
        try:
            await self.client.upsert(
                collection_name=self.collection_name(dataset_id), points=points, wait=True
            )
        except Exception as e:
            logger.error(
                f"Failed to upsert {len(chunks)} chunks: {e}",
                extra={"dataset_id": dataset_id, "num_chunks": len(chunks), "error": str(e)},
            )
            raise VectorStoreError(f"Failed to upsert chunks: {e}") from e

    async def delete_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        chunk_ids: list[str] | None = None,
        kind: ChunkKind | None = None,
    ) -> None:
        await self.connect()
        name = self.collection_name(dataset_id)
        query_filter = self._build_filter(document_id=document_id, chunk_ids=chunk_ids, kind=kind)
        if query_filter is None:
            raise ValidationError("Refusing to delete chunks without a selector")
        try:
            if not await self._collection_exists(name):
                return
            await self.client.delete(
                collection_name=name,
                points_selector=FilterSelector(filter=query_filter),
                wait=True,
            )
        except Exception as e:
            logger.error(
                f"Failed to delete chunks: {e}",
                extra={"dataset_id": dataset_id, "document_id": document_id, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to delete chunks: {e}") from e

    async def _scroll(self, dataset_id: str, query_filter: Filter | None, with_vectors: bool) -> list:
        await self.connect()
        name = self.collection_name(dataset_id)
        try:
            if not await self._collection_exists(name):
                return []
            points = []
            offset = None
            while True:
                batch, offset = await self.client.scroll(
                    collection_name=name,
                    scroll_filter=query_filter,
                    limit=SCROLL_PAGE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=with_vectors,
                )
                points.extend(batch)
                if offset is None:
                    return points
        except Exception as e:
            logger.error(
                f"Failed to scroll chunks: {e}", extra={"dataset_id": dataset_id, "error": str(e)}
            )
            raise VectorStoreError(f"Failed to read chunks: {e}") from e

    async def get_chunks(
        self, dataset_id: str, chunk_ids: list[str], with_vectors: bool = False
    ) -> list[Chunk]:
        if not chunk_ids:
            return []
        points = await self._scroll(
            dataset_id, self._build_filter(chunk_ids=chunk_ids, content_only=True), with_vectors
        )
        by_id = {p.payload["chunk_id"]: self._payload_to_chunk(p.payload, p.vector) for p in points}
        return [by_id[chunk_id] for chunk_id in chunk_ids if chunk_id in by_id]

    async def list_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        kind: ChunkKind | None = None,
        available: bool | None = None,
        with_vectors: bool = False,
    ) -> list[Chunk]:
        points = await self._scroll(
            dataset_id,
            self._build_filter(
                document_id=document_id, kind=kind, available=available, content_only=True
            ),
            with_vectors,
        )
        chunks = [self._payload_to_chunk(p.payload, p.vector) for p in points]
        chunks.sort(key=lambda c: (c.kind != ChunkKind.BASE, c.raptor_layer, c.order, c.id))
        return chunks

    async def count_chunks(
        self,
        dataset_id: str,
        document_id: str | None = None,
        available: bool | None = True,
        kind: ChunkKind | None = None,
    ) -> int:
        await self.connect()
        name = self.collection_name(dataset_id)
        try:
            if not await self._collection_exists(name):
                return 0
            response = await self.client.count(
                collection_name=name,
                count_filter=self._build_filter(
                    document_id=document_id, kind=kind, available=available, content_only=True
                ),
                exact=True,
            )
            return response.count
        except Exception as e:
            raise VectorStoreError(f"Failed to count chunks: {e}") from e

    async def set_availability(self, dataset_id: str, chunk_ids: list[str], available: bool) -> None:
        if not chunk_ids:
            return
        await self.connect()
        try:
            await self.client.set_payload(
                collection_name=self.collection_name(dataset_id),
                payload={"available": available},
                points=FilterSelector(filter=self._build_filter(chunk_ids=chunk_ids)),
                wait=True,
            )
        except Exception as e:
            logger.error(
                f"Failed to update chunk availability: {e}",
                extra={"dataset_id": dataset_id, "error": str(e)},
            )
            raise VectorStoreError(f"Failed to update chunk availability: {e}") from e

    async def search(
        self,
        dataset_id: str,
        vector: list[float],
        limit: int,
        document_ids: list[str] | None = None,
    ) -> list[ChunkSearchHit]:
        await self.connect()
        name = self.collection_name(dataset_id)
        if document_ids is not None and not document_ids:
            return []
        try:
            if not await self._collection_exists(name):
                return []
            response = await self.client.query_points(
                collection_name=name,
                query=vector,
                # Several anchors may belong to one chunk
                limit=limit * 2,
                query_filter=self._build_filter(document_ids=document_ids, available=True),
                with_payload=True,
                with_vectors=False,
            )
        except Exception as e:
            logger.error(
                f"Vector search failed: {e}", extra={"dataset_id": dataset_id, "error": str(e)}
            )
            raise VectorStoreError(f"Vector search failed: {e}") from e

        best: dict[str, ChunkSearchHit] = {}
        for point in response.points:
            chunk_id = point.payload["chunk_id"]
            if chunk_id not in best or point.score > best[chunk_id].score:
                best[chunk_id] = ChunkSearchHit(
                    chunk=self._payload_to_chunk(point.payload),
                    score=point.score,
                    anchor=point.payload.get("anchor", CONTENT_ANCHOR),
                )
        hits = sorted(best.values(), key=lambda h: (-h.score, h.chunk.id))
        return hits[:limit]

    async def drop_dataset(self, dataset_id: str) -> None:
        await self.connect()
        name = self.collection_name(dataset_id)
        try:
            if await self._collection_exists(name):
                await self.client.delete_collection(name)
        except Exception as e:
            raise VectorStoreError(f"Failed to drop collection {name}: {e}") from e

    async def close(self) -> None:
        """Close the connection to Qdrant."""
        if self.client is not None:
            await self.client.close()
            self.client = None
