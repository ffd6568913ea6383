"""
Memory API.

Messages are stored as raw units right away; semantic, episodic and
procedural units are extracted from them by the LLM in the background.
Every write runs the forgetting policy: expired units are purged, then the
oldest units go first until the space fits its byte budget.
"""

import asyncio
from datetime import datetime

import numpy as np

from ragweave.config import MemoryConfig
from ragweave.core.factory.model_registry import ModelRegistry
from ragweave.core.memory_store.base import MemoryUnitStore
from ragweave.models.dataset import Caller
from ragweave.models.memory import (
    MemoryExtraction,
    MemorySearchHit,
    MemorySearchRequest,
    MemorySpace,
    MemorySpaceCreate,
    MemorySpaceUpdate,
    MemoryType,
    MemoryUnit,
    MemoryUnitUpdate,
    MessageCreate,
    UnitStatus,
)
from ragweave.utils.exceptions import (
    EmbeddingError,
    LLMError,
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)
from ragweave.utils.id_generator import generate_memory_space_id, generate_memory_unit_id
from ragweave.utils.logger import get_logger

logger = get_logger(__name__)

_TYPE_GUIDE = {
    MemoryType.SEMANTIC: "facts about the user or the world that stay true over time",
    MemoryType.EPISODIC: "events that happened, with who, what and when",
    MemoryType.PROCEDURAL: "how to do something, steps or preferences about doing it",
}


class MemoryService:
    """
    Memory spaces and their units.

    Usage:
        service = MemoryService(memory_store, models)
        unit = await service.add_message(caller, space.id, MessageCreate(content="..."))
        await service.drain()  # wait for background extraction
        hits = await service.search(caller, space.id, MemorySearchRequest(query="..."))
    """

    def __init__(
        self,
        memory_store: MemoryUnitStore,
        models: ModelRegistry,
        config: MemoryConfig | None = None,
    ):
        """
        Initialize memory service.

        Args:
            memory_store: Space and unit persistence
            models: Embedder and LLM resolution
            config: Budget and extraction settings
        """
        self.memory_store = memory_store
        self.models = models
        self.config = config or MemoryConfig()
        self._pending: set[asyncio.Task] = set()

    async def drain(self) -> None:
        """Wait for every scheduled extraction to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._pending):
            task.cancel()
        await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._pending.clear()

    # ═══════════════════════════════════════════════════════════
    # SPACES
    # ═══════════════════════════════════════════════════════════

    async def _space(self, caller: Caller, memory_id: str) -> MemorySpace:
        space = await self.memory_store.get_space(memory_id)
        if space is None:
            raise NotFoundError(f"Memory {memory_id} not found", context={"memory_id": memory_id})
        if space.tenant_id != caller.tenant_id:
            raise PermissionDeniedError(
                f"No access to memory {memory_id}",
                context={"memory_id": memory_id, "tenant_id": caller.tenant_id},
            )
        return space

    async def create_space(self, caller: Caller, request: MemorySpaceCreate) -> MemorySpace:
        """
        Create a memory space.

        Raises:
            ValidationError: On an empty name or a bad embedding model reference
            ConflictError: If the caller already has a space with that name
        """
        name = request.name.strip()
        if not name:
            raise ValidationError("Memory name must not be empty")
        embedding_model = (request.embedding_model or self.models.default_embedding_model).strip()
        self.models.validate_reference(embedding_model)

        space = MemorySpace(
            id=generate_memory_space_id(),
            tenant_id=caller.tenant_id,
            name=name,
            description=request.description,
            memory_types=request.memory_types,
            embedding_model=embedding_model,
            memory_size=(
                request.memory_size
                if "memory_size" in request.model_fields_set
                else self.config.default_memory_size
            ),
        )
        created = await self.memory_store.create_space(space)
        logger.info(
            f"Created memory '{name}'",
            extra={"memory_id": space.id, "memory_types": [t.value for t in space.memory_types]},
        )
        return created

    async def list_spaces(
        self, caller: Caller, page: int = 1, page_size: int = 30
    ) -> tuple[list[MemorySpace], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("`page` and `page_size` must be positive")
        return await self.memory_store.list_spaces(caller.tenant_id, page=page, page_size=page_size)

    async def get_space(self, caller: Caller, memory_id: str) -> MemorySpace:
        return await self._space(caller, memory_id)

    async def update_space(
        self, caller: Caller, memory_id: str, request: MemorySpaceUpdate
    ) -> MemorySpace:
        """Update a space; a smaller budget takes effect immediately."""
        space = await self._space(caller, memory_id)
        updates = request.model_dump(exclude_none=True)
        if "name" in updates:
            updates["name"] = updates["name"].strip()
            if not updates["name"]:
                raise ValidationError("Memory name must not be empty")
        updates["update_time"] = datetime.now()
        space = MemorySpace.model_validate({**space.model_dump(), **updates})

        updated = await self.memory_store.update_space(space)
        await self.enforce_forgetting(updated)
        return updated

    async def delete_space(self, caller: Caller, memory_id: str) -> bool:
        await self._space(caller, memory_id)
        deleted = await self.memory_store.delete_space(memory_id)
        logger.info("Deleted memory", extra={"memory_id": memory_id})
        return deleted

    # ═══════════════════════════════════════════════════════════
    # MESSAGES
    # ═══════════════════════════════════════════════════════════

    async def add_message(self, caller: Caller, memory_id: str, message: MessageCreate) -> MemoryUnit:
        """
        Store a message as a raw unit and schedule extraction of derived units.

        Raises:
            ValidationError: If the message alone exceeds the space budget
        """
        space = await self._space(caller, memory_id)
        content = message.content.strip()
        if not content:
            raise ValidationError("Message content must not be empty")
        if len(content.encode("utf-8")) > space.memory_size:
            raise ValidationError(
                "Message is larger than the memory size",
                context={"memory_id": memory_id, "memory_size": space.memory_size},
            )

        embedder = self.models.get_embedder(space.embedding_model)
        raw = MemoryUnit(
            id=generate_memory_unit_id(),
            memory_id=space.id,
            memory_type=MemoryType.RAW,
            content=content,
            embedding=await embedder.embed(content),
            agent_id=message.agent_id,
            session_id=message.session_id,
        )
        await self.memory_store.add_unit(raw)
        await self.enforce_forgetting(space)

        if space.derived_types:
            task = asyncio.create_task(self._extract(space, raw), name=f"memory-extract-{raw.id}")
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return raw

    async def _extract(self, space: MemorySpace, raw: MemoryUnit) -> list[MemoryUnit]:
        try:
            extraction = await self.models.get_llm().extract(
                self._build_extraction_prompt(raw.content, space.derived_types),
                MemoryExtraction,
                max_tokens=self.config.extraction_max_tokens,
                temperature=0.0,
            )
            embedder = self.models.get_embedder(space.embedding_model)

            units = []
            for memory in extraction.memories:
                content = memory.content.strip()
                if not content or memory.memory_type not in space.derived_types:
                    continue
                unit = MemoryUnit(
                    id=generate_memory_unit_id(),
                    memory_id=space.id,
                    memory_type=memory.memory_type,
                    content=content,
                    embedding=await embedder.embed(content),
                    source_id=raw.id,
                    agent_id=raw.agent_id,
                    session_id=raw.session_id,
                )
                await self.memory_store.add_unit(unit)
                units.append(unit)

            if units:
                await self.enforce_forgetting(space)
            logger.debug(
                f"Extracted {len(units)} memories",
                extra={"memory_id": space.id, "source_id": raw.id},
            )
            return units
        except (LLMError, EmbeddingError, StoreError) as e:
            logger.error(
                f"Memory extraction failed: {e}",
                extra={"memory_id": space.id, "source_id": raw.id, "error_type": type(e).__name__},
            )
            return []

    def _build_extraction_prompt(self, content: str, memory_types: list[MemoryType]) -> str:
        guide = "\n".join(f"- {t.value}: {_TYPE_GUIDE[t]}" for t in memory_types)
        return f"""
You are a memory extraction system. Turn the message into short, self-contained memories.

## Memory Types
{guide}

## Message
{content}

## Task
Write each memory as one sentence that makes sense without the message. Use only the memory types listed above. Return an empty list when there is nothing worth remembering.

Return JSON: {{"memories": [{{"memory_type": ..., "content": ...}}]}}
"""

    # ═══════════════════════════════════════════════════════════
    # FORGETTING
    # ═══════════════════════════════════════════════════════════

    async def enforce_forgetting(self, space: MemorySpace, now: datetime | None = None) -> int:
        """
        Purge expired units, then drop the oldest until the space fits its budget.

        Returns:
            Number of units removed
        """
        now = now or datetime.now()
        removed = await self.memory_store.delete_forgotten(space.id, now)

        usage = await self.memory_store.space_usage(space.id)
        if usage > space.memory_size:
            evicted = []
            for unit in await self.memory_store.list_units(space.id):
                if usage <= space.memory_size:
                    break
                evicted.append(unit.id)
                usage -= unit.size_bytes
            removed += await self.memory_store.delete_units(evicted)

        if removed:
            logger.info(
                f"Forgot {removed} memory units",
                extra={"memory_id": space.id, "usage": usage, "memory_size": space.memory_size},
            )
        return removed

    # ═══════════════════════════════════════════════════════════
    # SEARCH AND UNITS
    # ═══════════════════════════════════════════════════════════

    async def search(
        self, caller: Caller, memory_id: str, request: MemorySearchRequest
    ) -> list[MemorySearchHit]:
        """Enabled, currently valid units ranked by cosine similarity."""
        space = await self._space(caller, memory_id)
        now = datetime.now()
        units = [
            unit
            for unit in await self.memory_store.list_units(
                space.id,
                memory_types=request.memory_types,
                status=UnitStatus.ENABLED,
                agent_id=request.agent_id,
                session_id=request.session_id,
            )
            if unit.is_valid(now) and unit.embedding
        ]
        if not units:
            return []

        query = await self.models.get_embedder(space.embedding_model).embed(request.query)
        query_vec = np.asarray(query, dtype=np.float64)
        matrix = np.asarray([unit.embedding for unit in units], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query_vec)
        norms[norms == 0] = 1.0
        scores = matrix @ query_vec / norms

        hits = [
            MemorySearchHit(unit=unit, similarity=round(float(score), 6))
            for unit, score in zip(units, scores)
            if score >= request.similarity_threshold
        ]
        hits.sort(key=lambda hit: (-hit.similarity, hit.unit.id))
        return hits[: request.top_k]

    async def list_units(
        self,
        caller: Caller,
        memory_id: str,
        memory_types: list[MemoryType] | None = None,
        status: UnitStatus | None = None,
        agent_id: str | None = None,
        session_id: str | None = None,
        page: int = 1,
        page_size: int = 30,
    ) -> tuple[list[MemoryUnit], int]:
        if page < 1 or page_size < 1:
            raise ValidationError("`page` and `page_size` must be positive")
        space = await self._space(caller, memory_id)
        units = await self.memory_store.list_units(
            space.id,
            memory_types=memory_types,
            status=status,
            agent_id=agent_id,
            session_id=session_id,
        )
        offset = (page - 1) * page_size
        return units[offset : offset + page_size], len(units)

    async def get_unit(self, caller: Caller, memory_id: str, unit_id: str) -> MemoryUnit:
        await self._space(caller, memory_id)
        unit = await self.memory_store.get_unit(unit_id)
        if unit is None or unit.memory_id != memory_id:
            raise NotFoundError(
                f"Memory unit {unit_id} not found",
                context={"memory_id": memory_id, "unit_id": unit_id},
            )
        return unit

    async def update_unit(
        self, caller: Caller, memory_id: str, unit_id: str, request: MemoryUnitUpdate
    ) -> MemoryUnit:
        """Enable / disable, invalidate or schedule forgetting of a unit."""
        space = await self._space(caller, memory_id)
        unit = await self.get_unit(caller, memory_id, unit_id)
        changes = request.model_dump(exclude_unset=True)
        if "status" in changes and request.status is not None:
            unit.status = request.status
        if "invalid_at" in changes:
            unit.invalid_at = request.invalid_at
        if "forget_at" in changes:
            unit.forget_at = request.forget_at

        updated = await self.memory_store.update_unit(unit)
        if updated.forget_at is not None:
            await self.enforce_forgetting(space)
        return updated

    async def forget_unit(self, caller: Caller, memory_id: str, unit_id: str) -> bool:
        """Forget a unit now."""
        await self.update_unit(caller, memory_id, unit_id, MemoryUnitUpdate(forget_at=datetime.now()))
        return True
