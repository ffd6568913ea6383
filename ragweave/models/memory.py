"""
Memory API models.

A MemorySpace holds MemoryUnits. Every message is stored as a raw unit;
semantic, episodic and procedural units are extracted from raw units by the
LLM and point back to them through `source_id`.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator

DEFAULT_MEMORY_SIZE = 5 * 1024 * 1024


class MemoryType(str, Enum):
    """Kinds of memory units."""

    RAW = "raw"  # Message as received
    SEMANTIC = "semantic"  # Facts about the world or the user
    EPISODIC = "episodic"  # Events with time and participants
    PROCEDURAL = "procedural"  # How to do things


class ForgettingPolicy(str, Enum):
    FIFO = "FIFO"


class UnitStatus(str, Enum):
    ENABLED = "enabled"
    DISABLED = "disabled"


def _normalize_memory_types(value: list[MemoryType]) -> list[MemoryType]:
    types = [MemoryType.RAW]
    for memory_type in value:
        memory_type = MemoryType(memory_type)
        if memory_type not in types:
            types.append(memory_type)
    return types


class MemorySpace(BaseModel):
    """A tenant-owned memory container with a byte budget."""

    id: str = Field(..., description="Unique memory space ID (memory_xxx)")
    tenant_id: str = Field(..., description="Owner tenant ID")
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    memory_types: list[MemoryType] = Field(default_factory=lambda: [MemoryType.RAW])
    embedding_model: str = Field(..., description="model_name@model_factory")
    memory_size: int = Field(default=DEFAULT_MEMORY_SIZE, gt=0, description="Byte budget")
    forgetting_policy: ForgettingPolicy = ForgettingPolicy.FIFO
    create_time: datetime = Field(default_factory=datetime.now)
    update_time: datetime = Field(default_factory=datetime.now)

    @field_validator("memory_types")
    @classmethod
    def _raw_always_on(cls, value: list[MemoryType]) -> list[MemoryType]:
        return _normalize_memory_types(value)

    @property
    def derived_types(self) -> list[MemoryType]:
        return [t for t in self.memory_types if t != MemoryType.RAW]


class MemoryUnit(BaseModel):
    """A single memory."""

    id: str = Field(..., description="Unique unit ID (unit_xxx)")
    memory_id: str = Field(..., description="Owning memory space ID")
    memory_type: MemoryType = MemoryType.RAW
    content: str = Field(..., min_length=1)
    embedding: list[float] = Field(default_factory=list)
    source_id: str | None = Field(default=None, description="Raw unit a derived unit came from")
    agent_id: str | None = None
    session_id: str | None = None

    valid_at: datetime = Field(default_factory=datetime.now)
    invalid_at: datetime | None = None
    forget_at: datetime | None = None
    status: UnitStatus = UnitStatus.ENABLED
    create_time: datetime = Field(default_factory=datetime.now)

    @property
    def size_bytes(self) -> int:
        return len(self.content.encode("utf-8"))

    def is_valid(self, now: datetime | None = None) -> bool:
        """
        Check if the unit can be returned by search.

        Returns:
            True if enabled and not invalidated yet
        """
        if self.status != UnitStatus.ENABLED:
            return False
        now = now or datetime.now()
        return self.invalid_at is None or self.invalid_at > now


class MemorySpaceCreate(BaseModel):
    name: str
    description: str = ""
    memory_types: list[MemoryType] = Field(default_factory=lambda: [MemoryType.RAW])
    embedding_model: str | None = None
    memory_size: int = Field(default=DEFAULT_MEMORY_SIZE, gt=0)


class MemorySpaceUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    memory_types: list[MemoryType] | None = None
    memory_size: int | None = Field(default=None, gt=0)


class MessageCreate(BaseModel):
    """A message to remember."""

    content: str = Field(..., min_length=1)
    agent_id: str | None = None
    session_id: str | None = None


class MemorySearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: int = Field(default=10, ge=1, le=1024)
    similarity_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    memory_types: list[MemoryType] | None = None
    agent_id: str | None = None
    session_id: str | None = None


class MemoryUnitUpdate(BaseModel):
    """Enable / disable, invalidate or schedule forgetting of a unit."""

    status: UnitStatus | None = None
    invalid_at: datetime | None = None
    forget_at: datetime | None = None


class MemorySearchHit(BaseModel):
    unit: MemoryUnit
    similarity: float


# LLM structured output for extraction


class ExtractedMemory(BaseModel):
    memory_type: MemoryType = Field(..., description="semantic, episodic or procedural")
    content: str = Field(..., description="Self-contained memory statement")


class MemoryExtraction(BaseModel):
    memories: list[ExtractedMemory] = Field(default_factory=list)
