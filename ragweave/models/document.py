"""
Document, Chunk and chunking intermediate models.

Documents are uploaded files of a dataset. Parsing turns a document into
ordered ChunkDrafts which the indexer embeds into Chunks.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ragweave.models.dataset import Dataset
from ragweave.models.parser_config import (
    ChunkMethod,
    ParserConfig,
    default_parser_config,
)
from ragweave.models.task import TaskStatus


class ChunkKind(str, Enum):
    """Origin of a chunk."""

    BASE = "base"  # Produced by the chunker or added manually
    RAPTOR = "raptor"  # Cluster summary


class Document(BaseModel):
    """
    An uploaded file inside a dataset.

    `chunk_method` / `parser_config` are optional overrides of the dataset
    defaults; `run`, `progress` and `progress_msg` mirror the latest parse task.
    """

    id: str = Field(..., description="Unique document ID (doc_xxx)")
    dataset_id: str = Field(..., description="Owning dataset ID")
    name: str = Field(..., min_length=1, description="File name")
    location: str = Field(default="", description="Blob store key")
    size: int = Field(default=0, ge=0, description="Size in bytes")
    type: str = Field(default="", description="File suffix without dot")

    chunk_method: ChunkMethod | None = Field(default=None, description="Chunk method override")
    parser_config: ParserConfig | None = Field(default=None, description="Parser config override")
    meta_fields: dict[str, Any] = Field(default_factory=dict, description="Filterable metadata")

    run: TaskStatus = Field(default=TaskStatus.UNSTART, description="Latest parse status")
    progress: float = Field(default=0.0, ge=-1.0, le=1.0)
    progress_msg: str = Field(default="")
    chunk_count: int = Field(default=0, ge=0, description="Available chunks")
    token_count: int = Field(default=0, ge=0)
    enabled: bool = Field(default=True, description="Disabled documents are never retrieved")

    create_time: datetime = Field(default_factory=datetime.now)
    update_time: datetime = Field(default_factory=datetime.now)

    def effective_chunk_method(self, dataset: Dataset) -> ChunkMethod:
        """Document override first, then the dataset default."""
        if self.chunk_method is not None:
            return self.chunk_method
        if self.parser_config is not None:
            return ChunkMethod(self.parser_config.chunk_method)
        return dataset.chunk_method

    def effective_parser_config(self, dataset: Dataset) -> ParserConfig:
        """Parser config matching `effective_chunk_method`."""
        method = self.effective_chunk_method(dataset)
        if self.parser_config is not None and ChunkMethod(self.parser_config.chunk_method) == method:
            return self.parser_config
        if ChunkMethod(dataset.parser_config.chunk_method) == method:
            return dataset.parser_config
        return default_parser_config(method)


class DocumentUpdate(BaseModel):
    """Request body for document update. Omitted fields are left unchanged."""

    name: str | None = None
    meta_fields: dict[str, Any] | None = None
    chunk_method: ChunkMethod | None = None
    parser_config: dict[str, Any] | None = None
    enabled: bool | None = None


class Chunk(BaseModel):
    """
    Retrievable unit of a document.

    Each chunk is stored once per anchor: its content and every question in
    `questions` are embedded and point back to the same chunk id.
    """

    id: str = Field(..., description="Deterministic chunk ID (doc_xxx_chunk_<hash>)")
    document_id: str = Field(..., description="Parent document ID")
    dataset_id: str = Field(..., description="Dataset ID")
    document_name: str = Field(default="", description="Parent document name")

    content: str = Field(..., description="Chunk text")
    embedding: list[float] = Field(default_factory=list, description="Content embedding")
    important_keywords: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list, description="Alternate retrieval anchors")
    available: bool = Field(default=True, description="Soft delete flag")

    positions: list[int] = Field(default_factory=list, description="Page numbers (1-based)")
    section: str | None = Field(default=None, description="Heading path")
    image_id: str | None = Field(default=None, description="Blob key of the source image")
    tags: list[str] = Field(default_factory=list)

    kind: ChunkKind = Field(default=ChunkKind.BASE)
    raptor_layer: int = Field(default=0, ge=0, description="0 for base chunks")
    order: int = Field(default=0, ge=0, description="Position within the document")
    embedding_model: str = Field(default="", description="model_name@model_factory")
    token_count: int = Field(default=0, ge=0)


class ChunkCreate(BaseModel):
    """Request body for adding a chunk manually."""

    content: str
    important_keywords: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)


class ChunkUpdate(BaseModel):
    """Request body for chunk update. Omitted fields are left unchanged."""

    content: str | None = None
    important_keywords: list[str] | None = None
    questions: list[str] | None = None
    available: bool | None = None


class ParsedDocument(BaseModel):
    """Decoded document content split into pages."""

    name: str
    pages: list[str] = Field(default_factory=list)
    blob_key: str | None = Field(default=None, description="Blob key of the original file")

    @property
    def suffix(self) -> str:
        _, dot, suffix = self.name.rpartition(".")
        return suffix.lower() if dot else ""

    @property
    def text(self) -> str:
        return "\n".join(self.pages)


class ChunkDraft(BaseModel):
    """Chunker output before enrichment and embedding."""

    text: str
    positions: list[int] = Field(default_factory=list)
    section: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    image_id: str | None = None
