"""
Dataset model and the caller identity used for ownership checks.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from ragweave.models.parser_config import (
    ChunkMethod,
    NaiveParserConfig,
    ParserConfig,
)


class DatasetPermission(str, Enum):
    """Who besides the owner may use a dataset."""

    ME = "me"
    TEAM = "team"


def split_model_reference(reference: str) -> tuple[str, str]:
    """
    Split a `model_name@model_factory` reference.

    Args:
        reference: Model reference, e.g. "nomic-embed-text@Ollama"

    Returns:
        (model_name, model_factory); factory is empty when omitted
    """
    name, sep, factory = reference.rpartition("@")
    if not sep:
        return reference, ""
    return name, factory


class Caller(BaseModel):
    """Identity of the tenant issuing a request."""

    tenant_id: str = Field(..., min_length=1, description="Caller tenant ID")
    team_ids: list[str] = Field(
        default_factory=list, description="Tenants whose team datasets the caller may use"
    )


class Dataset(BaseModel):
    """
    A named collection of documents sharing one embedding model.

    `document_count` and `chunk_count` are derived by the metadata store from
    the documents of the dataset.
    """

    id: str = Field(..., description="Unique dataset ID (ds_xxx)")
    tenant_id: str = Field(..., description="Owner tenant ID")
    name: str = Field(..., min_length=1, max_length=128, description="Dataset name")
    description: str = Field(default="", description="Free text description")
    embedding_model: str = Field(..., description="Embedding model as model_name@model_factory")
    chunk_method: ChunkMethod = Field(default=ChunkMethod.NAIVE, description="Default chunk method")
    parser_config: ParserConfig = Field(
        default_factory=NaiveParserConfig, description="Default parser config"
    )
    permission: DatasetPermission = Field(default=DatasetPermission.ME)
    pagerank: int = Field(default=0, ge=0, le=100, description="Retrieval score bonus")
    language: str = Field(default="English")

    # Derived counters
    document_count: int = Field(default=0, ge=0)
    chunk_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)

    create_time: datetime = Field(default_factory=datetime.now)
    update_time: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _config_matches_method(self) -> "Dataset":
        if ChunkMethod(self.parser_config.chunk_method) != self.chunk_method:
            raise ValueError("parser_config does not match chunk_method")
        return self

    def is_owned_by(self, caller: Caller) -> bool:
        return self.tenant_id == caller.tenant_id

    def is_accessible_by(self, caller: Caller) -> bool:
        """Owner always; team members when the dataset is shared with the team."""
        if self.is_owned_by(caller):
            return True
        return self.permission == DatasetPermission.TEAM and self.tenant_id in caller.team_ids


class DatasetCreate(BaseModel):
    """Request body for dataset creation."""

    name: str = Field(..., description="Dataset name (unique per tenant)")
    description: str = ""
    embedding_model: str | None = Field(
        default=None, description="model_name@model_factory; defaults to the configured embedder"
    )
    chunk_method: ChunkMethod = ChunkMethod.NAIVE
    parser_config: dict[str, Any] | None = None
    permission: DatasetPermission = DatasetPermission.ME
    pagerank: int = Field(default=0, ge=0, le=100)
    language: str = "English"


class DatasetUpdate(BaseModel):
    """Request body for dataset update. Omitted fields are left unchanged."""

    name: str | None = None
    description: str | None = None
    embedding_model: str | None = None
    chunk_method: ChunkMethod | None = None
    parser_config: dict[str, Any] | None = None
    permission: DatasetPermission | None = None
    pagerank: int | None = Field(default=None, ge=0, le=100)
    language: str | None = None
