"""
Retrieval request / result models and the metadata condition AST.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ComparisonOperator(str, Enum):
    """Operators accepted in a metadata condition."""

    IS = "is"
    NOT_IS = "not is"
    CONTAINS = "contains"
    NOT_CONTAINS = "not contains"
    IN = "in"
    NOT_IN = "not in"
    START_WITH = "start with"
    END_WITH = "end with"
    GT = ">"
    LT = "<"
    GE = "≥"
    LE = "≤"
    EMPTY = "empty"
    NOT_EMPTY = "not empty"

    @classmethod
    def _missing_(cls, value: object) -> "ComparisonOperator | None":
        if not isinstance(value, str):
            return None
        aliases = {
            ">=": cls.GE,
            "<=": cls.LE,
            "=": cls.IS,
            "≠": cls.NOT_IS,
            "!=": cls.NOT_IS,
        }
        normalized = " ".join(value.strip().lower().split())
        if normalized in aliases:
            return aliases[normalized]
        for member in cls:
            if member.value == normalized:
                return member
        return None


class ConditionLogic(str, Enum):
    AND = "and"
    OR = "or"


class Condition(BaseModel):
    """Single comparison against a document `meta_fields` key."""

    name: str = Field(..., min_length=1, description="meta_fields key")
    comparison_operator: ComparisonOperator
    value: Any = None


class MetadataCondition(BaseModel):
    """Conditions combined with `and` / `or`."""

    logic: ConditionLogic = ConditionLogic.AND
    conditions: list[Condition] = Field(default_factory=list)


class RetrievalRequest(BaseModel):
    """Retrieval parameters."""

    question: str = Field(..., description="User query")
    dataset_ids: list[str] = Field(default_factory=list)
    document_ids: list[str] = Field(default_factory=list)
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=30, ge=1, le=1024)
    similarity_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    vector_similarity_weight: float = Field(default=0.3, ge=0.0, le=1.0)
    top_k: int = Field(default=1024, ge=1)
    rerank_id: str | None = Field(default=None, description="Rerank model as model_name@model_factory")
    keyword: bool = Field(default=False, description="Expand the query with LLM keywords")
    highlight: bool = False
    cross_languages: list[str] = Field(default_factory=list)
    metadata_condition: MetadataCondition | None = None
    use_kg: bool = False
    toc_enhance: bool = False


class RetrievedChunk(BaseModel):
    """A ranked chunk."""

    id: str
    content: str
    document_id: str
    document_keyword: str = Field(default="", description="Document name")
    dataset_id: str
    important_keywords: list[str] = Field(default_factory=list)
    questions: list[str] = Field(default_factory=list)
    positions: list[int] = Field(default_factory=list)
    section: str | None = None
    image_id: str | None = None
    similarity: float
    vector_similarity: float
    term_similarity: float
    highlight: str | None = None
    kg: bool = Field(default=False, description="Found through the knowledge graph")


class DocAggregate(BaseModel):
    doc_id: str
    doc_name: str
    count: int


class RetrievalResult(BaseModel):
    chunks: list[RetrievedChunk] = Field(default_factory=list)
    doc_aggs: list[DocAggregate] = Field(default_factory=list)
    total: int = 0
