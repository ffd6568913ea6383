"""
Chunk methods and their parser configurations.

`parser_config` is a tagged union keyed by `chunk_method`: every chunk method
has its own variant and unknown fields are rejected.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from ragweave.utils.exceptions import ValidationError

DEFAULT_DELIMITER = "\n!?;。；！？"

DEFAULT_RAPTOR_PROMPT = (
    "Please summarize the following paragraphs. Be careful with the numbers, "
    "do not make things up. Paragraphs as following:\n"
    "      {cluster_content}\n"
    "The above is the content you need to summarize."
)

DEFAULT_ENTITY_TYPES = ["organization", "person", "geo", "event", "category"]


class ChunkMethod(str, Enum):
    """Split policy applied to a document."""

    NAIVE = "naive"
    BOOK = "book"
    LAWS = "laws"
    MANUAL = "manual"
    PAPER = "paper"
    PRESENTATION = "presentation"
    PICTURE = "picture"
    EMAIL = "email"
    QA = "qa"
    TABLE = "table"
    TAG = "tag"
    ONE = "one"

    @classmethod
    def _missing_(cls, value: object) -> "ChunkMethod | None":
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        if lowered == "general":
            return cls.NAIVE
        for member in cls:
            if member.value == lowered:
                return member
        return None


class RaptorSettings(BaseModel):
    """Hierarchical summary settings."""

    model_config = ConfigDict(extra="forbid")

    use_raptor: bool = False
    prompt: str = DEFAULT_RAPTOR_PROMPT
    max_token: int = Field(default=256, ge=1, le=2048)
    threshold: float = Field(default=0.1, ge=0.0, le=1.0)
    max_cluster: int = Field(default=64, ge=1, le=1024)
    random_seed: int = Field(default=0, ge=0)


class GraphRAGSettings(BaseModel):
    """Knowledge graph extraction settings."""

    model_config = ConfigDict(extra="forbid")

    use_graphrag: bool = False
    entity_types: list[str] = Field(default_factory=lambda: list(DEFAULT_ENTITY_TYPES))

    @field_validator("entity_types")
    @classmethod
    def _normalize_types(cls, value: list[str]) -> list[str]:
        cleaned = []
        for entity_type in value:
            entity_type = entity_type.strip().lower()
            if entity_type and entity_type not in cleaned:
                cleaned.append(entity_type)
        return cleaned


class _ParserConfigBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    raptor: RaptorSettings = Field(default_factory=RaptorSettings)
    graphrag: GraphRAGSettings = Field(default_factory=GraphRAGSettings)


class NaiveParserConfig(_ParserConfigBase):
    """Delimiter split with token-bounded merging."""

    chunk_method: Literal["naive", "general"] = "naive"
    chunk_token_num: int = Field(default=512, ge=1, le=2048)
    delimiter: str = Field(default=DEFAULT_DELIMITER, min_length=1)
    auto_keywords: int = Field(default=0, ge=0, le=32)
    auto_questions: int = Field(default=0, ge=0, le=10)

    @field_validator("chunk_method")
    @classmethod
    def _canonical_method(cls, value: str) -> str:
        return ChunkMethod(value).value


class BookParserConfig(_ParserConfigBase):
    chunk_method: Literal["book"] = "book"


class LawsParserConfig(_ParserConfigBase):
    chunk_method: Literal["laws"] = "laws"


class ManualParserConfig(_ParserConfigBase):
    chunk_method: Literal["manual"] = "manual"


class PaperParserConfig(_ParserConfigBase):
    chunk_method: Literal["paper"] = "paper"


class PresentationParserConfig(_ParserConfigBase):
    chunk_method: Literal["presentation"] = "presentation"


class PictureParserConfig(_ParserConfigBase):
    chunk_method: Literal["picture"] = "picture"


class EmailParserConfig(_ParserConfigBase):
    chunk_method: Literal["email"] = "email"


class QAParserConfig(_ParserConfigBase):
    chunk_method: Literal["qa"] = "qa"


class TableParserConfig(_ParserConfigBase):
    chunk_method: Literal["table"] = "table"


class TagParserConfig(_ParserConfigBase):
    chunk_method: Literal["tag"] = "tag"


class OneParserConfig(_ParserConfigBase):
    chunk_method: Literal["one"] = "one"


ParserConfig = Annotated[
    Union[
        NaiveParserConfig,
        BookParserConfig,
        LawsParserConfig,
        ManualParserConfig,
        PaperParserConfig,
        PresentationParserConfig,
        PictureParserConfig,
        EmailParserConfig,
        QAParserConfig,
        TableParserConfig,
        TagParserConfig,
        OneParserConfig,
    ],
    Field(discriminator="chunk_method"),
]

_parser_config_adapter: TypeAdapter[ParserConfig] = TypeAdapter(ParserConfig)


def default_parser_config(method: ChunkMethod | str) -> ParserConfig:
    """Build the default parser config variant of a chunk method."""
    return build_parser_config(method, None)


def build_parser_config(
    method: ChunkMethod | str, data: dict[str, Any] | BaseModel | None
) -> ParserConfig:
    """
    Validate a raw parser config against the variant of a chunk method.

    Args:
        method: Chunk method the config belongs to
        data: Raw config (may omit `chunk_method`)

    Returns:
        Parser config variant

    Raises:
        ValidationError: On unknown chunk method, unknown fields, out of range
            values or a `chunk_method` that differs from `method`
    """
    try:
        method = ChunkMethod(method)
    except ValueError as e:
        raise ValidationError(f"Unknown chunk method: {method}") from e

    if isinstance(data, BaseModel):
        data = data.model_dump()
    payload = dict(data or {})

    declared = payload.get("chunk_method")
    if declared is not None:
        try:
            declared_method = ChunkMethod(declared)
        except ValueError as e:
            raise ValidationError(f"Unknown chunk method: {declared}") from e
        if declared_method != method:
            raise ValidationError(
                f"parser_config is for '{declared_method.value}' but chunk method is '{method.value}'"
            )
    payload["chunk_method"] = method.value

    try:
        return _parser_config_adapter.validate_python(payload)
    except PydanticValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'][1:]) or 'parser_config'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(f"Invalid parser_config: {details}") from e
