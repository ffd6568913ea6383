"""Utility modules for RagWeave."""

from ragweave.utils.exceptions import (
    ConfigurationError,
    ConflictError,
    DocumentFormatError,
    EmbeddingError,
    ErrorCode,
    GraphStoreError,
    LLMError,
    MetadataStoreError,
    NotFoundError,
    PermissionDeniedError,
    RagWeaveError,
    RerankError,
    StoreError,
    TaskCancelledError,
    TaskError,
    TransientTaskError,
    ValidationError,
    VectorStoreError,
)
from ragweave.utils.id_generator import (
    generate_chunk_id,
    generate_dataset_id,
    generate_document_id,
    generate_memory_space_id,
    generate_memory_unit_id,
    generate_task_id,
)
from ragweave.utils.logger import get_logger, setup_logging, task_log_context

__all__ = [
    # Logging
    "get_logger",
    "setup_logging",
    "task_log_context",
    # ID Generators
    "generate_dataset_id",
    "generate_document_id",
    "generate_chunk_id",
    "generate_task_id",
    "generate_memory_space_id",
    "generate_memory_unit_id",
    # Exceptions
    "ErrorCode",
    "RagWeaveError",
    "ValidationError",
    "DocumentFormatError",
    "ConfigurationError",
    "NotFoundError",
    "ConflictError",
    "PermissionDeniedError",
    "StoreError",
    "VectorStoreError",
    "GraphStoreError",
    "MetadataStoreError",
    "EmbeddingError",
    "LLMError",
    "RerankError",
    "TaskError",
    "TransientTaskError",
    "TaskCancelledError",
]
