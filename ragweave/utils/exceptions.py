"""
Exception hierarchy for RagWeave.

Every error carries an ErrorCode; the API layer puts it in the `code` field
of the response envelope and the message in `message`. Anything that is not
a RagWeaveError surfaces as SERVER_ERROR.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Codes of the `{"code": ..., "message": ...}` response envelope."""

    SUCCESS = 0
    ARGUMENT_ERROR = 101
    DATA_ERROR = 102
    OPERATING_ERROR = 103
    PERMISSION_ERROR = 108
    SERVER_ERROR = 500


class RagWeaveError(Exception):
    """Base class; `context` holds structured details for the logs."""

    code: ErrorCode = ErrorCode.SERVER_ERROR

    def __init__(self, message: str, context: dict | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


# Caller errors


class ValidationError(RagWeaveError):
    """Missing field, malformed input or an unsupported option."""

    code = ErrorCode.ARGUMENT_ERROR


class DocumentFormatError(ValidationError):
    """
    An uploaded file cannot be decoded or chunked.

    Indexing tasks never retry this error.
    """


class ConfigurationError(RagWeaveError):
    """Unknown provider, missing credentials or an invalid model reference."""

    code = ErrorCode.ARGUMENT_ERROR


class NotFoundError(RagWeaveError):
    code = ErrorCode.DATA_ERROR


class ConflictError(RagWeaveError):
    """Duplicate name, or a task already active for the same target."""

    code = ErrorCode.OPERATING_ERROR


class PermissionDeniedError(RagWeaveError):
    """The resource is neither owned by nor shared with the caller's tenant."""

    code = ErrorCode.PERMISSION_ERROR


# Backend errors


class StoreError(RagWeaveError):
    pass


class VectorStoreError(StoreError):
    pass


class GraphStoreError(StoreError):
    pass


class MetadataStoreError(StoreError):
    pass


class EmbeddingError(RagWeaveError):
    pass


class LLMError(RagWeaveError):
    """Provider call failed or its answer could not be used."""


class RerankError(RagWeaveError):
    pass


# Task execution


class TaskError(RagWeaveError):
    pass


class TransientTaskError(TaskError):
    """Recoverable; the scheduler requeues the task until `max_retries`."""


class TaskCancelledError(TaskError):
    """Raised inside a worker whose task has been cancelled."""

    code = ErrorCode.OPERATING_ERROR
