"""Pipeline error contracts with stable codes and retry classification."""

from __future__ import annotations

from enum import StrEnum


class PipelineErrorCode(StrEnum):
    """Stable pipeline failure categories."""

    # Data errors: logged, dead-lettered, never retried.
    OBJECT_NOT_FOUND = "object_not_found"
    MESSAGE_MALFORMED = "message_malformed"
    ENVELOPE_MALFORMED = "envelope_malformed"
    UNKNOWN_TYPE = "unknown_type"
    MAPPING_FAILED = "mapping_failed"
    INDEX_CONSTRAINT = "index_constraint"

    # Transient infrastructure errors: retried through queue redelivery.
    DURABLE_STORE_UNAVAILABLE = "durable_store_unavailable"
    INDEX_STORE_UNAVAILABLE = "index_store_unavailable"
    QUEUE_UNAVAILABLE = "queue_unavailable"

    # Caller contract errors.
    PAYLOAD_NOT_SERIALIZABLE = "payload_not_serializable"
    INVALID_OBJECT_KEY = "invalid_object_key"


_RETRYABLE_CODES = frozenset(
    {
        PipelineErrorCode.DURABLE_STORE_UNAVAILABLE,
        PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
        PipelineErrorCode.QUEUE_UNAVAILABLE,
    }
)


class PipelineError(RuntimeError):
    """Pipeline failure with stable code, retry flag and diagnostic payload."""

    def __init__(
        self,
        code: PipelineErrorCode,
        message: str,
        *,
        data: dict[str, object] | None = None,
    ) -> None:
        """Create pipeline failure.

        Args:
            code: Stable pipeline error code.
            message: Human-readable error message.
            data: Optional structured payload for diagnostics.
        """
        super().__init__(message)
        self.code = code
        self.retryable = code in _RETRYABLE_CODES
        self.data = data or {}


def is_retryable(exc: BaseException) -> bool:
    """Return whether an exception should be retried via queue redelivery.

    Args:
        exc: Exception raised while handling one message.

    Returns:
        ``True`` only for pipeline errors in a transient category.
    """
    return isinstance(exc, PipelineError) and exc.retryable
