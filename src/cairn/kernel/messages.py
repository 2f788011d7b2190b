"""Ingest queue messages: file-ingest and pagination-continuation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias

from cairn.kernel.errors import PipelineError, PipelineErrorCode

PAGINATION_TYPE = "pagination"


@dataclass(frozen=True)
class FileIngestMessage:
    """Request to project one durable object into the index."""

    object_key: str


@dataclass(frozen=True)
class PaginationMessage:
    """Request to continue a bulk listing from an opaque cursor."""

    cursor: str


IngestMessage: TypeAlias = FileIngestMessage | PaginationMessage


def encode_message(message: IngestMessage) -> dict[str, str]:
    """Encode a message into its queue wire body.

    Args:
        message: Message to encode.

    Returns:
        ``{"objectKey": ...}`` or ``{"type": "pagination", "cursor": ...}``.
    """
    if isinstance(message, PaginationMessage):
        return {"type": PAGINATION_TYPE, "cursor": message.cursor}
    return {"objectKey": message.object_key}


def decode_message(body: object) -> IngestMessage:
    """Decode a queue wire body.

    Args:
        body: Raw message body (already JSON-decoded by the queue).

    Returns:
        The decoded message variant.

    Raises:
        PipelineError: MESSAGE_MALFORMED when the body matches neither variant.
    """
    if isinstance(body, (FileIngestMessage, PaginationMessage)):
        return body
    if not isinstance(body, dict):
        raise PipelineError(
            PipelineErrorCode.MESSAGE_MALFORMED,
            f"Message body must be an object, got {type(body).__name__}",
            data={"body": repr(body)},
        )
    if body.get("type") == PAGINATION_TYPE:
        cursor = body.get("cursor")
        if not isinstance(cursor, str) or not cursor:
            raise PipelineError(
                PipelineErrorCode.MESSAGE_MALFORMED,
                "Pagination message missing cursor",
                data={"body": body},
            )
        return PaginationMessage(cursor=cursor)
    object_key = body.get("objectKey")
    if not isinstance(object_key, str) or not object_key:
        raise PipelineError(
            PipelineErrorCode.MESSAGE_MALFORMED,
            "Message missing objectKey",
            data={"body": body},
        )
    return FileIngestMessage(object_key=object_key)
