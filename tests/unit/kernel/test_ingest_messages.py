"""Unit tests for ingest message wire bodies and error classification."""

from __future__ import annotations

import pytest

from cairn.kernel.errors import PipelineError, PipelineErrorCode, is_retryable
from cairn.kernel.messages import (
    FileIngestMessage,
    PaginationMessage,
    decode_message,
    encode_message,
)


@pytest.mark.unit
def test_encode_message_wire_shapes() -> None:
    """File and pagination messages use their documented wire shapes."""
    # Act / Assert
    assert encode_message(FileIngestMessage("quotes/a.json")) == {"objectKey": "quotes/a.json"}
    assert encode_message(PaginationMessage("abc")) == {"type": "pagination", "cursor": "abc"}


@pytest.mark.unit
def test_decode_message_accepts_wire_bodies_and_decoded_messages() -> None:
    """Both wire bodies and already-decoded messages decode."""
    # Arrange
    decoded = FileIngestMessage("films/b.json")

    # Act / Assert
    assert decode_message({"objectKey": "quotes/a.json"}) == FileIngestMessage("quotes/a.json")
    assert decode_message({"type": "pagination", "cursor": "c1"}) == PaginationMessage("c1")
    assert decode_message(decoded) is decoded


@pytest.mark.unit
@pytest.mark.parametrize(
    "body",
    [
        None,
        "quotes/a.json",
        {},
        {"objectKey": ""},
        {"objectKey": 7},
        {"type": "pagination"},
        {"type": "pagination", "cursor": ""},
    ],
)
def test_decode_message_rejects_malformed_bodies(body: object) -> None:
    """Bodies matching neither variant raise MESSAGE_MALFORMED."""
    # Act / Assert
    with pytest.raises(PipelineError) as exc_info:
        decode_message(body)
    assert exc_info.value.code is PipelineErrorCode.MESSAGE_MALFORMED


@pytest.mark.unit
def test_only_transient_codes_are_retryable() -> None:
    """Infrastructure codes are retryable; data and contract codes are not."""
    # Arrange
    retryable = {
        PipelineErrorCode.DURABLE_STORE_UNAVAILABLE,
        PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
        PipelineErrorCode.QUEUE_UNAVAILABLE,
    }

    # Act / Assert
    for code in PipelineErrorCode:
        error = PipelineError(code, "boom")
        assert error.retryable is (code in retryable)
        assert is_retryable(error) is (code in retryable)
    assert is_retryable(RuntimeError("boom")) is False
