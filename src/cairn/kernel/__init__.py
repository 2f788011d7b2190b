"""Kernel: content addressing, envelopes, queue messages and error contracts."""

from cairn.kernel.canonical import (
    ADDRESS_PREFIX,
    address_hex,
    canonical_json_bytes,
    content_address,
    sha256_bytes,
)
from cairn.kernel.envelope import (
    Envelope,
    build_envelope,
    encode_envelope,
    object_key_for,
    parse_envelope,
    split_object_key,
    verify_envelope_id,
)
from cairn.kernel.errors import PipelineError, PipelineErrorCode, is_retryable
from cairn.kernel.messages import (
    FileIngestMessage,
    IngestMessage,
    PaginationMessage,
    decode_message,
    encode_message,
)

__all__ = [
    "ADDRESS_PREFIX",
    "Envelope",
    "FileIngestMessage",
    "IngestMessage",
    "PaginationMessage",
    "PipelineError",
    "PipelineErrorCode",
    "address_hex",
    "build_envelope",
    "canonical_json_bytes",
    "content_address",
    "decode_message",
    "encode_envelope",
    "encode_message",
    "is_retryable",
    "object_key_for",
    "parse_envelope",
    "sha256_bytes",
    "split_object_key",
    "verify_envelope_id",
]
