"""Envelope: the {type, id, data} unit of durable storage (pure data, no IO)."""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from cairn.kernel.canonical import address_hex, canonical_json_bytes, content_address
from cairn.kernel.errors import PipelineError, PipelineErrorCode

ADDRESS_PATTERN = r"^sha256:[0-9a-f]{64}$"
OBJECT_KEY_SUFFIX = ".json"

_OBJECT_KEY_RE = re.compile(r"^(?P<type>.+)/sha256_(?P<hex>[0-9a-f]{64})\.json$")


class Envelope(BaseModel):
    """Typed wrapper persisted as one object in the durable store."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: str = Field(min_length=1)
    id: str = Field(pattern=ADDRESS_PATTERN)
    data: dict[str, Any]

    @property
    def object_key(self) -> str:
        """Durable store key, recomputed from type and id."""
        return object_key_for(self.type, self.id)


def build_envelope(record_type: str, data: dict[str, Any]) -> Envelope:
    """Address ``data`` and wrap it in an envelope.

    Args:
        record_type: Logical record category.
        data: JSON object payload.

    Returns:
        Envelope whose id is the content address of ``data``.

    Raises:
        PipelineError: If data is not serializable.
        ValueError: If record_type is empty or not a single path segment.
    """
    _validate_record_type(record_type)
    return Envelope(type=record_type, id=content_address(data), data=data)


def object_key_for(record_type: str, record_id: str) -> str:
    """Derive the durable store key ``{type}/sha256_{hex}.json``.

    Args:
        record_type: Logical record category.
        record_id: Content address ``sha256:<hex>``.

    Returns:
        Durable store object key.
    """
    return f"{record_type}/sha256_{address_hex(record_id)}{OBJECT_KEY_SUFFIX}"


def split_object_key(object_key: str) -> tuple[str, str] | None:
    """Recover ``(type, id)`` from a well-formed object key.

    Args:
        object_key: Durable store key.

    Returns:
        Type and content address, or ``None`` when the key is not in the
        content-addressed layout.
    """
    match = _OBJECT_KEY_RE.match(object_key)
    if match is None:
        return None
    return match.group("type"), f"sha256:{match.group('hex')}"


def encode_envelope(envelope: Envelope) -> bytes:
    """Serialize an envelope to its stored body.

    Canonical bytes, so rewriting the same envelope is byte-identical.

    Args:
        envelope: Envelope to encode.

    Returns:
        UTF-8 JSON bytes.
    """
    return canonical_json_bytes(envelope)


def parse_envelope(raw: bytes) -> Envelope:
    """Decode stored bytes into an envelope.

    Args:
        raw: Object body from the durable store.

    Returns:
        Validated envelope.

    Raises:
        PipelineError: ENVELOPE_MALFORMED when the body is not a JSON object
            with valid ``type``, ``id`` and ``data`` fields.
    """
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PipelineError(
            PipelineErrorCode.ENVELOPE_MALFORMED,
            f"Invalid JSON syntax: {exc}",
        ) from exc
    if not isinstance(payload, dict):
        raise PipelineError(
            PipelineErrorCode.ENVELOPE_MALFORMED,
            "Envelope must be a JSON object",
        )
    # Stored envelopes may carry extra top-level metadata; only the contract
    # fields are kept.
    contract = {key: payload[key] for key in ("type", "id", "data") if key in payload}
    try:
        return Envelope.model_validate(contract)
    except ValidationError as exc:
        missing = [key for key in ("type", "id", "data") if key not in payload]
        raise PipelineError(
            PipelineErrorCode.ENVELOPE_MALFORMED,
            f"Invalid envelope: {exc.error_count()} validation error(s)",
            data={"missing": missing, "errors": exc.errors(include_url=False)},
        ) from exc


def verify_envelope_id(envelope: Envelope) -> None:
    """Recompute the content address of ``data`` and compare with ``id``.

    Args:
        envelope: Envelope to verify.

    Raises:
        PipelineError: ENVELOPE_MALFORMED on mismatch.
    """
    computed = content_address(envelope.data)
    if computed != envelope.id:
        raise PipelineError(
            PipelineErrorCode.ENVELOPE_MALFORMED,
            f"Envelope id mismatch: computed {computed!r}, envelope has {envelope.id!r}",
        )


def _validate_record_type(record_type: str) -> None:
    if not record_type or "/" in record_type or record_type in (".", ".."):
        raise ValueError(f"Invalid record type: {record_type!r}")
