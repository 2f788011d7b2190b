"""Canonical JSON serialization and content addressing (deterministic)."""

from __future__ import annotations

import hashlib
import json
import math
from collections.abc import Mapping, Sequence
from typing import TypeAlias

from pydantic import BaseModel
from pydantic.types import JsonValue

from cairn.kernel.errors import PipelineError, PipelineErrorCode

ADDRESS_PREFIX = "sha256:"
# JavaScript switches to exponent notation for magnitudes at or above 1e21.
_EXPONENT_THRESHOLD = 1e21

# Read-only JSON type: covariant Mapping/Sequence so dict[str, str] etc. pass
# without cast.
JSONReadOnly: TypeAlias = (
    Mapping[str, "JSONReadOnly"]
    | Sequence["JSONReadOnly"]
    | str
    | int
    | float
    | bool
    | None
)

CanonicalJSONInput = BaseModel | JSONReadOnly


def canonical_json_bytes(obj: CanonicalJSONInput) -> bytes:
    """Serialize to canonical JSON bytes. Deterministic; stable across key order.

    Supported types: BaseModel (via model_dump(mode='json')), dict, list, str,
    int, float, bool, None. Raises on unsupported types or NaN/Infinity.
    Integral floats serialize as integers (``1.0`` -> ``1``), as JavaScript
    producers write them.

    Args:
        obj: Model or JSON-like structure to serialize.

    Returns:
        UTF-8 encoded canonical JSON bytes.

    Raises:
        TypeError: On unsupported type.
    """
    if obj is None:
        data: JsonValue = None
    elif isinstance(obj, BaseModel):
        data = obj.model_dump(mode="json")
    elif isinstance(obj, (dict, list, str, int, float, bool)):
        data = obj
    else:
        raise TypeError(f"Unsupported type for canonical JSON: {type(obj).__name__}")

    raw = json.dumps(
        _normalize_numbers(data),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
    return raw.encode("utf-8")


def _normalize_numbers(value: object) -> object:
    """Rewrite finite integral floats as ints, recursively."""
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < _EXPONENT_THRESHOLD:
            return int(value)
        return value
    if isinstance(value, dict):
        return {key: _normalize_numbers(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_normalize_numbers(item) for item in value]
    return value


def sha256_bytes(data: bytes) -> str:
    """Return hex-encoded SHA-256 hash of data.

    Args:
        data: Raw bytes to hash.

    Returns:
        Hex-encoded digest string.
    """
    return hashlib.sha256(data).hexdigest()


def content_address(data: Mapping[str, JSONReadOnly]) -> str:
    """Compute the content-addressable id of a record payload.

    Only ``data`` is hashed; the record type never contributes to the id.

    Args:
        data: JSON object payload.

    Returns:
        Identifier of the form ``sha256:<64-hex>``.

    Raises:
        PipelineError: If the payload is not a JSON object or cannot be
            serialized canonically.
    """
    if not isinstance(data, dict):
        raise PipelineError(
            PipelineErrorCode.PAYLOAD_NOT_SERIALIZABLE,
            f"Record data must be a JSON object, got {type(data).__name__}",
        )
    try:
        canonical = canonical_json_bytes(data)
    except (TypeError, ValueError) as exc:
        raise PipelineError(
            PipelineErrorCode.PAYLOAD_NOT_SERIALIZABLE,
            f"Record data is not JSON-serializable: {exc}",
        ) from exc
    return ADDRESS_PREFIX + sha256_bytes(canonical)


def address_hex(record_id: str) -> str:
    """Strip the ``sha256:`` prefix from a content address.

    Args:
        record_id: Content address.

    Returns:
        The 64-character hex digest.

    Raises:
        ValueError: If the id does not carry the sha256 prefix.
    """
    if not record_id.startswith(ADDRESS_PREFIX):
        raise ValueError(f"Not a sha256 content address: {record_id!r}")
    return record_id[len(ADDRESS_PREFIX) :]
