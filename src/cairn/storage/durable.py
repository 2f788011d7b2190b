"""Durable object store: write-once content-keyed blobs with cursor listing."""

from __future__ import annotations

import base64
import binascii
import json
import os
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from threading import Lock
from typing import Protocol

from cairn.kernel.envelope import Envelope, encode_envelope
from cairn.kernel.errors import PipelineError, PipelineErrorCode

MAX_PAGE_SIZE = 1000
_TEMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class ListPage:
    """One page of a cursor-based listing."""

    keys: tuple[str, ...]
    next_cursor: str | None
    has_more: bool


class DurableStore(Protocol):
    """Source-of-truth blob store contract."""

    def put(self, key: str, body: bytes) -> None:
        """Write ``body`` at ``key``; rewriting identical bytes is a no-op.

        Args:
            key: Object key.
            body: Object bytes.
        """

    def get(self, key: str) -> bytes | None:
        """Read one object.

        Args:
            key: Object key.

        Returns:
            Object bytes, or ``None`` when the key does not exist.
        """

    def list(
        self, prefix: str = "", cursor: str | None = None, page_size: int = MAX_PAGE_SIZE
    ) -> ListPage:
        """List keys under ``prefix`` in key order, one page at a time.

        Args:
            prefix: Key prefix filter; ignored when ``cursor`` is given.
            cursor: Opaque continuation token from a previous page.
            page_size: Maximum keys per page.

        Returns:
            Listing page.
        """


def put_envelope(store: DurableStore, envelope: Envelope) -> str:
    """Persist an envelope at its content-addressed key.

    Args:
        store: Durable store.
        envelope: Envelope to write.

    Returns:
        Object key written.
    """
    key = envelope.object_key
    store.put(key, encode_envelope(envelope))
    return key


def encode_cursor(prefix: str, after: str) -> str:
    """Build an opaque continuation cursor.

    Args:
        prefix: Listing prefix.
        after: Last key returned on the previous page.

    Returns:
        Urlsafe base64 token.
    """
    raw = json.dumps({"after": after, "prefix": prefix}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[str, str]:
    """Decode a cursor produced by :func:`encode_cursor`.

    Args:
        cursor: Opaque token.

    Returns:
        ``(prefix, after)`` pair.

    Raises:
        ValueError: If the token was not produced by this store.
    """
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"Invalid listing cursor: {cursor!r}") from exc
    if (
        not isinstance(payload, dict)
        or not isinstance(payload.get("prefix"), str)
        or not isinstance(payload.get("after"), str)
    ):
        raise ValueError(f"Invalid listing cursor: {cursor!r}")
    return payload["prefix"], payload["after"]


def paginate_keys(
    keys: Iterable[str], prefix: str, cursor: str | None, page_size: int
) -> ListPage:
    """Slice one page out of a key listing.

    Args:
        keys: All keys in the store (any order).
        prefix: Listing prefix; replaced by the cursor's prefix when resuming.
        cursor: Opaque continuation token or ``None`` for the first page.
        page_size: Maximum keys per page.

    Returns:
        Listing page; ``has_more`` is false on the terminal page.
    """
    if not 1 <= page_size <= MAX_PAGE_SIZE:
        raise ValueError(f"page_size must be within 1..{MAX_PAGE_SIZE}, got {page_size}")
    after = ""
    if cursor is not None:
        prefix, after = decode_cursor(cursor)
    candidates = sorted(
        key for key in keys if key.startswith(prefix) and (not after or key > after)
    )
    page = tuple(candidates[:page_size])
    has_more = len(candidates) > page_size
    next_cursor = encode_cursor(prefix, page[-1]) if has_more else None
    return ListPage(keys=page, next_cursor=next_cursor, has_more=has_more)


def validate_object_key(key: str) -> PurePosixPath:
    """Check that a key is a relative path without traversal segments.

    Args:
        key: Object key.

    Returns:
        Key as a posix path.

    Raises:
        PipelineError: INVALID_OBJECT_KEY for empty, absolute or escaping keys.
    """
    path = PurePosixPath(key)
    if (
        not key
        or path.is_absolute()
        or "\\" in key
        or any(part in ("", ".", "..") for part in key.split("/"))
    ):
        raise PipelineError(
            PipelineErrorCode.INVALID_OBJECT_KEY,
            f"Invalid object key: {key!r}",
        )
    return path


def validate_list_prefix(prefix: str) -> str:
    """Check that a listing prefix stays inside the store.

    The empty prefix and partial last segments (``"quo"``) are allowed.

    Raises:
        PipelineError: INVALID_OBJECT_KEY for absolute or escaping prefixes.
    """
    if not prefix:
        return prefix
    directories = prefix.split("/")[:-1]
    last = prefix.rsplit("/", 1)[-1]
    if (
        prefix.startswith("/")
        or "\\" in prefix
        or any(part in ("", ".", "..") for part in directories)
        or last in (".", "..")
    ):
        raise PipelineError(
            PipelineErrorCode.INVALID_OBJECT_KEY,
            f"Invalid listing prefix: {prefix!r}",
        )
    return prefix


class InMemoryDurableStore:
    """Dict-backed durable store for tests and single-process runs."""

    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = Lock()

    def put(self, key: str, body: bytes) -> None:
        validate_object_key(key)
        with self._lock:
            self._objects[key] = bytes(body)

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._objects.get(key)

    def list(
        self, prefix: str = "", cursor: str | None = None, page_size: int = MAX_PAGE_SIZE
    ) -> ListPage:
        with self._lock:
            keys = list(self._objects)
        return paginate_keys(keys, prefix, cursor, page_size)

    def delete(self, key: str) -> None:
        """Remove an object out-of-band (simulates external deletion)."""
        with self._lock:
            self._objects.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)


class FilesystemDurableStore:
    """Durable store rooted at a directory; one file per key."""

    def __init__(self, root: Path) -> None:
        """Create store rooted at ``root`` (created if missing).

        Args:
            root: Directory holding all objects.
        """
        self._root = root.resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        """Resolved store root."""
        return self._root

    def put(self, key: str, body: bytes) -> None:
        """Write ``body`` atomically: temp -> fsync -> rename.

        Args:
            key: Object key.
            body: Object bytes.

        Raises:
            PipelineError: INVALID_OBJECT_KEY or DURABLE_STORE_UNAVAILABLE.
        """
        final_path = self._path_for(key)
        temp_path = final_path.with_name(
            f".{final_path.name}.{os.getpid()}.{uuid.uuid4().hex[:8]}{_TEMP_SUFFIX}"
        )
        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(temp_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o644)
            try:
                os.write(fd, body)
                os.fsync(fd)
            finally:
                os.close(fd)
            os.replace(temp_path, final_path)
        except OSError as exc:
            raise PipelineError(
                PipelineErrorCode.DURABLE_STORE_UNAVAILABLE,
                f"Durable store write failed for {key!r}: {exc}",
                data={"key": key},
            ) from exc
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def get(self, key: str) -> bytes | None:
        """Read one object; missing keys return ``None``.

        Args:
            key: Object key.

        Returns:
            Object bytes or ``None``.

        Raises:
            PipelineError: DURABLE_STORE_UNAVAILABLE on I/O failure.
        """
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except IsADirectoryError:
            return None
        except OSError as exc:
            raise PipelineError(
                PipelineErrorCode.DURABLE_STORE_UNAVAILABLE,
                f"Durable store read failed for {key!r}: {exc}",
                data={"key": key},
            ) from exc

    def list(
        self, prefix: str = "", cursor: str | None = None, page_size: int = MAX_PAGE_SIZE
    ) -> ListPage:
        """List stored keys one page at a time.

        Args:
            prefix: Key prefix filter; ignored when ``cursor`` is given.
            cursor: Opaque continuation token.
            page_size: Maximum keys per page.

        Returns:
            Listing page.

        Raises:
            PipelineError: INVALID_OBJECT_KEY for prefixes that leave the root,
                DURABLE_STORE_UNAVAILABLE on I/O failure.
        """
        scan_prefix = decode_cursor(cursor)[0] if cursor is not None else prefix
        validate_list_prefix(scan_prefix)
        try:
            keys = list(self._iter_keys(scan_prefix))
        except OSError as exc:
            raise PipelineError(
                PipelineErrorCode.DURABLE_STORE_UNAVAILABLE,
                f"Durable store listing failed: {exc}",
                data={"prefix": scan_prefix},
            ) from exc
        return paginate_keys(keys, prefix, cursor, page_size)

    def _iter_keys(self, prefix: str) -> Iterable[str]:
        # Only walk the deepest directory the prefix pins down.
        directory, _, _ = prefix.rpartition("/")
        base = self._root / directory if directory else self._root
        if not base.is_dir():
            return
        for path in base.rglob("*"):
            if not path.is_file() or path.name.endswith(_TEMP_SUFFIX):
                continue
            yield path.relative_to(self._root).as_posix()

    def _path_for(self, key: str) -> Path:
        rel = validate_object_key(key)
        return self._root.joinpath(*rel.parts)
