"""Dead-letter log for messages dropped because of data errors."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from filelock import FileLock
from pydantic import BaseModel, ConfigDict, Field, field_validator

from cairn.kernel.errors import PipelineError

_LOGGER = logging.getLogger(__name__)


class DeadLetterEntry(BaseModel):
    """One dropped message and why it was dropped."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    recorded_at: str = Field(default_factory=lambda: _utc_now())
    code: str
    message: str
    object_key: str | None = None
    message_body: Any = None
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("message_body", "data", mode="before")
    @classmethod
    def _coerce_json(cls, value: object) -> Any:
        return _json_safe(value)

    @classmethod
    def from_error(
        cls,
        error: PipelineError,
        *,
        object_key: str | None = None,
        message_body: object = None,
    ) -> DeadLetterEntry:
        """Build an entry from a pipeline error.

        Args:
            error: Data error that caused the drop.
            object_key: Durable object key when known.
            message_body: Raw queue body.

        Returns:
            JSON-safe dead-letter entry.
        """
        return cls(
            code=error.code.value,
            message=str(error),
            object_key=object_key,
            message_body=message_body,
            data=error.data,
        )


class DeadLetterLog(Protocol):
    """Append-only sink for dropped messages."""

    def record(self, entry: DeadLetterEntry) -> None:
        """Append one entry."""

    def entries(self, limit: int | None = None) -> list[DeadLetterEntry]:
        """Return recorded entries, newest last."""


class InMemoryDeadLetterLog:
    """List-backed dead-letter log for tests."""

    def __init__(self) -> None:
        self._entries: list[DeadLetterEntry] = []
        self._lock = Lock()

    def record(self, entry: DeadLetterEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self, limit: int | None = None) -> list[DeadLetterEntry]:
        with self._lock:
            items = list(self._entries)
        return items[-limit:] if limit else items


class JsonlDeadLetterLog:
    """JSONL dead-letter file; appends are serialized across processes."""

    def __init__(self, path: Path) -> None:
        """Create log at ``path`` (parent directory created if missing).

        Args:
            path: JSONL file path.
        """
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(path.with_name(f"{path.name}.lock")))

    @property
    def path(self) -> Path:
        return self._path

    def record(self, entry: DeadLetterEntry) -> None:
        line = entry.model_dump_json() + "\n"
        with self._lock:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line)

    def entries(self, limit: int | None = None) -> list[DeadLetterEntry]:
        """Read entries back, skipping lines that fail to decode.

        Args:
            limit: Return only the newest ``limit`` entries.

        Returns:
            Decoded entries in file order.
        """
        if not self._path.exists():
            return []
        items: list[DeadLetterEntry] = []
        with self._lock:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        for number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                items.append(DeadLetterEntry.model_validate_json(line))
            except ValueError:
                _LOGGER.warning("Skipping unreadable dead-letter line %d in %s", number, self._path)
        return items[-limit:] if limit else items


def _json_safe(value: object) -> Any:
    """Round-trip through JSON, stringifying anything non-serializable."""
    return json.loads(json.dumps(value, default=str))


def _utc_now() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
