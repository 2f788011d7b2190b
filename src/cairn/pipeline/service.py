"""Trigger surface: producer writes, bulk and targeted ingestion, rebuild."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from cairn.context import PipelineContext
from cairn.kernel.envelope import build_envelope
from cairn.kernel.messages import FileIngestMessage, encode_message
from cairn.pipeline.enqueuer import BulkEnqueuer
from cairn.storage.durable import put_envelope

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutResult:
    """Where a record landed and whether it was queued for indexing."""

    object_key: str
    id: str
    queued: bool


class IngestService:
    """Facade used by external callers (HTTP layer, CLI, scheduler)."""

    def __init__(
        self,
        context: PipelineContext,
        *,
        enqueuer: BulkEnqueuer | None = None,
    ) -> None:
        """Create service.

        Args:
            context: Pipeline collaborators.
            enqueuer: Bulk enqueuer; built from the context when omitted.
        """
        self._context = context
        self._enqueuer = enqueuer or BulkEnqueuer(context)

    def put_record(
        self, record_type: str, data: dict[str, Any], *, enqueue: bool = True
    ) -> PutResult:
        """Address, persist and (optionally) queue one record.

        The durable write happens before the queue send, so every queued key
        refers to an object that exists.

        Args:
            record_type: Logical record category.
            data: JSON object payload.
            enqueue: Send a file-ingest message after the write.

        Returns:
            Object key, content id and whether a message was sent.
        """
        envelope = build_envelope(record_type, data)
        object_key = put_envelope(self._context.durable_store, envelope)
        if enqueue:
            self._context.queue.send(encode_message(FileIngestMessage(object_key=object_key)))
        _LOGGER.info("Stored %s at %s", envelope.id, object_key)
        return PutResult(object_key=object_key, id=envelope.id, queued=enqueue)

    def start_bulk_ingest(self, prefix: str = "") -> dict[str, object]:
        """Queue the first page of a backfill; continuation is internal.

        Args:
            prefix: Key prefix to backfill; empty means everything.

        Returns:
            ``{"queued": int, "hasMore": bool}``.
        """
        return self._enqueuer.start(prefix).as_response()

    def enqueue_single(self, object_key: str) -> dict[str, object]:
        """Queue one known object for targeted re-ingestion.

        Args:
            object_key: Durable store key.

        Returns:
            ``{"queued": True}``.

        Raises:
            ValueError: If ``object_key`` is empty.
        """
        if not object_key:
            raise ValueError("Object key is required")
        self._context.queue.send(encode_message(FileIngestMessage(object_key=object_key)))
        _LOGGER.info("Queued %s for ingestion", object_key)
        return {"queued": True}

    def rebuild_index(self, record_types: Iterable[str] | None = None) -> dict[str, object]:
        """Drop and recreate index tables, then backfill from the durable store.

        Args:
            record_types: Registered types to rebuild; all when omitted.

        Returns:
            Trigger response of the backfill that was started. A single type
            backfills only its own prefix.
        """
        registry = self._context.registry
        types = tuple(record_types) if record_types is not None else registry.types()
        # Resolve every type before dropping anything.
        tables = [registry.get(record_type).table for record_type in types]
        for table in tables:
            self._context.index_store.reset(table)
        prefix = f"{types[0]}/" if len(types) == 1 else ""
        _LOGGER.info("Rebuilding index for %s", ", ".join(types) or "no types")
        return self.start_bulk_ingest(prefix)
