"""Bulk enqueuer: one listing page per call, continued through the queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from cairn.context import PipelineContext
from cairn.kernel.messages import FileIngestMessage, PaginationMessage, encode_message

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnqueueResult:
    """Outcome of enqueuing one listing page."""

    queued: int
    has_more: bool
    next_cursor: str | None = None

    def as_response(self) -> dict[str, object]:
        """Trigger-surface response body."""
        return {"queued": self.queued, "hasMore": self.has_more}


class BulkEnqueuer:
    """List the durable store page by page and enqueue one ingest per key.

    Each call handles exactly one page. When more pages remain, a single
    pagination message carries the cursor; the consumer hands it back to
    :meth:`continue_from`, so one ``start`` eventually enqueues every key
    without a client-side loop.
    """

    def __init__(self, context: PipelineContext) -> None:
        self._store = context.durable_store
        self._queue = context.queue
        self._page_size = context.config.ingest.list_page_size
        self._send_limit = min(
            context.config.queue.send_batch_limit, context.queue.send_batch_limit
        )

    def start(self, prefix: str = "") -> EnqueueResult:
        """Enqueue the first page of keys under ``prefix``.

        Args:
            prefix: Key prefix, e.g. ``"quotes/"``; empty lists everything.

        Returns:
            Count queued on this page and whether continuation was scheduled.
        """
        return self._enqueue_page(prefix=prefix, cursor=None)

    def continue_from(self, cursor: str) -> EnqueueResult:
        """Enqueue the page following ``cursor``.

        Args:
            cursor: Opaque cursor from a pagination message.

        Returns:
            Count queued on this page and whether continuation was scheduled.
        """
        return self._enqueue_page(prefix="", cursor=cursor)

    def _enqueue_page(self, *, prefix: str, cursor: str | None) -> EnqueueResult:
        # Listing failures propagate whole: nothing has been sent yet.
        page = self._store.list(prefix=prefix, cursor=cursor, page_size=self._page_size)
        bodies = [encode_message(FileIngestMessage(object_key=key)) for key in page.keys]
        queued = 0
        for start in range(0, len(bodies), self._send_limit):
            chunk = bodies[start : start + self._send_limit]
            self._queue.send_batch(chunk)
            queued += len(chunk)
        if page.has_more and page.next_cursor:
            self._queue.send(encode_message(PaginationMessage(cursor=page.next_cursor)))
            _LOGGER.info("Queued %d object(s); continuation scheduled", queued)
            return EnqueueResult(queued=queued, has_more=True, next_cursor=page.next_cursor)
        _LOGGER.info("Queued %d object(s); listing complete", queued)
        return EnqueueResult(queued=queued, has_more=False)
