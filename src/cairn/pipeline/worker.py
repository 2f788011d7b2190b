"""Queue worker: lease batches, run the consumer, ack or retry per message."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cairn.pipeline.consumer import BatchReport, IngestConsumer, MessageStatus
from cairn.queue import MessageQueue

_LOGGER = logging.getLogger(__name__)


@dataclass
class DrainSummary:
    """Totals across every batch drained."""

    batches: int = 0
    messages: int = 0
    statuses: dict[MessageStatus, int] = field(
        default_factory=lambda: {status: 0 for status in MessageStatus}
    )

    def add(self, report: BatchReport) -> None:
        self.batches += 1
        self.messages += len(report.outcomes)
        for status, count in report.counts.items():
            self.statuses[status] += count


class QueueWorker:
    """Bridge between a message queue and the ingest consumer."""

    def __init__(
        self,
        queue: MessageQueue,
        consumer: IngestConsumer,
        *,
        batch_size: int = 10,
    ) -> None:
        """Create worker.

        Args:
            queue: Queue to lease from.
            consumer: Consumer that handles each batch.
            batch_size: Maximum messages per batch.
        """
        self._queue = queue
        self._consumer = consumer
        self._batch_size = batch_size

    def run_once(self) -> BatchReport:
        """Lease and process one batch.

        Handled messages are acked; transient failures are returned to the
        queue individually.

        Returns:
            Report of the processed batch (empty when nothing was visible).
        """
        deliveries = self._queue.receive(self._batch_size)
        if not deliveries:
            return BatchReport()
        report = self._consumer.process_batch([delivery.body for delivery in deliveries])
        handled: list[str] = []
        retry: list[str] = []
        for delivery, outcome in zip(deliveries, report.outcomes, strict=True):
            (handled if outcome.status.handled else retry).append(delivery.delivery_id)
        self._queue.ack(handled)
        if retry:
            _LOGGER.warning("Returning %d message(s) to the queue for retry", len(retry))
            self._queue.retry(retry)
        return report

    def drain(self, max_batches: int | None = None) -> DrainSummary:
        """Process batches until the queue has nothing visible.

        Pagination messages enqueue further pages while draining, so one
        drain after a bulk start walks the whole listing.

        Args:
            max_batches: Optional cap on batches processed.

        Returns:
            Totals across drained batches.
        """
        summary = DrainSummary()
        while max_batches is None or summary.batches < max_batches:
            report = self.run_once()
            if not report.outcomes:
                break
            summary.add(report)
        _LOGGER.info("Drained %d message(s) in %d batch(es)", summary.messages, summary.batches)
        return summary
