"""Ingest consumer: project queued durable objects into the index."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from cairn.context import PipelineContext
from cairn.kernel.envelope import parse_envelope, verify_envelope_id
from cairn.kernel.errors import PipelineError, PipelineErrorCode
from cairn.kernel.messages import (
    FileIngestMessage,
    IngestMessage,
    PaginationMessage,
    decode_message,
)
from cairn.pipeline.enqueuer import BulkEnqueuer
from cairn.storage.dead_letter import DeadLetterEntry

_LOGGER = logging.getLogger(__name__)


class MessageStatus(StrEnum):
    """How one message in a batch was handled."""

    INDEXED = "indexed"
    CONTINUED = "continued"
    SKIPPED = "skipped"
    RETRY = "retry"
    FAILED = "failed"

    @property
    def handled(self) -> bool:
        """Whether the message should be acknowledged."""
        return self is not MessageStatus.RETRY


@dataclass(frozen=True)
class MessageOutcome:
    """Result of processing one message."""

    status: MessageStatus
    object_key: str | None = None
    code: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class BatchReport:
    """Per-message outcomes of one batch, in delivery order."""

    outcomes: tuple[MessageOutcome, ...] = field(default_factory=tuple)

    @property
    def counts(self) -> dict[MessageStatus, int]:
        tally = Counter(outcome.status for outcome in self.outcomes)
        return {status: tally.get(status, 0) for status in MessageStatus}

    def count(self, status: MessageStatus) -> int:
        return self.counts[status]


class IngestConsumer:
    """Drain queue batches; every message is handled in isolation.

    Stateless between messages: object content is fetched fresh each time
    and all writes go through the index store's atomic upsert, so duplicate
    or concurrent deliveries converge on the same rows.
    """

    def __init__(
        self,
        context: PipelineContext,
        *,
        enqueuer: BulkEnqueuer | None = None,
    ) -> None:
        """Create consumer.

        Args:
            context: Pipeline collaborators.
            enqueuer: Bulk enqueuer for pagination messages; built from the
                context when omitted.
        """
        self._context = context
        self._enqueuer = enqueuer or BulkEnqueuer(context)
        self._verify_ids = context.config.ingest.verify_ids

    def process_batch(self, messages: Sequence[object]) -> BatchReport:
        """Process a batch; one message's failure never affects the others.

        Args:
            messages: Raw queue bodies or decoded ingest messages.

        Returns:
            Per-message outcomes.
        """
        if not messages:
            return BatchReport()
        _LOGGER.info("Processing batch of %d message(s)", len(messages))
        outcomes = tuple(self.process_message(message) for message in messages)
        report = BatchReport(outcomes=outcomes)
        _LOGGER.info(
            "Finished batch: %s",
            ", ".join(f"{status.value}={count}" for status, count in report.counts.items()),
        )
        return report

    def process_message(self, body: object) -> MessageOutcome:
        """Process one message and classify the result.

        Args:
            body: Raw queue body or decoded ingest message.

        Returns:
            Outcome; transient errors yield ``RETRY``, data errors ``SKIPPED``.
        """
        object_key: str | None = None
        try:
            message = decode_message(body)
            if isinstance(message, FileIngestMessage):
                object_key = message.object_key
            return self._dispatch(message)
        except PipelineError as exc:
            if exc.retryable:
                _LOGGER.warning("Transient failure for %s, will retry: %s", object_key, exc)
                return MessageOutcome(
                    MessageStatus.RETRY, object_key, exc.code.value, str(exc)
                )
            self._dead_letter(exc, object_key=object_key, body=body)
            return MessageOutcome(MessageStatus.SKIPPED, object_key, exc.code.value, str(exc))
        except Exception as exc:
            _LOGGER.exception("Unexpected failure processing %s", object_key or body)
            self._record_dead_letter(
                DeadLetterEntry(
                    code="unexpected_error",
                    message=f"{type(exc).__name__}: {exc}",
                    object_key=object_key,
                    message_body=_describe(body),
                )
            )
            return MessageOutcome(MessageStatus.FAILED, object_key, "unexpected_error", str(exc))

    def _dispatch(self, message: IngestMessage) -> MessageOutcome:
        if isinstance(message, PaginationMessage):
            return self._continue_listing(message)
        return self._ingest_object(message.object_key)

    def _continue_listing(self, message: PaginationMessage) -> MessageOutcome:
        try:
            result = self._enqueuer.continue_from(message.cursor)
        except ValueError as exc:
            raise PipelineError(
                PipelineErrorCode.MESSAGE_MALFORMED,
                f"Unusable pagination cursor: {exc}",
            ) from exc
        return MessageOutcome(
            MessageStatus.CONTINUED,
            detail=f"queued={result.queued} has_more={result.has_more}",
        )

    def _ingest_object(self, object_key: str) -> MessageOutcome:
        raw = self._context.durable_store.get(object_key)
        if raw is None:
            _LOGGER.warning("Object not found, skipping: %s", object_key)
            raise PipelineError(
                PipelineErrorCode.OBJECT_NOT_FOUND,
                f"Object not found: {object_key}",
                data={"object_key": object_key},
            )
        envelope = parse_envelope(raw)
        if self._verify_ids:
            verify_envelope_id(envelope)
        record = self._context.registry.map(envelope, object_key)
        self._context.index_store.upsert(record)
        _LOGGER.debug("Indexed %s into %s", envelope.id, record.table)
        return MessageOutcome(MessageStatus.INDEXED, object_key)

    def _dead_letter(self, error: PipelineError, *, object_key: str | None, body: object) -> None:
        _LOGGER.error("Dropping message for %s: [%s] %s", object_key, error.code.value, error)
        self._record_dead_letter(
            DeadLetterEntry.from_error(error, object_key=object_key, message_body=_describe(body))
        )

    def _record_dead_letter(self, entry: DeadLetterEntry) -> None:
        """Write one dead letter; a failing sink never aborts the batch."""
        try:
            self._context.dead_letters.record(entry)
        except Exception:
            _LOGGER.exception("Failed to record dead letter for %s", entry.object_key)


def _describe(body: object) -> object:
    if isinstance(body, FileIngestMessage | PaginationMessage):
        return repr(body)
    return body
