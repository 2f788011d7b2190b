"""Ingestion pipeline: bulk enqueuer, consumer, worker and trigger surface."""

from cairn.pipeline.consumer import (
    BatchReport,
    IngestConsumer,
    MessageOutcome,
    MessageStatus,
)
from cairn.pipeline.enqueuer import BulkEnqueuer, EnqueueResult
from cairn.pipeline.service import IngestService, PutResult
from cairn.pipeline.worker import DrainSummary, QueueWorker

__all__ = [
    "BatchReport",
    "BulkEnqueuer",
    "DrainSummary",
    "EnqueueResult",
    "IngestConsumer",
    "IngestService",
    "MessageOutcome",
    "MessageStatus",
    "PutResult",
    "QueueWorker",
]
