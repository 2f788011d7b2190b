"""Integration tests: bulk backfill through self-paginating queue messages."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from cairn.config import CairnConfig, IngestSettings
from cairn.context import PipelineContext, build_memory_context
from cairn.kernel.envelope import build_envelope
from cairn.pipeline import IngestConsumer, IngestService, MessageStatus, QueueWorker
from cairn.queue import InMemoryMessageQueue
from cairn.storage.durable import put_envelope


def _context(tmp_path: Path, page_size: int) -> PipelineContext:
    config = CairnConfig(ingest=IngestSettings(list_page_size=page_size))
    return build_memory_context(tmp_path / "index.sqlite", config=config)


def _fill_quotes(context: PipelineContext, count: int) -> set[str]:
    """Store ``count`` distinct quotes and return their object keys."""
    return {
        put_envelope(
            context.durable_store,
            build_envelope("quotes", {"author": f"Author {index}", "text": str(index)}),
        )
        for index in range(count)
    }


@pytest.mark.integration
@pytest.mark.parametrize(("total", "page_size"), [(0, 3), (1, 3), (6, 3), (7, 3), (25, 4)])
def test_one_start_enqueues_every_key_exactly_once(
    tmp_path: Path, total: int, page_size: int
) -> None:
    """K objects with page size P yield K file messages and terminate."""
    # Arrange
    context = _context(tmp_path, page_size)
    keys = _fill_quotes(context, total)
    service = IngestService(context)
    worker = QueueWorker(context.queue, IngestConsumer(context), batch_size=5)

    # Act
    response = service.start_bulk_ingest()
    summary = worker.drain()

    # Assert
    queue = context.queue
    assert isinstance(queue, InMemoryMessageQueue)
    file_keys = [body["objectKey"] for body in queue.sent if "objectKey" in body]
    pagination = [body for body in queue.sent if body.get("type") == "pagination"]
    assert response["hasMore"] is (total > page_size)
    assert sorted(file_keys) == sorted(keys)
    assert len(pagination) == max(math.ceil(total / page_size) - 1, 0)
    assert summary.statuses[MessageStatus.INDEXED] == total
    assert summary.statuses[MessageStatus.CONTINUED] == len(pagination)
    assert queue.pending_count() == 0
    assert context.index_store.count("quotes") == total


@pytest.mark.integration
def test_backfill_is_idempotent_across_runs(tmp_path: Path) -> None:
    """Running the same backfill twice leaves the index unchanged in size."""
    # Arrange
    context = _context(tmp_path, 2)
    _fill_quotes(context, 5)
    service = IngestService(context)
    worker = QueueWorker(context.queue, IngestConsumer(context))

    # Act
    service.start_bulk_ingest()
    worker.drain()
    service.start_bulk_ingest()
    second = worker.drain()

    # Assert
    assert second.statuses[MessageStatus.INDEXED] == 5
    assert context.index_store.count("quotes") == 5
    assert context.dead_letters.entries() == []


@pytest.mark.integration
def test_objects_deleted_mid_backfill_are_skipped(tmp_path: Path) -> None:
    """A key listed but gone at processing time is dead-lettered, not retried."""
    # Arrange
    context = _context(tmp_path, 10)
    keys = sorted(_fill_quotes(context, 3))
    service = IngestService(context)
    service.start_bulk_ingest()
    context.durable_store.delete(keys[1])  # type: ignore[attr-defined]

    # Act
    summary = QueueWorker(context.queue, IngestConsumer(context)).drain()

    # Assert
    assert summary.statuses[MessageStatus.INDEXED] == 2
    assert summary.statuses[MessageStatus.SKIPPED] == 1
    assert summary.statuses[MessageStatus.RETRY] == 0
    assert [entry.object_key for entry in context.dead_letters.entries()] == [keys[1]]


@pytest.mark.integration
def test_quotes_example_end_to_end(tmp_path: Path) -> None:
    """A stored quote envelope is indexed by id with its object key."""
    # Arrange
    context = _context(tmp_path, 1000)
    digest = "a" * 64
    key = f"quotes/sha256_{digest}.json"
    context.durable_store.put(
        key,
        b'{"type":"quotes","id":"sha256:' + digest.encode() + b'","data":{"author":"X","text":"Y"}}',
    )
    service = IngestService(context)

    # Act
    response = service.enqueue_single(key)
    QueueWorker(context.queue, IngestConsumer(context)).drain()

    # Assert
    assert response == {"queued": True}
    row = context.index_store.get("quotes", f"sha256:{digest}")
    assert row is not None
    assert row["r2_key"] == key
    assert row["author"] == "X"
