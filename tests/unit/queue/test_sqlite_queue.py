"""Unit tests for the sqlite-backed message queue."""

from __future__ import annotations

from pathlib import Path

import pytest

from cairn.kernel.errors import PipelineError, PipelineErrorCode
from cairn.queue import SqliteMessageQueue


class _Clock:
    """Manually advanced epoch clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _queue(tmp_path: Path, clock: _Clock, **kwargs: object) -> SqliteMessageQueue:
    """Build a queue on a temp database."""
    return SqliteMessageQueue(
        tmp_path / "queue" / "queue.sqlite",
        visibility_timeout=30.0,
        clock=clock,
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.unit
def test_send_receive_ack_round_trip(tmp_path: Path) -> None:
    """Messages are leased in order and removed by ack."""
    # Arrange
    clock = _Clock()
    queue = _queue(tmp_path, clock)
    queue.send_batch([{"objectKey": "a"}, {"objectKey": "b"}])
    queue.send({"type": "pagination", "cursor": "c"})

    # Act
    deliveries = queue.receive(2)
    queue.ack([delivery.delivery_id for delivery in deliveries])

    # Assert
    assert [delivery.body for delivery in deliveries] == [{"objectKey": "a"}, {"objectKey": "b"}]
    assert all(delivery.attempts == 1 for delivery in deliveries)
    assert queue.pending_count() == 1
    assert queue.receive(10)[0].body == {"type": "pagination", "cursor": "c"}


@pytest.mark.unit
def test_leased_message_reappears_after_visibility_timeout(tmp_path: Path) -> None:
    """An unacked lease becomes visible again once the timeout elapses."""
    # Arrange
    clock = _Clock()
    queue = _queue(tmp_path, clock)
    queue.send({"objectKey": "a"})
    queue.receive(1)

    # Act
    hidden = queue.receive(1)
    clock.now += 31
    redelivered = queue.receive(1)

    # Assert
    assert hidden == []
    assert redelivered[0].attempts == 2


@pytest.mark.unit
def test_retry_makes_message_visible_immediately(tmp_path: Path) -> None:
    """Retry does not wait for the visibility timeout."""
    # Arrange
    clock = _Clock()
    queue = _queue(tmp_path, clock)
    queue.send({"objectKey": "a"})
    delivery = queue.receive(1)[0]

    # Act
    queue.retry([delivery.delivery_id])

    # Assert
    assert queue.receive(1)[0].attempts == 2


@pytest.mark.unit
def test_exhausted_messages_are_parked(tmp_path: Path) -> None:
    """Messages past max_attempts move to the dead table."""
    # Arrange
    clock = _Clock()
    queue = _queue(tmp_path, clock, max_attempts=2)
    queue.send({"objectKey": "a"})

    # Act
    first = queue.receive(1)[0]
    queue.retry([first.delivery_id])
    second = queue.receive(1)[0]
    queue.retry([second.delivery_id])

    # Assert
    assert queue.receive(1) == []
    assert queue.pending_count() == 0
    dead = queue.dead_messages()
    assert [(message.body, message.attempts) for message in dead] == [({"objectKey": "a"}, 2)]


@pytest.mark.unit
def test_messages_persist_across_instances(tmp_path: Path) -> None:
    """Queue state lives in sqlite, not in the instance."""
    # Arrange
    clock = _Clock()
    _queue(tmp_path, clock).send({"objectKey": "a"})

    # Act
    reopened = _queue(tmp_path, clock)

    # Assert
    assert reopened.pending_count() == 1
    assert reopened.receive(1)[0].body == {"objectKey": "a"}


@pytest.mark.unit
def test_send_batch_limit_and_empty_batch(tmp_path: Path) -> None:
    """Oversized batches are rejected and empty ones are a no-op."""
    # Arrange
    queue = _queue(tmp_path, _Clock(), send_batch_limit=2)

    # Act / Assert
    queue.send_batch([])
    with pytest.raises(ValueError, match="at most 2"):
        queue.send_batch([{"objectKey": "a"}, {"objectKey": "b"}, {"objectKey": "c"}])
    assert queue.send_batch_limit == 2
    assert queue.pending_count() == 0


@pytest.mark.unit
def test_sqlite_failure_raises_queue_unavailable(tmp_path: Path) -> None:
    """A database path that cannot be opened surfaces as QUEUE_UNAVAILABLE."""
    # Arrange - the database path is a directory
    path = tmp_path / "queue.sqlite"
    path.mkdir()

    # Act
    with pytest.raises(PipelineError) as exc_info:
        SqliteMessageQueue(path)

    # Assert
    assert exc_info.value.code is PipelineErrorCode.QUEUE_UNAVAILABLE
    assert exc_info.value.retryable is True
