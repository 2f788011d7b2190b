"""Unit tests for the in-memory message queue."""

from __future__ import annotations

import pytest

from cairn.queue import InMemoryMessageQueue


@pytest.mark.unit
def test_send_batch_enforces_limit() -> None:
    """Batches above the send limit are rejected whole."""
    # Arrange
    queue = InMemoryMessageQueue()

    # Act / Assert
    queue.send_batch([{"objectKey": str(index)} for index in range(100)])
    with pytest.raises(ValueError, match="at most 100"):
        queue.send_batch([{"objectKey": str(index)} for index in range(101)])
    assert queue.pending_count() == 100


@pytest.mark.unit
def test_receive_leases_until_ack() -> None:
    """Leased messages are invisible and ack removes them for good."""
    # Arrange
    queue = InMemoryMessageQueue()
    queue.send({"objectKey": "a"})
    queue.send({"objectKey": "b"})

    # Act
    first = queue.receive(10)
    second = queue.receive(10)
    queue.ack([delivery.delivery_id for delivery in first])

    # Assert
    assert [delivery.body for delivery in first] == [{"objectKey": "a"}, {"objectKey": "b"}]
    assert [delivery.attempts for delivery in first] == [1, 1]
    assert second == []
    assert queue.pending_count() == 0
    assert queue.expire_leases() == 0


@pytest.mark.unit
def test_retry_redelivers_with_incremented_attempts() -> None:
    """Retried messages come back with a higher attempt count."""
    # Arrange
    queue = InMemoryMessageQueue()
    queue.send({"objectKey": "a"})
    delivery = queue.receive(1)[0]

    # Act
    queue.retry([delivery.delivery_id])
    redelivered = queue.receive(1)

    # Assert
    assert redelivered[0].body == {"objectKey": "a"}
    assert redelivered[0].attempts == 2


@pytest.mark.unit
def test_expired_leases_redeliver_and_park_after_max_attempts() -> None:
    """Unacked messages return after expiry until attempts run out."""
    # Arrange
    queue = InMemoryMessageQueue(max_attempts=2)
    queue.send({"objectKey": "a"})

    # Act
    queue.receive(1)
    queue.expire_leases()
    second = queue.receive(1)
    queue.expire_leases()
    third = queue.receive(1)

    # Assert
    assert second[0].attempts == 2
    assert third == []
    assert queue.pending_count() == 0
    dead = queue.dead_messages()
    assert [(message.body, message.attempts) for message in dead] == [({"objectKey": "a"}, 2)]


@pytest.mark.unit
def test_sent_records_every_body_in_order() -> None:
    """The sent log captures single and batch sends."""
    # Arrange
    queue = InMemoryMessageQueue()

    # Act
    queue.send({"objectKey": "a"})
    queue.send_batch([{"objectKey": "b"}, {"type": "pagination", "cursor": "c"}])

    # Assert
    assert queue.sent == [
        {"objectKey": "a"},
        {"objectKey": "b"},
        {"type": "pagination", "cursor": "c"},
    ]
