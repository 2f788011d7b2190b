"""Message queue contract and in-memory implementation."""

from __future__ import annotations

import itertools
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Protocol

DEFAULT_SEND_BATCH_LIMIT = 100
DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class QueueDelivery:
    """One delivered message; ``attempts`` counts this delivery."""

    delivery_id: str
    body: dict[str, Any]
    attempts: int


@dataclass(frozen=True)
class DeadMessage:
    """Message parked after exhausting its delivery attempts."""

    body: dict[str, Any]
    attempts: int


class MessageQueue(Protocol):
    """At-least-once delivery channel for ingest messages."""

    @property
    def send_batch_limit(self) -> int:
        """Maximum number of bodies accepted by one ``send_batch`` call."""

    def send(self, body: dict[str, Any]) -> None:
        """Enqueue one message body."""

    def send_batch(self, bodies: Sequence[dict[str, Any]]) -> None:
        """Enqueue up to ``send_batch_limit`` bodies in one call."""

    def receive(self, max_messages: int) -> list[QueueDelivery]:
        """Lease up to ``max_messages`` visible messages."""

    def ack(self, delivery_ids: Sequence[str]) -> None:
        """Acknowledge handled deliveries; they are never redelivered."""

    def retry(self, delivery_ids: Sequence[str]) -> None:
        """Return deliveries to the queue for redelivery."""

    def pending_count(self) -> int:
        """Number of messages not yet acknowledged (visible or leased)."""


def check_batch_size(bodies: Sequence[object], limit: int) -> None:
    """Reject send batches larger than the queue accepts.

    Raises:
        ValueError: If ``bodies`` exceeds ``limit``.
    """
    if len(bodies) > limit:
        raise ValueError(f"send_batch accepts at most {limit} messages, got {len(bodies)}")


@dataclass
class _Entry:
    body: dict[str, Any]
    attempts: int = 0


@dataclass
class InMemoryMessageQueue:
    """Deque-backed queue; leased messages return only through retry or expiry."""

    send_batch_limit: int = DEFAULT_SEND_BATCH_LIMIT
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    _ready: deque[_Entry] = field(default_factory=deque, init=False)
    _leased: dict[str, _Entry] = field(default_factory=dict, init=False)
    _dead: list[DeadMessage] = field(default_factory=list, init=False)
    _ids: itertools.count = field(default_factory=itertools.count, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)
    sent: list[dict[str, Any]] = field(default_factory=list, init=False)

    def send(self, body: dict[str, Any]) -> None:
        with self._lock:
            self._ready.append(_Entry(body=dict(body)))
            self.sent.append(dict(body))

    def send_batch(self, bodies: Sequence[dict[str, Any]]) -> None:
        check_batch_size(bodies, self.send_batch_limit)
        with self._lock:
            for body in bodies:
                self._ready.append(_Entry(body=dict(body)))
                self.sent.append(dict(body))

    def receive(self, max_messages: int) -> list[QueueDelivery]:
        deliveries: list[QueueDelivery] = []
        with self._lock:
            while self._ready and len(deliveries) < max_messages:
                entry = self._ready.popleft()
                entry.attempts += 1
                delivery_id = str(next(self._ids))
                self._leased[delivery_id] = entry
                deliveries.append(
                    QueueDelivery(
                        delivery_id=delivery_id,
                        body=dict(entry.body),
                        attempts=entry.attempts,
                    )
                )
        return deliveries

    def ack(self, delivery_ids: Sequence[str]) -> None:
        with self._lock:
            for delivery_id in delivery_ids:
                self._leased.pop(delivery_id, None)

    def retry(self, delivery_ids: Sequence[str]) -> None:
        with self._lock:
            for delivery_id in delivery_ids:
                entry = self._leased.pop(delivery_id, None)
                if entry is not None:
                    self._requeue(entry)

    def expire_leases(self) -> int:
        """Redeliver every leased message, as a batch timeout would.

        Returns:
            Number of messages made visible again.
        """
        with self._lock:
            entries = list(self._leased.values())
            self._leased.clear()
            for entry in entries:
                self._requeue(entry)
        return len(entries)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._ready) + len(self._leased)

    def dead_messages(self) -> list[DeadMessage]:
        with self._lock:
            return list(self._dead)

    def _requeue(self, entry: _Entry) -> None:
        if entry.attempts >= self.max_attempts:
            self._dead.append(DeadMessage(body=entry.body, attempts=entry.attempts))
        else:
            self._ready.append(entry)
