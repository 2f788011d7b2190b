"""At-least-once message queues carrying ingest messages."""

from cairn.queue.base import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_SEND_BATCH_LIMIT,
    DeadMessage,
    InMemoryMessageQueue,
    MessageQueue,
    QueueDelivery,
)
from cairn.queue.sqlite_queue import SqliteMessageQueue

__all__ = [
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_SEND_BATCH_LIMIT",
    "DeadMessage",
    "InMemoryMessageQueue",
    "MessageQueue",
    "QueueDelivery",
    "SqliteMessageQueue",
]
