"""SQLite-backed persistent queue with visibility-timeout redelivery."""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from cairn.kernel.errors import PipelineError, PipelineErrorCode
from cairn.queue.base import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_SEND_BATCH_LIMIT,
    DeadMessage,
    QueueDelivery,
    check_batch_size,
)

_LOGGER = logging.getLogger(__name__)


class SqliteMessageQueue:
    """Durable local queue shared by any number of consumer processes.

    ``receive`` leases messages until the visibility timeout elapses; a lease
    that is neither acked nor retried in time makes the message visible again.
    """

    def __init__(
        self,
        sqlite_path: Path,
        *,
        visibility_timeout: float = 30.0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        send_batch_limit: int = DEFAULT_SEND_BATCH_LIMIT,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create queue and ensure its schema exists.

        Args:
            sqlite_path: SQLite file path for queue state.
            visibility_timeout: Seconds a leased message stays invisible.
            max_attempts: Deliveries before a message is parked as dead.
            send_batch_limit: Maximum bodies per ``send_batch`` call.
            clock: Time source in epoch seconds.
        """
        self._sqlite_path = sqlite_path
        self._sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._visibility_timeout = visibility_timeout
        self._max_attempts = max_attempts
        self._send_batch_limit = send_batch_limit
        self._clock = clock
        self._initialize()

    @property
    def send_batch_limit(self) -> int:
        return self._send_batch_limit

    def send(self, body: dict[str, Any]) -> None:
        self.send_batch([body])

    def send_batch(self, bodies: Sequence[dict[str, Any]]) -> None:
        """Enqueue bodies in one transaction.

        Args:
            bodies: Message bodies (JSON objects).

        Raises:
            ValueError: If more than ``send_batch_limit`` bodies are given.
            PipelineError: QUEUE_UNAVAILABLE on sqlite failure.
        """
        check_batch_size(bodies, self._send_batch_limit)
        if not bodies:
            return
        now = self._clock()
        rows = [(json.dumps(body, sort_keys=True), now) for body in bodies]
        with self._transaction() as conn:
            conn.executemany(
                "INSERT INTO messages (body, attempts, visible_at) VALUES (?, 0, ?)",
                rows,
            )

    def receive(self, max_messages: int) -> list[QueueDelivery]:
        """Lease up to ``max_messages`` visible messages.

        Expired leases past ``max_attempts`` are parked before leasing.

        Args:
            max_messages: Batch size.

        Returns:
            Leased deliveries in enqueue order.
        """
        now = self._clock()
        with self._transaction() as conn:
            self._park_exhausted(conn, now)
            rows = conn.execute(
                "SELECT id, body, attempts FROM messages "
                "WHERE visible_at <= ? ORDER BY id LIMIT ?",
                (now, max_messages),
            ).fetchall()
            conn.executemany(
                "UPDATE messages SET attempts = attempts + 1, visible_at = ? WHERE id = ?",
                [(now + self._visibility_timeout, row[0]) for row in rows],
            )
        return [
            QueueDelivery(
                delivery_id=str(row[0]),
                body=json.loads(row[1]),
                attempts=int(row[2]) + 1,
            )
            for row in rows
        ]

    def ack(self, delivery_ids: Sequence[str]) -> None:
        if not delivery_ids:
            return
        with self._transaction() as conn:
            conn.executemany(
                "DELETE FROM messages WHERE id = ?",
                [(int(delivery_id),) for delivery_id in delivery_ids],
            )

    def retry(self, delivery_ids: Sequence[str]) -> None:
        """Make deliveries visible again, or park them when out of attempts.

        Args:
            delivery_ids: Deliveries to return to the queue.
        """
        if not delivery_ids:
            return
        now = self._clock()
        with self._transaction() as conn:
            conn.executemany(
                "UPDATE messages SET visible_at = ? WHERE id = ?",
                [(now, int(delivery_id)) for delivery_id in delivery_ids],
            )
            self._park_exhausted(conn, now)

    def pending_count(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) FROM messages").fetchone()
        return int(row[0])

    def dead_messages(self) -> list[DeadMessage]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT body, attempts FROM dead_messages ORDER BY id"
            ).fetchall()
        return [DeadMessage(body=json.loads(row[0]), attempts=int(row[1])) for row in rows]

    def _park_exhausted(self, conn: sqlite3.Connection, now: float) -> None:
        rows = conn.execute(
            "SELECT id, body, attempts FROM messages WHERE visible_at <= ? AND attempts >= ?",
            (now, self._max_attempts),
        ).fetchall()
        if not rows:
            return
        conn.executemany(
            "INSERT INTO dead_messages (body, attempts, parked_at) VALUES (?, ?, ?)",
            [(row[1], row[2], now) for row in rows],
        )
        conn.executemany("DELETE FROM messages WHERE id = ?", [(row[0],) for row in rows])
        _LOGGER.warning("Parked %d message(s) after %d attempts", len(rows), self._max_attempts)

    def _initialize(self) -> None:
        """Create queue tables if missing."""
        with self._transaction() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS messages ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT,"
                "body TEXT NOT NULL,"
                "attempts INTEGER NOT NULL,"
                "visible_at REAL NOT NULL"
                ")"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS messages_visible_at ON messages (visible_at)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS dead_messages ("
                "id INTEGER PRIMARY KEY AUTOINCREMENT,"
                "body TEXT NOT NULL,"
                "attempts INTEGER NOT NULL,"
                "parked_at REAL NOT NULL"
                ")"
            )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run one write-locked transaction.

        Yields:
            Connection inside ``BEGIN IMMEDIATE``.

        Raises:
            PipelineError: QUEUE_UNAVAILABLE on sqlite failure.
        """
        try:
            conn = sqlite3.connect(self._sqlite_path, timeout=30, isolation_level=None)
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.QUEUE_UNAVAILABLE,
                f"Queue database unavailable: {exc}",
            ) from exc
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.QUEUE_UNAVAILABLE,
                f"Queue operation failed: {exc}",
            ) from exc
        finally:
            conn.close()
