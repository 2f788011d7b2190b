"""SQLite index store: one table per record type, idempotent upserts."""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from cairn.kernel.errors import PipelineError, PipelineErrorCode

_LOGGER = logging.getLogger(__name__)

OBJECT_KEY_COLUMN = "r2_key"
RESERVED_COLUMNS = frozenset({"id", OBJECT_KEY_COLUMN, "created_at", "updated_at"})

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqlType(StrEnum):
    """SQLite column affinities used by index tables."""

    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"


@dataclass(frozen=True)
class ColumnSpec:
    """One indexed column."""

    name: str
    sql_type: SqlType
    nullable: bool = False
    unique: bool = False


@dataclass(frozen=True)
class TableSpec:
    """Index table layout for one record type (excluding required columns)."""

    name: str
    columns: tuple[ColumnSpec, ...]

    def __post_init__(self) -> None:
        _require_identifier(self.name)
        seen: set[str] = set()
        for column in self.columns:
            _require_identifier(column.name)
            if column.name in RESERVED_COLUMNS:
                raise ValueError(f"Column name is reserved: {column.name!r}")
            if column.name in seen:
                raise ValueError(f"Duplicate column: {column.name!r}")
            seen.add(column.name)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)


@dataclass(frozen=True)
class IndexRecord:
    """Queryable projection of one envelope."""

    table: str
    id: str
    object_key: str
    fields: Mapping[str, object] = field(default_factory=dict)


class IndexStore:
    """SQLite-backed projection of the durable store."""

    def __init__(self, sqlite_path: Path | str, *, busy_timeout_ms: int = 5000) -> None:
        """Create store; the database file is created lazily.

        Args:
            sqlite_path: SQLite database file path.
            busy_timeout_ms: How long a writer waits on a locked database.
        """
        self._sqlite_path = str(sqlite_path)
        if isinstance(sqlite_path, Path):
            sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        self._busy_timeout_ms = busy_timeout_ms
        self._tables: dict[str, TableSpec] = {}

    def ensure_table(self, spec: TableSpec) -> None:
        """Create the table (and unique indexes) for ``spec`` if missing.

        Args:
            spec: Table layout.
        """
        column_sql = [
            "id TEXT PRIMARY KEY NOT NULL",
            f"{OBJECT_KEY_COLUMN} TEXT NOT NULL",
        ]
        for column in spec.columns:
            null_sql = "" if column.nullable else " NOT NULL"
            column_sql.append(f"{column.name} {column.sql_type.value}{null_sql}")
        column_sql.append("created_at TEXT NOT NULL")
        column_sql.append("updated_at TEXT NOT NULL")
        with self._open_connection() as conn:
            conn.execute(
                f"CREATE TABLE IF NOT EXISTS {spec.name} ({', '.join(column_sql)})"
            )
            for column in spec.columns:
                if column.unique:
                    conn.execute(
                        f"CREATE UNIQUE INDEX IF NOT EXISTS "
                        f"{spec.name}_{column.name}_unique "
                        f"ON {spec.name} ({column.name})"
                    )
        self._tables[spec.name] = spec

    def upsert(self, record: IndexRecord) -> None:
        """Insert or update one row keyed by ``record.id`` in one statement.

        Every indexed column, the object key and ``updated_at`` take the
        incoming values; ``created_at`` keeps the first insert's value.

        Args:
            record: Row to write.

        Raises:
            PipelineError: INDEX_CONSTRAINT for constraint violations other
                than the id conflict, INDEX_STORE_UNAVAILABLE otherwise.
        """
        spec = self._require_table(record.table)
        unknown = set(record.fields) - set(spec.column_names)
        if unknown:
            raise ValueError(
                f"Fields not indexed by table {spec.name!r}: {sorted(unknown)}"
            )
        now = _utc_now()
        columns = ["id", OBJECT_KEY_COLUMN, *spec.column_names, "created_at", "updated_at"]
        values = [
            record.id,
            record.object_key,
            *(_to_sql_value(record.fields.get(name)) for name in spec.column_names),
            now,
            now,
        ]
        updates = [
            f"{name} = excluded.{name}"
            for name in (OBJECT_KEY_COLUMN, *spec.column_names, "updated_at")
        ]
        sql = (
            f"INSERT INTO {spec.name} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)}) "
            f"ON CONFLICT(id) DO UPDATE SET {', '.join(updates)}"
        )
        try:
            with self._open_connection() as conn:
                conn.execute(sql, values)
        except sqlite3.IntegrityError as exc:
            raise PipelineError(
                PipelineErrorCode.INDEX_CONSTRAINT,
                f"Constraint violation upserting {record.id!r} into {spec.name!r}: {exc}",
                data={"table": spec.name, "id": record.id},
            ) from exc
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
                f"Index store write failed for {record.id!r}: {exc}",
                data={"table": spec.name, "id": record.id},
            ) from exc

    def get(self, table: str, record_id: str) -> dict[str, object] | None:
        """Read one row as a column mapping.

        Args:
            table: Table name.
            record_id: Row id.

        Returns:
            Column mapping, or ``None`` when absent.

        Raises:
            PipelineError: INDEX_STORE_UNAVAILABLE when the read fails.
        """
        spec = self._require_table(table)
        try:
            with self._open_connection() as conn:
                conn.row_factory = sqlite3.Row
                row = conn.execute(
                    f"SELECT * FROM {spec.name} WHERE id = ?", (record_id,)
                ).fetchone()
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
                f"Index store read failed for {record_id!r}: {exc}",
                data={"table": spec.name, "id": record_id},
            ) from exc
        if row is None:
            return None
        return {key: row[key] for key in row.keys()}

    def count(self, table: str) -> int:
        """Return the number of rows in ``table``."""
        spec = self._require_table(table)
        try:
            with self._open_connection() as conn:
                row = conn.execute(f"SELECT COUNT(*) FROM {spec.name}").fetchone()
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
                f"Index store count failed for {spec.name!r}: {exc}",
                data={"table": spec.name},
            ) from exc
        return int(row[0])

    def reset(self, table: str) -> None:
        """Drop and recreate ``table`` (administrative rebuild only).

        Args:
            table: Table name.

        Raises:
            PipelineError: INDEX_STORE_UNAVAILABLE when the table cannot be
                dropped or recreated.
        """
        spec = self._require_table(table)
        try:
            with self._open_connection() as conn:
                conn.execute(f"DROP TABLE IF EXISTS {spec.name}")
            self.ensure_table(spec)
        except sqlite3.Error as exc:
            raise PipelineError(
                PipelineErrorCode.INDEX_STORE_UNAVAILABLE,
                f"Index store reset failed for {spec.name!r}: {exc}",
                data={"table": spec.name},
            ) from exc
        _LOGGER.info("Reset index table %s", spec.name)

    def tables(self) -> tuple[str, ...]:
        """Return the registered table names in sorted order."""
        return tuple(sorted(self._tables))

    def _require_table(self, table: str) -> TableSpec:
        spec = self._tables.get(table)
        if spec is None:
            raise KeyError(f"Index table not registered: {table!r}")
        return spec

    @contextmanager
    def _open_connection(self) -> Iterator[sqlite3.Connection]:
        """Open, commit and close one sqlite connection.

        Yields:
            Open sqlite connection.
        """
        conn = sqlite3.connect(
            self._sqlite_path, timeout=self._busy_timeout_ms / 1000
        )
        try:
            conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            conn.execute("PRAGMA journal_mode=WAL")
            yield conn
            conn.commit()
        finally:
            conn.close()


def _require_identifier(name: str) -> None:
    if not _IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")


def _to_sql_value(value: object) -> object:
    if isinstance(value, datetime):
        # Naive timestamps in payloads are UTC.
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp())
    if isinstance(value, bool):
        return int(value)
    return value


def _utc_now() -> str:
    """Return UTC timestamp with microseconds so later writes sort after earlier ones.

    Returns:
        ISO-8601 UTC timestamp string.
    """
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")
