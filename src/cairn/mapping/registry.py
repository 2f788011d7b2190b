"""Mapping registry: record type -> index projection model."""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from cairn.kernel.envelope import Envelope
from cairn.kernel.errors import PipelineError, PipelineErrorCode
from cairn.storage.index_store import ColumnSpec, IndexRecord, SqlType, TableSpec

_SQL_TYPES: dict[type, SqlType] = {
    bool: SqlType.INTEGER,
    int: SqlType.INTEGER,
    float: SqlType.REAL,
    str: SqlType.TEXT,
    datetime: SqlType.INTEGER,
}


@dataclass(frozen=True)
class IndexMapping:
    """Projection of one record type into its index table.

    The pydantic model's fields are the indexed columns; validating ``data``
    against it performs required-field checks and type coercion.
    """

    record_type: str
    table: str
    model: type[BaseModel]
    unique: frozenset[str] = field(default_factory=frozenset)

    def table_spec(self) -> TableSpec:
        """Derive the index table layout from the model annotations.

        Returns:
            Table spec with one column per model field.
        """
        columns = []
        for name, info in self.model.model_fields.items():
            sql_type, nullable = _column_type(info.annotation)
            columns.append(
                ColumnSpec(
                    name=name,
                    sql_type=sql_type,
                    nullable=nullable,
                    unique=name in self.unique,
                )
            )
        return TableSpec(name=self.table, columns=tuple(columns))

    def project(self, envelope: Envelope, object_key: str) -> IndexRecord:
        """Validate ``envelope.data`` and build the index row.

        Args:
            envelope: Parsed envelope.
            object_key: Durable store key the envelope was read from.

        Returns:
            Index record for upsert.

        Raises:
            PipelineError: MAPPING_FAILED when a required field is missing or
                cannot be coerced.
        """
        try:
            validated = self.model.model_validate(envelope.data)
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors(include_url=False)
            ]
            raise PipelineError(
                PipelineErrorCode.MAPPING_FAILED,
                f"Invalid {self.record_type} record: {'; '.join(problems)}",
                data={"type": self.record_type, "problems": problems},
            ) from exc
        return IndexRecord(
            table=self.table,
            id=envelope.id,
            object_key=object_key,
            fields=dict(validated),
        )


class MappingRegistry:
    """In-process registry: record type -> IndexMapping."""

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._mappings: dict[str, IndexMapping] = {}

    def register(self, mapping: IndexMapping, *, override: bool = False) -> None:
        """Register ``mapping`` for its record type.

        Args:
            mapping: Projection to register.
            override: If True, replace an existing registration.

        Raises:
            ValueError: If the type is already registered and override is False.
        """
        if mapping.record_type in self._mappings and not override:
            raise ValueError(f"Mapping already registered: {mapping.record_type!r}")
        self._mappings[mapping.record_type] = mapping

    def has(self, record_type: str) -> bool:
        return record_type in self._mappings

    def get(self, record_type: str) -> IndexMapping:
        """Return the mapping for ``record_type``.

        Raises:
            PipelineError: UNKNOWN_TYPE if nothing is registered for the type.
        """
        mapping = self._mappings.get(record_type)
        if mapping is None:
            raise PipelineError(
                PipelineErrorCode.UNKNOWN_TYPE,
                f"No index mapping registered for type {record_type!r}",
                data={"type": record_type},
            )
        return mapping

    def types(self) -> tuple[str, ...]:
        return tuple(sorted(self._mappings))

    def mappings(self) -> tuple[IndexMapping, ...]:
        return tuple(self._mappings[name] for name in self.types())

    def map(self, envelope: Envelope, object_key: str) -> IndexRecord:
        """Project an envelope through the mapping registered for its type.

        Args:
            envelope: Parsed envelope.
            object_key: Durable store key.

        Returns:
            Index record.
        """
        return self.get(envelope.type).project(envelope, object_key)


def _column_type(annotation: Any) -> tuple[SqlType, bool]:
    """Resolve the SQL type and nullability of a model field annotation.

    Args:
        annotation: Field annotation, e.g. ``int`` or ``str | None``.

    Returns:
        ``(sql_type, nullable)``.

    Raises:
        TypeError: For annotations with no scalar column equivalent.
    """
    nullable = False
    if get_origin(annotation) in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        nullable = len(args) != len(get_args(annotation))
        if len(args) != 1:
            raise TypeError(f"Unsupported index column annotation: {annotation!r}")
        annotation = args[0]
    sql_type = _SQL_TYPES.get(annotation)
    if sql_type is None:
        raise TypeError(f"Unsupported index column annotation: {annotation!r}")
    return sql_type, nullable
