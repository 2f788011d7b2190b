"""Durable object store, relational index store and dead-letter log."""

from cairn.storage.dead_letter import (
    DeadLetterEntry,
    DeadLetterLog,
    InMemoryDeadLetterLog,
    JsonlDeadLetterLog,
)
from cairn.storage.durable import (
    MAX_PAGE_SIZE,
    DurableStore,
    FilesystemDurableStore,
    InMemoryDurableStore,
    ListPage,
    put_envelope,
)
from cairn.storage.index_store import (
    ColumnSpec,
    IndexRecord,
    IndexStore,
    SqlType,
    TableSpec,
)

__all__ = [
    "MAX_PAGE_SIZE",
    "ColumnSpec",
    "DeadLetterEntry",
    "DeadLetterLog",
    "DurableStore",
    "FilesystemDurableStore",
    "InMemoryDeadLetterLog",
    "InMemoryDurableStore",
    "IndexRecord",
    "IndexStore",
    "JsonlDeadLetterLog",
    "ListPage",
    "SqlType",
    "TableSpec",
    "put_envelope",
]
