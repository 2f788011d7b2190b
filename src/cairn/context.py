"""Pipeline context: explicit wiring of stores, queue and mappings."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from cairn.config import CairnConfig, resolve_path
from cairn.mapping import MappingRegistry, build_default_registry
from cairn.queue import InMemoryMessageQueue, MessageQueue, SqliteMessageQueue
from cairn.storage import (
    DeadLetterLog,
    DurableStore,
    FilesystemDurableStore,
    InMemoryDeadLetterLog,
    InMemoryDurableStore,
    IndexStore,
    JsonlDeadLetterLog,
)


@dataclass(frozen=True)
class PipelineContext:
    """Collaborators injected into every pipeline component."""

    config: CairnConfig
    durable_store: DurableStore
    index_store: IndexStore
    queue: MessageQueue
    registry: MappingRegistry
    dead_letters: DeadLetterLog


def ensure_index_tables(index_store: IndexStore, registry: MappingRegistry) -> None:
    """Create one index table per registered mapping.

    Args:
        index_store: Target index store.
        registry: Registered mappings.
    """
    for mapping in registry.mappings():
        index_store.ensure_table(mapping.table_spec())


def build_context(
    config: CairnConfig,
    workspace_root: Path,
    *,
    registry: MappingRegistry | None = None,
) -> PipelineContext:
    """Wire filesystem/sqlite implementations under ``workspace_root``.

    Args:
        config: Loaded pipeline config.
        workspace_root: Directory that relative config paths resolve against.
        registry: Mapping registry; built-in mappings when omitted.

    Returns:
        Ready-to-use pipeline context.
    """
    registry = registry or build_default_registry()
    index_store = IndexStore(
        resolve_path(workspace_root, config.index.sqlite_path),
        busy_timeout_ms=config.index.busy_timeout_ms,
    )
    ensure_index_tables(index_store, registry)
    dead_letters: DeadLetterLog = (
        JsonlDeadLetterLog(resolve_path(workspace_root, config.dead_letter.path))
        if config.dead_letter.enabled
        else InMemoryDeadLetterLog()
    )
    return PipelineContext(
        config=config,
        durable_store=FilesystemDurableStore(
            resolve_path(workspace_root, config.storage.root)
        ),
        index_store=index_store,
        queue=SqliteMessageQueue(
            resolve_path(workspace_root, config.queue.sqlite_path),
            visibility_timeout=config.queue.visibility_timeout_seconds,
            max_attempts=config.queue.max_attempts,
            send_batch_limit=config.queue.send_batch_limit,
        ),
        registry=registry,
        dead_letters=dead_letters,
    )


def build_memory_context(
    index_path: Path,
    *,
    config: CairnConfig | None = None,
    registry: MappingRegistry | None = None,
) -> PipelineContext:
    """Wire in-memory store, queue and dead-letter log around a sqlite index.

    Args:
        index_path: SQLite file for the index store.
        config: Pipeline config; defaults when omitted.
        registry: Mapping registry; built-in mappings when omitted.

    Returns:
        Pipeline context suitable for tests and dry runs.
    """
    config = config or CairnConfig()
    registry = registry or build_default_registry()
    index_store = IndexStore(index_path, busy_timeout_ms=config.index.busy_timeout_ms)
    ensure_index_tables(index_store, registry)
    return PipelineContext(
        config=config,
        durable_store=InMemoryDurableStore(),
        index_store=index_store,
        queue=InMemoryMessageQueue(
            send_batch_limit=config.queue.send_batch_limit,
            max_attempts=config.queue.max_attempts,
        ),
        registry=registry,
        dead_letters=InMemoryDeadLetterLog(),
    )
