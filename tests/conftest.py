"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeAlias

import pytest

from cairn.config import CairnConfig
from cairn.context import PipelineContext, build_context, build_memory_context
from cairn.kernel.envelope import build_envelope
from cairn.storage.durable import put_envelope

StoreRecord: TypeAlias = Callable[[str, dict[str, Any]], str]


@pytest.fixture
def workspace_root(tmp_path: Path) -> Path:
    """Temporary workspace root; stores and databases are created under it."""
    return tmp_path / ".cairn"


@pytest.fixture
def memory_context(tmp_path: Path) -> PipelineContext:
    """In-memory store, queue and dead letters around a temp sqlite index."""
    return build_memory_context(tmp_path / "index.sqlite")


@pytest.fixture
def fs_context(workspace_root: Path) -> PipelineContext:
    """Filesystem store plus sqlite index and queue under the workspace."""
    return build_context(CairnConfig(), workspace_root)


@pytest.fixture
def store_record(memory_context: PipelineContext) -> StoreRecord:
    """Write one envelope into the memory context's durable store."""

    def _store(record_type: str, data: dict[str, Any]) -> str:
        return put_envelope(memory_context.durable_store, build_envelope(record_type, data))

    return _store


@pytest.fixture
def quote_data() -> dict[str, Any]:
    """Minimal quote payload."""
    return {"author": "X", "text": "Y"}
