"""Pipeline config models and loading helpers."""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_WORKSPACE_DIR = ".cairn"


class StorageSettings(BaseModel):
    """Durable object store location."""

    model_config = ConfigDict(extra="forbid")

    root: str = "objects"


class IndexSettings(BaseModel):
    """Relational index database."""

    model_config = ConfigDict(extra="forbid")

    sqlite_path: str = "index.sqlite"
    busy_timeout_ms: int = Field(default=5000, ge=0)


class QueueSettings(BaseModel):
    """Message queue batching and redelivery parameters."""

    model_config = ConfigDict(extra="forbid")

    sqlite_path: str = "queue.sqlite"
    send_batch_limit: int = Field(default=100, ge=1, le=100)
    max_batch_size: int = Field(default=10, ge=1, le=100)
    visibility_timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=5, ge=1)


class IngestSettings(BaseModel):
    """Bulk listing and envelope checks."""

    model_config = ConfigDict(extra="forbid")

    list_page_size: int = Field(default=1000, ge=1, le=1000)
    verify_ids: bool = False


class DeadLetterSettings(BaseModel):
    """Dead-letter log for data errors."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    path: str = "dead_letters.jsonl"


class ScheduleSettings(BaseModel):
    """Scheduled backfill service."""

    model_config = ConfigDict(extra="forbid")

    cron: str = "0 3 * * *"
    prefix: str = ""
    drain_interval_seconds: int = Field(default=10, ge=1)
    misfire_grace_time: int = Field(default=30, ge=1)


class CairnConfig(BaseModel):
    """Root pipeline configuration model."""

    model_config = ConfigDict(extra="forbid")

    storage: StorageSettings = StorageSettings()
    index: IndexSettings = IndexSettings()
    queue: QueueSettings = QueueSettings()
    ingest: IngestSettings = IngestSettings()
    dead_letter: DeadLetterSettings = DeadLetterSettings()
    schedule: ScheduleSettings = ScheduleSettings()


class ConfigError(RuntimeError):
    """Raised when config cannot be decoded or validated."""


def _decode_config_payload(path: Path) -> dict[str, object]:
    """Decode config payload from JSON or YAML.

    Args:
        path: Config file path.

    Returns:
        Parsed mapping payload.

    Raises:
        ConfigError: If decode fails or payload is not an object.
    """
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid config JSON: {exc}") from exc
    else:
        try:
            payload = yaml.safe_load(raw)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid config YAML: {exc}") from exc
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError("Invalid config payload: root must be an object")
    return payload


def load_config(path: Path) -> CairnConfig:
    """Load pipeline config from disk, defaulting when missing.

    Args:
        path: Config file path.

    Returns:
        Parsed config payload, or defaults when file does not exist.

    Raises:
        ConfigError: If payload decode or validation fails.
    """
    if not path.exists():
        return CairnConfig()
    payload = _decode_config_payload(path)
    try:
        return CairnConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config payload: {exc}") from exc


def resolve_path(workspace_root: Path, configured: str) -> Path:
    """Resolve a configured path against the workspace root.

    Args:
        workspace_root: Workspace directory.
        configured: Absolute path or path relative to the workspace.

    Returns:
        Absolute path.
    """
    path = Path(configured).expanduser()
    if path.is_absolute():
        return path
    return workspace_root / path
