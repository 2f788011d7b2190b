"""Pipeline configuration loading."""

from cairn.config.settings import (
    DEFAULT_WORKSPACE_DIR,
    CairnConfig,
    ConfigError,
    DeadLetterSettings,
    IndexSettings,
    IngestSettings,
    QueueSettings,
    ScheduleSettings,
    StorageSettings,
    load_config,
    resolve_path,
)

__all__ = [
    "DEFAULT_WORKSPACE_DIR",
    "CairnConfig",
    "ConfigError",
    "DeadLetterSettings",
    "IndexSettings",
    "IngestSettings",
    "QueueSettings",
    "ScheduleSettings",
    "StorageSettings",
    "load_config",
    "resolve_path",
]
