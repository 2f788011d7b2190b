"""CLI bootstrap helpers: logging, workspace and context wiring."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from cairn.config import DEFAULT_WORKSPACE_DIR, CairnConfig, ConfigError, load_config
from cairn.context import PipelineContext, build_context

_LOGGING_CONFIGURED = False


def configure_logging(level: int = logging.INFO) -> None:
    """Configure Rich-backed logging once for CLI commands."""
    global _LOGGING_CONFIGURED  # noqa: PLW0603
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=True)],
    )
    _LOGGING_CONFIGURED = True


def default_workspace_dir() -> Path:
    """Return default workspace directory under the current directory.

    Returns:
        Workspace path.
    """
    return Path.cwd() / DEFAULT_WORKSPACE_DIR


def default_config_file(workspace_dir: Path) -> Path:
    """Return the config path for a workspace, preferring YAML over JSON.

    Args:
        workspace_dir: Workspace directory path.

    Returns:
        Config file path (may not exist).
    """
    yaml_path = workspace_dir / "config.yaml"
    json_path = workspace_dir / "config.json"
    if not yaml_path.exists() and json_path.exists():
        return json_path
    return yaml_path


def load_context(
    *,
    workspace_dir: Path | None,
    config_file: Path | None,
    console: Console,
) -> PipelineContext:
    """Load config and wire the pipeline context for one CLI command.

    Args:
        workspace_dir: Optional workspace override.
        config_file: Optional config file override.
        console: Console for error output.

    Returns:
        Pipeline context.

    Raises:
        Exit: With code 2 when the config cannot be loaded.
    """
    workspace = (workspace_dir or default_workspace_dir()).resolve()
    workspace.mkdir(parents=True, exist_ok=True)
    path = config_file or default_config_file(workspace)
    try:
        config: CairnConfig = load_config(path)
    except ConfigError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        raise typer.Exit(code=2) from exc
    return build_context(config, workspace)
