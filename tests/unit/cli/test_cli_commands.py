"""Unit tests for cairn CLI command entrypoints."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from cairn.cli.app import _options, app

_RUNNER = CliRunner()


def _invoke(workspace: Path, *args: str) -> object:
    """Invoke the CLI against an isolated workspace."""
    return _RUNNER.invoke(app, ["--workspace", str(workspace), *args])


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.mark.unit
def test_put_drain_and_count(tmp_path: Path) -> None:
    """`cairn put` then `cairn worker drain` indexes the record."""
    # Arrange
    workspace = tmp_path / ".cairn"
    record = _write_json(tmp_path / "quote.json", {"author": "X", "text": "Y"})

    # Act
    put = _invoke(workspace, "put", "quotes", str(record))
    drain = _invoke(workspace, "worker", "drain")
    count = _invoke(workspace, "index", "count", "quotes")

    # Assert
    assert put.exit_code == 0, put.output
    assert '"queued": true' in put.output
    assert "quotes/sha256_" in put.output
    assert drain.exit_code == 0, drain.output
    assert "1 message(s) in 1 batch(es)" in drain.output
    assert count.exit_code == 0, count.output
    assert "quotes: 1" in count.output
    assert (workspace / "objects" / "quotes").is_dir()


@pytest.mark.unit
def test_ingest_all_and_one(tmp_path: Path) -> None:
    """Bulk and targeted ingestion print their trigger responses."""
    # Arrange
    workspace = tmp_path / ".cairn"
    record = _write_json(tmp_path / "quote.json", {"author": "X"})
    _invoke(workspace, "put", "quotes", str(record), "--no-enqueue")

    # Act
    bulk = _invoke(workspace, "ingest", "all", "--prefix", "quotes/")
    one = _invoke(workspace, "ingest", "one", "quotes/sha256_missing.json")
    drain = _invoke(workspace, "worker", "drain")

    # Assert
    assert bulk.exit_code == 0, bulk.output
    assert '"queued": 1' in bulk.output
    assert '"hasMore": false' in bulk.output
    assert one.exit_code == 0, one.output
    assert '"queued": true' in one.output
    assert drain.exit_code == 0, drain.output
    assert "2 message(s)" in drain.output


@pytest.mark.unit
def test_dead_letters_lists_dropped_messages(tmp_path: Path) -> None:
    """Dropped messages show up in `cairn dead-letters`."""
    # Arrange
    workspace = tmp_path / ".cairn"

    # Act
    empty = _invoke(workspace, "dead-letters")
    _invoke(workspace, "ingest", "one", "quotes/gone.json")
    _invoke(workspace, "worker", "drain")
    listed = _invoke(workspace, "dead-letters")

    # Assert
    assert "No dead letters." in empty.output
    assert listed.exit_code == 0, listed.output
    assert "object_not_found" in listed.output


@pytest.mark.unit
def test_index_rebuild_requires_confirmation_or_yes(tmp_path: Path) -> None:
    """Rebuild aborts without confirmation and runs with --yes."""
    # Arrange
    workspace = tmp_path / ".cairn"
    record = _write_json(tmp_path / "quote.json", {"author": "X"})
    _invoke(workspace, "put", "quotes", str(record))
    _invoke(workspace, "worker", "drain")

    # Act
    aborted = _RUNNER.invoke(
        app, ["--workspace", str(workspace), "index", "rebuild"], input="n\n"
    )
    rebuilt = _invoke(workspace, "index", "rebuild", "--type", "quotes", "--yes")
    count = _invoke(workspace, "index", "count", "quotes")

    # Assert
    assert aborted.exit_code == 1
    assert rebuilt.exit_code == 0, rebuilt.output
    assert '"queued": 1' in rebuilt.output
    assert "quotes: 0" in count.output


@pytest.mark.unit
@pytest.mark.parametrize(
    ("args", "message"),
    [
        (("index", "count", "recipes"), "No index mapping registered"),
        (("ingest", "one", ""), "Object key is required"),
        (("put", "a/b", "RECORD"), "Invalid record type"),
        (("put", "quotes", "LIST"), "must be a JSON object"),
        (("put", "quotes", "BROKEN"), "Invalid JSON"),
    ],
)
def test_errors_exit_with_code_one(
    tmp_path: Path, args: tuple[str, ...], message: str
) -> None:
    """User errors print a message and exit 1."""
    # Arrange
    files = {
        "RECORD": _write_json(tmp_path / "record.json", {"author": "X"}),
        "LIST": _write_json(tmp_path / "list.json", [1, 2]),
        "BROKEN": tmp_path / "broken.json",
    }
    files["BROKEN"].write_text("{", encoding="utf-8")
    resolved = [str(files[arg]) if arg in files else arg for arg in args]

    # Act
    result = _invoke(tmp_path / ".cairn", *resolved)

    # Assert
    assert result.exit_code == 1
    assert message in result.output


@pytest.mark.unit
def test_invalid_config_exits_with_code_two(tmp_path: Path) -> None:
    """A config that fails validation stops the command with exit code 2."""
    # Arrange
    config = tmp_path / "config.yaml"
    config.write_text("queue:\n  send_batch_limit: 500\n", encoding="utf-8")

    # Act
    result = _RUNNER.invoke(
        app,
        ["--workspace", str(tmp_path / ".cairn"), "--config", str(config), "dead-letters"],
    )

    # Assert
    assert result.exit_code == 2
    assert "Config error" in result.output


@pytest.mark.unit
def test_workspace_config_file_is_picked_up(tmp_path: Path) -> None:
    """config.yaml inside the workspace is loaded by default."""
    # Arrange
    workspace = tmp_path / ".cairn"
    workspace.mkdir()
    (workspace / "config.yaml").write_text(
        "storage:\n  root: blobs\n", encoding="utf-8"
    )
    record = _write_json(tmp_path / "quote.json", {"author": "X"})

    # Act
    result = _invoke(workspace, "put", "quotes", str(record))

    # Assert
    assert result.exit_code == 0, result.output
    assert (workspace / "blobs" / "quotes").is_dir()


@pytest.mark.unit
def test_options_without_root_callback_raise() -> None:
    """Commands invoked without the root callback fail loudly, even under -O."""
    # Arrange
    ctx = SimpleNamespace(find_root=lambda: SimpleNamespace(obj=None))

    # Act / Assert
    with pytest.raises(RuntimeError, match="Global options are missing"):
        _options(ctx)  # type: ignore[arg-type]
