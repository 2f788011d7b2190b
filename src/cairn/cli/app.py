"""Typer CLI entrypoint for cairn."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.json import JSON
from rich.table import Table

from cairn.cli.bootstrap import configure_logging, load_context
from cairn.context import PipelineContext
from cairn.kernel.errors import PipelineError
from cairn.pipeline import IngestConsumer, IngestService, QueueWorker

app = typer.Typer(help="Content-addressed ingestion and indexing pipeline.")
ingest_app = typer.Typer(help="Queue durable objects for indexing.")
worker_app = typer.Typer(help="Consume the ingest queue.")
index_app = typer.Typer(help="Inspect and rebuild the index.")
app.add_typer(ingest_app, name="ingest")
app.add_typer(worker_app, name="worker")
app.add_typer(index_app, name="index")

_CONSOLE = Console()


class _Options:
    """Global options shared by every command."""

    def __init__(self, workspace: Path | None, config_file: Path | None) -> None:
        self.workspace = workspace
        self.config_file = config_file

    def context(self) -> PipelineContext:
        return load_context(
            workspace_dir=self.workspace,
            config_file=self.config_file,
            console=_CONSOLE,
        )


@app.callback()
def main(
    ctx: typer.Context,
    workspace: Annotated[
        Path | None,
        typer.Option(file_okay=False, dir_okay=True, help="Workspace directory (default ./.cairn)."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            file_okay=True,
            dir_okay=False,
            help="Path to config YAML/JSON file.",
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Configure logging and remember global options."""
    configure_logging(logging.DEBUG if verbose else logging.INFO)
    ctx.obj = _Options(workspace, config_file)


def _options(ctx: typer.Context) -> _Options:
    options = ctx.find_root().obj
    if not isinstance(options, _Options):
        raise RuntimeError("Global options are missing; invoke commands through the cairn app")
    return options


def _fail(message: str) -> typer.Exit:
    _CONSOLE.print(f"[bold red]Error:[/bold red] {message}")
    return typer.Exit(code=1)


@app.command("put")
def put_command(
    ctx: typer.Context,
    record_type: Annotated[str, typer.Argument(help="Record type, e.g. quotes.")],
    data_file: Annotated[
        Path,
        typer.Argument(exists=True, file_okay=True, dir_okay=False, help="JSON object file."),
    ],
    no_enqueue: Annotated[
        bool, typer.Option("--no-enqueue", help="Store without queueing for indexing.")
    ] = False,
) -> None:
    """Store one record in the durable store and queue it for indexing."""
    try:
        data = json.loads(data_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise _fail(f"Invalid JSON in {data_file}: {exc}") from exc
    if not isinstance(data, dict):
        raise _fail("Record data must be a JSON object")
    service = IngestService(_options(ctx).context())
    try:
        result = service.put_record(record_type, data, enqueue=not no_enqueue)
    except (PipelineError, ValueError) as exc:
        raise _fail(str(exc)) from exc
    _CONSOLE.print(
        JSON.from_data(
            {"objectKey": result.object_key, "id": result.id, "queued": result.queued}
        )
    )


@ingest_app.command("all")
def ingest_all_command(
    ctx: typer.Context,
    prefix: Annotated[str, typer.Option(help="Only objects under this key prefix.")] = "",
) -> None:
    """Start a bulk backfill; remaining pages are queued automatically."""
    service = IngestService(_options(ctx).context())
    try:
        response = service.start_bulk_ingest(prefix)
    except PipelineError as exc:
        raise _fail(f"Failed to queue files for ingestion: {exc}") from exc
    _CONSOLE.print(JSON.from_data(response))
    if response["hasMore"]:
        _CONSOLE.print("Pagination will continue automatically while the queue drains.")


@ingest_app.command("one")
def ingest_one_command(
    ctx: typer.Context,
    object_key: Annotated[str, typer.Argument(help="Durable store key to re-ingest.")],
) -> None:
    """Queue one known object for re-ingestion."""
    service = IngestService(_options(ctx).context())
    try:
        response = service.enqueue_single(object_key)
    except (PipelineError, ValueError) as exc:
        raise _fail(str(exc)) from exc
    _CONSOLE.print(JSON.from_data({**response, "objectKey": object_key}))


@worker_app.command("drain")
def worker_drain_command(
    ctx: typer.Context,
    max_batches: Annotated[
        int | None, typer.Option(min=1, help="Stop after this many batches.")
    ] = None,
) -> None:
    """Process queued messages until nothing is visible."""
    context = _options(ctx).context()
    worker = QueueWorker(
        context.queue,
        IngestConsumer(context),
        batch_size=context.config.queue.max_batch_size,
    )
    summary = worker.drain(max_batches=max_batches)
    table = Table(title="Drain Summary", header_style="bold cyan")
    table.add_column("Status", style="bold")
    table.add_column("Messages", justify="right")
    for status, count in summary.statuses.items():
        table.add_row(status.value, str(count))
    _CONSOLE.print(table)
    _CONSOLE.print(f"{summary.messages} message(s) in {summary.batches} batch(es)")


@index_app.command("rebuild")
def index_rebuild_command(
    ctx: typer.Context,
    record_type: Annotated[
        list[str] | None,
        typer.Option("--type", help="Record type to rebuild (repeatable); all by default."),
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", help="Skip confirmation.")] = False,
) -> None:
    """Drop index tables and backfill them from the durable store."""
    context = _options(ctx).context()
    if not yes:
        typer.confirm("Drop and rebuild index tables?", abort=True)
    try:
        response = IngestService(context).rebuild_index(record_type or None)
    except PipelineError as exc:
        raise _fail(str(exc)) from exc
    _CONSOLE.print(JSON.from_data(response))


@index_app.command("count")
def index_count_command(
    ctx: typer.Context,
    record_type: Annotated[str, typer.Argument(help="Registered record type.")],
) -> None:
    """Print the number of indexed rows for one record type."""
    context = _options(ctx).context()
    try:
        mapping = context.registry.get(record_type)
        count = context.index_store.count(mapping.table)
    except PipelineError as exc:
        raise _fail(str(exc)) from exc
    _CONSOLE.print(f"{record_type}: {count}")


@app.command("dead-letters")
def dead_letters_command(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option(min=1, help="Newest entries to show.")] = 20,
) -> None:
    """Show messages dropped because of data errors."""
    context = _options(ctx).context()
    entries = context.dead_letters.entries(limit=limit)
    if not entries:
        _CONSOLE.print("No dead letters.")
        return
    table = Table(title="Dead Letters", header_style="bold cyan")
    table.add_column("Recorded", style="dim", no_wrap=True)
    table.add_column("Code", style="bold red", no_wrap=True)
    table.add_column("Object", overflow="fold")
    table.add_column("Message")
    for entry in entries:
        table.add_row(entry.recorded_at, entry.code, entry.object_key or "-", entry.message)
    _CONSOLE.print(table)


@app.command("schedule")
def schedule_command(
    ctx: typer.Context,
    cron: Annotated[
        str | None, typer.Option(help="Crontab expression overriding the config.")
    ] = None,
) -> None:
    """Run the scheduled backfill service until interrupted."""
    from cairn.pipeline.scheduler import BackfillScheduler

    context = _options(ctx).context()
    settings = context.config.schedule
    if cron is not None:
        settings = settings.model_copy(update={"cron": cron})
    worker = QueueWorker(
        context.queue,
        IngestConsumer(context),
        batch_size=context.config.queue.max_batch_size,
    )
    scheduler = BackfillScheduler(
        service=IngestService(context), worker=worker, settings=settings
    )
    scheduler.start()
    _CONSOLE.print(f"Backfill scheduled with cron [bold]{settings.cron}[/bold]; Ctrl+C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        _CONSOLE.print("Stopping scheduler.")
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    app()
