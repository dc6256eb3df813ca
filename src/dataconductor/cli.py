# src/dataconductor/cli.py
"""DataConductor Command Line Interface.

Entry point for the conductor CLI tool.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import Event
from typing import TYPE_CHECKING, Literal

import typer

from dataconductor import __version__
from dataconductor.contracts import ConductorError, ExecutionRecord, PipelineRunError
from dataconductor.core.config import ConductorSettings, load_pipeline_file, load_settings

if TYPE_CHECKING:
    from dataconductor.core.persistence import ExecutionStore
    from dataconductor.core.storage import LocalStorage
    from dataconductor.engine.orchestrator import PipelineOrchestrator

__all__ = ["app"]

_DATETIME_FORMATS = ["%Y-%m-%dT%H:%M:%S%z", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%dT%H:%M", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"]

app = typer.Typer(
    name="conductor",
    help="DataConductor: scheduled DAG pipelines over streamed JSON.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"conductor version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from a .env file.

    Raises:
        typer.Exit: If an explicit env_file does not exist
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(
        False,
        "--no-dotenv",
        help="Skip loading .env file.",
    ),
    env_file: Path | None = typer.Option(
        None,
        "--env-file",
        help="Path to .env file (skips automatic search).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """DataConductor: scheduled DAG pipelines over streamed JSON."""
    from dataconductor.core.logging import configure_logging

    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "INFO")

    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


@dataclass
class _Runtime:
    settings: ConductorSettings
    store: ExecutionStore
    storage: LocalStorage
    orchestrator: PipelineOrchestrator


def _load_settings_or_exit(settings_path: Path | None) -> ConductorSettings:
    try:
        return load_settings(settings_path.expanduser() if settings_path else None)
    except ConductorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None


def _build_runtime(settings: ConductorSettings) -> _Runtime:
    """Wire store, storage, registry and orchestrator from settings."""
    from dataconductor.core.persistence import InMemoryExecutionStore, SQLExecutionStore
    from dataconductor.core.storage import LocalStorage
    from dataconductor.engine.orchestrator import PipelineOrchestrator
    from dataconductor.plugins.manager import NodeHandlerRegistry

    store: ExecutionStore
    if settings.execution_store.url:
        store = SQLExecutionStore.from_url(settings.execution_store.url)
    else:
        store = InMemoryExecutionStore()
    storage = LocalStorage(settings.storage.data_dir)
    orchestrator = PipelineOrchestrator(NodeHandlerRegistry.with_builtins(), store, storage, settings=settings)
    return _Runtime(settings=settings, store=store, storage=storage, orchestrator=orchestrator)


def _record_as_dict(record: ExecutionRecord) -> dict[str, object]:
    return {
        "execution_id": record.id,
        "pipeline_id": record.pipeline_id,
        "status": record.status.value,
        "started_at": record.started_at.isoformat(),
        "completed_at": record.completed_at.isoformat() if record.completed_at else None,
        "outputs": record.outputs,
        "logs": [
            {
                "timestamp": entry.timestamp.isoformat(),
                "level": entry.level.value,
                "message": entry.message,
                "details": entry.details,
            }
            for entry in record.logs
        ],
    }


def _echo_record(record: ExecutionRecord) -> None:
    for entry in record.logs:
        typer.echo(f"  [{entry.level.value.upper():7}] {entry.message}")
    if record.outputs:
        typer.echo("Outputs:")
        for node_id, ref in record.outputs.items():
            typer.echo(f"  {node_id}: {json.dumps(ref, default=str)}")


@app.command()
def run(
    pipeline: Path = typer.Option(
        ...,
        "--pipeline",
        "-p",
        help="Path to pipeline graph file (YAML or JSON).",
    ),
    input_file: Path | None = typer.Option(
        None,
        "--input",
        "-i",
        help="Trigger file the source node reads.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    pipeline_id: str | None = typer.Option(
        None,
        "--pipeline-id",
        help="Pipeline id for the execution record (default: pipeline file stem).",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Capture bounded input/output samples for every node.",
    ),
    output_format: Literal["console", "json"] = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Execute a pipeline once against a trigger file."""
    config = _load_settings_or_exit(settings)
    try:
        graph = load_pipeline_file(pipeline.expanduser())
    except ConductorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if input_file is not None and not input_file.exists():
        typer.echo(f"Error: Input file not found: {input_file}", err=True)
        raise typer.Exit(1)

    runtime = _build_runtime(config)
    effective_id = pipeline_id or pipeline.stem
    try:
        result = runtime.orchestrator.run(effective_id, graph, input_file, debug=debug)
        failed = False
        execution_id = result.execution_id
    except PipelineRunError as e:
        failed = True
        execution_id = e.execution_id

    record = runtime.store.get(execution_id)
    if output_format == "json":
        typer.echo(json.dumps(_record_as_dict(record), default=str, indent=2))
    else:
        typer.echo(f"Execution {record.id} ({effective_id}): {record.status.value.upper()}")
        _echo_record(record)

    if failed:
        raise typer.Exit(1)


@app.command()
def due(
    schedule: str = typer.Argument(..., help="Interval minutes (e.g. '15') or cron expression."),
    last_run: datetime | None = typer.Option(
        None,
        "--last-run",
        formats=_DATETIME_FORMATS,
        help="Start of the last run (ISO-8601, UTC if no offset). Omit if never run.",
    ),
    now: datetime | None = typer.Option(
        None,
        "--now",
        formats=_DATETIME_FORMATS,
        help="Evaluation time (ISO-8601, default: current time).",
    ),
) -> None:
    """Check whether a schedule is due. Exit code 0 if due, 1 if not."""
    from croniter import CroniterError

    from dataconductor.contracts import ScheduleFormatError
    from dataconductor.engine.schedule import is_due, next_due_at, parse_schedule

    try:
        spec = parse_schedule(schedule)
    except ScheduleFormatError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from None

    evaluated_at = now or datetime.now(UTC)
    result = is_due(spec, last_run, evaluated_at)
    typer.echo("due" if result else "not due")
    if last_run is not None and not result:
        try:
            typer.echo(f"  next due at {next_due_at(spec, last_run).isoformat()}")
        except (CroniterError, OverflowError):
            typer.echo("  never due within the supported date range")
    if not result:
        raise typer.Exit(1)


@app.command()
def handlers() -> None:
    """List registered node handler types."""
    from dataconductor.plugins.manager import NodeHandlerRegistry

    registry = NodeHandlerRegistry.with_builtins()
    typer.echo("NODE TYPES:")
    for node_type in registry.node_types():
        typer.echo(f"  {node_type:22} - {registry.get(node_type).description}")


@app.command()
def serve(
    catalog: Path | None = typer.Option(
        None,
        "--catalog",
        "-c",
        help="Pipeline catalog YAML (default: scheduler.catalog_path from settings).",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Capture debug samples for scheduled runs.",
    ),
) -> None:
    """Run the scheduler until interrupted (Ctrl+C)."""
    from dataconductor.core.catalog import YamlPipelineCatalog
    from dataconductor.engine.job_queue import JobQueue
    from dataconductor.engine.scheduler import PipelineJob, Scheduler
    from dataconductor.engine.sync import LatestFileSync

    config = _load_settings_or_exit(settings)
    catalog_path = catalog or config.scheduler.catalog_path
    if catalog_path is None:
        typer.echo("Error: No catalog given. Use --catalog or set scheduler.catalog_path.", err=True)
        raise typer.Exit(1)
    if not catalog_path.exists():
        typer.echo(f"Error: Catalog not found: {catalog_path}", err=True)
        raise typer.Exit(1)

    runtime = _build_runtime(config)
    pipeline_catalog = YamlPipelineCatalog(catalog_path)
    queue = JobQueue(concurrency=config.queue.concurrency)
    job = PipelineJob(runtime.orchestrator, pipeline_catalog, LatestFileSync(config.storage.downloads_dir), debug=debug)
    scheduler = Scheduler(pipeline_catalog, runtime.store, queue, job, tick_seconds=config.scheduler.tick_seconds)

    typer.echo(f"Scheduler running (catalog: {catalog_path}, concurrency: {config.queue.concurrency}). Ctrl+C to stop.")
    scheduler.start()
    try:
        Event().wait()
    except KeyboardInterrupt:
        typer.echo("Stopping scheduler...")
    finally:
        scheduler.stop()
        queue.shutdown(wait=True)


@app.command()
def purge(
    pipeline_id: str = typer.Option(
        ...,
        "--pipeline-id",
        help="Pipeline whose old run directories are deleted.",
    ),
    keep: int = typer.Option(
        5,
        "--keep",
        "-k",
        min=0,
        help="Number of most recent executions to keep.",
    ),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to settings YAML file.",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Skip confirmation prompt.",
    ),
) -> None:
    """Delete output files of all but the newest executions.

    Execution records and their logs are kept and flagged as purged.

    Examples:

        conductor purge --pipeline-id orders --keep 5 --yes
    """
    from dataconductor.core.persistence import purge_old_executions

    config = _load_settings_or_exit(settings)
    if not config.execution_store.url:
        typer.echo("Error: purge needs a persistent store. Set execution_store.url in settings.", err=True)
        raise typer.Exit(1)

    runtime = _build_runtime(config)
    if not yes:
        confirm = typer.confirm(f"Delete run files of '{pipeline_id}' except the newest {keep} execution(s)?")
        if not confirm:
            typer.echo("Aborted.")
            raise typer.Exit(1)

    count = purge_old_executions(runtime.store, runtime.storage, pipeline_id, keep=keep)
    typer.echo(f"Purged {count} execution(s) of '{pipeline_id}'.")


if __name__ == "__main__":
    app()
