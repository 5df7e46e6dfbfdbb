"""CLI entrypoint implementing `deploybench monitor`."""

import asyncio
from pathlib import Path
from typing import NoReturn, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config import Settings
from ..exceptions import ConfigurationError, DeployBenchError
from ..logging_config import configure_logging
from ..orchestrator.pipeline import BenchmarkOrchestrator, check_credentials
from ..persistence.store import RunRecorder
from ..schemas import BuildStatus, RunReport, TriggerType
from ..triggers import DEFAULT_TRIGGER_FILE, load_trigger_results

console = Console()

STATUS_STYLES = {
    BuildStatus.SUCCESS: "green",
    BuildStatus.FAILURE: "red",
    BuildStatus.TIMEOUT: "yellow",
    BuildStatus.IN_PROGRESS: "cyan",
}


def _settings() -> Settings:
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def _recorder(settings: Settings) -> RunRecorder:
    if not settings.database_url:
        raise ConfigurationError("DATABASE_URL not set")
    return RunRecorder.from_url(settings.database_url, echo=settings.database_echo)


def _fatal(exc: Exception) -> NoReturn:
    console.print(f"[bold red]Fatal error:[/bold red] {exc}", soft_wrap=True)
    raise SystemExit(1)


@click.group()
@click.version_option(__version__, message="deploy-bench %(version)s")
def app() -> None:
    """Monitor deployment builds across hosting platforms and record timings."""


@app.command("monitor")
@click.option(
    "--triggers",
    "triggers_path",
    type=click.Path(path_type=Path),
    default=DEFAULT_TRIGGER_FILE,
    show_default=True,
    help="JSON file written by the trigger step.",
)
@click.option("--notes", type=str, default=None, help="Free-text notes stored on the run (defaults to RUN_NOTES).")
@click.option(
    "--trigger-type",
    type=click.Choice([item.value for item in TriggerType]),
    default=None,
    help="Override the trigger type derived from GITHUB_EVENT_NAME.",
)
@click.option("--create-tables", is_flag=True, default=False, help="Create missing tables before recording.")
@click.option("--verbose", is_flag=True, default=False, help="Increase logging verbosity.")
def monitor_command(
    triggers_path: Path,
    notes: Optional[str],
    trigger_type: Optional[str],
    create_tables: bool,
    verbose: bool,
) -> None:
    """Poll every triggered platform until its build finishes, recording results."""

    logger = configure_logging(verbose=verbose)
    recorder: Optional[RunRecorder] = None
    try:
        settings = _settings()
        logger.debug("Settings: %s", settings.to_dict())
        triggers = load_trigger_results(triggers_path)
        recorder = _recorder(settings)
        check_credentials(triggers, settings)
        if create_tables:
            recorder.initialize()
        orchestrator = BenchmarkOrchestrator.from_settings(settings, recorder=recorder)
        report = asyncio.run(
            orchestrator.execute(
                triggers,
                trigger_type=TriggerType(trigger_type) if trigger_type else settings.trigger_type,
                notes=notes if notes is not None else settings.run_notes,
            )
        )
    except DeployBenchError as exc:
        _fatal(exc)
    finally:
        if recorder is not None:
            recorder.dispose()

    _print_report(report)
    if not report.fully_recorded:
        console.print("[bold red]Some platform results could not be recorded.[/bold red]")
        raise SystemExit(1)


@app.command("init-db")
def init_db_command() -> None:
    """Create the benchmark tables if they do not exist."""

    configure_logging()
    recorder: Optional[RunRecorder] = None
    try:
        recorder = _recorder(_settings())
        recorder.initialize()
    except DeployBenchError as exc:
        _fatal(exc)
    finally:
        if recorder is not None:
            recorder.dispose()
    console.print("Database schema is up to date")


@app.command("show")
@click.argument("run_id", type=int)
def show_command(run_id: int) -> None:
    """Print a recorded run and its platform builds."""

    recorder: Optional[RunRecorder] = None
    try:
        recorder = _recorder(_settings())
        summary = recorder.load_run(run_id)
    except KeyError:
        console.print(f"[red]Run {run_id} not found[/red]")
        raise SystemExit(1)
    except DeployBenchError as exc:
        _fatal(exc)
    finally:
        if recorder is not None:
            recorder.dispose()

    table = Table(title=f"Benchmark run #{summary.id} ({summary.trigger_type.value})", show_lines=True)
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Duration (s)")
    table.add_column("Build")
    table.add_column("Error")
    for build in summary.builds:
        table.add_row(
            build.platform.value,
            f"[{STATUS_STYLES[build.status]}]{build.status.value}[/]",
            f"{build.duration_seconds:.1f}" if build.duration_seconds is not None else "-",
            build.build_id or "",
            build.error_message or "",
        )
    console.print(table)
    console.print(f"Started: {summary.run_timestamp.isoformat()}")
    if summary.notes:
        console.print(f"Notes: {summary.notes}")


def _print_report(report: RunReport) -> None:
    table = Table(title="Build Monitoring Summary", show_lines=True)
    table.add_column("Platform")
    table.add_column("Status")
    table.add_column("Duration (s)")
    table.add_column("Recorded")
    table.add_column("Details")

    for outcome in report.outcomes:
        table.add_row(
            outcome.platform.value,
            f"[{STATUS_STYLES[outcome.status]}]{outcome.status.value}[/]",
            f"{outcome.duration_seconds:.1f}" if outcome.duration_seconds is not None else "-",
            "yes" if outcome.recorded else "no",
            outcome.error_message or (outcome.build_reference or ""),
        )
    for trigger in report.skipped:
        table.add_row(trigger.platform.value, "skipped", "-", "-", trigger.failure_reason)

    console.print(table)
    console.print(f"Run ID: {report.run_id}")
    console.print(f"Platforms monitored: {report.platform_count}")


if __name__ == "__main__":  # pragma: no cover
    app()
