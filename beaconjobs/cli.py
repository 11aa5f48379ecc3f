"""beaconjobs CLI: inspect the job registry and health, trigger jobs, run the worker."""

from __future__ import annotations

import asyncio
import importlib
import json
import logging

import typer
from rich.console import Console
from rich.table import Table

from beaconjobs.app import BeaconJobs
from beaconjobs.config import ConfigLoadError, load_config
from beaconjobs.jobs.health import HealthStatus, HealthSummary

app = typer.Typer(
    name="beaconjobs",
    help="beaconjobs: resilient scheduled jobs: dispatch, run log, health, delayed tasks.",
    no_args_is_help=True,
)

_APP_HELP = "BeaconJobs instance to use, as 'package.module:attribute'."

_STATUS_STYLE = {
    HealthStatus.HEALTHY: "green",
    HealthStatus.DEGRADED: "yellow",
    HealthStatus.FAILING: "red",
}


@app.callback()
def _root(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _load_app(app_path: str | None, config_path: str | None) -> BeaconJobs:
    if app_path:
        module_name, _, attr = app_path.partition(":")
        if not module_name or not attr:
            typer.echo("Error: --app must look like 'package.module:attribute'", err=True)
            raise typer.Exit(2)
        try:
            target = getattr(importlib.import_module(module_name), attr)
        except (ImportError, AttributeError) as exc:
            typer.echo(f"Error: cannot load {app_path}: {exc}", err=True)
            raise typer.Exit(2) from None
        if not isinstance(target, BeaconJobs):
            typer.echo(f"Error: {app_path} is not a BeaconJobs instance", err=True)
            raise typer.Exit(2)
        return target
    try:
        return BeaconJobs(load_config(config_path))
    except ConfigLoadError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(2) from None


def render_health(summary: HealthSummary, console: Console) -> None:
    style = _STATUS_STYLE[summary.overall_status]
    console.print(f"Overall: [{style}]{summary.overall_status.value}[/{style}]")
    table = Table(title="Jobs")
    table.add_column("Job")
    table.add_column("Schedule")
    table.add_column("Last run")
    table.add_column("Status")
    table.add_column("Duration")
    table.add_column("Failures (7d)", justify="right")
    for job in summary.jobs:
        table.add_row(
            job.label,
            job.schedule,
            job.last_run_at.isoformat(timespec="seconds") if job.last_run_at else "never",
            job.last_status.value if job.last_status else "-",
            f"{job.last_duration_ms} ms" if job.last_duration_ms is not None else "-",
            str(job.recent_failure_count),
        )
    console.print(table)


@app.command("jobs")
def jobs_command(
    config: str | None = typer.Option(None, "--config", "-c", help="Path to beaconjobs.yaml."),
    app_path: str | None = typer.Option(None, "--app", "-a", help=_APP_HELP),
) -> None:
    """List registered jobs with their events and kill-switch state."""
    jobs_app = _load_app(app_path, config)
    table = Table(title="Registered jobs")
    table.add_column("Job")
    table.add_column("Label")
    table.add_column("Schedule")
    table.add_column("Event")
    table.add_column("Kill switch")
    for entry in jobs_app.registry:
        engaged = jobs_app.kill_switch.is_engaged(entry.job_name)
        table.add_row(
            entry.job_name,
            entry.label,
            entry.schedule,
            entry.event_name,
            f"[red]{jobs_app.kill_switch.variable_for(entry.job_name)}[/red]" if engaged else "off",
        )
    Console().print(table)


@app.command("health")
def health_command(
    config: str | None = typer.Option(None, "--config", "-c", help="Path to beaconjobs.yaml."),
    app_path: str | None = typer.Option(None, "--app", "-a", help=_APP_HELP),
    json_output: bool = typer.Option(False, "--json", help="Print raw JSON."),
) -> None:
    """Show job health derived from the run log."""
    jobs_app = _load_app(app_path, config)
    summary = asyncio.run(jobs_app.health())
    if json_output:
        typer.echo(json.dumps(summary.to_dict(), indent=2))
        return
    render_health(summary, Console())
    if summary.overall_status is HealthStatus.FAILING:
        raise typer.Exit(1)


@app.command("trigger")
def trigger_command(
    job_name: str = typer.Argument(..., help="Job to run."),
    app_path: str | None = typer.Option(None, "--app", "-a", help=_APP_HELP),
    config: str | None = typer.Option(None, "--config", "-c", help="Path to beaconjobs.yaml."),
) -> None:
    """Run one job through the dispatcher using the configured secret."""
    jobs_app = _load_app(app_path, config)
    secret = jobs_app.config.cron.secret
    authorization = f"Bearer {secret}" if secret else None
    try:
        result = asyncio.run(jobs_app.trigger(job_name, authorization))
    except KeyError:
        typer.echo(f"Error: job '{job_name}' has no body registered in this app", err=True)
        raise typer.Exit(2) from None
    typer.echo(json.dumps(result.body))
    if not result.ok:
        raise typer.Exit(1)


@app.command("worker")
def worker_command(
    app_path: str | None = typer.Option(None, "--app", "-a", help=_APP_HELP),
) -> None:
    """Start the Hatchet worker for every job registered in the app."""
    if not app_path:
        typer.echo("Error: --app is required for the worker", err=True)
        raise typer.Exit(2)
    jobs_app = _load_app(app_path, None)
    try:
        jobs_app.run_worker()
    except RuntimeError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1) from None


def main() -> None:
    app()


if __name__ == "__main__":
    main()
