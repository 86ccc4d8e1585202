#!/usr/bin/env python3
"""
pwrunner - Playwright job runner

Pulls browser-automation jobs from a queue, runs them in headless browsers
and reports results.
"""
import asyncio
import json
import signal
import sys

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from pwrunner import __version__

console = Console()

DEFAULT_SERVER = "http://localhost:8430"


def _load_job_file(path: str) -> dict:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise click.ClickException(f"Could not read job file {path}: {e}")


@click.group()
@click.version_option(version=__version__, prog_name="pwrunner")
def cli():
    """pwrunner - Playwright job runner"""
    from pwrunner.logging_config import setup_logging
    setup_logging()


@cli.command()
def version():
    """Show version information."""
    console.print(f"[bold cyan]pwrunner[/bold cyan] v{__version__}")


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8430, help="Port to bind to")
@click.option("--concurrency", "-c", default=None, type=int, help="Jobs to run in parallel")
def start(host: str, port: int, concurrency: int):
    """Start the HTTP server with an embedded worker"""
    from pwrunner.config import RunnerConfig
    from pwrunner.server import run_server

    config = RunnerConfig.from_env()
    if concurrency:
        config.worker.concurrency = concurrency

    console.print(Panel.fit(
        "[bold cyan]pwrunner[/bold cyan] - Playwright job runner\n"
        f"[dim]Queue: {config.queue.name} ({config.queue.backend}), "
        f"concurrency {config.worker.concurrency}[/dim]\n"
        f"[dim]Listening on http://{host}:{port}[/dim]",
        border_style="cyan"
    ))
    run_server(host=host, port=port, config=config)


@cli.command()
@click.option("--concurrency", "-c", default=None, type=int, help="Jobs to run in parallel")
def worker(concurrency: int):
    """Run a worker without the HTTP server (needs the redis backend)"""
    from pwrunner.config import RunnerConfig

    config = RunnerConfig.from_env()
    if concurrency:
        config.worker.concurrency = concurrency
    if config.queue.backend != "redis":
        console.print("[yellow]Warning:[/yellow] memory queue selected, nothing can submit jobs to this worker")

    console.print(f"[bold cyan]Worker[/bold cyan] consuming [bold]{config.queue.name}[/bold] "
                  f"(concurrency {config.worker.concurrency}). Press Ctrl+C to stop.")
    asyncio.run(_run_worker(config))


async def _run_worker(config):
    from pwrunner.server import Runtime

    runtime = Runtime.from_config(config)
    stop_requested = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_requested.set)
        except NotImplementedError:
            pass

    await runtime.worker.start()
    try:
        await stop_requested.wait()
    finally:
        console.print("[dim]Stopping worker, waiting for in-flight jobs...[/dim]")
        cancelled = await runtime.worker.stop()
        await runtime.queue.close()
        if cancelled:
            console.print(f"[red]{cancelled} job(s) cancelled after the grace period[/red]")
        else:
            console.print("[green]✓[/green] Worker stopped cleanly")


@cli.command()
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--browser", "-b", type=click.Choice(["chromium", "firefox", "webkit"]), default=None,
              help="Override the job's browser")
@click.option("--headed", is_flag=True, help="Show the browser window")
def run(job_file: str, browser: str, headed: bool):
    """Execute a single job file locally and print the outcome"""
    from pwrunner.config import RunnerConfig
    from pwrunner.executor import JobExecutor
    from pwrunner.models import Job

    data = _load_job_file(job_file)
    if browser:
        data["browser"] = browser

    config = RunnerConfig.from_env()
    if headed:
        config.browser.headless = False

    executor = JobExecutor.from_config(config)
    result = asyncio.run(executor.execute(Job(id=f"local-{job_file}", data=data)))

    table = Table(title=f"Job {result.job_id}")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Action", style="white")
    table.add_column("Result", justify="center")
    table.add_column("Duration", justify="right", style="dim")
    table.add_column("Details", style="dim")

    for index, outcome in enumerate(result.steps, start=1):
        table.add_row(
            str(index),
            outcome.step.action_name,
            "[green]✓[/green]" if outcome.success else "[red]✗[/red]",
            f"{outcome.duration_ms:.0f} ms",
            outcome.error or outcome.artifact or "",
        )
    console.print(table)

    summary = f"{result.steps_executed}/{result.total_steps} steps in {result.duration_ms:.0f} ms"
    if result.succeeded:
        console.print(f"[bold green]Success[/bold green] {summary}")
    else:
        console.print(f"[bold red]Failure[/bold red] {summary}")
        if result.error:
            console.print(f"[red]{result.error}[/red]")
        sys.exit(1)


@cli.command()
@click.argument("job_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--server", default=DEFAULT_SERVER, help="Runner server URL")
def submit(job_file: str, server: str):
    """Submit a job file to a running server"""
    import requests

    data = _load_job_file(job_file)
    try:
        resp = requests.post(f"{server}/api/jobs", json=data, timeout=10)
    except requests.ConnectionError:
        console.print("[red]Error:[/red] Server not running. Start with: pwrunner start")
        sys.exit(1)

    if resp.status_code == 200:
        console.print(f"[green]✓[/green] Submitted job [bold]{resp.json()['jobId']}[/bold]")
        return

    detail = resp.json().get("detail")
    console.print(f"[red]✗[/red] Job rejected ({resp.status_code})")
    if isinstance(detail, dict):
        for error in detail.get("errors", []):
            console.print(f"  [dim]-[/dim] {error}")
    elif detail:
        console.print(f"  {detail}")
    sys.exit(1)


@cli.command()
@click.argument("job_id")
@click.option("--server", default=DEFAULT_SERVER, help="Runner server URL")
def status(job_id: str, server: str):
    """Show the state and result of a submitted job"""
    import requests

    try:
        resp = requests.get(f"{server}/api/jobs/{job_id}", timeout=10)
    except requests.ConnectionError:
        console.print("[red]Error:[/red] Server not running. Start with: pwrunner start")
        sys.exit(1)

    if resp.status_code == 404:
        console.print(f"[red]✗[/red] Job {job_id} not found")
        sys.exit(1)

    job = resp.json()["job"]
    state_styles = {
        "waiting": "[blue]Waiting[/blue]",
        "active": "[yellow]Running[/yellow]",
        "completed": "[green]Completed[/green]",
        "failed": "[red]Failed[/red]",
    }
    console.print(f"Job [bold]{job['jobId']}[/bold]: {state_styles.get(job['state'], job['state'])}")

    result = job.get("result")
    if result:
        console.print(f"  Steps: {result['stepsExecuted']}/{result['totalSteps']}")
        console.print(f"  Duration: {result['durationMs']:.0f} ms")
    if job.get("error"):
        console.print(f"  [red]{job['error']}[/red]")


@cli.command()
@click.argument("url")
@click.option("--browser", "-b", type=click.Choice(["chromium", "firefox", "webkit"]), default=None)
def example(url: str, browser: str):
    """Print an example job payload for URL"""
    from pwrunner.queue import example_job

    click.echo(json.dumps(example_job(url, browser=browser), indent=2))


if __name__ == "__main__":
    cli()
