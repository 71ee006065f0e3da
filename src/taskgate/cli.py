"""CLI entry point for taskgate."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from taskgate import __version__
from taskgate.capabilities import CapabilitySet, OpenRouterCapability
from taskgate.config import DEFAULT_CONFIG_NAME, Settings, load_credentials, load_settings
from taskgate.delegation.registry import AgentRegistry
from taskgate.errors import ConfigError

if TYPE_CHECKING:
    from taskgate.delegation.models import RunResult

console = Console()

CONFIG_TEMPLATE = """\
[taskgate]
max_retries = 3
max_workers = 5
dispatch_timeout = 120.0
max_output_size = 8192
env_file = ".env"

# Override one agent of the roster; every task type needs exactly one owner.
# [agents.imager]
# primary = "google/nano-banana-pro"
# fallback = "flux-2-pro"
# allowed = ["image"]
"""

VERDICT_STYLE = {"released": "green", "escalated": "red"}


@click.group()
@click.version_option(version=__version__, prog_name="taskgate")
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="Config file (default: <data_dir>/config.toml)")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """taskgate: route work to specialist agents and gate what comes back."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = {"config_path": config_path}


def _settings(ctx: click.Context) -> Settings:
    try:
        return load_settings(ctx.obj["config_path"])
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _registry(settings: Settings) -> AgentRegistry:
    try:
        return AgentRegistry.from_config(settings.agents)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize taskgate: create the data directory, database and config."""
    from taskgate.storage.database import Database

    settings = _settings(ctx)
    db = Database(settings.data_dir)
    db.ensure_tables()
    config_file = settings.data_dir / DEFAULT_CONFIG_NAME
    if not config_file.exists():
        config_file.write_text(CONFIG_TEMPLATE)
    console.print(f"[green]taskgate initialized at {settings.data_dir}[/green]")
    console.print(f"  Database: {db.db_path}")
    console.print(f"  Config:   {config_file}")


@main.command()
@click.argument("text")
def classify(text: str) -> None:
    """Classify a task description into a task type."""
    from taskgate.delegation.taxonomy import classify_task, explain

    console.print(f"[bold]Type:[/bold] {classify_task(text)}")
    console.print(f"[bold]Rule:[/bold] {explain(text)}")


@main.command()
@click.argument("text")
@click.pass_context
def route(ctx: click.Context, text: str) -> None:
    """Classify a description and show the agent it routes to."""
    from taskgate.delegation.router import Router

    decision = Router(_registry(_settings(ctx))).route_description(text)
    console.print(f"[bold]Type:[/bold]     {decision.task_type}")
    console.print(f"[bold]Agent:[/bold]    {decision.agent_name} ({decision.agent_id})")
    console.print(f"[bold]Model:[/bold]    {decision.capability}")
    console.print(f"[bold]Fallback:[/bold] {decision.fallback_capability}")
    console.print(f"[dim]Rule: {decision.rule}[/dim]")


@main.command()
@click.argument("text")
@click.pass_context
def decompose(ctx: click.Context, text: str) -> None:
    """Split a request into routed tasks and success criteria."""
    from taskgate.delegation.decomposer import decompose_request
    from taskgate.delegation.router import Router

    router = Router(_registry(_settings(ctx)))
    try:
        tasks, criteria = decompose_request(text)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="TEXT") from exc

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Description", max_width=50)
    table.add_column("Type", style="yellow")
    table.add_column("Agent", style="green")
    for task in tasks:
        router.assign(task)
        table.add_row(task.id, task.description[:50], str(task.type), str(task.assigned_agent_id))
    console.print(table)

    console.print("\n[bold]Success criteria:[/bold]")
    for criterion in criteria:
        console.print(f"  {criterion.id}  {criterion.description}")
    spawn = ", ".join(p.agent_id for p in router.agents_to_spawn(tasks))
    console.print(f"\n[bold]Agents to spawn:[/bold] {spawn}")


@main.command()
@click.argument("request", required=False)
@click.option("--prompt-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read the request from a file")
@click.option("--max-retries", type=click.IntRange(min=0), default=None,
              help="Correction passes before escalation")
@click.option("--json", "as_json", is_flag=True, help="Print the run result as JSON")
@click.pass_context
def run(
    ctx: click.Context,
    request: str | None,
    prompt_file: Path | None,
    max_retries: int | None,
    as_json: bool,
) -> None:
    """Run a request through dispatch and the gatekeeper loop."""
    if prompt_file is not None:
        request = prompt_file.read_text()
    if not request or not request.strip():
        raise click.UsageError("Provide a REQUEST argument or --prompt-file")

    settings = _settings(ctx)
    registry = _registry(settings)
    credentials = load_credentials(settings.env_file)
    api_key = credentials.get(settings.api_key_env) or os.environ.get(settings.api_key_env)
    if not api_key:
        raise click.ClickException(
            f"{settings.api_key_env} is not set (checked {settings.env_file} and the environment)"
        )
    credentials[settings.api_key_env] = api_key

    result = asyncio.run(_run(settings, registry, credentials, api_key, request, max_retries))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_result(result)
    if not result.released:
        ctx.exit(2)


async def _run(
    settings: Settings,
    registry: AgentRegistry,
    credentials: dict[str, str],
    api_key: str,
    request: str,
    max_retries: int | None,
) -> RunResult:
    from taskgate.engine.orchestrator import Orchestrator
    from taskgate.storage.database import Database

    db = Database(settings.data_dir)
    db.ensure_tables()
    async with OpenRouterCapability(
        api_key, base_url=settings.api_base, timeout_seconds=settings.dispatch_timeout
    ) as backend:
        orchestrator = Orchestrator(settings, registry, CapabilitySet(backend), credentials, db)
        return await orchestrator.run(request, max_retries=max_retries)


@main.command()
@click.pass_context
def agents(ctx: click.Context) -> None:
    """Show the agent roster."""
    registry = _registry(_settings(ctx))
    table = Table(title="Agents")
    table.add_column("Agent ID", style="cyan")
    table.add_column("Name")
    table.add_column("Model", style="green")
    table.add_column("Fallback", style="dim")
    table.add_column("Allowed", style="yellow")
    for profile in registry.profiles():
        table.add_row(
            profile.agent_id,
            profile.display_name,
            profile.primary_capability,
            profile.fallback_capability,
            ", ".join(sorted(t.value for t in profile.allowed_task_types)),
        )
    console.print(table)


@main.command()
@click.option("--limit", default=20, help="Number of entries to show")
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """Show recent orchestration runs."""
    import sqlite3

    from taskgate.storage.database import Database

    db = Database(_settings(ctx).data_dir)
    try:
        runs = db.recent_runs(limit)
    except sqlite3.Error:
        runs = []

    if not runs:
        console.print("[dim]No run history yet. Run a request first.[/dim]")
        return

    table = Table(title="Run History")
    table.add_column("Run", style="cyan")
    table.add_column("Verdict")
    table.add_column("Passes")
    table.add_column("Tasks")
    table.add_column("Request", max_width=40)
    table.add_column("Date")
    for row in runs:
        style = VERDICT_STYLE.get(row["verdict"], "dim")
        table.add_row(
            row["run_id"],
            f"[{style}]{row['verdict']}[/{style}]",
            str(row["passes"]),
            str(row["task_count"]),
            str(row["request"])[:40],
            str(row["created_at"])[:16],
        )
    console.print(table)


def _print_result(result: RunResult) -> None:
    """Print run result summary."""
    style = VERDICT_STYLE.get(result.verdict.value, "dim")
    console.print(f"\n[{style}]Verdict: {result.verdict}[/{style}]")
    console.print(f"Run: {result.run_id}")
    console.print(f"Audit passes: {result.passes}")
    console.print(f"Duration: {result.duration_seconds:.1f}s")

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Agent", style="green")
    table.add_column("Status")
    table.add_column("Attempts")
    for task in result.tasks:
        table.add_row(
            task.id, str(task.type), str(task.assigned_agent_id), str(task.status), str(task.attempts)
        )
    console.print(table)

    for criterion in result.criteria:
        mark = "[green]met[/green]" if criterion.status == "met" else "[red]unmet[/red]"
        console.print(f"  {criterion.id} {mark}  {criterion.description}")

    if result.violations:
        console.print("\n[red]Constraint violations:[/red]")
        for violation in result.violations:
            console.print(f"  - {violation}")

    if not result.released and result.audit_trail:
        last = result.audit_trail[-1]
        console.print("\n[red]Unresolved findings:[/red]")
        for finding in last.findings:
            for detail in finding.details:
                console.print(f"  - [{finding.check_name}] {detail}")


if __name__ == "__main__":
    main()
