"""cloudpane command-line interface."""

from __future__ import annotations

import asyncio
import importlib.metadata
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from cloudpane.config.loader import load_config
from cloudpane.config.schema import CloudpaneConfig
from cloudpane.core.auth import GcloudCredentials, authenticate
from cloudpane.core.cache import TTLCache
from cloudpane.core.errors import CloudpaneError, ConfigError
from cloudpane.core.gateway import Gateway, RetryPolicy
from cloudpane.core.logging_setup import setup_logging
from cloudpane.core.projects import ProjectManager
from cloudpane.core.ratelimit import TokenBucket
from cloudpane.core.registry import ModuleRegistry
from cloudpane.modules.catalog import register_builtin_modules

app = typer.Typer(
    name="cloudpane",
    help="cloudpane - browse and act on Google Cloud resources from the terminal",
    invoke_without_command=True,
    rich_markup_mode="rich",
)
console = Console()


@dataclass
class Runtime:
    """Everything the dashboard shares, built once per process."""

    config: CloudpaneConfig
    cache: TTLCache
    gateway: Gateway
    registry: ModuleRegistry
    projects: ProjectManager


def build_runtime(config: CloudpaneConfig) -> Runtime:
    """Construct cache, gateway, registry and project manager from config."""
    cache = TTLCache()
    gateway = Gateway(
        limiter=TokenBucket(rate=config.gateway.rate, capacity=config.gateway.capacity),
        policy=RetryPolicy(
            max_attempts=config.gateway.max_attempts,
            base_delay=config.gateway.base_delay,
            multiplier=config.gateway.multiplier,
            max_delay=config.gateway.max_delay,
            jitter=config.gateway.jitter,
        ),
        credentials=GcloudCredentials(),
        timeout=config.gateway.timeout,
    )
    registry = ModuleRegistry(cache)
    register_builtin_modules(registry, gateway, config)
    return Runtime(
        config=config,
        cache=cache,
        gateway=gateway,
        registry=registry,
        projects=ProjectManager(gateway, cache),
    )


@dataclass
class CliOptions:
    """Global options; the config file is only read by commands that need it."""

    project: Optional[str] = None
    config_path: Optional[Path] = None
    debug: bool = False

    def load(self) -> CloudpaneConfig:
        try:
            config = load_config(self.config_path)
        except ConfigError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
        if self.debug:
            config.debug = True
        if self.project:
            config.project = self.project
        return config


@app.callback()
def main_callback(
    ctx: typer.Context,
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Google Cloud project ID"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a config.toml"),
    debug: bool = typer.Option(False, "--debug", help="Write DEBUG logs to the log file"),
) -> None:
    """Launch the dashboard when no command is specified."""
    ctx.obj = CliOptions(project=project, config_path=config_path, debug=debug)

    if ctx.invoked_subcommand is None:
        run_dashboard(ctx.obj.load())


def run_dashboard(config: CloudpaneConfig) -> None:
    """Resolve credentials and the project, then run the TUI."""
    from cloudpane.ui.app import CloudpaneApp
    from cloudpane.ui.core.controller import DashboardController

    setup_logging(debug=config.debug, log_file=config.logging.file)

    auth = authenticate(config.project)
    if not auth.authenticated:
        console.print(f"[yellow]Warning: no credentials found ({auth.error or 'not logged in'}).[/yellow]")
        console.print("[dim]Run `gcloud auth login` or set CLOUDPANE_ACCESS_TOKEN.[/dim]")
    if auth.project_id is None:
        console.print("[yellow]No project set; use the palette's Switch Project.[/yellow]")

    runtime = build_runtime(config)
    controller = DashboardController(
        runtime.registry,
        runtime.projects,
        project_id=auth.project_id,
        sidebar_visible=config.ui.sidebar_visible,
    )
    CloudpaneApp(controller, gateway=runtime.gateway, default_view=config.ui.default_view).run()


@app.command("modules")
def list_modules(ctx: typer.Context) -> None:
    """List the modules the dashboard will show."""
    config = ctx.obj.load()
    registry = ModuleRegistry(TTLCache())
    register_builtin_modules(registry, Gateway(), config)

    table = Table(title="Modules")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Category", style="dim")
    for descriptor in registry.descriptors():
        table.add_row(descriptor.key, descriptor.display_name, descriptor.category)
    console.print(table)


@app.command("projects")
def list_projects(
    ctx: typer.Context,
    query: Optional[str] = typer.Argument(None, help="Filter by ID or name"),
) -> None:
    """List accessible projects."""
    config = ctx.obj.load()
    setup_logging(debug=config.debug, console=console)

    async def _list() -> None:
        runtime = build_runtime(config)
        async with runtime.gateway:
            try:
                await runtime.projects.list_projects()
            except CloudpaneError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(1)

        table = Table(title="Projects")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        for project in runtime.projects.search(query or ""):
            marker = " [green](current)[/green]" if project.id == config.project else ""
            table.add_row(project.id + marker, project.name)
        console.print(table)

    asyncio.run(_list())


@app.command("version")
def version() -> None:
    """Show the installed version."""
    try:
        installed = importlib.metadata.version("cloudpane")
    except importlib.metadata.PackageNotFoundError:
        installed = "unknown"
    console.print(f"cloudpane {installed}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
