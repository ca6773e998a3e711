"""Main CLI entry point for the ArgoCD Helm updater."""

from __future__ import annotations

import asyncio
import difflib
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.table import Table

from helm_updater import __version__
from helm_updater.core.exceptions import ConfigurationError
from helm_updater.utils.logging import configure_logging

if TYPE_CHECKING:
    from helm_updater.core.config import UpdaterConfig
    from helm_updater.gitops.update_orchestrator import UpdateOrchestrator

console = Console()

DEFAULT_CONFIG = ".argocd-updater.yml"


class UpdaterContext:
    """Shared context for CLI commands with lazy initialization."""

    def __init__(self, config_path: str, log_level: str | None = None, strategy: str | None = None):
        """Initialize context.

        Args:
            config_path: Path to configuration file (defaults apply if it does not exist)
            log_level: Log level overriding the configured one
            strategy: Update strategy overriding the configured one
        """
        self.config_path = config_path
        self.log_level = log_level
        self.strategy = strategy
        self._config: UpdaterConfig | None = None

    @property
    def config(self) -> UpdaterConfig:
        """Get or load config lazily and configure logging from it."""
        if self._config is None:
            from helm_updater.core.config import UpdaterConfig
            from helm_updater.core.models import UpdateStrategy

            path = Path(self.config_path).expanduser()
            config = UpdaterConfig.from_file(path) if path.exists() else UpdaterConfig()
            if self.strategy:
                config = config.model_copy(update={"update_strategy": UpdateStrategy(self.strategy.lower())})

            configure_logging(config.logging, level=self.log_level)
            self._config = config
        return self._config

    def orchestrator(self) -> UpdateOrchestrator:
        """Build an orchestrator wired from the loaded config."""
        from helm_updater.gitops.update_orchestrator import UpdateOrchestrator

        return UpdateOrchestrator(self.config)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG,
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override the configured log level",
)
@click.option(
    "--strategy",
    type=click.Choice(["major", "minor", "patch", "all"], case_sensitive=False),
    default=None,
    help="Override the configured update strategy",
)
@click.pass_context
def cli(ctx: click.Context, config: str, log_level: str | None, strategy: str | None) -> None:
    """Keep Helm chart versions in ArgoCD Applications up to date."""
    ctx.obj = UpdaterContext(config_path=config, log_level=log_level, strategy=strategy)


def _load(ctx: click.Context) -> UpdaterContext:
    updater_ctx: UpdaterContext = ctx.obj
    try:
        updater_ctx.config
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    return updater_ctx


@cli.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False), default=".")
@click.pass_context
def scan(ctx: click.Context, root: str) -> None:
    """List the Helm chart dependencies found under ROOT."""
    updater_ctx = _load(ctx)
    manifests, dependencies = updater_ctx.orchestrator().find_dependencies(root)

    if not dependencies:
        console.print(f"[yellow]No Helm chart dependencies found in {root}[/yellow]")
        return

    table = Table(title=f"Helm Dependencies ({len(dependencies)} in {manifests} manifest(s))")
    table.add_column("Manifest", style="cyan")
    table.add_column("Doc", justify="right")
    table.add_column("Chart", style="bold")
    table.add_column("Repository")
    table.add_column("Type")
    table.add_column("Version", style="green")

    for dependency in dependencies:
        table.add_row(
            dependency.manifest_path,
            str(dependency.document_index),
            dependency.chart_name,
            dependency.repo_url,
            dependency.repo_type.value,
            dependency.current_version,
        )
    console.print(table)


@cli.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False), default=".")
@click.pass_context
def check(ctx: click.Context, root: str) -> None:
    """Show available chart updates without touching any file."""
    updater_ctx = _load(ctx)
    orchestrator = updater_ctx.orchestrator()

    async def _check() -> None:
        try:
            _, dependencies = orchestrator.find_dependencies(root)
            updates = await orchestrator.resolver.check_for_updates(dependencies)
            groups = orchestrator.resolver.group_updates(updates)
            errors = dict(orchestrator.resolver.fetch_errors)
        finally:
            await orchestrator.resolver.close()

        _print_fetch_errors(errors)

        if not updates:
            console.print("[green]All Helm charts are up to date[/green]")
            return

        for group_name, group_updates in groups.items():
            table = Table(title=f"Available Updates: {group_name}")
            table.add_column("Chart", style="bold")
            table.add_column("Manifest", style="cyan")
            table.add_column("Current")
            table.add_column("Latest", style="green")
            table.add_column("Release Notes")
            for update in group_updates:
                table.add_row(
                    update.dependency.chart_name,
                    update.dependency.manifest_path,
                    update.current_version,
                    update.new_version,
                    update.release_notes or "",
                )
            console.print(table)

    asyncio.run(_check())


@cli.command()
@click.argument("root", type=click.Path(exists=True, file_okay=False), default=".")
@click.option("--dry-run", is_flag=True, help="Show the changes without writing files")
@click.pass_context
def update(ctx: click.Context, root: str, dry_run: bool) -> None:
    """Rewrite chart versions in manifests under ROOT."""
    updater_ctx = _load(ctx)
    orchestrator = updater_ctx.orchestrator()

    async def _update() -> None:
        try:
            summary = await orchestrator.run(root, write=not dry_run)
        finally:
            await orchestrator.resolver.close()

        _print_fetch_errors(summary.fetch_errors)

        for file_update in summary.file_updates:
            console.print(f"[bold]{file_update.path}[/bold]")
            for change in file_update.updates:
                console.print(
                    f"  {change.dependency.chart_name}: "
                    f"{change.current_version} -> [green]{change.new_version}[/green]"
                )
            if dry_run:
                diff = difflib.unified_diff(
                    file_update.original_content.splitlines(keepends=True),
                    file_update.updated_content.splitlines(keepends=True),
                    fromfile=f"a/{file_update.path}",
                    tofile=f"b/{file_update.path}",
                )
                console.print("".join(diff), highlight=False, markup=False)

        console.print("\n[bold]Update Summary[/bold]")
        console.print(f"  Manifests scanned: {summary.files_scanned}")
        console.print(f"  Charts found: {summary.charts_found}")
        console.print(f"  Updates detected: {summary.updates_detected}")
        if dry_run:
            console.print(f"  [yellow]Dry-run: {len(summary.file_updates)} file(s) would change[/yellow]")
        else:
            console.print(f"  [green]Files updated: {summary.files_updated}[/green]")

    asyncio.run(_update())


def _print_fetch_errors(errors: dict[str, str]) -> None:
    for key, message in sorted(errors.items()):
        console.print(f"[yellow]Warning: could not fetch versions for {key}: {message}[/yellow]")


if __name__ == "__main__":
    cli()
