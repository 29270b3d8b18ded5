"""
Shared CLI plumbing: loaded configuration, output helpers and the
error-to-exit-code mapping used by every command group.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

import click

from assetmigrator.core.config import DEFAULT_CONFIG_FILE, MigrationConfig
from assetmigrator.core.exceptions import ConfigError, MigratorError
from assetmigrator.migration.engine import EXIT_FATAL
from assetmigrator.storage.core.errors import StorageError

try:
    from rich.console import Console
    from rich.markup import escape
    from rich.panel import Panel
    from rich.table import Table

    console = Console()
    HAS_RICH = True
except ImportError:
    console = None
    HAS_RICH = False


# ============================================================================
# Context object
# ============================================================================


@dataclass
class CliContext:
    """State shared by all subcommands of one invocation."""

    config_path: str = DEFAULT_CONFIG_FILE
    environment: str | None = None
    verbose: bool = False
    json_output: bool = False
    _config: MigrationConfig | None = None

    @property
    def config(self) -> MigrationConfig:
        if self._config is None:
            self._config = MigrationConfig.from_file(self.config_path, environment=self.environment)
        return self._config

    def host_metadata(self):
        """Host metadata store named by ``host.database``."""
        from assetmigrator.host.sqlite import SQLiteHostMetadata

        if not self.config.host_database:
            msg = "No host metadata database configured"
            raise ConfigError(msg, key="host.database")
        return SQLiteHostMetadata(self.config.host_database)

    def checkpoint_store(self):
        from assetmigrator.migration.store.filesystem import FilesystemCheckpointStore

        return FilesystemCheckpointStore(self.config.settings.state_dir)


pass_context = click.make_pass_decorator(CliContext, ensure=True)


# ============================================================================
# Running commands
# ============================================================================


def run_async(cli_ctx: CliContext, factory: Callable[[], Awaitable[int | None]]) -> None:
    """
    Run a coroutine and exit with its return code.

    Scope-level and storage errors become a message plus exit code 1.
    """
    try:
        code = asyncio.run(factory())
    except (MigratorError, StorageError, LookupError) as e:
        _handle_exception(e, cli_ctx.verbose)
        code = EXIT_FATAL
    raise SystemExit(code or 0)


def confirm(message: str, assume_yes: bool) -> None:
    """Ask for confirmation unless --yes was given; abort on refusal."""
    if not assume_yes:
        click.confirm(message, abort=True)


# ============================================================================
# Output helpers
# ============================================================================


def emit_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def print_table(title: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
    if HAS_RICH and console:
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*("" if value is None else str(value) for value in row))
        console.print(table)
    else:
        click.echo(title)
        click.echo("  ".join(columns))
        for row in rows:
            click.echo("  ".join("" if value is None else str(value) for value in row))


def print_panel(title: str, lines: Sequence[str], style: str = "blue") -> None:
    if HAS_RICH and console:
        console.print(Panel("\n".join(lines), title=title, border_style=style))
    else:
        click.echo(f"=== {title} ===")
        for line in lines:
            click.echo(line)


def _display_success(message: str) -> None:
    if HAS_RICH and console:
        console.print(f"[green]✓ {escape(message)}[/green]")
    else:
        click.echo(f"✓ {message}")


def _display_warning(message: str) -> None:
    if HAS_RICH and console:
        console.print(f"[yellow]! {escape(message)}[/yellow]")
    else:
        click.echo(f"! {message}")


def _display_failure(message: str) -> None:
    if HAS_RICH and console:
        console.print(f"[red]✗ {escape(message)}[/red]")
    else:
        click.echo(f"✗ {message}", err=True)


def _handle_exception(e: Exception, verbose: bool) -> None:
    """Handle and display exception."""
    if HAS_RICH and console:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
    else:
        click.echo(f"Error: {e}", err=True)
    if verbose:
        import traceback

        traceback.print_exc()
