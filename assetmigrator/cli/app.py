"""
assetmigrator CLI Application - Built with Click.

Command groups:
- migrate: checkpointed copy from source to target, rollback, cleanup
- switch: transactional volume switch-over
- diag: read-only provider diagnostics
"""

import logging

import click

from assetmigrator import __version__
from assetmigrator.cli.context import CliContext
from assetmigrator.cli.diag import diag
from assetmigrator.cli.migrate import migrate
from assetmigrator.cli.switch import switch
from assetmigrator.core.config import DEFAULT_CONFIG_FILE
from assetmigrator.core.logger import configure_default_logging
from assetmigrator.monitoring.logging import setup_migration_logging


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="assetmigrator")
@click.option(
    "--config",
    "config_path",
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    envvar="ASSETMIGRATOR_CONFIG",
    help="Configuration file",
)
@click.option("--env", "environment", help="Environment overlay (overrides MIGRATION_ENV)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging and tracebacks")
@click.option("--json-logs", is_flag=True, help="Structured JSON log lines on stderr")
@click.option("--json", "json_output", is_flag=True, help="Machine-readable command output")
@click.pass_context
def cli(ctx, config_path, environment, verbose, json_logs, json_output):
    """
    assetmigrator - Resumable object storage migration.

    \b
    Commands by Progressive Risk:
    \b
      Analysis (Read-only):
        diag             List, search, verify and compare provider contents
        switch preview   Show which volumes a switch would repoint
        migrate status   Checkpoint progress
    \b
      Migration:
        migrate run      Copy assets (use --dry-run first)
        migrate rollback Delete copies recorded by a checkpoint
    \b
      Switch-over (State Modification):
        switch to-target Repoint volumes at the target handles
        switch to-source Repoint volumes back at the source handles
    """
    level = logging.DEBUG if verbose else logging.WARNING
    if json_logs:
        setup_migration_logging(log_level=logging.getLevelName(level), json_format=True)
    else:
        configure_default_logging(level=level)

    ctx.obj = CliContext(
        config_path=config_path,
        environment=environment,
        verbose=verbose,
        json_output=json_output,
    )


cli.add_command(migrate)
cli.add_command(switch)
cli.add_command(diag)
