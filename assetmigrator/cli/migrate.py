"""
assetmigrator CLI - Migration Commands

Discover, copy, monitor, roll back and clean up checkpointed migrations
between the configured source and target providers.
"""

import asyncio
import signal

import click

from assetmigrator.cli.context import (
    CliContext,
    _display_failure,
    _display_success,
    _display_warning,
    confirm,
    emit_json,
    pass_context,
    print_panel,
    print_table,
    run_async,
)
from assetmigrator.core.exceptions import CheckpointNotFoundError
from assetmigrator.host.interfaces import AssetFilter
from assetmigrator.host.resolver import ConfigFilesystemResolver
from assetmigrator.migration.checkpoint import CheckpointStatus
from assetmigrator.migration.cleanup import CheckpointJanitor
from assetmigrator.migration.engine import (
    EXIT_OK,
    MigrationEngine,
    MigrationResult,
)
from assetmigrator.migration.lock import LockManager
from assetmigrator.migration.progress import MigrationProgress
from assetmigrator.migration.rollback import RollbackEngine
from assetmigrator.monitoring.prometheus import MigrationMetrics, start_metrics_server


# ============================================================================
# Migrate Command Group
# ============================================================================


@click.group()
def migrate():
    """Checkpointed object migration from source to target"""


def _asset_filter(pattern: str | None, path_prefix: str | None) -> AssetFilter | None:
    if not pattern and not path_prefix:
        return None
    return AssetFilter(path_prefix=path_prefix, pattern=pattern)


def _lock_manager(cli_ctx: CliContext, store) -> LockManager:
    return LockManager(store, timeout_seconds=cli_ctx.config.settings.lock_timeout_seconds)


def _display_status(status: CheckpointStatus) -> None:
    lines = [
        f"Checkpoint: {status.checkpoint_id}",
        f"Scope: {status.scope}",
        f"Phase: {status.phase.value}",
        f"Progress: {status.completed_count}/{status.total} ({status.progress_percent:.1f}%)",
        f"Failed: {status.failed_count}",
        f"Remaining: {status.remaining}",
        f"Batches completed: {status.batches_completed} (batch size {status.batch_size})",
        f"Created: {status.created_at.isoformat()}",
        f"Updated: {status.updated_at.isoformat()}",
    ]
    if status.volume:
        lines.append(f"Volume: {status.volume}")
    if status.supersedes:
        lines.append(f"Supersedes: {status.supersedes}")
    if status.last_error:
        lines.append(f"Last error: {status.last_error}")
    print_panel("Migration Status", lines)


def _display_result(result: MigrationResult) -> None:
    if result.dry_run:
        lines = [
            f"Assets: {result.total}",
            f"Would copy: {result.would_copy}",
            f"Would skip (already present): {result.would_skip}",
            f"Would fail: {result.failed}",
        ]
        print_panel("Dry Run", lines)
    else:
        lines = [
            f"Checkpoint: {result.checkpoint_id}",
            f"Phase: {result.phase}",
            f"Assets: {result.total}",
            f"Copied: {result.copied}",
            f"Skipped (already present): {result.skipped}",
            f"Failed: {result.failed}",
            f"Duration: {result.duration_seconds:.1f}s",
        ]
        if result.supersedes:
            lines.append(f"Supersedes: {result.supersedes}")
        if result.verification is not None:
            report = result.verification
            lines.append(f"Verified: {report.verified}/{report.checked}")
        print_panel("Migration Summary", lines, style="green" if result.success else "red")

    for error in result.errors:
        _display_failure(error)

    if result.cancelled:
        _display_warning(f"Migration interrupted; resume with --resume --checkpoint-id {result.checkpoint_id}")
    elif result.failed:
        _display_warning(f"Completed with {result.failed} failed assets")
    else:
        _display_success("Migration completed successfully")


def _print_progress(progress: MigrationProgress) -> None:
    click.echo(
        f"Batch {progress.current_batch}/{progress.total_batches}: "
        f"{progress.processed}/{progress.total} ({progress.percent:.1f}%) - "
        f"{progress.copied} copied, {progress.skipped} skipped, {progress.failed} failed"
    )


# ============================================================================
# migrate discover
# ============================================================================


@migrate.command("discover")
@click.option("--volume", help="Only assets of this volume handle")
@click.option("--pattern", help="Glob matched against asset paths, e.g. '*.jpg'")
@click.option("--path-prefix", help="Only assets under this path")
@click.option("--limit", default=20, show_default=True, help="Assets to list")
@pass_context
def discover_cmd(cli_ctx: CliContext, volume, pattern, path_prefix, limit):
    """
    List the assets a migration would copy.

    \b
    Example:
        assetmigrator migrate discover --volume images
    """

    async def _discover() -> int:
        async with cli_ctx.host_metadata() as host:
            engine = MigrationEngine.from_config(cli_ctx.config, host, store=cli_ctx.checkpoint_store())
            try:
                assets = await engine.discover(volume, _asset_filter(pattern, path_prefix))
            finally:
                await engine.source.close()
                await engine.target.close()

        if cli_ctx.json_output:
            emit_json({"total": len(assets), "assets": [a.to_dict() for a in assets[:limit]]})
            return EXIT_OK

        print_table(
            f"{len(assets)} assets to migrate ({engine.scope})",
            ["ID", "Volume", "Path", "Size"],
            [[a.asset_id, a.volume_handle, a.path, a.size] for a in assets[:limit]],
        )
        if len(assets) > limit:
            click.echo(f"... and {len(assets) - limit} more")
        return EXIT_OK

    run_async(cli_ctx, _discover)


# ============================================================================
# migrate run
# ============================================================================


@migrate.command("run")
@click.option("--dry-run", "-d", is_flag=True, help="Report what would be copied; change nothing")
@click.option("--resume", "-r", is_flag=True, help="Continue the latest checkpoint for this scope")
@click.option("--checkpoint-id", "-c", help="Checkpoint to resume (implies --resume)")
@click.option("--skip-lock", is_flag=True, help="Run even if another migration holds the lock")
@click.option("--no-verify", is_flag=True, help="Skip the verification pass")
@click.option("--volume", help="Only assets of this volume handle")
@click.option("--pattern", help="Glob matched against asset paths, e.g. '*.jpg'")
@click.option("--path-prefix", help="Only assets under this path")
@click.option("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def run_cmd(
    cli_ctx: CliContext,
    dry_run,
    resume,
    checkpoint_id,
    skip_lock,
    no_verify,
    volume,
    pattern,
    path_prefix,
    metrics_port,
    yes,
):
    """
    Copy assets from source to target.

    Exit status is 0 when every asset was migrated, 2 when the run
    completed with failed assets, and 1 on a fatal error.

    \b
    Examples:
        assetmigrator migrate run --dry-run
        assetmigrator migrate run --yes
        assetmigrator migrate run --resume --checkpoint-id 20240501-101500-1a2b3c4d
    """
    config = cli_ctx.config
    if not dry_run:
        confirm(
            f"Migrate assets from '{config.require_role('source')}' "
            f"to '{config.require_role('target')}'?",
            yes,
        )
    if skip_lock:
        _display_warning("Lock check disabled: make sure no other migration runs on this scope")

    async def _run() -> int:
        metrics = None
        if metrics_port:
            start_metrics_server(metrics_port)
            metrics = MigrationMetrics()

        store = cli_ctx.checkpoint_store()
        async with cli_ctx.host_metadata() as host:
            engine = MigrationEngine.from_config(
                config,
                host,
                store=store,
                lock_manager=_lock_manager(cli_ctx, store),
                progress_callback=None if cli_ctx.json_output else _print_progress,
                metrics=metrics,
            )

            loop = asyncio.get_running_loop()
            handled = []
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, engine.cancel)
                    handled.append(sig)
                except (NotImplementedError, RuntimeError):  # pragma: no cover
                    pass

            try:
                result = await engine.migrate(
                    dry_run=dry_run,
                    resume=resume or checkpoint_id is not None,
                    checkpoint_id=checkpoint_id,
                    skip_lock=skip_lock,
                    verify=False if no_verify else None,
                    volume=volume,
                    asset_filter=_asset_filter(pattern, path_prefix),
                )
            finally:
                for sig in handled:
                    loop.remove_signal_handler(sig)
                await engine.source.close()
                await engine.target.close()

        if cli_ctx.json_output:
            emit_json(result.to_dict())
        else:
            _display_result(result)
        return result.exit_code

    run_async(cli_ctx, _run)


# ============================================================================
# migrate status / monitor
# ============================================================================


async def _load_status(cli_ctx: CliContext, checkpoint_id: str | None) -> CheckpointStatus:
    store = cli_ctx.checkpoint_store()
    if checkpoint_id:
        status = await store.load_status(checkpoint_id)
    else:
        status = await store.latest(cli_ctx.config.scope)
    if status is None:
        raise CheckpointNotFoundError(checkpoint_id, scope=cli_ctx.config.scope)
    return status


@migrate.command("status")
@click.argument("checkpoint_id", required=False)
@click.option("--all", "show_all", is_flag=True, help="List every checkpoint")
@pass_context
def status_cmd(cli_ctx: CliContext, checkpoint_id, show_all):
    """
    Show checkpoint progress (latest for this scope by default).
    """

    async def _status() -> int:
        if show_all:
            statuses = await cli_ctx.checkpoint_store().list_statuses()
            if cli_ctx.json_output:
                emit_json([s.to_dict() for s in statuses])
            else:
                print_table(
                    "Checkpoints",
                    ["ID", "Scope", "Phase", "Completed", "Failed", "Total", "Updated"],
                    [
                        [
                            s.checkpoint_id,
                            s.scope,
                            s.phase.value,
                            s.completed_count,
                            s.failed_count,
                            s.total,
                            s.updated_at.strftime("%Y-%m-%d %H:%M"),
                        ]
                        for s in statuses
                    ],
                )
            return EXIT_OK

        status = await _load_status(cli_ctx, checkpoint_id)
        if cli_ctx.json_output:
            emit_json(status.to_dict())
        else:
            _display_status(status)
        return EXIT_OK

    run_async(cli_ctx, _status)


@migrate.command("monitor")
@click.argument("checkpoint_id", required=False)
@click.option("--interval", default=5.0, show_default=True, help="Seconds between refreshes")
@click.option("--once", is_flag=True, help="Print one snapshot and exit")
@pass_context
def monitor_cmd(cli_ctx: CliContext, checkpoint_id, interval, once):
    """
    Follow a checkpoint until it reaches a terminal phase.
    """

    async def _monitor() -> int:
        last_updated = None
        while True:
            status = await _load_status(cli_ctx, checkpoint_id)
            if status.updated_at != last_updated:
                last_updated = status.updated_at
                if cli_ctx.json_output:
                    emit_json(status.to_dict())
                else:
                    click.echo(
                        f"[{status.updated_at:%H:%M:%S}] {status.checkpoint_id} "
                        f"{status.phase.value}: {status.completed_count}/{status.total} "
                        f"({status.progress_percent:.1f}%), {status.failed_count} failed"
                    )
            if once or status.is_terminal:
                return EXIT_OK
            await asyncio.sleep(interval)

    run_async(cli_ctx, _monitor)


# ============================================================================
# migrate rollback
# ============================================================================


@migrate.command("rollback")
@click.argument("checkpoint_id", required=False)
@click.option("--dry-run", "-d", is_flag=True, help="Report what would be deleted")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def rollback_cmd(cli_ctx: CliContext, checkpoint_id, dry_run, yes):
    """
    Delete the target copies recorded in a checkpoint's change log.

    Source objects are never touched; targets whose source copy is gone
    are kept.
    """

    async def _rollback() -> int:
        checkpoint = checkpoint_id or (await _load_status(cli_ctx, None)).checkpoint_id
        if not dry_run:
            confirm(f"Delete target copies recorded by checkpoint {checkpoint}?", yes)

        resolver = ConfigFilesystemResolver(cli_ctx.config)
        try:
            if cli_ctx.config.host_database:
                async with cli_ctx.host_metadata() as host:
                    result = await RollbackEngine(
                        cli_ctx.checkpoint_store(), resolver, catalog=host
                    ).rollback(checkpoint, dry_run=dry_run)
            else:
                result = await RollbackEngine(cli_ctx.checkpoint_store(), resolver).rollback(
                    checkpoint, dry_run=dry_run
                )
        finally:
            await resolver.close()

        if cli_ctx.json_output:
            emit_json(result.to_dict())
            return result.exit_code

        lines = [
            f"Checkpoint: {result.checkpoint_id}",
            f"{'Would remove' if dry_run else 'Removed'}: "
            f"{len(result.would_remove) if dry_run else len(result.removed)}",
            f"Already removed: {len(result.already_removed)}",
            f"Kept (source missing): {len(result.source_missing)}",
            f"Errors: {len(result.errors)}",
        ]
        print_panel("Rollback", lines, style="green" if result.success else "red")
        for error in result.errors:
            _display_failure(error)
        if result.success:
            _display_success("Rollback completed")
        return result.exit_code

    run_async(cli_ctx, _rollback)


# ============================================================================
# migrate cleanup / force-cleanup
# ============================================================================


def _display_cleanup(cli_ctx: CliContext, result) -> None:
    if cli_ctx.json_output:
        emit_json(result.to_dict())
        return
    _display_success(
        f"Archived {len(result.archived)} checkpoints, kept {len(result.kept)}, "
        f"removed {len(result.locks_removed)} locks"
    )


@migrate.command("cleanup")
@click.option("--older-than-hours", type=int, help="Age threshold (default: checkpoint_retention_hours)")
@click.option("--all-scopes", is_flag=True, help="Not only the configured source/target scope")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def cleanup_cmd(cli_ctx: CliContext, older_than_hours, all_scopes, yes):
    """
    Archive finished checkpoints and remove expired locks.

    Checkpoints still in progress are never touched.
    """
    hours = (
        older_than_hours
        if older_than_hours is not None
        else cli_ctx.config.settings.checkpoint_retention_hours
    )
    confirm(f"Archive finished checkpoints older than {hours}h?", yes)

    async def _cleanup() -> int:
        store = cli_ctx.checkpoint_store()
        janitor = CheckpointJanitor(store, _lock_manager(cli_ctx, store))
        result = await janitor.cleanup(hours, scope=None if all_scopes else cli_ctx.config.scope)
        _display_cleanup(cli_ctx, result)
        return EXIT_OK

    run_async(cli_ctx, _cleanup)


@migrate.command("force-cleanup")
@click.option("--older-than-hours", type=int, help="Age threshold (default: checkpoint_retention_hours)")
@click.option("--all-scopes", is_flag=True, help="Not only the configured source/target scope")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def force_cleanup_cmd(cli_ctx: CliContext, older_than_hours, all_scopes, yes):
    """
    Cleanup plus removal of every lock, live or not.

    Use only when no migration is running.
    """
    hours = (
        older_than_hours
        if older_than_hours is not None
        else cli_ctx.config.settings.checkpoint_retention_hours
    )
    confirm("Remove ALL migration locks, including live ones?", yes)

    async def _force_cleanup() -> int:
        store = cli_ctx.checkpoint_store()
        janitor = CheckpointJanitor(store, _lock_manager(cli_ctx, store))
        result = await janitor.force_cleanup(hours, scope=None if all_scopes else cli_ctx.config.scope)
        _display_cleanup(cli_ctx, result)
        return EXIT_OK

    run_async(cli_ctx, _force_cleanup)
