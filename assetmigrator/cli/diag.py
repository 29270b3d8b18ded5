"""
assetmigrator CLI - Diagnostic Commands

Read-only inspection of configured providers: listings, searches,
existence checks with suggestions, and side-by-side comparisons.
"""

import click

from assetmigrator.cli.context import (
    CliContext,
    _display_failure,
    _display_success,
    _display_warning,
    emit_json,
    pass_context,
    print_panel,
    print_table,
    run_async,
)
from assetmigrator.diagnostics.service import DiagnosticsService
from assetmigrator.host.resolver import ConfigFilesystemResolver
from assetmigrator.migration.engine import EXIT_COMPLETED_WITH_ERRORS, EXIT_FATAL, EXIT_OK


@click.group()
def diag():
    """Read-only provider diagnostics"""


async def _with_diagnostics(cli_ctx: CliContext, action):
    resolver = ConfigFilesystemResolver(cli_ctx.config)
    try:
        return await action(DiagnosticsService(resolver))
    finally:
        await resolver.close()


def _object_rows(objects):
    return [
        [
            obj.path,
            obj.size,
            obj.content_type,
            obj.last_modified.strftime("%Y-%m-%d %H:%M") if obj.last_modified else "",
        ]
        for obj in objects
    ]


@diag.command("list")
@click.argument("handle")
@click.option("--prefix", default="", help="Only objects under this prefix")
@click.option("--flat", is_flag=True, help="Do not descend into sub-directories")
@click.option("--limit", default=50, show_default=True, help="Objects to list")
@pass_context
def list_cmd(cli_ctx: CliContext, handle, prefix, flat, limit):
    """List objects of a filesystem handle."""

    async def _list() -> int:
        objects = await _with_diagnostics(
            cli_ctx, lambda d: d.list_objects(handle, prefix, recursive=not flat, limit=limit)
        )
        if cli_ctx.json_output:
            emit_json([obj.to_dict() for obj in objects])
        else:
            print_table(f"{handle}:{prefix or '/'}", ["Path", "Size", "Type", "Modified"], _object_rows(objects))
        return EXIT_OK

    run_async(cli_ctx, _list)


@diag.command("search")
@click.argument("handle")
@click.argument("pattern")
@click.option("--prefix", default="", help="Only search under this prefix")
@click.option("--limit", default=50, show_default=True)
@pass_context
def search_cmd(cli_ctx: CliContext, handle, pattern, prefix, limit):
    """
    Find objects by substring, or by glob when PATTERN contains * ? [.

    \b
    Example:
        assetmigrator diag search images_do '*.png' --prefix 2024/
    """

    async def _search() -> int:
        found = await _with_diagnostics(cli_ctx, lambda d: d.search(handle, pattern, prefix, limit))
        if cli_ctx.json_output:
            emit_json([obj.to_dict() for obj in found])
        else:
            print_table(f"{len(found)} matches for '{pattern}'", ["Path", "Size", "Type", "Modified"], _object_rows(found))
        return EXIT_OK

    run_async(cli_ctx, _search)


@diag.command("verify")
@click.argument("handle")
@click.argument("path")
@click.option("--threshold", type=float, help="Similarity cutoff for suggestions (0-1)")
@pass_context
def verify_cmd(cli_ctx: CliContext, handle, path, threshold):
    """Check that PATH exists on HANDLE; suggest similar names when it does not."""
    cutoff = threshold if threshold is not None else cli_ctx.config.similarity_threshold

    async def _verify() -> int:
        check = await _with_diagnostics(
            cli_ctx, lambda d: d.verify_object(handle, path, suggestion_threshold=cutoff)
        )
        if cli_ctx.json_output:
            emit_json(check.to_dict())
            return EXIT_OK if check.exists else EXIT_FATAL

        if check.exists:
            obj = check.object
            print_panel(
                f"{handle}:{check.path}",
                [
                    f"Size: {obj.size}",
                    f"Type: {obj.content_type}",
                    f"Modified: {obj.last_modified.isoformat() if obj.last_modified else 'unknown'}",
                    f"URL: {check.public_url}",
                ],
                style="green",
            )
            _display_success("Object exists")
            return EXIT_OK

        _display_failure(f"{check.path} not found on '{handle}'")
        if check.suggestions:
            _display_warning("Similar objects:")
            for suggestion, ratio in check.suggestions:
                click.echo(f"  {suggestion} ({ratio:.0%})")
        return EXIT_FATAL

    run_async(cli_ctx, _verify)


@diag.command("compare")
@click.argument("handle_a")
@click.argument("handle_b")
@click.option("--prefix", default="", help="Only compare objects under this prefix")
@click.option("--show", default=20, show_default=True, help="Differences to print per category")
@pass_context
def compare_cmd(cli_ctx: CliContext, handle_a, handle_b, prefix, show):
    """Compare two handles' listings by path and size."""

    async def _compare() -> int:
        report = await _with_diagnostics(cli_ctx, lambda d: d.compare(handle_a, handle_b, prefix))
        if cli_ctx.json_output:
            emit_json(report.to_dict())
            return EXIT_OK if report.identical else EXIT_COMPLETED_WITH_ERRORS

        print_panel(
            f"{handle_a} vs {handle_b}",
            [
                f"In both: {report.in_both}",
                f"Only in {handle_a}: {len(report.only_in_a)}",
                f"Only in {handle_b}: {len(report.only_in_b)}",
                f"Size mismatches: {len(report.size_mismatches)}",
            ],
        )
        for label, paths in ((f"Only in {handle_a}", report.only_in_a), (f"Only in {handle_b}", report.only_in_b)):
            if paths:
                click.echo(f"{label}:")
                for path in paths[:show]:
                    click.echo(f"  {path}")
        for path, (size_a, size_b) in list(report.size_mismatches.items())[:show]:
            click.echo(f"  {path}: {size_a} != {size_b}")

        if report.identical:
            _display_success("Listings match")
            return EXIT_OK
        return EXIT_COMPLETED_WITH_ERRORS

    run_async(cli_ctx, _compare)


@diag.command("test")
@click.argument("handles", nargs=-1)
@pass_context
def test_cmd(cli_ctx: CliContext, handles):
    """Probe providers (all configured handles by default)."""

    async def _test() -> int:
        results = await _with_diagnostics(cli_ctx, lambda d: d.test_connectivity(handles or None))
        if cli_ctx.json_output:
            emit_json({handle: r.to_dict() for handle, r in results.items()})
        else:
            for handle, result in results.items():
                click.echo(f"{handle}: {result.formatted()}")
        return EXIT_OK if all(r.success for r in results.values()) else EXIT_FATAL

    run_async(cli_ctx, _test)
