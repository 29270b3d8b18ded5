"""
assetmigrator CLI - Switch-over Commands

Repoint host volumes between source and target filesystem handles.
"""

import click

from assetmigrator.cli.context import (
    CliContext,
    _display_failure,
    _display_success,
    _display_warning,
    confirm,
    emit_json,
    pass_context,
    print_table,
    run_async,
)
from assetmigrator.host.resolver import ConfigFilesystemResolver
from assetmigrator.migration.engine import EXIT_FATAL, EXIT_OK
from assetmigrator.switchover.mapping import SwitchDirection, VolumeMapping
from assetmigrator.switchover.service import SwitchPlan, VolumeSwitchService


@click.group()
def switch():
    """Transactional volume switch-over between filesystem handles"""


async def _with_service(cli_ctx: CliContext, action):
    mapping = VolumeMapping.from_config(cli_ctx.config)
    resolver = ConfigFilesystemResolver(cli_ctx.config)
    try:
        async with cli_ctx.host_metadata() as host:
            return await action(VolumeSwitchService(host, resolver, mapping, catalog=host))
    finally:
        await resolver.close()


def _display_plan(plan: SwitchPlan) -> None:
    print_table(
        f"Switch {plan.direction.value}",
        ["From", "To", "From resolves", "To resolves", "Volumes", "Assets"],
        [
            [
                pair.from_handle,
                pair.to_handle,
                "yes" if pair.from_resolves else "no (skipped)",
                "yes" if pair.to_resolves else "NO",
                ", ".join(v.handle for v in pair.volumes) or "-",
                pair.asset_count,
            ]
            for pair in plan.pairs
        ],
    )
    if plan.can_apply:
        _display_success(f"{len(plan.affected_volumes)} volumes would be switched")
    else:
        _display_failure(f"Cannot switch: {', '.join(plan.unresolved_targets)} do not resolve")


# ============================================================================
# switch preview
# ============================================================================


@switch.command("preview")
@click.option(
    "--direction",
    type=click.Choice([d.value for d in SwitchDirection]),
    default=SwitchDirection.TO_TARGET.value,
    show_default=True,
)
@pass_context
def preview_cmd(cli_ctx: CliContext, direction):
    """Show which volumes a switch would repoint, without changing anything."""

    async def _preview() -> int:
        plan = await _with_service(cli_ctx, lambda s: s.preview(SwitchDirection(direction)))
        if cli_ctx.json_output:
            emit_json(plan.to_dict())
        else:
            _display_plan(plan)
        return EXIT_OK if plan.can_apply else EXIT_FATAL

    run_async(cli_ctx, _preview)


# ============================================================================
# switch to-target / to-source
# ============================================================================


def _switch(cli_ctx: CliContext, direction: SwitchDirection, yes: bool) -> None:
    confirm(f"Switch volumes {direction.value}? All updates commit or none do.", yes)

    async def _apply() -> int:
        result = await _with_service(cli_ctx, lambda s: s.switch(direction))
        if cli_ctx.json_output:
            emit_json(result.to_dict())
            return EXIT_OK

        if result.updated:
            print_table(
                "Updated volumes",
                ["Volume", "From", "To"],
                [list(update) for update in result.updated],
            )
        for skipped in result.skipped_pairs:
            _display_warning(f"Skipped '{skipped}': handle does not resolve")
        _display_success(f"Switch {direction.value} committed ({len(result.updated)} volumes)")
        return EXIT_OK

    run_async(cli_ctx, _apply)


@switch.command("to-target")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def to_target_cmd(cli_ctx: CliContext, yes):
    """Point volumes at the target handles."""
    _switch(cli_ctx, SwitchDirection.TO_TARGET, yes)


@switch.command("to-source")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
def to_source_cmd(cli_ctx: CliContext, yes):
    """Point volumes back at the source handles."""
    _switch(cli_ctx, SwitchDirection.TO_SOURCE, yes)


# ============================================================================
# switch verify / test-connectivity
# ============================================================================


@switch.command("verify")
@pass_context
def verify_cmd(cli_ctx: CliContext):
    """Report which side of the mapping each volume is bound to."""

    async def _verify() -> int:
        verification = await _with_service(cli_ctx, lambda s: s.verify())
        if cli_ctx.json_output:
            emit_json(verification.to_dict())
            return EXIT_OK if verification.ok else EXIT_FATAL

        rows = [
            [v.handle, v.fs_handle, side]
            for side, volumes in (
                ("source", verification.source),
                ("target", verification.target),
                ("other", verification.other),
            )
            for v in volumes
        ]
        print_table(f"Volumes ({verification.state})", ["Volume", "Filesystem", "Side"], rows)
        for handle in verification.unresolved_handles:
            _display_failure(f"Volumes bound to '{handle}' point at a handle that does not resolve")
        if verification.state == "mixed":
            _display_warning("Volumes are split between source and target handles")
        elif verification.ok:
            _display_success(f"All mapped volumes are on the {verification.state} side")
        return EXIT_OK if verification.ok else EXIT_FATAL

    run_async(cli_ctx, _verify)


@switch.command("test-connectivity")
@pass_context
def test_connectivity_cmd(cli_ctx: CliContext):
    """Probe every provider named in the filesystem mappings."""

    async def _test() -> int:
        results = await _with_service(cli_ctx, lambda s: s.test_connectivity())
        if cli_ctx.json_output:
            emit_json({handle: r.to_dict() for handle, r in results.items()})
        else:
            for handle, result in results.items():
                click.echo(f"{handle}: {result.formatted()}")
        return EXIT_OK if all(r.success for r in results.values()) else EXIT_FATAL

    run_async(cli_ctx, _test)
