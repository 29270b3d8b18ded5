"""
assetmigrator CLI - Command-line interface for object storage migration.

Migration:
    assetmigrator migrate discover          # Assets still to copy
    assetmigrator migrate run --dry-run     # What would be copied or skipped
    assetmigrator migrate run --yes         # Copy, checkpointing every batch
    assetmigrator migrate run --resume      # Continue an interrupted run
    assetmigrator migrate status            # Checkpoint progress
    assetmigrator migrate rollback          # Delete copies of the latest run

Switch-over:
    assetmigrator switch preview
    assetmigrator switch to-target --yes
    assetmigrator switch to-source --yes

Diagnostics:
    assetmigrator diag test
    assetmigrator diag verify images_do 2024/05/photo.jpg
    assetmigrator diag compare images images_do

This creates the 'assetmigrator' command via entry point in pyproject.toml.
"""

import sys

# Check for optional CLI dependencies
try:
    import click

    HAS_CLICK = True
except ImportError:
    HAS_CLICK = False


def main():
    """Main entry point for the assetmigrator CLI."""
    if not HAS_CLICK:
        print("The assetmigrator CLI requires click: pip install click", file=sys.stderr)
        sys.exit(1)

    from assetmigrator.cli.app import cli

    cli()


if __name__ == "__main__":
    main()
