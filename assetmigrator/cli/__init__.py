"""
CLI module for assetmigrator - contains command-line interface components.
"""

from assetmigrator.cli.main import main

__all__ = ["main"]
