"""
Monitoring for migration runs: structured logging with checkpoint
context, plus optional Prometheus metrics.
"""

from .logging import (
    MigrationContextFilter,
    MigrationJsonFormatter,
    MigrationLogger,
    migration_context,
    setup_migration_logging,
)
from .prometheus import PROMETHEUS_AVAILABLE, MigrationMetrics, start_metrics_server

__all__ = [
    "PROMETHEUS_AVAILABLE",
    "MigrationContextFilter",
    "MigrationJsonFormatter",
    "MigrationLogger",
    "MigrationMetrics",
    "migration_context",
    "setup_migration_logging",
    "start_metrics_server",
]
