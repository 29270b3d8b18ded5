"""
Structured logging for migration runs

Provides structured logging utilities for the migration engine, with
checkpoint context propagated to every record emitted while a run is
in progress.
"""

import json
import logging
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# Context variables for propagating migration context
migration_context: ContextVar[dict[str, Any]] = ContextVar("migration_context", default={})


class MigrationJsonFormatter(logging.Formatter):
    """
    JSON formatter for migration logs with structured fields

    Ensures all engine logs carry the checkpoint id and phase
    """

    # Fields to extract from log record if present
    _EXTRA_FIELDS = (
        "checkpoint_id",
        "scope",
        "phase",
        "batch",
        "asset_id",
        "object_path",
        "provider",
        "duration_ms",
        "attempts",
        "error_type",
        "copied",
        "skipped",
        "failed",
        "volume",
    )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON"""
        log_entry = self._build_base_entry(record)
        self._add_migration_context(log_entry)
        self._add_record_extras(log_entry, record)
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)

    def _build_base_entry(self, record: logging.LogRecord) -> dict[str, Any]:
        """Build base log entry with standard fields."""
        return {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

    def _add_migration_context(self, log_entry: dict[str, Any]) -> None:
        """Add migration context to log entry if available."""
        context = migration_context.get({})
        for key in ("checkpoint_id", "scope", "phase", "batch"):
            if context.get(key) is not None:
                log_entry[key] = context[key]

    def _add_record_extras(self, log_entry: dict[str, Any], record: logging.LogRecord) -> None:
        """Add extra fields from log record."""
        for field in self._EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "":
                log_entry[field] = value


class MigrationContextFilter(logging.Filter):
    """
    Logging filter that adds migration context to log records
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add migration context to log record"""
        context = migration_context.get({})

        if not hasattr(record, "checkpoint_id"):
            record.checkpoint_id = context.get("checkpoint_id", "")
        if not hasattr(record, "phase"):
            record.phase = context.get("phase", "")
        if not hasattr(record, "batch"):
            record.batch = context.get("batch", "")

        return True


class MigrationLogger:
    """
    Migration-aware logger with automatic context propagation
    """

    def __init__(self, name: str = "assetmigrator.migration"):
        self.logger = logging.getLogger(name)

        if not any(isinstance(f, MigrationContextFilter) for f in self.logger.filters):
            self.logger.addFilter(MigrationContextFilter())

    def set_context(self, **values: Any) -> None:
        """Merge values into the current migration context"""
        context = dict(migration_context.get({}))
        context.update({k: v for k, v in values.items() if v is not None})
        migration_context.set(context)

    def clear_context(self) -> None:
        """Clear migration context"""
        migration_context.set({})

    def migration_started(
        self, checkpoint_id: str, scope: str, total: int, dry_run: bool = False, resumed: bool = False
    ) -> None:
        """Log migration start"""
        self.set_context(checkpoint_id=checkpoint_id, scope=scope, phase="copying")
        mode = "Dry run" if dry_run else ("Resumed migration" if resumed else "Migration")
        self.logger.info(
            f"{mode} started: {scope} ({total} assets)",
            extra={"checkpoint_id": checkpoint_id, "scope": scope, "total": total},
        )

    def batch_completed(
        self,
        batch: int,
        copied: int,
        skipped: int,
        failed: int,
        duration_ms: float,
    ) -> None:
        """Log the end of one batch"""
        self.set_context(batch=batch)
        self.logger.info(
            f"Batch {batch} completed: {copied} copied, {skipped} skipped, {failed} failed",
            extra={
                "batch": batch,
                "copied": copied,
                "skipped": skipped,
                "failed": failed,
                "duration_ms": duration_ms,
            },
        )

    def asset_failed(self, asset_id: str, path: str, error: BaseException, attempts: int) -> None:
        """Log a terminal per-asset failure"""
        self.logger.error(
            f"Asset {asset_id} failed after {attempts} attempt(s): {error!s}",
            extra={
                "asset_id": asset_id,
                "object_path": path,
                "error_type": type(error).__name__,
                "attempts": attempts,
            },
        )

    def migration_finished(
        self,
        checkpoint_id: str,
        phase: str,
        copied: int,
        skipped: int,
        failed: int,
        duration_ms: float,
    ) -> None:
        """Log migration completion"""
        log_level = logging.INFO if failed == 0 and phase == "done" else logging.WARNING

        self.logger.log(
            log_level,
            f"Migration finished: {checkpoint_id} - Phase: {phase} "
            f"({copied} copied, {skipped} skipped, {failed} failed)",
            extra={
                "checkpoint_id": checkpoint_id,
                "phase": phase,
                "copied": copied,
                "skipped": skipped,
                "failed": failed,
                "duration_ms": duration_ms,
            },
        )
        self.clear_context()


def setup_migration_logging(
    log_level: str = "INFO", json_format: bool = True, include_console: bool = True
) -> MigrationLogger:
    """
    Set up structured logging for the assetmigrator namespace

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logs
        include_console: Include console handler

    Returns:
        Configured MigrationLogger instance
    """
    root_logger = logging.getLogger("assetmigrator")
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if include_console:
        console_handler = logging.StreamHandler()
        console_handler.addFilter(MigrationContextFilter())

        if json_format:
            console_handler.setFormatter(MigrationJsonFormatter())
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(checkpoint_id)s] - %(message)s"
            )
            console_handler.setFormatter(formatter)

        root_logger.addHandler(console_handler)

    return MigrationLogger()
