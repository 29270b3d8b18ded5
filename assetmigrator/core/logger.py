"""
Centralized logger configuration for assetmigrator.

Provides a unified logging interface that can be customized by the user.
By default, uses Python's standard logging with the 'assetmigrator' namespace.

Usage:
    # Use default logger
    from assetmigrator.core.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Message")

    # Route everything to a custom logger
    from assetmigrator.core.logger import set_logger
    set_logger(my_logger)
"""

import logging
from typing import Any

ROOT_LOGGER_NAME = "assetmigrator"

# Global logger override - None means standard logging
_custom_logger: Any = None


def set_logger(logger: Any) -> None:
    """
    Set a custom logger for all assetmigrator components.

    Args:
        logger: A logger instance. Must support
                debug/info/warning/error/exception methods.
    """
    global _custom_logger
    _custom_logger = logger


def reset_logger() -> None:
    """Drop a custom logger installed with set_logger()."""
    set_logger(None)


def get_logger(name: str = ROOT_LOGGER_NAME) -> Any:
    """
    Get a logger instance.

    If a custom logger was set via set_logger(), returns that.
    Otherwise, returns a standard Python logger with the given name.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    if _custom_logger is not None:
        return _custom_logger

    logger = logging.getLogger(name)

    # Avoid "No handler found" warnings for library use
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def configure_default_logging(
    level: int = logging.INFO,
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handler: logging.Handler | None = None,
) -> None:
    """
    Configure console logging for the assetmigrator namespace.

    Called by the CLI; library users configure logging themselves.

    Args:
        level: Logging level (default: INFO)
        format_string: Log message format
        handler: Handler to install instead of a plain stderr handler
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(format_string))

    for existing in list(root.handlers):
        if not isinstance(existing, logging.NullHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
