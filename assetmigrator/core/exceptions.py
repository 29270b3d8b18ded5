# ============================================
# FILE: assetmigrator/core/exceptions.py
# ============================================

"""
Scope-level exceptions.

These abort the operation that raised them. Per-asset failures are
recorded in the checkpoint instead and never surface here.
"""

from datetime import datetime


class MigratorError(Exception):
    """Base error for migration, switch-over and configuration failures"""


class ConfigError(MigratorError):
    """
    Missing or invalid configuration.

    Raised for unknown provider types, missing required keys, and
    filesystem handles that do not resolve when they must.
    """

    def __init__(self, message: str, key: str | None = None):
        self.key = key
        if key and key not in message:
            message = f"{message} (key: {key})"
        super().__init__(message)


class LockConflictError(MigratorError):
    """Another migration holds a live lock on the same scope"""

    def __init__(
        self,
        scope: str,
        holder: str | None = None,
        expires_at: datetime | None = None,
    ):
        self.scope = scope
        self.holder = holder
        self.expires_at = expires_at

        message = f"Migration scope '{scope}' is locked"
        if holder:
            message += f" by {holder}"
        if expires_at:
            message += f" until {expires_at.isoformat()}"
        message += " (use --skip-lock to bypass or force-cleanup to clear)"
        super().__init__(message)


class CheckpointNotFoundError(MigratorError):
    """No checkpoint exists with the requested id"""

    def __init__(self, checkpoint_id: str | None, scope: str | None = None):
        self.checkpoint_id = checkpoint_id
        self.scope = scope
        if checkpoint_id:
            message = f"Checkpoint not found: {checkpoint_id}"
        else:
            message = f"No checkpoint found for scope '{scope}'"
        super().__init__(message)


class InvalidPhaseTransitionError(MigratorError):
    """Checkpoint phase change not allowed by the phase machine"""

    def __init__(self, from_phase: str, to_phase: str, checkpoint_id: str | None = None):
        self.from_phase = from_phase
        self.to_phase = to_phase
        self.checkpoint_id = checkpoint_id
        message = f"Invalid phase transition: {from_phase} -> {to_phase}"
        if checkpoint_id:
            message += f" (checkpoint {checkpoint_id})"
        super().__init__(message)


class MissingDependencyError(MigratorError):
    """
    Raised when an optional dependency is not installed.

    This exception provides clear installation instructions to help users
    quickly resolve missing package issues.
    """

    INSTALL_COMMANDS = {
        "aioboto3": "pip install aioboto3",
        "aiosqlite": "pip install aiosqlite",
        "rich": "pip install rich",
    }

    def __init__(self, package: str, feature: str | None = None):
        self.package = package
        self.feature = feature

        install_cmd = self.INSTALL_COMMANDS.get(package, f"pip install {package}")

        message = (
            f"\n╔══════════════════════════════════════════════════════════════╗\n"
            f"║  Missing Dependency: {package:<40} ║\n"
            f"╠══════════════════════════════════════════════════════════════╣\n"
        )
        if feature:
            message += f"║  Required for: {feature:<45} ║\n"
        message += (
            f"║  Install with: {install_cmd:<45} ║\n"
            f"╚══════════════════════════════════════════════════════════════╝"
        )

        super().__init__(message)
