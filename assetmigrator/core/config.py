"""
MigrationConfig - explicit configuration value for a migration process.

Built once at process start and handed to the provider registry, the
migration engine, switch-over and diagnostics. Nothing reads global
configuration state.

Example (assetmigrator.yaml):
    providers:
      images:
        type: s3
        bucket: old-bucket
        region: ca-central-1
        access_key: ${AWS_ACCESS_KEY_ID}
        secret_key: ${AWS_SECRET_ACCESS_KEY}
        subfolder: images
      images_do:
        type: digitalocean-spaces
        bucket: ${DO_S3_BUCKET}
        region: tor1
        access_key: ${DO_S3_ACCESS_KEY}
        secret_key: ${DO_S3_SECRET_KEY:?DO credentials required}
        subfolder: images
    roles:
      source: images
      target: images_do
    filesystem_mappings:
      images: images_do
    migration:
      batch_size: 100
      max_retries: 3

    >>> config = MigrationConfig.from_file("assetmigrator.yaml")
    >>> source = config.build_provider(config.source_handle)
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

from assetmigrator.core.exceptions import ConfigError
from assetmigrator.core.logger import get_logger

if TYPE_CHECKING:
    from assetmigrator.storage.interfaces.provider import StorageProvider

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = "assetmigrator.yaml"
ENVIRONMENT_VARIABLE = "MIGRATION_ENV"


def deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge overlay into a copy of base; overlay wins."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


@dataclass
class MigrationSettings:
    """
    Tunables for the migration engine.

    Attributes:
        batch_size: Upper bound on assets per batch (providers may lower it)
        max_retries: Retries per asset after the first attempt
        retry_delay_seconds: Base delay before the first retry
        retry_backoff: Exponential backoff multiplier
        rate_limit_backoff: Extra multiplier applied to throttling errors
        attempt_timeout_seconds: Timeout for each single provider call
        concurrency: Assets copied in parallel within a batch
        verify: Run the verification pass after copying
        checkpoint_retention_hours: Age after which terminal checkpoints are purged
        lock_timeout_seconds: Age after which a lock is considered abandoned
        state_dir: Directory holding checkpoints, change logs and locks
        max_reported_errors: Errors kept in a MigrationResult summary
    """

    batch_size: int = 100
    max_retries: int = 3
    retry_delay_seconds: float = 1.0
    retry_backoff: float = 2.0
    rate_limit_backoff: float = 4.0
    attempt_timeout_seconds: float = 60.0
    concurrency: int = 1
    verify: bool = True
    checkpoint_retention_hours: int = 72
    lock_timeout_seconds: int = 43200
    state_dir: str = "./.assetmigrator"
    max_reported_errors: int = 20

    def __post_init__(self) -> None:
        positive = ("batch_size", "concurrency", "attempt_timeout_seconds", "lock_timeout_seconds")
        for name in positive:
            if getattr(self, name) <= 0:
                msg = f"migration.{name} must be > 0, got {getattr(self, name)}"
                raise ConfigError(msg, key=f"migration.{name}")

        non_negative = ("max_retries", "retry_delay_seconds", "checkpoint_retention_hours")
        for name in non_negative:
            if getattr(self, name) < 0:
                msg = f"migration.{name} must be >= 0, got {getattr(self, name)}"
                raise ConfigError(msg, key=f"migration.{name}")

        if self.retry_backoff < 1:
            msg = f"migration.retry_backoff must be >= 1, got {self.retry_backoff}"
            raise ConfigError(msg, key="migration.retry_backoff")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MigrationSettings:
        data = data or {}
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            msg = f"Unknown migration setting: {unknown[0]}"
            raise ConfigError(msg, key=f"migration.{unknown[0]}")

        values: dict[str, Any] = {}
        for name, value in data.items():
            default = known[name].default
            try:
                if isinstance(default, bool):
                    values[name] = _to_bool(value)
                elif isinstance(default, int):
                    values[name] = int(value)
                elif isinstance(default, float):
                    values[name] = float(value)
                else:
                    values[name] = str(value)
            except (TypeError, ValueError) as e:
                msg = f"Invalid value for migration.{name}: {value!r}"
                raise ConfigError(msg, key=f"migration.{name}") from e
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off"):
        return False
    msg = f"Not a boolean: {value!r}"
    raise ValueError(msg)


@dataclass
class ProviderDefinition:
    """Connection parameters for one filesystem handle."""

    handle: str
    type: str
    options: dict[str, Any] = field(default_factory=dict)

    SECRET_KEYS = ("secret_key", "access_key")

    def redacted(self) -> dict[str, Any]:
        """Options safe to persist in checkpoints and print."""
        result: dict[str, Any] = {"type": self.type}
        for key, value in self.options.items():
            if key in self.SECRET_KEYS and value:
                result[key] = f"{str(value)[:4]}***"
            else:
                result[key] = value
        return result


@dataclass
class MigrationConfig:
    """
    Complete configuration for one process.

    Attributes:
        providers: Filesystem handle -> provider definition
        source_handle: Handle playing the source role
        target_handle: Handle playing the target role
        filesystem_mappings: Source handle -> target handle for switch-over
        settings: Migration engine tunables
        environment: Active environment profile (dev/staging/prod)
        host_database: SQLite database holding host metadata (optional)
        similarity_threshold: Fuzzy-match cutoff for diagnostics suggestions
        source_path: File the config was loaded from
    """

    providers: dict[str, ProviderDefinition] = field(default_factory=dict)
    source_handle: str | None = None
    target_handle: str | None = None
    filesystem_mappings: dict[str, str] = field(default_factory=dict)
    settings: MigrationSettings = field(default_factory=MigrationSettings)
    environment: str | None = None
    host_database: str | None = None
    similarity_threshold: float = 0.7
    source_path: Path | None = None

    def __post_init__(self) -> None:
        for role, handle in (("roles.source", self.source_handle), ("roles.target", self.target_handle)):
            if handle is not None and handle not in self.providers:
                msg = f"{role} references undefined provider '{handle}'"
                raise ConfigError(msg, key=role)
        if (
            self.source_handle is not None
            and self.source_handle == self.target_handle
        ):
            msg = "roles.source and roles.target must differ"
            raise ConfigError(msg, key="roles.target")
        if not 0 < self.similarity_threshold <= 1:
            msg = f"diagnostics.similarity_threshold must be in (0, 1], got {self.similarity_threshold}"
            raise ConfigError(msg, key="diagnostics.similarity_threshold")

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any] | None,
        environment: str | None = None,
        source_path: Path | None = None,
    ) -> MigrationConfig:
        """
        Build configuration from an already-substituted mapping.

        Args:
            data: Parsed config document
            environment: Profile whose ``environments.<name>`` overlay applies;
                defaults to the document's ``environment`` key
            source_path: File the mapping came from, for messages
        """
        data = dict(data or {})
        overlays = data.pop("environments", None) or {}
        environment = environment or data.get("environment")

        if environment:
            if environment in overlays:
                data = deep_merge(data, overlays[environment] or {})
            elif overlays:
                msg = f"Unknown environment '{environment}' (defined: {', '.join(sorted(overlays))})"
                raise ConfigError(msg, key="environment")

        providers = {}
        for handle, definition in (data.get("providers") or {}).items():
            if not isinstance(definition, dict):
                msg = f"Provider '{handle}' must be a mapping"
                raise ConfigError(msg, key=f"providers.{handle}")
            options = dict(definition)
            provider_type = options.pop("type", None)
            if not provider_type:
                msg = f"Provider '{handle}' has no type"
                raise ConfigError(msg, key=f"providers.{handle}.type")
            providers[str(handle)] = ProviderDefinition(str(handle), str(provider_type), options)

        roles = data.get("roles") or {}
        mappings = {
            str(source): str(target)
            for source, target in (data.get("filesystem_mappings") or {}).items()
        }
        diagnostics = data.get("diagnostics") or {}
        host = data.get("host") or {}

        return cls(
            providers=providers,
            source_handle=roles.get("source"),
            target_handle=roles.get("target"),
            filesystem_mappings=mappings,
            settings=MigrationSettings.from_dict(data.get("migration")),
            environment=environment,
            host_database=host.get("database"),
            similarity_threshold=float(diagnostics.get("similarity_threshold", 0.7)),
            source_path=source_path,
        )

    @classmethod
    def from_file(
        cls,
        file_path: str | Path,
        environment: str | None = None,
        substitute_env: bool = True,
    ) -> MigrationConfig:
        """
        Load configuration from a YAML file.

        Supports environment variable substitution using ${VAR} syntax.
        MIGRATION_ENV selects the environment overlay when no explicit
        environment is passed.

        Raises:
            ConfigError: File missing, unparsable, or invalid
        """
        import yaml

        from assetmigrator.core.env import get_env

        path = Path(file_path)
        if not path.exists():
            msg = f"Configuration file not found: {file_path}"
            raise ConfigError(msg)

        try:
            with path.open() as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Invalid YAML in {file_path}: {e}"
            raise ConfigError(msg) from e

        if not isinstance(data, dict):
            msg = f"Configuration root must be a mapping: {file_path}"
            raise ConfigError(msg)

        env = get_env()
        if substitute_env:
            env.project_root = path.parent
            env.load()
            try:
                data = env.substitute_dict(data)
            except ValueError as e:
                raise ConfigError(str(e)) from e

        environment = environment or env.get(ENVIRONMENT_VARIABLE)
        config = cls.from_dict(data, environment=environment, source_path=path)
        logger.debug(
            f"Loaded configuration from {path} "
            f"(environment={config.environment}, providers={len(config.providers)})"
        )
        return config

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def scope(self) -> str:
        """Lock/checkpoint scope key for the configured source/target pair."""
        return migration_scope(self.require_role("source"), self.require_role("target"))

    def require_role(self, role: str) -> str:
        handle = self.source_handle if role == "source" else self.target_handle
        if not handle:
            msg = f"No {role} provider configured"
            raise ConfigError(msg, key=f"roles.{role}")
        return handle

    def provider_definition(self, handle: str) -> ProviderDefinition:
        definition = self.providers.get(handle)
        if definition is None:
            msg = f"Unknown filesystem handle: '{handle}'"
            raise ConfigError(msg, key=f"providers.{handle}")
        return definition

    def build_provider(self, handle: str) -> StorageProvider:
        """
        Build a provider for a filesystem handle through the registry.

        Raises:
            ConfigError: Unknown handle, type, or missing keys
        """
        from assetmigrator.storage.registry import create_provider

        definition = self.provider_definition(handle)
        return create_provider(definition.type, definition.options, name=handle)


def migration_scope(source_handle: str, target_handle: str) -> str:
    """Scope key shared by locks and checkpoints of one source/target pair."""
    return f"{source_handle}->{target_handle}"
