"""
Provider Registry - builds storage providers from a type tag and config

New provider types register a factory function; nothing that calls
create_provider() changes when a type is added.

Usage:
    from assetmigrator.storage.registry import create_provider, register_provider

    provider = create_provider(
        "digitalocean-spaces",
        {"bucket": "assets", "region": "tor1", "access_key": "...", "secret_key": "..."},
        name="images_do",
    )

    # Add a custom type
    register_provider("acme", lambda config, name: AcmeProvider(name=name, **config),
                      required_keys=("bucket",))
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from assetmigrator.core.exceptions import ConfigError
from assetmigrator.storage.interfaces.provider import StorageProvider

ProviderFactory = Callable[[dict[str, Any], str | None], StorageProvider]


@dataclass
class ProviderRegistration:
    """One registered provider type."""

    type_tag: str
    factory: ProviderFactory
    required_keys: tuple[str, ...] = ()
    description: str = ""
    install: str | None = None
    aliases: tuple[str, ...] = field(default_factory=tuple)

    def missing_keys(self, config: Mapping[str, Any]) -> list[str]:
        return [key for key in self.required_keys if not config.get(key)]


# Registry mapping type tags (and aliases) to registrations
_PROVIDER_REGISTRY: dict[str, ProviderRegistration] = {}


def register_provider(
    type_tag: str,
    factory: ProviderFactory,
    *,
    required_keys: tuple[str, ...] = (),
    aliases: tuple[str, ...] = (),
    description: str = "",
    install: str | None = None,
    replace: bool = False,
) -> ProviderRegistration:
    """
    Register a provider type.

    Args:
        type_tag: Canonical type identifier (e.g. "s3")
        factory: Callable(config, name) returning a provider
        required_keys: Config keys that must be present and non-empty
        aliases: Additional tags resolving to the same factory
        description: Short human-readable description
        install: Install hint when the backing library is optional
        replace: Allow overriding an existing registration

    Raises:
        ValueError: If a tag is already registered and replace is False
    """
    registration = ProviderRegistration(
        type_tag=type_tag,
        factory=factory,
        required_keys=required_keys,
        description=description,
        install=install,
        aliases=aliases,
    )

    tags = [_normalize_tag(tag) for tag in (type_tag, *aliases)]
    if not replace:
        taken = [tag for tag in tags if tag in _PROVIDER_REGISTRY]
        if taken:
            msg = f"Provider type already registered: {', '.join(taken)}"
            raise ValueError(msg)

    for tag in tags:
        _PROVIDER_REGISTRY[tag] = registration
    return registration


def unregister_provider(type_tag: str) -> None:
    """Remove a provider type and its aliases."""
    registration = _PROVIDER_REGISTRY.get(_normalize_tag(type_tag))
    if registration is None:
        return
    for tag in (registration.type_tag, *registration.aliases):
        _PROVIDER_REGISTRY.pop(_normalize_tag(tag), None)


def _normalize_tag(type_tag: str) -> str:
    return type_tag.lower().strip().replace("_", "-")


def get_registration(type_tag: str) -> ProviderRegistration:
    """
    Look up a registration by tag or alias.

    Raises:
        ConfigError: If the tag is unknown
    """
    registration = _PROVIDER_REGISTRY.get(_normalize_tag(type_tag or ""))
    if registration is None:
        msg = (
            f"Unknown provider type: '{type_tag}'\n"
            f"Available types: {', '.join(registered_types())}"
        )
        raise ConfigError(msg, key="type")
    return registration


def registered_types() -> list[str]:
    """Canonical type tags, sorted."""
    return sorted({registration.type_tag for registration in _PROVIDER_REGISTRY.values()})


def create_provider(
    type_tag: str,
    config: Mapping[str, Any],
    name: str | None = None,
) -> StorageProvider:
    """
    Create a storage provider from a type tag and connection config.

    Args:
        type_tag: Provider type ("s3", "digitalocean-spaces", "local", ...)
        config: Connection parameters (bucket, region, access_key, ...)
        name: Instance name, usually the filesystem handle

    Returns:
        Configured StorageProvider instance

    Raises:
        ConfigError: Unknown type or missing required keys
        MissingDependencyError: If the backing library is not installed
    """
    registration = get_registration(type_tag)

    settings = {k: v for k, v in dict(config).items() if k != "type"}
    missing = registration.missing_keys(settings)
    if missing:
        where = f"provider '{name}'" if name else f"{registration.type_tag} provider"
        msg = f"Missing required config for {where}: {', '.join(missing)}"
        raise ConfigError(msg, key=missing[0])

    try:
        return registration.factory(settings, name)
    except TypeError as e:
        msg = f"Invalid config for {registration.type_tag} provider: {e}"
        raise ConfigError(msg) from e
    except ValueError as e:
        raise ConfigError(str(e)) from e


# ============================================================================
# Built-in provider types
# ============================================================================

_S3_KEYS = (
    "bucket",
    "access_key",
    "secret_key",
    "region",
    "endpoint",
    "subfolder",
    "base_url",
    "acl",
)


def _pick(config: dict[str, Any], keys: tuple[str, ...]) -> dict[str, Any]:
    return {k: config[k] for k in keys if config.get(k) not in (None, "")}


def _create_s3(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.s3 import S3StorageProvider

    return S3StorageProvider(name=name, **_pick(config, _S3_KEYS))


def _create_do_spaces(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.s3 import DigitalOceanSpacesProvider

    return DigitalOceanSpacesProvider(name=name, **_pick(config, _S3_KEYS))


def _create_wasabi(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.s3 import WasabiStorageProvider

    return WasabiStorageProvider(name=name, **_pick(config, _S3_KEYS))


def _create_b2(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.s3 import BackblazeB2Provider

    return BackblazeB2Provider(name=name, **_pick(config, _S3_KEYS))


def _create_r2(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.s3 import CloudflareR2Provider

    if not config.get("account_id") and not config.get("endpoint"):
        msg = "Cloudflare R2 requires either account_id or endpoint"
        raise ConfigError(msg, key="account_id")
    return CloudflareR2Provider(name=name, **_pick(config, (*_S3_KEYS, "account_id")))


def _create_local(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.local import LocalFilesystemProvider

    return LocalFilesystemProvider(name=name, **_pick(config, ("root", "subfolder", "base_url")))


def _create_memory(config: dict[str, Any], name: str | None) -> StorageProvider:
    from assetmigrator.storage.backends.memory import InMemoryStorageProvider

    return InMemoryStorageProvider(name=name, vendor_key=config.get("vendor_key"))


_S3_INSTALL = "pip install aioboto3"

register_provider(
    "s3",
    _create_s3,
    aliases=("aws-s3", "aws"),
    required_keys=("bucket", "region", "access_key", "secret_key"),
    description="Amazon S3",
    install=_S3_INSTALL,
)
register_provider(
    "digitalocean-spaces",
    _create_do_spaces,
    aliases=("do-spaces", "spaces"),
    required_keys=("bucket", "region", "access_key", "secret_key"),
    description="DigitalOcean Spaces",
    install=_S3_INSTALL,
)
register_provider(
    "wasabi",
    _create_wasabi,
    required_keys=("bucket", "region", "access_key", "secret_key"),
    description="Wasabi hot storage",
    install=_S3_INSTALL,
)
register_provider(
    "backblaze-b2",
    _create_b2,
    aliases=("b2",),
    required_keys=("bucket", "region", "access_key", "secret_key"),
    description="Backblaze B2",
    install=_S3_INSTALL,
)
register_provider(
    "cloudflare-r2",
    _create_r2,
    aliases=("r2",),
    required_keys=("bucket", "access_key", "secret_key"),
    description="Cloudflare R2",
    install=_S3_INSTALL,
)
register_provider(
    "local",
    _create_local,
    aliases=("filesystem",),
    required_keys=("root",),
    description="Local filesystem directory",
)
register_provider(
    "memory",
    _create_memory,
    description="In-memory store (testing, no persistence)",
)


def get_available_providers() -> dict[str, dict[str, Any]]:
    """
    Get information about registered provider types.

    Returns a dictionary with type tags as keys and their availability
    status and requirements as values.

    Example:
        >>> providers = get_available_providers()
        >>> for name, info in providers.items():
        ...     status = "✓" if info["available"] else "✗"
        ...     print(f"{status} {name}: {info['description']}")
    """
    from assetmigrator.storage.backends.s3 import AIOBOTO3_AVAILABLE

    providers = {}
    for tag in registered_types():
        registration = _PROVIDER_REGISTRY[tag]
        available = registration.install != _S3_INSTALL or AIOBOTO3_AVAILABLE
        providers[tag] = {
            "available": available,
            "description": registration.description,
            "aliases": list(registration.aliases),
            "required_keys": list(registration.required_keys),
            "install": None if available else registration.install,
        }
    return providers
