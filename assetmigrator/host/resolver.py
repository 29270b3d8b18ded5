"""
Filesystem handle resolution backed by MigrationConfig.
"""

from assetmigrator.core.config import MigrationConfig
from assetmigrator.core.exceptions import ConfigError
from assetmigrator.core.logger import get_logger
from assetmigrator.host.interfaces import FilesystemResolver
from assetmigrator.storage.interfaces.provider import StorageProvider

logger = get_logger(__name__)


class ConfigFilesystemResolver(FilesystemResolver):
    """
    Resolves handles through the configured provider definitions.

    Providers are built lazily through the registry and cached per
    handle. A handle with no definition, or with a definition the
    registry rejects, does not resolve.
    """

    def __init__(self, config: MigrationConfig):
        self.config = config
        self._cache: dict[str, StorageProvider] = {}

    def resolve(self, handle: str) -> StorageProvider | None:
        if handle in self._cache:
            return self._cache[handle]

        if handle not in self.config.providers:
            return None

        try:
            provider = self.config.build_provider(handle)
        except ConfigError as e:
            logger.warning(f"Filesystem handle '{handle}' does not resolve: {e}")
            return None

        self._cache[handle] = provider
        return provider

    def list_handles(self) -> list[str]:
        return sorted(self.config.providers)

    async def close(self) -> None:
        """Close every provider built so far."""
        for provider in self._cache.values():
            await provider.close()
        self._cache.clear()
