"""
Storage provider backends.

Available backends:
- memory: In-memory provider for testing and dry runs
- local: Local filesystem directory tree
- s3: AWS S3 and S3-compatible vendors (DigitalOcean Spaces, Wasabi, B2, R2)
"""

# These are imported lazily to avoid import errors when dependencies are missing

__all__ = [
    "BackblazeB2Provider",
    "CloudflareR2Provider",
    "DigitalOceanSpacesProvider",
    # Memory
    "InMemoryStorageProvider",
    # Local
    "LocalFilesystemProvider",
    # S3
    "S3StorageProvider",
    "WasabiStorageProvider",
]


_BACKEND_IMPORTS = {
    "InMemoryStorageProvider": ("memory", "InMemoryStorageProvider"),
    "LocalFilesystemProvider": ("local", "LocalFilesystemProvider"),
    "S3StorageProvider": ("s3", "S3StorageProvider"),
    "DigitalOceanSpacesProvider": ("s3", "DigitalOceanSpacesProvider"),
    "WasabiStorageProvider": ("s3", "WasabiStorageProvider"),
    "CloudflareR2Provider": ("s3", "CloudflareR2Provider"),
    "BackblazeB2Provider": ("s3", "BackblazeB2Provider"),
}


def __getattr__(name: str):
    """Lazy import of storage backends."""
    if name in _BACKEND_IMPORTS:
        module_name, class_name = _BACKEND_IMPORTS[name]
        module = __import__(
            f"assetmigrator.storage.backends.{module_name}", fromlist=[class_name]
        )
        return getattr(module, class_name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
