"""
Pytest configuration and shared fixtures for assetmigrator tests

Most tests run the engine against in-memory providers, an in-memory
host catalog and an in-memory checkpoint store. Backoff sleeps are
replaced with a recorder so retry tests stay instant.
"""

import logging

import pytest

from assetmigrator.core.config import MigrationSettings
from assetmigrator.host.interfaces import AssetRecord, Volume
from assetmigrator.host.memory import InMemoryHostMetadata
from assetmigrator.migration.engine import MigrationEngine
from assetmigrator.migration.store.memory import InMemoryCheckpointStore
from assetmigrator.storage.backends.memory import InMemoryStorageProvider
from assetmigrator.storage.core.errors import ProviderTransportError

# ============================================
# HELPERS
# ============================================


def asset_path(i: int) -> str:
    return f"2024/05/photo-{i:03d}.jpg"


def asset_bytes(i: int) -> bytes:
    return f"image-{i}".encode() * (i + 1)


def make_assets(count: int, volume: str = "images") -> list[AssetRecord]:
    return [
        AssetRecord(str(i), volume, asset_path(i), len(asset_bytes(i)))
        for i in range(1, count + 1)
    ]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyProvider(InMemoryStorageProvider):
    """
    In-memory provider whose writes fail for chosen paths.

    fail_writes: path -> number of failing writes (-1 = always)
    """

    def __init__(self, *args, fail_writes: dict[str, int] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_writes = dict(fail_writes or {})
        self.write_calls: list[str] = []

    async def write(self, path, data, options=None):
        self.write_calls.append(path)
        remaining = self.fail_writes.get(path, 0)
        if remaining:
            if remaining > 0:
                self.fail_writes[path] = remaining - 1
            if not isinstance(data, bytes | bytearray):
                async for _ in data:
                    pass
            raise ProviderTransportError("Connection reset by peer", provider=self.name, path=path)
        return await super().write(path, data, options)


# ============================================
# AUTO-USE FIXTURES
# ============================================


@pytest.fixture(autouse=True)
def quiet_logging():
    """Keep library loggers from leaking handlers between tests."""
    root = logging.getLogger("assetmigrator")
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


# ============================================
# MIGRATION FIXTURES
# ============================================


@pytest.fixture
def assets():
    return make_assets(10)


@pytest.fixture
def source(assets):
    return InMemoryStorageProvider(
        "images",
        objects={asset.path: asset_bytes(int(asset.asset_id)) for asset in assets},
    )


@pytest.fixture
def target():
    return FlakyProvider("images_do")


@pytest.fixture
def host(assets):
    return InMemoryHostMetadata(
        volumes=[
            Volume("1", "images", "Images", "images"),
            Volume("2", "documents", "Documents", "documents"),
        ],
        assets=assets,
    )


@pytest.fixture
def store():
    return InMemoryCheckpointStore()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return MigrationSettings(batch_size=3, max_retries=2, retry_delay_seconds=0.5, verify=True)


@pytest.fixture
def make_engine(source, target, host, store, settings, sleep):
    """Factory so tests can build several engines over the same state."""

    def factory(**overrides) -> MigrationEngine:
        kwargs = {
            "source": source,
            "target": target,
            "catalog": host,
            "store": store,
            "settings": settings,
            "source_handle": "images",
            "target_handle": "images_do",
            "sleep": sleep,
        }
        kwargs.update(overrides)
        return MigrationEngine(**kwargs)

    return factory
