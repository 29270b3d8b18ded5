"""
Tests for the provider registry.
"""

import pytest

from assetmigrator.core.exceptions import ConfigError
from assetmigrator.storage.backends.local import LocalFilesystemProvider
from assetmigrator.storage.backends.memory import InMemoryStorageProvider
from assetmigrator.storage.backends.s3 import (
    BackblazeB2Provider,
    CloudflareR2Provider,
    DigitalOceanSpacesProvider,
    S3StorageProvider,
    WasabiStorageProvider,
)
from assetmigrator.storage.registry import (
    create_provider,
    get_available_providers,
    get_registration,
    register_provider,
    registered_types,
    unregister_provider,
)

CREDENTIALS = {"bucket": "assets", "access_key": "AKIA", "secret_key": "s3cr3t"}


@pytest.fixture
def custom_type():
    register_provider(
        "acme",
        lambda config, name: InMemoryStorageProvider(name=name, vendor_key=config["account"]),
        required_keys=("account",),
        aliases=("acme-store",),
        description="Acme object store",
    )
    yield "acme"
    unregister_provider("acme")


class TestBuiltins:
    def test_registered_types(self):
        assert registered_types() == [
            "backblaze-b2",
            "cloudflare-r2",
            "digitalocean-spaces",
            "local",
            "memory",
            "s3",
            "wasabi",
        ]

    @pytest.mark.parametrize(
        ("tag", "cls"),
        [
            ("s3", S3StorageProvider),
            ("aws", S3StorageProvider),
            ("digitalocean-spaces", DigitalOceanSpacesProvider),
            ("do_spaces", DigitalOceanSpacesProvider),
            ("SPACES", DigitalOceanSpacesProvider),
            ("wasabi", WasabiStorageProvider),
            ("backblaze-b2", BackblazeB2Provider),
            ("B2", BackblazeB2Provider),
        ],
    )
    def test_s3_family(self, tag, cls):
        provider = create_provider(tag, {**CREDENTIALS, "region": "nyc3"}, name="images_do")
        assert type(provider) is cls
        assert provider.name == "images_do"

    def test_r2_with_account_id(self):
        provider = create_provider("r2", {**CREDENTIALS, "account_id": "abc123"})
        assert isinstance(provider, CloudflareR2Provider)

    def test_r2_requires_account_or_endpoint(self):
        with pytest.raises(ConfigError) as exc_info:
            create_provider("cloudflare-r2", CREDENTIALS)
        assert exc_info.value.key == "account_id"

    def test_local(self, tmp_path):
        provider = create_provider(
            "filesystem", {"type": "local", "root": str(tmp_path), "subfolder": "images"}
        )
        assert isinstance(provider, LocalFilesystemProvider)
        assert provider.base_dir == tmp_path.resolve() / "images"

    def test_memory(self):
        provider = create_provider("memory", {"vendor_key": "acct"}, name="scratch")
        assert isinstance(provider, InMemoryStorageProvider)
        assert provider.vendor_key == "acct"


class TestErrors:
    def test_unknown_type(self):
        with pytest.raises(ConfigError) as exc_info:
            create_provider("ftp", {})
        assert exc_info.value.key == "type"
        assert "Available types" in str(exc_info.value)

    def test_empty_type(self):
        with pytest.raises(ConfigError):
            get_registration("")

    def test_missing_required_keys(self):
        with pytest.raises(ConfigError) as exc_info:
            create_provider("s3", {"bucket": "assets", "region": "", "access_key": "a"}, "images")
        assert exc_info.value.key == "region"
        assert "provider 'images'" in str(exc_info.value)
        assert "secret_key" in str(exc_info.value)

    def test_factory_type_error_becomes_config_error(self):
        register_provider(
            "broken",
            lambda config, name: InMemoryStorageProvider(bogus=True),
        )
        try:
            with pytest.raises(ConfigError, match="Invalid config for broken"):
                create_provider("broken", {})
        finally:
            unregister_provider("broken")


class TestCustomTypes:
    def test_create_custom(self, custom_type):
        provider = create_provider("acme-store", {"account": "42"}, name="x")
        assert provider.vendor_key == "42"
        assert "acme" in registered_types()

    def test_duplicate_rejected(self, custom_type):
        with pytest.raises(ValueError, match="already registered"):
            register_provider("acme", lambda config, name: None)

    def test_alias_collision_rejected(self):
        with pytest.raises(ValueError):
            register_provider("other", lambda config, name: None, aliases=("aws",))
        assert "other" not in registered_types()

    def test_replace(self, custom_type):
        registration = register_provider(
            "acme",
            lambda config, name: InMemoryStorageProvider(name=name),
            aliases=("acme-store",),
            replace=True,
        )
        assert get_registration("acme") is registration

    def test_unregister_removes_aliases(self, custom_type):
        unregister_provider("acme-store")
        with pytest.raises(ConfigError):
            get_registration("acme")
        with pytest.raises(ConfigError):
            get_registration("acme-store")

    def test_unregister_unknown_is_noop(self):
        unregister_provider("never-registered")


def test_available_providers():
    providers = get_available_providers()

    assert providers["local"]["available"]
    assert providers["local"]["required_keys"] == ["root"]
    assert providers["digitalocean-spaces"]["aliases"] == ["do-spaces", "spaces"]
    assert providers["s3"]["description"] == "Amazon S3"
    assert providers["backblaze-b2"]["aliases"] == ["b2"]
