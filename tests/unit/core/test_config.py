"""
Tests for MigrationConfig and MigrationSettings.
"""

import pytest
import yaml

from assetmigrator.core.config import (
    MigrationConfig,
    MigrationSettings,
    ProviderDefinition,
    deep_merge,
    migration_scope,
)
from assetmigrator.core.exceptions import ConfigError
from assetmigrator.storage.backends.local import LocalFilesystemProvider

BASE = {
    "providers": {
        "images": {"type": "memory"},
        "images_do": {"type": "local", "root": "/tmp/assets"},
    },
    "roles": {"source": "images", "target": "images_do"},
    "filesystem_mappings": {"images": "images_do"},
}


def write_config(tmp_path, data, name="assetmigrator.yaml"):
    path = tmp_path / name
    path.write_text(yaml.safe_dump(data) if isinstance(data, dict) else data)
    return path


class TestMigrationSettings:
    def test_defaults(self):
        settings = MigrationSettings()
        assert settings.batch_size == 100
        assert settings.max_retries == 3
        assert settings.verify is True
        assert settings.checkpoint_retention_hours == 72

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("batch_size", 0),
            ("concurrency", 0),
            ("attempt_timeout_seconds", 0),
            ("lock_timeout_seconds", -1),
            ("max_retries", -1),
            ("retry_delay_seconds", -0.1),
            ("checkpoint_retention_hours", -1),
            ("retry_backoff", 0.5),
        ],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigError) as exc_info:
            MigrationSettings(**{field: value})
        assert exc_info.value.key == f"migration.{field}"

    def test_from_dict_coerces(self):
        settings = MigrationSettings.from_dict(
            {"batch_size": "50", "verify": "no", "retry_delay_seconds": "0.25", "state_dir": 7}
        )
        assert settings.batch_size == 50
        assert settings.verify is False
        assert settings.retry_delay_seconds == 0.25
        assert settings.state_dir == "7"

    def test_from_dict_unknown_key(self):
        with pytest.raises(ConfigError) as exc_info:
            MigrationSettings.from_dict({"batchsize": 10})
        assert exc_info.value.key == "migration.batchsize"

    def test_from_dict_bad_value(self):
        with pytest.raises(ConfigError, match="migration.max_retries"):
            MigrationSettings.from_dict({"max_retries": "many"})

    def test_from_dict_bad_bool(self):
        with pytest.raises(ConfigError):
            MigrationSettings.from_dict({"verify": "perhaps"})

    def test_to_dict(self):
        assert MigrationSettings(batch_size=5).to_dict()["batch_size"] == 5


class TestProviderDefinition:
    def test_redacted(self):
        definition = ProviderDefinition(
            "images_do",
            "digitalocean-spaces",
            {"bucket": "b", "access_key": "DO00ABCDEF", "secret_key": "topsecret"},
        )
        redacted = definition.redacted()
        assert redacted == {
            "type": "digitalocean-spaces",
            "bucket": "b",
            "access_key": "DO00***",
            "secret_key": "tops***",
        }


class TestFromDict:
    def test_basic(self):
        config = MigrationConfig.from_dict(BASE)

        assert set(config.providers) == {"images", "images_do"}
        assert config.providers["images_do"].options == {"root": "/tmp/assets"}
        assert config.source_handle == "images"
        assert config.scope == "images->images_do"
        assert config.filesystem_mappings == {"images": "images_do"}
        assert config.similarity_threshold == 0.7

    def test_host_and_diagnostics(self):
        config = MigrationConfig.from_dict(
            {**BASE, "host": {"database": "host.db"}, "diagnostics": {"similarity_threshold": 0.9}}
        )
        assert config.host_database == "host.db"
        assert config.similarity_threshold == 0.9

    def test_invalid_threshold(self):
        with pytest.raises(ConfigError) as exc_info:
            MigrationConfig.from_dict({**BASE, "diagnostics": {"similarity_threshold": 1.5}})
        assert exc_info.value.key == "diagnostics.similarity_threshold"

    def test_role_must_reference_provider(self):
        with pytest.raises(ConfigError) as exc_info:
            MigrationConfig.from_dict({**BASE, "roles": {"source": "avatars"}})
        assert exc_info.value.key == "roles.source"

    def test_roles_must_differ(self):
        with pytest.raises(ConfigError):
            MigrationConfig.from_dict({**BASE, "roles": {"source": "images", "target": "images"}})

    def test_provider_needs_type(self):
        with pytest.raises(ConfigError) as exc_info:
            MigrationConfig.from_dict({"providers": {"images": {"bucket": "b"}}})
        assert exc_info.value.key == "providers.images.type"

    def test_provider_must_be_mapping(self):
        with pytest.raises(ConfigError):
            MigrationConfig.from_dict({"providers": {"images": "s3"}})

    def test_missing_role(self):
        config = MigrationConfig.from_dict({"providers": BASE["providers"]})
        with pytest.raises(ConfigError) as exc_info:
            config.require_role("source")
        assert exc_info.value.key == "roles.source"

    def test_environment_overlay(self):
        data = {
            **BASE,
            "migration": {"batch_size": 100},
            "environments": {"dev": {"migration": {"batch_size": 5, "verify": False}}},
        }
        config = MigrationConfig.from_dict(data, environment="dev")

        assert config.environment == "dev"
        assert config.settings.batch_size == 5
        assert config.settings.verify is False

    def test_environment_from_document(self):
        data = {
            **BASE,
            "environment": "staging",
            "environments": {"staging": {"roles": {"target": "images"}}},
        }
        with pytest.raises(ConfigError):
            MigrationConfig.from_dict(data)

    def test_unknown_environment(self):
        data = {**BASE, "environments": {"dev": {}}}
        with pytest.raises(ConfigError) as exc_info:
            MigrationConfig.from_dict(data, environment="qa")
        assert exc_info.value.key == "environment"


class TestProviders:
    def test_build_provider(self, tmp_path):
        config = MigrationConfig.from_dict(
            {
                **BASE,
                "providers": {
                    "images": {"type": "memory"},
                    "images_do": {"type": "local", "root": str(tmp_path)},
                },
            }
        )
        provider = config.build_provider("images_do")
        assert isinstance(provider, LocalFilesystemProvider)
        assert provider.name == "images_do"

    def test_unknown_handle(self):
        config = MigrationConfig.from_dict(BASE)
        with pytest.raises(ConfigError) as exc_info:
            config.build_provider("avatars")
        assert exc_info.value.key == "providers.avatars"

    def test_registry_errors_surface(self):
        config = MigrationConfig.from_dict({"providers": {"old": {"type": "s3", "bucket": "b"}}})
        with pytest.raises(ConfigError, match="region"):
            config.build_provider("old")


class TestFromFile:
    def test_load(self, tmp_path):
        path = write_config(tmp_path, BASE)
        config = MigrationConfig.from_file(path, substitute_env=False)
        assert config.source_path == path
        assert config.target_handle == "images_do"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            MigrationConfig.from_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path, "providers: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            MigrationConfig.from_file(path)

    def test_root_must_be_mapping(self, tmp_path):
        path = write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            MigrationConfig.from_file(path)

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ASSETS_ROOT", str(tmp_path / "assets"))
        monkeypatch.delenv("MIGRATION_ENV", raising=False)
        data = {
            **BASE,
            "providers": {
                "images": {"type": "memory"},
                "images_do": {"type": "local", "root": "${ASSETS_ROOT}"},
            },
        }
        config = MigrationConfig.from_file(write_config(tmp_path, data))
        assert config.providers["images_do"].options["root"] == str(tmp_path / "assets")

    def test_required_variable_missing(self, tmp_path, monkeypatch):
        monkeypatch.delenv("DO_SECRET_FOR_TEST", raising=False)
        data = {
            "providers": {
                "images_do": {"type": "memory", "secret_key": "${DO_SECRET_FOR_TEST:?DO secret required}"}
            }
        }
        with pytest.raises(ConfigError, match="DO secret required"):
            MigrationConfig.from_file(write_config(tmp_path, data))

    def test_environment_variable_selects_overlay(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MIGRATION_ENV", "dev")
        data = {**BASE, "environments": {"dev": {"migration": {"batch_size": 7}}}}
        config = MigrationConfig.from_file(write_config(tmp_path, data))
        assert config.settings.batch_size == 7


def test_deep_merge():
    base = {"a": {"b": 1, "c": 2}, "d": [1]}
    merged = deep_merge(base, {"a": {"c": 3}, "d": [2]})
    assert merged == {"a": {"b": 1, "c": 3}, "d": [2]}
    assert base["a"]["c"] == 2


def test_migration_scope():
    assert migration_scope("images", "images_do") == "images->images_do"
