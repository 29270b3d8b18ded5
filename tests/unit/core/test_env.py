"""
Tests for EnvManager.
"""

import pytest

from assetmigrator.core import env as env_module
from assetmigrator.core.env import EnvManager, get_env


@pytest.fixture
def env(tmp_path):
    return EnvManager(project_root=tmp_path)


class TestLoad:
    def test_loads_dotenv(self, env, tmp_path, monkeypatch):
        monkeypatch.delenv("DOTENV_TEST_BUCKET", raising=False)
        (tmp_path / ".env").write_text("DOTENV_TEST_BUCKET=assets-prod\n")

        assert env.load()
        assert env.get("DOTENV_TEST_BUCKET") == "assets-prod"
        monkeypatch.delenv("DOTENV_TEST_BUCKET")

    def test_missing_dotenv(self, env):
        assert not env.load()

    def test_existing_values_win(self, env, tmp_path, monkeypatch):
        monkeypatch.setenv("DOTENV_TEST_REGION", "tor1")
        (tmp_path / ".env").write_text("DOTENV_TEST_REGION=nyc3\n")

        env.load()

        assert env.get("DOTENV_TEST_REGION") == "tor1"

    def test_explicit_file(self, env, tmp_path, monkeypatch):
        monkeypatch.delenv("DOTENV_TEST_OTHER", raising=False)
        custom = tmp_path / "custom.env"
        custom.write_text("DOTENV_TEST_OTHER=1\n")

        assert env.load(custom)
        assert env.get("DOTENV_TEST_OTHER") == "1"
        monkeypatch.delenv("DOTENV_TEST_OTHER")

    def test_get_default(self, env, monkeypatch):
        monkeypatch.delenv("ENV_TEST_MISSING", raising=False)
        assert env.get("ENV_TEST_MISSING", "fallback") == "fallback"
        assert env.get("ENV_TEST_MISSING") is None


class TestSubstitute:
    def test_braced(self, env, monkeypatch):
        monkeypatch.setenv("ENV_TEST_BUCKET", "assets")
        assert env.substitute("s3://${ENV_TEST_BUCKET}/images") == "s3://assets/images"

    def test_unset_left_untouched(self, env, monkeypatch):
        monkeypatch.delenv("ENV_TEST_UNSET", raising=False)
        assert env.substitute("${ENV_TEST_UNSET}") == "${ENV_TEST_UNSET}"

    def test_default(self, env, monkeypatch):
        monkeypatch.delenv("ENV_TEST_UNSET", raising=False)
        assert env.substitute("${ENV_TEST_UNSET:-tor1}") == "tor1"
        monkeypatch.setenv("ENV_TEST_UNSET", "nyc3")
        assert env.substitute("${ENV_TEST_UNSET:-tor1}") == "nyc3"

    def test_required(self, env, monkeypatch):
        monkeypatch.delenv("ENV_TEST_UNSET", raising=False)
        with pytest.raises(ValueError, match="secret needed"):
            env.substitute("${ENV_TEST_UNSET:?secret needed}")
        with pytest.raises(ValueError, match="ENV_TEST_UNSET"):
            env.substitute("${ENV_TEST_UNSET:?}")

    def test_bare(self, env, monkeypatch):
        monkeypatch.setenv("ENV_TEST_BUCKET", "assets")
        assert env.substitute("$ENV_TEST_BUCKET/x") == "assets/x"

    def test_nested_structures(self, env, monkeypatch):
        monkeypatch.setenv("ENV_TEST_BUCKET", "assets")
        data = {"a": {"b": ["${ENV_TEST_BUCKET}", 3]}, "n": 5, "flag": True}
        assert env.substitute_dict(data) == {"a": {"b": ["assets", 3]}, "n": 5, "flag": True}


def test_global_env(monkeypatch):
    monkeypatch.setattr(env_module, "_global_env", None)
    first = get_env()
    assert get_env() is first
