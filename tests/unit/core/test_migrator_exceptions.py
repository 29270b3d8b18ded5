"""
Tests for assetmigrator.core.exceptions message formatting
"""

from datetime import UTC, datetime

import pytest

from assetmigrator.core.exceptions import (
    CheckpointNotFoundError,
    ConfigError,
    InvalidPhaseTransitionError,
    LockConflictError,
    MigratorError,
    MissingDependencyError,
)


class TestExceptionConstructors:
    """Test exception constructors and message formatting"""

    @pytest.mark.parametrize(
        "error",
        [
            ConfigError("bad"),
            LockConflictError("a->b"),
            CheckpointNotFoundError("cp-1"),
            InvalidPhaseTransitionError("done", "copying"),
            MissingDependencyError("aioboto3"),
        ],
    )
    def test_hierarchy(self, error):
        assert isinstance(error, MigratorError)

    def test_config_error_names_key(self):
        """Test ConfigError appends the offending key"""
        error = ConfigError("Missing required provider setting", key="bucket")
        assert error.key == "bucket"
        assert str(error) == "Missing required provider setting (key: bucket)"

    def test_config_error_key_already_in_message(self):
        error = ConfigError("Unknown key 'bucket'", key="bucket")
        assert str(error) == "Unknown key 'bucket'"

    def test_lock_conflict(self):
        """Test LockConflictError names holder, expiry and the way out"""
        expires = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        error = LockConflictError("images->images_do", holder="host-1:42", expires_at=expires)

        message = str(error)
        assert "'images->images_do' is locked by host-1:42" in message
        assert "2024-05-01T12:00:00+00:00" in message
        assert "--skip-lock" in message
        assert error.holder == "host-1:42"

    def test_checkpoint_not_found(self):
        assert str(CheckpointNotFoundError("cp-9")) == "Checkpoint not found: cp-9"
        assert "scope 'a->b'" in str(CheckpointNotFoundError(None, scope="a->b"))

    def test_invalid_phase_transition(self):
        error = InvalidPhaseTransitionError("done", "copying", checkpoint_id="cp-1")
        assert str(error) == "Invalid phase transition: done -> copying (checkpoint cp-1)"
        assert (error.from_phase, error.to_phase) == ("done", "copying")

    def test_missing_dependency_error(self):
        """Test MissingDependencyError with details"""
        error = MissingDependencyError("aioboto3", "S3 providers")
        message = str(error)
        assert "aioboto3" in message
        assert "S3 providers" in message
        assert "pip install aioboto3" in message

    def test_missing_dependency_unknown_package(self):
        """Test install hint falls back to the package name"""
        error = MissingDependencyError("prometheus-client")
        assert "pip install prometheus-client" in str(error)
        assert error.feature is None
