"""
Tests for MigrationCheckpoint and the checkpoint phase machine.
"""

import re

import pytest
from conftest import make_assets

from assetmigrator.core.exceptions import InvalidPhaseTransitionError
from assetmigrator.migration.checkpoint import (
    CheckpointPhaseMachine,
    CheckpointStatus,
    FailureRecord,
    MigrationCheckpoint,
    MigrationPhase,
    new_checkpoint_id,
)
from assetmigrator.storage.core.errors import ProviderTransportError


def _checkpoint(count: int = 5, phase: MigrationPhase = MigrationPhase.DISCOVERING):
    return MigrationCheckpoint(
        checkpoint_id="20240501-101500-1a2b3c4d",
        scope="images->images_do",
        source_handle="images",
        target_handle="images_do",
        phase=phase,
        manifest=make_assets(count),
    )


class TestCheckpointId:
    def test_format(self):
        assert re.fullmatch(r"\d{8}-\d{6}-[0-9a-f]{8}", new_checkpoint_id())

    def test_unique(self):
        assert len({new_checkpoint_id() for _ in range(50)}) == 50


class TestPartition:
    """completed, failed and remaining always partition the manifest."""

    def test_mark_completed_clears_failure(self):
        checkpoint = _checkpoint()
        checkpoint.mark_failed("2", FailureRecord("boom", "ProviderTransportError"))
        checkpoint.mark_completed("2")

        assert "2" in checkpoint.completed
        assert "2" not in checkpoint.failed
        checkpoint.check_invariants()

    def test_mark_failed_clears_completion(self):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("3")
        checkpoint.mark_failed("3", FailureRecord("size mismatch", "IntegrityError"))

        assert checkpoint.completed == set()
        assert checkpoint.remaining_ids() == ["1", "2", "4", "5"]
        checkpoint.check_invariants()

    def test_pending_includes_failed(self):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        checkpoint.mark_failed("2", FailureRecord("boom", "X"))

        assert [a.asset_id for a in checkpoint.pending_assets()] == ["2", "3", "4", "5"]
        assert checkpoint.remaining_ids() == ["3", "4", "5"]

    def test_reopen(self):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        checkpoint.reopen("1")
        assert checkpoint.remaining_ids()[0] == "1"

    def test_overlap_detected(self):
        checkpoint = _checkpoint()
        checkpoint.completed.add("1")
        checkpoint.failed["1"] = FailureRecord("boom", "X")
        with pytest.raises(ValueError, match="both completed and failed"):
            checkpoint.check_invariants()

    def test_unknown_asset_detected(self):
        checkpoint = _checkpoint()
        checkpoint.completed.add("99")
        with pytest.raises(ValueError, match="outside manifest"):
            checkpoint.check_invariants()

    def test_duplicate_manifest_ids_detected(self):
        checkpoint = _checkpoint()
        checkpoint.manifest.append(checkpoint.manifest[0])
        with pytest.raises(ValueError, match="duplicate"):
            checkpoint.check_invariants()

    def test_cursor_only_advances(self):
        checkpoint = _checkpoint()
        checkpoint.advance_cursor(["1", "2", "3"])
        assert checkpoint.cursor == 3
        checkpoint.advance_cursor(["2"])
        assert checkpoint.cursor == 3
        checkpoint.advance_cursor(["unknown"])
        assert checkpoint.cursor == 3


class TestStatus:
    def test_counts(self):
        checkpoint = _checkpoint(10)
        for asset_id in ("1", "2", "3"):
            checkpoint.mark_completed(asset_id)
        checkpoint.mark_failed("4", FailureRecord("boom", "X"))

        status = checkpoint.status()

        assert status.total == 10
        assert status.completed_count == 3
        assert status.failed_count == 1
        assert status.remaining == 6
        assert status.progress_percent == pytest.approx(40.0)

    def test_empty_checkpoint_is_complete(self):
        assert _checkpoint(0).status().progress_percent == 100.0

    def test_dict_round_trip(self):
        checkpoint = _checkpoint()
        checkpoint.supersedes = "20240430-000000-00000000"
        checkpoint.source_config = {"type": "s3", "bucket": "images"}

        restored = CheckpointStatus.from_dict(checkpoint.status().to_dict())

        assert restored == checkpoint.status()

    def test_from_parts(self):
        checkpoint = _checkpoint()
        checkpoint.mark_completed("1")
        failure = FailureRecord.from_exception(ProviderTransportError("reset"), attempts=4)
        checkpoint.mark_failed("2", failure)

        rebuilt = MigrationCheckpoint.from_parts(
            checkpoint.status(), checkpoint.manifest, checkpoint.completed, checkpoint.failed
        )

        assert rebuilt.completed == {"1"}
        assert rebuilt.failed["2"].error_type == "ProviderTransportError"
        assert rebuilt.failed["2"].attempts == 4
        assert rebuilt.manifest == checkpoint.manifest


class TestPhaseMachine:
    """Tests for CheckpointPhaseMachine."""

    @pytest.mark.parametrize(
        ("from_phase", "to_phase"),
        [
            (MigrationPhase.DISCOVERING, MigrationPhase.COPYING),
            (MigrationPhase.DISCOVERING, MigrationPhase.FAILED),
            (MigrationPhase.COPYING, MigrationPhase.VERIFYING),
            (MigrationPhase.COPYING, MigrationPhase.DONE),
            (MigrationPhase.VERIFYING, MigrationPhase.COPYING),
            (MigrationPhase.FAILED, MigrationPhase.COPYING),
        ],
    )
    def test_valid_transitions(self, from_phase, to_phase):
        checkpoint = _checkpoint(phase=from_phase)
        CheckpointPhaseMachine().transition(checkpoint, to_phase)
        assert checkpoint.phase == to_phase

    @pytest.mark.parametrize(
        ("from_phase", "to_phase"),
        [
            (MigrationPhase.DONE, MigrationPhase.COPYING),
            (MigrationPhase.DONE, MigrationPhase.FAILED),
            (MigrationPhase.DISCOVERING, MigrationPhase.DONE),
            (MigrationPhase.FAILED, MigrationPhase.DONE),
        ],
    )
    def test_invalid_transitions(self, from_phase, to_phase):
        checkpoint = _checkpoint(phase=from_phase)
        with pytest.raises(InvalidPhaseTransitionError) as exc_info:
            CheckpointPhaseMachine().transition(checkpoint, to_phase)
        assert checkpoint.phase == from_phase
        assert exc_info.value.checkpoint_id == checkpoint.checkpoint_id

    def test_same_phase_is_noop(self):
        calls = []
        machine = CheckpointPhaseMachine(on_transition=lambda *args: calls.append(args))
        checkpoint = _checkpoint(phase=MigrationPhase.COPYING)
        machine.start_copying(checkpoint)
        assert calls == []

    def test_terminal_sets_finished_at(self):
        machine = CheckpointPhaseMachine()
        checkpoint = _checkpoint(phase=MigrationPhase.COPYING)
        machine.finish(checkpoint)
        assert checkpoint.finished_at is not None
        assert checkpoint.is_terminal

    def test_fail_records_error(self):
        checkpoint = _checkpoint()
        CheckpointPhaseMachine().fail(checkpoint, "catalog offline")
        assert checkpoint.phase == MigrationPhase.FAILED
        assert checkpoint.last_error == "catalog offline"

    def test_resume_after_failure_clears_finished_at(self):
        machine = CheckpointPhaseMachine()
        checkpoint = _checkpoint()
        machine.fail(checkpoint, "boom")
        machine.start_copying(checkpoint)
        assert checkpoint.finished_at is None

    def test_callback_receives_phases(self):
        calls = []
        machine = CheckpointPhaseMachine(
            on_transition=lambda cp, old, new: calls.append((old, new))
        )
        checkpoint = _checkpoint()
        machine.start_copying(checkpoint)
        machine.start_verifying(checkpoint)
        assert calls == [
            (MigrationPhase.DISCOVERING, MigrationPhase.COPYING),
            (MigrationPhase.COPYING, MigrationPhase.VERIFYING),
        ]
