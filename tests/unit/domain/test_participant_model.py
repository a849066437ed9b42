"""Unit tests for the Participant model and contribution steps."""

from datetime import datetime, timedelta, timezone

import pytest

from ceremony_scheduler.domain.models.participant import (
    STEP_SEQUENCE,
    ContributionStep,
    Participant,
    ParticipantStatus,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _participant(**kwargs: object) -> Participant:
    return Participant(ceremony_id="ceremony-1", participant_id="alice", **kwargs)


class TestContributionStep:
    """Tests for the step sequence."""

    def test_steps_run_in_order(self) -> None:
        step = ContributionStep.DOWNLOADING
        visited = [step]
        while (step := step.next_step()) is not None:
            visited.append(step)
        assert visited == [
            ContributionStep.DOWNLOADING,
            ContributionStep.COMPUTING,
            ContributionStep.UPLOADING,
            ContributionStep.VERIFYING,
            ContributionStep.COMPLETED,
        ]

    def test_completed_is_terminal(self) -> None:
        assert ContributionStep.COMPLETED not in STEP_SEQUENCE
        assert ContributionStep.COMPLETED.next_step() is None


class TestParticipantLifecycle:
    """Tests for status transitions."""

    def test_new_participant_waits_without_progress(self) -> None:
        participant = _participant()
        assert participant.status == ParticipantStatus.WAITING
        assert participant.contribution_progress == 0
        assert participant.is_queued is False

    def test_negative_progress_rejected(self) -> None:
        with pytest.raises(ValueError):
            _participant(contribution_progress=-1)

    def test_queued_records_circuit_and_progress(self) -> None:
        queued = _participant().queued("circuit-2", 2, NOW)
        assert queued.queued_circuit_id == "circuit-2"
        assert queued.contribution_progress == 2
        assert queued.status == ParticipantStatus.WAITING

    def test_progress_never_decreases(self) -> None:
        """Joining an earlier circuit later keeps the highest position reached."""
        queued = _participant(contribution_progress=3).queued("circuit-1", 1, NOW)
        assert queued.contribution_progress == 3

    def test_promoted_starts_downloading(self) -> None:
        promoted = _participant().queued("circuit-1", 1, NOW).promoted(NOW)
        assert promoted.status == ParticipantStatus.CONTRIBUTING
        assert promoted.contribution_step == ContributionStep.DOWNLOADING
        assert promoted.contribution_started_at == NOW
        assert promoted.verification_started_at is None

    def test_contributed_leaves_queue(self) -> None:
        done = _participant().queued("circuit-1", 1, NOW).promoted(NOW).contributed(NOW)
        assert done.status == ParticipantStatus.CONTRIBUTED
        assert done.contribution_step == ContributionStep.COMPLETED
        assert done.is_queued is False

    def test_timed_out_leaves_queue(self) -> None:
        evicted = _participant().queued("circuit-1", 1, NOW).promoted(NOW).timed_out(NOW)
        assert evicted.status == ParticipantStatus.TIMED_OUT
        assert evicted.is_queued is False

    def test_left_queue_keeps_status(self) -> None:
        left = _participant().queued("circuit-1", 1, NOW).left_queue(NOW)
        assert left.status == ParticipantStatus.WAITING
        assert left.is_queued is False

    def test_requeue_after_timeout_resets_step(self) -> None:
        evicted = _participant().queued("circuit-1", 1, NOW).promoted(NOW).timed_out(NOW)
        requeued = evicted.queued("circuit-1", 1, NOW)
        assert requeued.status == ParticipantStatus.WAITING
        assert requeued.contribution_step is None
        assert requeued.contribution_started_at is None

    def test_finalization_statuses(self) -> None:
        finalizing = _participant().finalizing(NOW)
        assert finalizing.status == ParticipantStatus.FINALIZING
        assert finalizing.finalized(NOW).status == ParticipantStatus.FINALIZED


class TestParticipantSteps:
    """Tests for with_next_step."""

    def test_verifying_stamps_verification_start(self) -> None:
        participant = _participant().queued("circuit-1", 1, NOW).promoted(NOW)
        later = NOW + timedelta(minutes=5)
        participant = participant.with_next_step(NOW).with_next_step(NOW)
        verifying = participant.with_next_step(later)
        assert verifying.contribution_step == ContributionStep.VERIFYING
        assert verifying.verification_started_at == later

    def test_steps_before_verifying_do_not_stamp(self) -> None:
        participant = _participant().queued("circuit-1", 1, NOW).promoted(NOW)
        computing = participant.with_next_step(NOW)
        assert computing.contribution_step == ContributionStep.COMPUTING
        assert computing.verification_started_at is None

    def test_no_step_in_progress_rejected(self) -> None:
        with pytest.raises(ValueError, match="no contribution in progress"):
            _participant().with_next_step(NOW)

    def test_completed_step_rejected(self) -> None:
        participant = _participant(contribution_step=ContributionStep.COMPLETED)
        with pytest.raises(ValueError, match="already completed"):
            participant.with_next_step(NOW)
