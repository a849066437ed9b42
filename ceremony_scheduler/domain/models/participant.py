"""Participant domain model.

Tracks where a participant stands in a ceremony: which circuit queue
they are in (at most one at a time), how far through the circuit
sequence they have progressed, and which step of the current
contribution they are performing.

Status lifecycle:
    WAITING -> CONTRIBUTING -> CONTRIBUTED -> WAITING (next circuit)
    CONTRIBUTING -> TIMED_OUT -> WAITING (after cooldown)
    FINALIZING -> FINALIZED (coordinator only)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


class ParticipantStatus(Enum):
    """Ceremony-level status of a participant."""

    WAITING = "waiting"
    CONTRIBUTING = "contributing"
    CONTRIBUTED = "contributed"
    TIMED_OUT = "timed_out"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"


class ContributionStep(Enum):
    """Steps a contributor walks through while holding the slot.

    DOWNLOADING -> COMPUTING -> UPLOADING -> VERIFYING -> COMPLETED
    """

    DOWNLOADING = "downloading"
    COMPUTING = "computing"
    UPLOADING = "uploading"
    VERIFYING = "verifying"
    COMPLETED = "completed"

    def next_step(self) -> ContributionStep | None:
        """Get the next step, or None from COMPLETED."""
        return STEP_SEQUENCE.get(self)


STEP_SEQUENCE: dict[ContributionStep, ContributionStep] = {
    ContributionStep.DOWNLOADING: ContributionStep.COMPUTING,
    ContributionStep.COMPUTING: ContributionStep.UPLOADING,
    ContributionStep.UPLOADING: ContributionStep.VERIFYING,
    ContributionStep.VERIFYING: ContributionStep.COMPLETED,
}


@dataclass(frozen=True, eq=True)
class Participant:
    """A registered ceremony participant.

    Attributes:
        ceremony_id: Ceremony the participant registered for.
        participant_id: Stable participant identifier.
        status: Ceremony-level status.
        contribution_progress: Sequence position of the latest circuit joined.
            Never decreases.
        contribution_step: Step within the current contribution, if any.
        queued_circuit_id: Circuit whose queue currently holds the participant.
        contribution_started_at: When the participant took the slot.
        verification_started_at: When the current contribution entered VERIFYING.
        last_updated: When the record last changed.
    """

    ceremony_id: str
    participant_id: str
    status: ParticipantStatus = field(default=ParticipantStatus.WAITING)
    contribution_progress: int = field(default=0)
    contribution_step: ContributionStep | None = field(default=None)
    queued_circuit_id: str | None = field(default=None)
    contribution_started_at: datetime | None = field(default=None)
    verification_started_at: datetime | None = field(default=None)
    last_updated: datetime | None = field(default=None)

    def __post_init__(self) -> None:
        if self.contribution_progress < 0:
            raise ValueError("contribution_progress cannot be negative")

    @property
    def is_queued(self) -> bool:
        return self.queued_circuit_id is not None

    def queued(self, circuit_id: str, sequence_position: int, now: datetime) -> Participant:
        """Record that the participant joined a circuit queue as a waiter."""
        return replace(
            self,
            status=ParticipantStatus.WAITING,
            contribution_progress=max(self.contribution_progress, sequence_position),
            contribution_step=None,
            queued_circuit_id=circuit_id,
            contribution_started_at=None,
            verification_started_at=None,
            last_updated=now,
        )

    def promoted(self, now: datetime) -> Participant:
        """Record that the participant took the contribution slot."""
        return replace(
            self,
            status=ParticipantStatus.CONTRIBUTING,
            contribution_step=ContributionStep.DOWNLOADING,
            contribution_started_at=now,
            verification_started_at=None,
            last_updated=now,
        )

    def contributed(self, now: datetime) -> Participant:
        """Record that the participant's outcome was reported and the slot released."""
        return replace(
            self,
            status=ParticipantStatus.CONTRIBUTED,
            contribution_step=ContributionStep.COMPLETED,
            queued_circuit_id=None,
            last_updated=now,
        )

    def timed_out(self, now: datetime) -> Participant:
        """Record that the participant was evicted from the slot."""
        return replace(
            self,
            status=ParticipantStatus.TIMED_OUT,
            queued_circuit_id=None,
            last_updated=now,
        )

    def left_queue(self, now: datetime) -> Participant:
        return replace(self, queued_circuit_id=None, last_updated=now)

    def with_next_step(self, now: datetime) -> Participant:
        """Advance to the next contribution step.

        Entering VERIFYING stamps ``verification_started_at``.

        Raises:
            ValueError: If the participant has no step in progress or is
                already COMPLETED.
        """
        if self.contribution_step is None:
            raise ValueError(f"Participant {self.participant_id} has no contribution in progress")
        next_step = self.contribution_step.next_step()
        if next_step is None:
            raise ValueError(f"Participant {self.participant_id} already completed the contribution")
        return replace(
            self,
            contribution_step=next_step,
            verification_started_at=(
                now if next_step == ContributionStep.VERIFYING else self.verification_started_at
            ),
            last_updated=now,
        )

    def finalizing(self, now: datetime) -> Participant:
        return replace(self, status=ParticipantStatus.FINALIZING, last_updated=now)

    def finalized(self, now: datetime) -> Participant:
        return replace(self, status=ParticipantStatus.FINALIZED, last_updated=now)
