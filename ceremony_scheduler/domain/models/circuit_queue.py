"""Circuit waiting-queue aggregate.

A CircuitQueue is the authoritative record of who holds the exclusive
contribution slot of one circuit and who is waiting for it. The head of
``contributors`` is the current contributor; everyone behind it waits in
FIFO order.

Instances are immutable. Every ``with_*`` method returns a new queue that
carries the same ``version``; the ledger assigns the next version when
the queue is committed, so a stale copy can never overwrite a newer one.

Invariants:
- current_contributor is None or equals contributors[0]
- contributors never contains duplicates
- completed_contributions and failed_contributions never decrease
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime

from ceremony_scheduler.domain.errors.queue import (
    AlreadyQueuedError,
    EmptyQueueError,
    NotQueuedError,
)


@dataclass(frozen=True, eq=True)
class AvgTimings:
    """Running means of completed contribution and verification times.

    Both values are in seconds. A zero value means no sample has been
    recorded yet.
    """

    contribution_seconds: float = 0.0
    verification_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.contribution_seconds < 0 or self.verification_seconds < 0:
            raise ValueError("Average timings cannot be negative")

    @property
    def has_samples(self) -> bool:
        """True once both averages are non-zero."""
        return self.contribution_seconds > 0 and self.verification_seconds > 0

    @property
    def full_contribution_seconds(self) -> float:
        """Average time a contributor holds the slot, end to end."""
        return self.contribution_seconds + self.verification_seconds


@dataclass(frozen=True, eq=True)
class CircuitQueue:
    """Waiting queue and slot holder for one circuit.

    Attributes:
        circuit_id: Circuit this queue belongs to.
        contributors: Ordered participant IDs; index 0 holds the slot.
        current_contributor: The slot holder, or None when the queue is empty.
        last_contributor: The most recent participant to leave the head.
        completed_contributions: Count of valid contributions (next zkey index).
        failed_contributions: Count of invalid contributions and evictions.
        avg_timings: Running means over valid contributions.
        version: Ledger version this snapshot was read at.
        last_updated: When the queue was last mutated.
    """

    circuit_id: str
    contributors: tuple[str, ...] = field(default_factory=tuple)
    current_contributor: str | None = field(default=None)
    last_contributor: str | None = field(default=None)
    completed_contributions: int = field(default=0)
    failed_contributions: int = field(default=0)
    avg_timings: AvgTimings = field(default_factory=AvgTimings)
    version: int = field(default=0)
    last_updated: datetime | None = field(default=None)

    def __post_init__(self) -> None:
        """Validate queue invariants."""
        if len(set(self.contributors)) != len(self.contributors):
            raise ValueError(f"Queue {self.circuit_id} contains duplicate contributors")
        expected_head = self.contributors[0] if self.contributors else None
        if self.current_contributor != expected_head:
            raise ValueError(
                f"Queue {self.circuit_id}: current contributor "
                f"{self.current_contributor} is not the queue head {expected_head}"
            )
        if self.completed_contributions < 0 or self.failed_contributions < 0:
            raise ValueError("Contribution counters cannot be negative")
        if self.version < 0:
            raise ValueError("Queue version cannot be negative")

    @property
    def is_empty(self) -> bool:
        return not self.contributors

    @property
    def next_contributor(self) -> str | None:
        """The participant that takes the slot when the head leaves."""
        return self.contributors[1] if len(self.contributors) > 1 else None

    @property
    def waiting_contributors(self) -> int:
        """Number of participants queued behind the slot holder."""
        return max(len(self.contributors) - 1, 0)

    def contains(self, participant_id: str) -> bool:
        return participant_id in self.contributors

    def position_of(self, participant_id: str) -> int | None:
        """Return the 1-based queue position of a participant.

        Position 1 is the current contributor.

        Args:
            participant_id: The participant to look up.

        Returns:
            The position, or None if the participant is not queued.
        """
        try:
            return self.contributors.index(participant_id) + 1
        except ValueError:
            return None

    def with_contributor_joined(self, participant_id: str, now: datetime) -> CircuitQueue:
        """Append a participant to the tail of the queue.

        When the queue was empty the participant becomes the slot holder.

        Raises:
            AlreadyQueuedError: If the participant is already in this queue.
        """
        if self.contains(participant_id):
            raise AlreadyQueuedError(self.circuit_id, participant_id)
        contributors = (*self.contributors, participant_id)
        return replace(
            self,
            contributors=contributors,
            current_contributor=contributors[0],
            last_updated=now,
        )

    def with_head_released(self, now: datetime) -> CircuitQueue:
        """Remove the slot holder and hand the slot to the next in line.

        Raises:
            EmptyQueueError: If nobody holds the slot.
        """
        if self.current_contributor is None:
            raise EmptyQueueError(self.circuit_id)
        remaining = self.contributors[1:]
        return replace(
            self,
            contributors=remaining,
            current_contributor=remaining[0] if remaining else None,
            last_contributor=self.current_contributor,
            last_updated=now,
        )

    def with_waiting_contributor_removed(
        self, participant_id: str, now: datetime
    ) -> CircuitQueue:
        """Remove a participant that is waiting behind the slot holder.

        Raises:
            NotQueuedError: If the participant is not waiting in this queue.
        """
        if participant_id not in self.contributors[1:]:
            raise NotQueuedError(self.circuit_id, participant_id)
        return replace(
            self,
            contributors=tuple(p for p in self.contributors if p != participant_id),
            last_updated=now,
        )

    def with_valid_contribution(self, avg_timings: AvgTimings, now: datetime) -> CircuitQueue:
        """Count a valid contribution and store the refreshed averages."""
        return replace(
            self,
            completed_contributions=self.completed_contributions + 1,
            avg_timings=avg_timings,
            last_updated=now,
        )

    def with_failed_contribution(self, now: datetime) -> CircuitQueue:
        return replace(
            self,
            failed_contributions=self.failed_contributions + 1,
            last_updated=now,
        )

    def touched(self, now: datetime) -> CircuitQueue:
        """Return the same queue with a fresh last_updated stamp."""
        return replace(self, last_updated=now)
