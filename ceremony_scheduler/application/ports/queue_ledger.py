"""Queue ledger ports.

The queue ledger is the authoritative, remotely hosted store of circuit
queues and everything whose consistency depends on them: participant
records, contribution records and timeout records. It offers exactly one
mutation primitive, a conditional write of the queue document that
commits a batch of dependent records atomically with it.

Repository protocols for the dependent records are read-mostly; their
writes ride along with a queue commit through ``LedgerBatch``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue
from ceremony_scheduler.domain.models.contribution import (
    CircuitFinalization,
    ContributionRecord,
)
from ceremony_scheduler.domain.models.participant import Participant
from ceremony_scheduler.domain.models.timeout_record import TimeoutRecord


@dataclass(frozen=True)
class LedgerBatch:
    """Records committed atomically with a queue write.

    Attributes:
        participants: Participant records to upsert.
        contribution: Contribution record to append, if any.
        timeout: Timeout record to append, if any.
    """

    participants: tuple[Participant, ...] = field(default_factory=tuple)
    contribution: ContributionRecord | None = field(default=None)
    timeout: TimeoutRecord | None = field(default=None)


class QueueLedgerProtocol(Protocol):
    """Protocol for versioned circuit queue storage.

    Methods:
        initialize_queue: Create the empty queue of a circuit
        read_queue: Read the current queue snapshot and its version
        write_queue_if_unchanged: Conditionally replace the queue
    """

    async def initialize_queue(self, circuit_id: str) -> CircuitQueue:
        """Create an empty queue at version 0, or return the existing one."""
        ...

    async def read_queue(self, circuit_id: str) -> CircuitQueue:
        """Read the current queue of a circuit.

        Raises:
            CircuitNotFoundError: If the circuit has no queue.
        """
        ...

    async def write_queue_if_unchanged(
        self,
        circuit_id: str,
        expected_version: int,
        queue: CircuitQueue,
        batch: LedgerBatch | None = None,
    ) -> bool:
        """Replace the queue if its stored version is still ``expected_version``.

        On success the stored queue gets version ``expected_version + 1``,
        the batch is applied in the same step and subscribers are notified.

        A batch that places a participant in this queue while the stored
        participant record already sits in another circuit's queue is a
        conflict as well: the participant was claimed by a concurrent join.

        Args:
            circuit_id: Circuit whose queue is written.
            expected_version: Version the caller read.
            queue: The new queue content.
            batch: Dependent records to commit atomically with the queue.

        Returns:
            True if the write committed, False on a version conflict.

        Raises:
            CircuitNotFoundError: If the circuit has no queue.
        """
        ...


class ParticipantRepositoryProtocol(Protocol):
    """Protocol for participant records."""

    async def register(self, participant: Participant) -> Participant:
        """Store a new participant, or return the existing record unchanged."""
        ...

    async def get_participant(
        self, ceremony_id: str, participant_id: str
    ) -> Participant | None:
        ...

    async def save_participant(self, participant: Participant) -> None:
        """Overwrite a participant record outside of any queue commit.

        Only for participants that hold no queue position (e.g. the
        coordinator during finalization).
        """
        ...


class ContributionRepositoryProtocol(Protocol):
    """Protocol for contribution records and circuit finalizations."""

    async def get_contribution(
        self, circuit_id: str, participant_id: str
    ) -> ContributionRecord | None:
        ...

    async def list_contributions(self, circuit_id: str) -> list[ContributionRecord]:
        """List the contribution records of a circuit in commit order."""
        ...

    async def save_finalization(self, finalization: CircuitFinalization) -> None:
        """Persist the finalization of a circuit.

        Raises:
            ValueError: If the circuit already has a finalization.
        """
        ...

    async def get_finalization(self, circuit_id: str) -> CircuitFinalization | None:
        ...


class TimeoutRepositoryProtocol(Protocol):
    """Protocol for timeout records."""

    async def latest_timeout(
        self, ceremony_id: str, participant_id: str
    ) -> TimeoutRecord | None:
        """Return the most recent timeout of a participant, if any."""
        ...

    async def list_timeouts(
        self, ceremony_id: str, participant_id: str
    ) -> list[TimeoutRecord]:
        ...
