"""In-memory queue ledger.

Implements the queue ledger and its dependent record repositories in
process memory. Conditional writes are serialized by an asyncio.Lock,
the in-memory equivalent of a document store transaction. Reads yield
to the event loop after taking their snapshot, as a remote round trip
would, so concurrent read-modify-write cycles interleave and lose races
exactly as they would against a real store.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import structlog

from ceremony_scheduler.application.ports.queue_ledger import (
    ContributionRepositoryProtocol,
    LedgerBatch,
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
    TimeoutRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_notifier import QueueNotifierProtocol
from ceremony_scheduler.domain.errors.ceremony import CircuitNotFoundError
from ceremony_scheduler.domain.errors.queue import AlreadyContributedError
from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue
from ceremony_scheduler.domain.models.contribution import (
    CircuitFinalization,
    ContributionRecord,
)
from ceremony_scheduler.domain.models.participant import Participant
from ceremony_scheduler.domain.models.timeout_record import TimeoutRecord

log = structlog.get_logger()


class QueueLedgerStub(
    QueueLedgerProtocol,
    ParticipantRepositoryProtocol,
    ContributionRepositoryProtocol,
    TimeoutRepositoryProtocol,
):
    """In-memory versioned ledger of circuit queues and dependent records.

    This stub is NOT suitable for production use.

    Attributes:
        conflict_count: Number of conditional writes rejected so far.
        commit_count: Number of conditional writes committed so far.
    """

    def __init__(self, notifier: QueueNotifierProtocol | None = None) -> None:
        """Initialize the stub with empty storage.

        Args:
            notifier: Receives every committed queue snapshot.
        """
        self._notifier = notifier
        self._queues: dict[str, CircuitQueue] = {}
        self._participants: dict[tuple[str, str], Participant] = {}
        self._contributions: dict[str, list[ContributionRecord]] = {}
        self._finalizations: dict[str, CircuitFinalization] = {}
        self._timeouts: dict[tuple[str, str], list[TimeoutRecord]] = {}
        self._write_lock = asyncio.Lock()
        self.conflict_count = 0
        self.commit_count = 0

    # Queue ledger

    async def initialize_queue(self, circuit_id: str) -> CircuitQueue:
        async with self._write_lock:
            queue = self._queues.get(circuit_id)
            if queue is None:
                queue = CircuitQueue(circuit_id=circuit_id)
                self._queues[circuit_id] = queue
                self._contributions[circuit_id] = []
            return queue

    async def read_queue(self, circuit_id: str) -> CircuitQueue:
        queue = self._queues.get(circuit_id)
        if queue is None:
            raise CircuitNotFoundError(circuit_id)
        await asyncio.sleep(0)
        return queue

    async def write_queue_if_unchanged(
        self,
        circuit_id: str,
        expected_version: int,
        queue: CircuitQueue,
        batch: LedgerBatch | None = None,
    ) -> bool:
        if queue.circuit_id != circuit_id:
            raise ValueError(
                f"Queue for circuit {queue.circuit_id} written under {circuit_id}"
            )
        batch = batch or LedgerBatch()

        async with self._write_lock:
            current = self._queues.get(circuit_id)
            if current is None:
                raise CircuitNotFoundError(circuit_id)
            if current.version != expected_version:
                self.conflict_count += 1
                log.debug(
                    "ledger_version_conflict",
                    circuit_id=circuit_id,
                    expected_version=expected_version,
                    stored_version=current.version,
                )
                return False
            claimed = self._claimed_elsewhere(circuit_id, batch.participants)
            if claimed is not None:
                self.conflict_count += 1
                log.debug(
                    "ledger_participant_conflict",
                    circuit_id=circuit_id,
                    participant_id=claimed.participant_id,
                    queued_circuit_id=claimed.queued_circuit_id,
                )
                return False

            record = batch.contribution
            if record is not None and self._find_contribution(
                record.circuit_id, record.participant_id
            ):
                raise AlreadyContributedError(record.circuit_id, record.participant_id)

            stored = replace(queue, version=expected_version + 1)
            self._queues[circuit_id] = stored
            for participant in batch.participants:
                self._participants[
                    (participant.ceremony_id, participant.participant_id)
                ] = participant
            if record is not None:
                self._contributions.setdefault(record.circuit_id, []).append(record)
            if batch.timeout is not None:
                key = (batch.timeout.ceremony_id, batch.timeout.participant_id)
                self._timeouts.setdefault(key, []).append(batch.timeout)
            self.commit_count += 1

        if self._notifier is not None:
            await self._notifier.publish(stored)
        return True

    # Participants

    async def register(self, participant: Participant) -> Participant:
        key = (participant.ceremony_id, participant.participant_id)
        async with self._write_lock:
            existing = self._participants.get(key)
            if existing is not None:
                return existing
            self._participants[key] = participant
            return participant

    async def get_participant(
        self, ceremony_id: str, participant_id: str
    ) -> Participant | None:
        return self._participants.get((ceremony_id, participant_id))

    async def save_participant(self, participant: Participant) -> None:
        async with self._write_lock:
            self._participants[(participant.ceremony_id, participant.participant_id)] = (
                participant
            )

    # Contributions

    async def get_contribution(
        self, circuit_id: str, participant_id: str
    ) -> ContributionRecord | None:
        return self._find_contribution(circuit_id, participant_id)

    async def list_contributions(self, circuit_id: str) -> list[ContributionRecord]:
        return list(self._contributions.get(circuit_id, []))

    async def save_finalization(self, finalization: CircuitFinalization) -> None:
        async with self._write_lock:
            if finalization.circuit_id in self._finalizations:
                raise ValueError(
                    f"Circuit already finalized: {finalization.circuit_id}"
                )
            self._finalizations[finalization.circuit_id] = finalization

    async def get_finalization(self, circuit_id: str) -> CircuitFinalization | None:
        return self._finalizations.get(circuit_id)

    # Timeouts

    async def latest_timeout(
        self, ceremony_id: str, participant_id: str
    ) -> TimeoutRecord | None:
        records = self._timeouts.get((ceremony_id, participant_id))
        if not records:
            return None
        return max(records, key=lambda record: record.started_at)

    async def list_timeouts(
        self, ceremony_id: str, participant_id: str
    ) -> list[TimeoutRecord]:
        return list(self._timeouts.get((ceremony_id, participant_id), []))

    def _claimed_elsewhere(
        self, circuit_id: str, participants: tuple[Participant, ...]
    ) -> Participant | None:
        """Find a stored participant that a concurrent join put in another queue."""
        for participant in participants:
            if participant.queued_circuit_id != circuit_id:
                continue
            stored = self._participants.get(
                (participant.ceremony_id, participant.participant_id)
            )
            if (
                stored is not None
                and stored.queued_circuit_id is not None
                and stored.queued_circuit_id != circuit_id
            ):
                return stored
        return None

    def _find_contribution(
        self, circuit_id: str, participant_id: str
    ) -> ContributionRecord | None:
        for record in self._contributions.get(circuit_id, []):
            if record.participant_id == participant_id:
                return record
        return None

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        self._queues.clear()
        self._participants.clear()
        self._contributions.clear()
        self._finalizations.clear()
        self._timeouts.clear()
        self.conflict_count = 0
        self.commit_count = 0
