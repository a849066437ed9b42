"""Queue ledger service.

The single module through which circuit queues are mutated. Every
mutation is a versioned read-modify-write against the ledger:

1. read the queue snapshot and its version
2. build the new queue and the dependent records from that snapshot
3. write both back only if the version is unchanged

A lost write is retried from a fresh read with exponential backoff, up to
the configured attempt budget. Precondition failures raised while
planning (AlreadyQueued, NotCurrentContributor, ...) are never retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from uuid6 import uuid7

from ceremony_scheduler.application.dtos.scheduler import JoinResultDTO
from ceremony_scheduler.application.ports.queue_ledger import (
    ContributionRepositoryProtocol,
    LedgerBatch,
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
    TimeoutRepositoryProtocol,
)
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.config.scheduler_config import (
    DEFAULT_SCHEDULER_CONFIG,
    SchedulerConfig,
)
from ceremony_scheduler.domain.errors.ceremony import (
    ParticipantNotFoundError,
    StateMismatchError,
)
from ceremony_scheduler.domain.errors.concurrent_modification import (
    ConflictRetryExhaustedError,
)
from ceremony_scheduler.domain.errors.queue import (
    AlreadyAdvancedError,
    AlreadyContributedError,
    AlreadyQueuedError,
    CannotLeaveWhileContributingError,
    NotCurrentContributorError,
)
from ceremony_scheduler.domain.errors.retry import NoRetryYetError
from ceremony_scheduler.domain.models.ceremony import Circuit
from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue
from ceremony_scheduler.domain.models.participant import Participant, ParticipantStatus
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause, TimeoutRecord
from ceremony_scheduler.infrastructure.monitoring.scheduler_metrics import (
    SchedulerMetrics,
)

T = TypeVar("T")

# Participants in these states hold no queue rights any more.
_FINALIZATION_STATUSES = frozenset(
    {ParticipantStatus.FINALIZING, ParticipantStatus.FINALIZED}
)


@dataclass(frozen=True)
class LedgerMutation(Generic[T]):
    """A planned queue write and what the caller gets back if it commits.

    Attributes:
        queue: The new queue content.
        batch: Dependent records committed with the queue.
        result: Returned to the caller once the write commits.
        promoted: Participant that took the slot in this write, if any.
    """

    queue: CircuitQueue
    batch: LedgerBatch
    result: T
    promoted: str | None = field(default=None)


MutationPlan = Callable[[CircuitQueue], Awaitable[LedgerMutation[T]]]

# Re-checks a precondition held outside the queue document; raises to abort.
AdmissionCheck = Callable[[], Awaitable[object]]


class QueueLedgerService(LoggingMixin):
    """Atomic mutations of circuit queues.

    Example:
        >>> service = QueueLedgerService(ledger, ledger, ledger, ledger, time_authority)
        >>> result = await service.join("ceremony-1", circuit, "alice")
        >>> result.is_current
        True
    """

    def __init__(
        self,
        ledger: QueueLedgerProtocol,
        participants: ParticipantRepositoryProtocol,
        contributions: ContributionRepositoryProtocol,
        timeouts: TimeoutRepositoryProtocol,
        time_authority: TimeAuthorityProtocol,
        config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
        metrics: SchedulerMetrics | None = None,
    ) -> None:
        """Initialize the queue ledger service.

        Args:
            ledger: Versioned queue storage.
            participants: Participant records.
            contributions: Contribution records (AlreadyContributed checks).
            timeouts: Timeout records (cooldown checks).
            time_authority: Server-trusted clock.
            config: Retry budget and backoff.
            metrics: Optional Prometheus metrics.
        """
        self._ledger = ledger
        self._participants = participants
        self._contributions = contributions
        self._timeouts = timeouts
        self._time = time_authority
        self._config = config
        self._metrics = metrics
        self._init_logger()

    async def commit(
        self,
        circuit_id: str,
        operation: str,
        plan: MutationPlan[T],
    ) -> T:
        """Run a read-modify-write cycle on a circuit queue until it commits.

        Args:
            circuit_id: Circuit whose queue is mutated.
            operation: Operation name for logs and metrics.
            plan: Builds the mutation from a fresh snapshot. May raise a
                precondition error, which propagates without retry.

        Returns:
            The mutation result of the attempt that committed.

        Raises:
            ConflictRetryExhaustedError: If every attempt lost a version race.
        """
        log = self._log_operation(operation, circuit_id=circuit_id)
        attempts = self._config.max_write_attempts
        started = self._time.monotonic()

        for attempt in range(1, attempts + 1):
            snapshot = await self._ledger.read_queue(circuit_id)
            mutation = await plan(snapshot)
            committed = await self._ledger.write_queue_if_unchanged(
                circuit_id, snapshot.version, mutation.queue, mutation.batch
            )
            if committed:
                log.debug(
                    "ledger_commit_succeeded",
                    attempt=attempt,
                    version=snapshot.version + 1,
                )
                if self._metrics is not None:
                    self._metrics.observe_commit_duration(
                        operation, self._time.monotonic() - started
                    )
                self._after_commit(circuit_id, mutation)
                return mutation.result

            if self._metrics is not None:
                self._metrics.record_conflict(operation)
            log.warning(
                "ledger_write_conflict",
                attempt=attempt,
                expected_version=snapshot.version,
            )
            if attempt < attempts:
                await asyncio.sleep(self._config.backoff_seconds(attempt))

        log.error("ledger_retry_exhausted", attempts=attempts)
        raise ConflictRetryExhaustedError(circuit_id, operation, attempts)

    async def join(
        self,
        ceremony_id: str,
        circuit: Circuit,
        participant_id: str,
        admission: AdmissionCheck | None = None,
    ) -> JoinResultDTO:
        """Append a participant to a circuit queue.

        If the queue was empty the participant takes the slot immediately
        and starts DOWNLOADING; otherwise it waits.

        Args:
            ceremony_id: Ceremony the circuit belongs to.
            circuit: Circuit to join.
            participant_id: The joining participant.
            admission: Awaited on every attempt after the queue is read;
                an error it raises aborts the join without retry.

        Raises:
            ParticipantNotFoundError: If the participant is not registered.
            AlreadyQueuedError: If the participant is in this or another queue.
            AlreadyContributedError: If the participant already contributed here.
            NoRetryYetError: If the participant's cooldown has not elapsed.
            StateMismatchError: If the participant is finalizing.
            ConflictRetryExhaustedError: If the write kept losing races.
        """
        circuit_id = circuit.circuit_id

        async def plan(queue: CircuitQueue) -> LedgerMutation[JoinResultDTO]:
            if admission is not None:
                await admission()
            now = self._time.now()
            participant = await self.require_participant(ceremony_id, participant_id)
            await self._check_admission(participant, queue, now)

            joined = queue.with_contributor_joined(participant_id, now)
            is_current = joined.current_contributor == participant_id
            updated = participant.queued(circuit_id, circuit.sequence_position, now)
            if is_current:
                updated = updated.promoted(now)

            return LedgerMutation(
                queue=joined,
                batch=LedgerBatch(participants=(updated,)),
                result=JoinResultDTO(
                    circuit_id=circuit_id,
                    participant_id=participant_id,
                    position=len(joined.contributors),
                    is_current=is_current,
                    queue_version=queue.version + 1,
                ),
                promoted=participant_id if is_current else None,
            )

        result = await self.commit(circuit_id, "join", plan)
        if self._metrics is not None:
            self._metrics.record_join(circuit_id)
        self._log_operation("join", circuit_id=circuit_id, participant_id=participant_id).info(
            "contributor_joined",
            position=result.position,
            is_current=result.is_current,
        )
        return result

    async def advance(
        self,
        ceremony_id: str,
        circuit_id: str,
        expected_head: str | None = None,
    ) -> str | None:
        """Release the slot holder and promote the next participant.

        The departing holder is marked CONTRIBUTED.

        Args:
            ceremony_id: Ceremony the circuit belongs to.
            circuit_id: Circuit to advance.
            expected_head: If given, the participant the caller believes
                holds the slot.

        Returns:
            The new slot holder, or None if the queue is now empty.

        Raises:
            EmptyQueueError: If nobody holds the slot.
            AlreadyAdvancedError: If expected_head no longer holds the slot.
        """

        async def plan(queue: CircuitQueue) -> LedgerMutation[str | None]:
            now = self._time.now()
            head = queue.current_contributor
            if expected_head is not None and head != expected_head:
                raise AlreadyAdvancedError(circuit_id, expected_head, head)
            departing = None
            if head is not None:
                departing = (await self.require_participant(ceremony_id, head)).contributed(now)
            released, updates = await self.release_head(ceremony_id, queue, departing, now)
            return LedgerMutation(
                queue=released,
                batch=LedgerBatch(participants=updates),
                result=released.current_contributor,
                promoted=released.current_contributor,
            )

        return await self.commit(circuit_id, "advance", plan)

    async def evict(
        self,
        ceremony_id: str,
        circuit_id: str,
        participant_id: str,
        cause: TimeoutCause,
        cooldown: timedelta,
    ) -> TimeoutRecord:
        """Evict the slot holder, record the timeout and promote the next.

        Counts as a failed contribution; never consumes a zkey index.

        Args:
            ceremony_id: Ceremony the circuit belongs to.
            circuit_id: Circuit whose slot holder is evicted.
            participant_id: The slot holder the caller decided to evict.
            cause: Why the participant is evicted.
            cooldown: Re-join cooldown starting now.

        Returns:
            The committed timeout record.

        Raises:
            AlreadyAdvancedError: If participant_id no longer holds the slot.
        """

        async def plan(queue: CircuitQueue) -> LedgerMutation[TimeoutRecord]:
            now = self._time.now()
            if queue.current_contributor != participant_id:
                raise AlreadyAdvancedError(
                    circuit_id, participant_id, queue.current_contributor
                )
            participant = await self.require_participant(ceremony_id, participant_id)
            released, updates = await self.release_head(
                ceremony_id, queue, participant.timed_out(now), now
            )
            record = TimeoutRecord(
                timeout_id=uuid7(),
                ceremony_id=ceremony_id,
                circuit_id=circuit_id,
                participant_id=participant_id,
                cause=cause,
                started_at=now,
                ends_at=now + cooldown,
            )
            return LedgerMutation(
                queue=released.with_failed_contribution(now),
                batch=LedgerBatch(participants=updates, timeout=record),
                result=record,
                promoted=released.current_contributor,
            )

        record = await self.commit(circuit_id, "evict", plan)
        if self._metrics is not None:
            self._metrics.record_eviction(circuit_id, cause.value)
        self._log_operation(
            "evict", circuit_id=circuit_id, participant_id=participant_id
        ).info(
            "contributor_evicted",
            cause=cause.value,
            retry_at=record.ends_at.isoformat(),
        )
        return record

    async def leave(self, ceremony_id: str, circuit_id: str, participant_id: str) -> None:
        """Remove a waiting participant from a queue, with no penalty.

        Raises:
            CannotLeaveWhileContributingError: If the participant holds the slot.
            NotQueuedError: If the participant is not waiting in the queue.
        """

        async def plan(queue: CircuitQueue) -> LedgerMutation[None]:
            now = self._time.now()
            if queue.current_contributor == participant_id:
                raise CannotLeaveWhileContributingError(circuit_id, participant_id)
            shortened = queue.with_waiting_contributor_removed(participant_id, now)
            participant = await self.require_participant(ceremony_id, participant_id)
            return LedgerMutation(
                queue=shortened,
                batch=LedgerBatch(participants=(participant.left_queue(now),)),
                result=None,
            )

        await self.commit(circuit_id, "leave", plan)
        self._log_operation(
            "leave", circuit_id=circuit_id, participant_id=participant_id
        ).info("contributor_left_queue")

    async def progress_step(
        self, ceremony_id: str, circuit_id: str, participant_id: str
    ) -> Participant:
        """Move the slot holder to its next contribution step.

        Committed through the queue version so it cannot interleave with an
        eviction of the same participant.

        Raises:
            NotCurrentContributorError: If the participant does not hold the slot.
            ValueError: If the contribution is already COMPLETED.
        """

        async def plan(queue: CircuitQueue) -> LedgerMutation[Participant]:
            now = self._time.now()
            if queue.current_contributor != participant_id:
                raise NotCurrentContributorError(
                    circuit_id, participant_id, queue.current_contributor
                )
            participant = await self.require_participant(ceremony_id, participant_id)
            updated = participant.with_next_step(now)
            return LedgerMutation(
                queue=queue.touched(now),
                batch=LedgerBatch(participants=(updated,)),
                result=updated,
            )

        updated = await self.commit(circuit_id, "progress_step", plan)
        self._log_operation(
            "progress_step", circuit_id=circuit_id, participant_id=participant_id
        ).info(
            "contribution_step_advanced",
            step=updated.contribution_step.value if updated.contribution_step else None,
        )
        return updated

    async def touch(self, circuit_id: str, reason: str) -> int:
        """Commit the queue unchanged under a new version.

        Any write planned from an earlier snapshot loses its race and
        replans, re-running its admission check.

        Returns:
            The committed version.
        """

        async def plan(queue: CircuitQueue) -> LedgerMutation[int]:
            return LedgerMutation(
                queue=queue.touched(self._time.now()),
                batch=LedgerBatch(),
                result=queue.version + 1,
            )

        version = await self.commit(circuit_id, "touch", plan)
        self._log_operation("touch", circuit_id=circuit_id).debug(
            "queue_touched", reason=reason, version=version
        )
        return version

    async def release_head(
        self,
        ceremony_id: str,
        queue: CircuitQueue,
        departing: Participant | None,
        now: datetime,
    ) -> tuple[CircuitQueue, tuple[Participant, ...]]:
        """Plan the release of the slot holder inside a mutation.

        Args:
            ceremony_id: Ceremony the circuit belongs to.
            queue: Snapshot being mutated.
            departing: Updated record of the departing holder, if any.
            now: Mutation instant.

        Returns:
            The advanced queue and the participant records to commit with it
            (the departing holder and the promoted one).

        Raises:
            EmptyQueueError: If nobody holds the slot.
        """
        released = queue.with_head_released(now)
        updates: list[Participant] = [departing] if departing is not None else []
        if released.current_contributor is not None:
            successor = await self.require_participant(
                ceremony_id, released.current_contributor
            )
            updates.append(successor.promoted(now))
        return released, tuple(updates)

    async def require_participant(self, ceremony_id: str, participant_id: str) -> Participant:
        """Load a participant record.

        Raises:
            ParticipantNotFoundError: If the participant is not registered.
        """
        participant = await self._participants.get_participant(ceremony_id, participant_id)
        if participant is None:
            raise ParticipantNotFoundError(ceremony_id, participant_id)
        return participant

    async def _check_admission(
        self, participant: Participant, queue: CircuitQueue, now: datetime
    ) -> None:
        circuit_id = queue.circuit_id
        participant_id = participant.participant_id

        if queue.contains(participant_id):
            raise AlreadyQueuedError(circuit_id, participant_id)
        if participant.queued_circuit_id is not None:
            raise AlreadyQueuedError(participant.queued_circuit_id, participant_id)
        if participant.status in _FINALIZATION_STATUSES:
            raise StateMismatchError(
                subject=f"participant {participant_id}",
                current_state=participant.status.value,
                expected_states=[
                    s.value for s in ParticipantStatus if s not in _FINALIZATION_STATUSES
                ],
                operation=f"join circuit {circuit_id}",
            )
        if await self._contributions.get_contribution(circuit_id, participant_id):
            raise AlreadyContributedError(circuit_id, participant_id)
        if participant.status == ParticipantStatus.TIMED_OUT:
            latest = await self._timeouts.latest_timeout(
                participant.ceremony_id, participant_id
            )
            if latest is not None and latest.is_active(now):
                raise NoRetryYetError(participant_id, latest.ends_at)

    def _after_commit(self, circuit_id: str, mutation: LedgerMutation[T]) -> None:
        if self._metrics is not None:
            self._metrics.set_queue_length(circuit_id, len(mutation.queue.contributors))
        if mutation.promoted is not None:
            if self._metrics is not None:
                self._metrics.record_promotion(circuit_id)
            self._log.info(
                "contributor_promoted",
                circuit_id=circuit_id,
                participant_id=mutation.promoted,
            )
