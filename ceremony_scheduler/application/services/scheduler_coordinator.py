"""Scheduler coordinator.

The entry point participants and coordinator tooling talk to. It gates
every operation on the ceremony state, delegates the atomic queue work
to the ledger service, the verifier gateway and the timeout monitor, and
runs each operation under a correlation ID.

Operations:
    register_participant: Create the participant record (idempotent)
    join: Enter a circuit queue (OPENED only)
    leave: Leave a queue before taking the slot, with no penalty
    observe / watch: Position and estimated wait, one-shot or pushed
    progress_contribution_step: Slot holder moves to its next step
    report_outcome: Record the verifier verdict and release the slot
    evict_timed_out: Evict the slot holder if it overran its window
    recover_crashed_contributor: Treat a crashed holder as timed out
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta
from functools import partial

from ceremony_scheduler.application.dtos.scheduler import JoinResultDTO, QueueObservation
from ceremony_scheduler.application.ports.queue_ledger import (
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
)
from ceremony_scheduler.application.ports.queue_notifier import QueueNotifierProtocol
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.application.services.ceremony_lifecycle_service import (
    CeremonyLifecycleService,
)
from ceremony_scheduler.application.services.contribution_verifier_gateway import (
    REPORTABLE_STATES,
    ContributionVerifierGateway,
)
from ceremony_scheduler.application.services.queue_ledger_service import (
    QueueLedgerService,
)
from ceremony_scheduler.application.services.queue_observer import (
    ObservationCallback,
    QueueObserver,
    build_observation,
)
from ceremony_scheduler.application.services.timeout_monitor_service import (
    TimeoutMonitorService,
)
from ceremony_scheduler.domain.errors.ceremony import (
    CeremonyNotOpenedError,
    StateMismatchError,
)
from ceremony_scheduler.domain.models.ceremony import Ceremony, CeremonyState
from ceremony_scheduler.domain.models.contribution import (
    ArtifactReference,
    ContributionRecord,
)
from ceremony_scheduler.domain.models.participant import Participant
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause, TimeoutRecord
from ceremony_scheduler.infrastructure.observability.correlation import (
    ensure_correlation_id,
)

# Participants may register before and while the ceremony runs.
REGISTRATION_STATES = frozenset({CeremonyState.SCHEDULED, CeremonyState.OPENED})


class SchedulerCoordinator(LoggingMixin):
    """Orchestrates the contribution scheduler for every circuit."""

    def __init__(
        self,
        lifecycle: CeremonyLifecycleService,
        ledger_service: QueueLedgerService,
        gateway: ContributionVerifierGateway,
        monitor: TimeoutMonitorService,
        ledger: QueueLedgerProtocol,
        participants: ParticipantRepositoryProtocol,
        notifier: QueueNotifierProtocol,
        time_authority: TimeAuthorityProtocol,
    ) -> None:
        self._lifecycle = lifecycle
        self._ledger_service = ledger_service
        self._gateway = gateway
        self._monitor = monitor
        self._ledger = ledger
        self._participants = participants
        self._notifier = notifier
        self._time = time_authority
        self._init_logger()

    async def register_participant(self, ceremony_id: str, participant_id: str) -> Participant:
        """Register a participant, or return the existing registration.

        Raises:
            CeremonyNotFoundError: If the ceremony does not exist.
            StateMismatchError: If the ceremony is closed or finalized.
        """
        ensure_correlation_id()
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        if ceremony.state not in REGISTRATION_STATES:
            raise StateMismatchError(
                subject=f"ceremony {ceremony_id}",
                current_state=ceremony.state.value,
                expected_states=sorted(s.value for s in REGISTRATION_STATES),
                operation="register participant",
            )
        participant = await self._participants.register(
            Participant(
                ceremony_id=ceremony_id,
                participant_id=participant_id,
                last_updated=self._time.now(),
            )
        )
        self._log_operation(
            "register_participant", ceremony_id=ceremony_id, participant_id=participant_id
        ).info("participant_registered", status=participant.status.value)
        return participant

    async def join(
        self, ceremony_id: str, circuit_id: str, participant_id: str
    ) -> JoinResultDTO:
        """Join a circuit queue.

        The ceremony state is checked again on every write attempt, and
        closing a ceremony bumps each queue version, so a join cannot
        commit once the ceremony has left OPENED.

        Raises:
            CeremonyNotOpenedError: If the ceremony is not OPENED.
            CircuitNotFoundError: If the circuit is not part of the ceremony.
            AlreadyQueuedError, AlreadyContributedError, NoRetryYetError:
                See QueueLedgerService.join.
        """
        ensure_correlation_id()
        ceremony = await self._require_opened(ceremony_id, "join")
        return await self._ledger_service.join(
            ceremony_id,
            ceremony.circuit(circuit_id),
            participant_id,
            admission=partial(self._require_opened, ceremony_id, "join"),
        )

    async def leave(self, ceremony_id: str, circuit_id: str, participant_id: str) -> None:
        """Leave a circuit queue before taking the slot."""
        ensure_correlation_id()
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        ceremony.circuit(circuit_id)
        await self._ledger_service.leave(ceremony_id, circuit_id, participant_id)

    async def observe(
        self, ceremony_id: str, circuit_id: str, participant_id: str
    ) -> QueueObservation:
        """Compute a participant's current view of a circuit queue."""
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        ceremony.circuit(circuit_id)
        queue = await self._ledger.read_queue(circuit_id)
        return build_observation(queue, participant_id)

    async def watch(
        self,
        ceremony_id: str,
        circuit_id: str,
        participant_id: str,
        callback: ObservationCallback | None = None,
    ) -> QueueObserver:
        """Subscribe a participant to pushed observations of a circuit.

        The observer is primed with the current snapshot before it returns,
        then receives every committed change. Call ``stop()`` to unsubscribe.
        """
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        ceremony.circuit(circuit_id)
        observer = QueueObserver(self._notifier, circuit_id, participant_id, callback)
        observer.start()
        await observer.deliver(await self._ledger.read_queue(circuit_id))
        return observer

    async def progress_contribution_step(
        self, ceremony_id: str, circuit_id: str, participant_id: str
    ) -> Participant:
        """Advance the slot holder to its next contribution step.

        Allowed while CLOSED too, so a holder still in flight at the end
        date can finish.

        Raises:
            StateMismatchError: If the ceremony is neither OPENED nor CLOSED.
            NotCurrentContributorError: If the participant does not hold the slot.
        """
        ensure_correlation_id()
        ceremony = await self._require_reportable(ceremony_id, "progress contribution step")
        ceremony.circuit(circuit_id)
        return await self._ledger_service.progress_step(ceremony_id, circuit_id, participant_id)

    async def report_outcome(
        self,
        ceremony_id: str,
        circuit_id: str,
        participant_id: str,
        contribution_time_ms: int,
        verification_time_ms: int,
        valid: bool,
        artifacts: Sequence[ArtifactReference] = (),
    ) -> ContributionRecord:
        """Record a verification outcome, then close the ceremony if complete.

        Any outcome releases the slot, so an invalid one can also leave the
        last queue empty.
        """
        ensure_correlation_id()
        record = await self._gateway.report_outcome(
            ceremony_id,
            circuit_id,
            participant_id,
            contribution_time_ms,
            verification_time_ms,
            valid,
            artifacts,
        )
        await self._lifecycle.close_if_complete(ceremony_id)
        return record

    async def evict_timed_out(self, ceremony_id: str, circuit_id: str) -> TimeoutRecord | None:
        """Evict the slot holder of a circuit if it overran its window.

        Returns:
            The timeout record, or None if the holder is within its window.

        Raises:
            StateMismatchError: If the ceremony is neither OPENED nor CLOSED.
            AlreadyAdvancedError: If the holder left the slot concurrently.
        """
        ensure_correlation_id()
        ceremony = await self._require_reportable(ceremony_id, "evict timed-out contributor")
        record = await self._monitor.check_circuit(ceremony, ceremony.circuit(circuit_id))
        if record is not None:
            await self._lifecycle.close_if_complete(ceremony_id)
        return record

    async def recover_crashed_contributor(
        self, ceremony_id: str, circuit_id: str, participant_id: str
    ) -> TimeoutRecord:
        """Evict a slot holder whose client crashed mid-contribution.

        A crashed contributor never resumes from its last step; it is
        evicted like a timeout, serves the cooldown and re-joins at the back.

        Raises:
            StateMismatchError: If the ceremony is neither OPENED nor CLOSED.
            AlreadyAdvancedError: If the participant does not hold the slot.
        """
        ensure_correlation_id()
        ceremony = await self._require_reportable(ceremony_id, "recover crashed contributor")
        ceremony.circuit(circuit_id)
        record = await self._ledger_service.evict(
            ceremony_id,
            circuit_id,
            participant_id,
            TimeoutCause.CRASH_RECOVERY,
            timedelta(seconds=ceremony.timeout_policy.cooldown_seconds),
        )
        await self._lifecycle.close_if_complete(ceremony_id)
        return record

    async def _require_opened(self, ceremony_id: str, operation: str) -> Ceremony:
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        if ceremony.state != CeremonyState.OPENED:
            raise CeremonyNotOpenedError(ceremony_id, ceremony.state.value, operation)
        return ceremony

    async def _require_reportable(self, ceremony_id: str, operation: str) -> Ceremony:
        ceremony = await self._lifecycle.require_ceremony(ceremony_id)
        if ceremony.state not in REPORTABLE_STATES:
            raise StateMismatchError(
                subject=f"ceremony {ceremony_id}",
                current_state=ceremony.state.value,
                expected_states=sorted(s.value for s in REPORTABLE_STATES),
                operation=operation,
            )
        return ceremony
