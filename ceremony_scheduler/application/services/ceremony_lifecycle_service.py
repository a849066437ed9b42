"""Ceremony lifecycle service.

Drives ceremonies through SCHEDULED -> OPENED -> CLOSED -> FINALIZED:

- time-based transitions (start and end dates) applied by ``tick``
- early close once every circuit reached its final index with an empty queue
- coordinator-only finalization, which digests each circuit's final key
  material before flipping the ceremony and the coordinator to FINALIZED

Every state change is a compare-and-swap on the ceremony, so concurrent
drivers cannot apply the same transition twice. Closing also commits
each circuit queue under a new version, so a join planned while the
ceremony was still OPENED loses its write and replans into the closed state.
"""

from __future__ import annotations

from dataclasses import dataclass

from ceremony_scheduler.application.dtos.scheduler import (
    FinalArtifactsDTO,
    LifecycleTransitionDTO,
)
from ceremony_scheduler.application.ports.ceremony_repository import (
    CeremonyRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_ledger import (
    ContributionRepositoryProtocol,
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
)
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.artifact_hash_service import (
    ArtifactHashService,
)
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.application.services.queue_ledger_service import (
    QueueLedgerService,
)
from ceremony_scheduler.domain.errors.ceremony import (
    CeremonyNotClosedError,
    CeremonyNotFoundError,
    IncompleteCircuitError,
    NotCoordinatorError,
    StateMismatchError,
)
from ceremony_scheduler.domain.errors.concurrent_modification import (
    ConcurrentModificationError,
    ConflictRetryExhaustedError,
)
from ceremony_scheduler.domain.models.ceremony import Ceremony, CeremonyState, Circuit
from ceremony_scheduler.domain.models.contribution import (
    CircuitFinalization,
    ContributionRecord,
)
from ceremony_scheduler.domain.models.participant import Participant, ParticipantStatus


@dataclass(frozen=True)
class _CircuitProgress:
    circuit: Circuit
    completed: int
    queue_empty: bool

    @property
    def reached_final_index(self) -> bool:
        expected = self.circuit.expected_contributions
        return expected is not None and self.completed >= expected


class CeremonyLifecycleService(LoggingMixin):
    """Ceremony state machine and finalization."""

    def __init__(
        self,
        ceremonies: CeremonyRepositoryProtocol,
        ledger: QueueLedgerProtocol,
        participants: ParticipantRepositoryProtocol,
        contributions: ContributionRepositoryProtocol,
        ledger_service: QueueLedgerService,
        time_authority: TimeAuthorityProtocol,
        hash_service: ArtifactHashService | None = None,
    ) -> None:
        self._ceremonies = ceremonies
        self._ledger = ledger
        self._participants = participants
        self._contributions = contributions
        self._ledger_service = ledger_service
        self._time = time_authority
        self._hashes = hash_service or ArtifactHashService()
        self._init_logger(component="lifecycle")

    async def schedule_ceremony(self, ceremony: Ceremony) -> Ceremony:
        """Store a new ceremony and create an empty queue per circuit.

        Raises:
            StateMismatchError: If the ceremony is not SCHEDULED.
            ValueError: If the ceremony already exists.
        """
        if ceremony.state != CeremonyState.SCHEDULED:
            raise StateMismatchError(
                subject=f"ceremony {ceremony.ceremony_id}",
                current_state=ceremony.state.value,
                expected_states=(CeremonyState.SCHEDULED.value,),
                operation="schedule ceremony",
            )
        await self._ceremonies.save(ceremony)
        for circuit in ceremony.circuits:
            await self._ledger.initialize_queue(circuit.circuit_id)
        self._log_operation("schedule_ceremony", ceremony_id=ceremony.ceremony_id).info(
            "ceremony_scheduled",
            circuits=len(ceremony.circuits),
            start_date=ceremony.start_date.isoformat(),
            end_date=ceremony.end_date.isoformat(),
        )
        return ceremony

    async def require_ceremony(self, ceremony_id: str) -> Ceremony:
        """Load a ceremony.

        Raises:
            CeremonyNotFoundError: If the ceremony does not exist.
        """
        ceremony = await self._ceremonies.get(ceremony_id)
        if ceremony is None:
            raise CeremonyNotFoundError(ceremony_id)
        return ceremony

    async def transition(
        self, ceremony_id: str, target: CeremonyState, reason: str
    ) -> LifecycleTransitionDTO:
        """Move a ceremony to the next state.

        Raises:
            CeremonyNotFoundError: If the ceremony does not exist.
            StateMismatchError: If target is not the next state.
            ConcurrentModificationError: If another driver moved it first.
        """
        ceremony = await self.require_ceremony(ceremony_id)
        now = self._time.now()
        # Validates the transition before touching storage.
        ceremony.with_state(target, now)
        await self._ceremonies.transition_state_cas(
            ceremony_id, ceremony.state, target, now
        )
        self._log_operation("transition", ceremony_id=ceremony_id).info(
            "ceremony_state_changed",
            from_state=ceremony.state.value,
            to_state=target.value,
            reason=reason,
        )
        if target == CeremonyState.CLOSED:
            await self._invalidate_pending_joins(ceremony)
        return LifecycleTransitionDTO(
            ceremony_id=ceremony_id,
            from_state=ceremony.state,
            to_state=target,
            reason=reason,
        )

    async def open_due(self) -> list[LifecycleTransitionDTO]:
        """Open every scheduled ceremony whose start date has passed."""
        now = self._time.now()
        due = [
            c
            for c in await self._ceremonies.list_by_state(CeremonyState.SCHEDULED)
            if c.is_start_due(now)
        ]
        return await self._apply_due(due, CeremonyState.OPENED, "start_date_reached")

    async def close_due(self) -> list[LifecycleTransitionDTO]:
        """Close every opened ceremony whose end date has passed."""
        now = self._time.now()
        due = [
            c
            for c in await self._ceremonies.list_by_state(CeremonyState.OPENED)
            if c.is_end_due(now)
        ]
        return await self._apply_due(due, CeremonyState.CLOSED, "end_date_reached")

    async def tick(self) -> list[LifecycleTransitionDTO]:
        """Apply every due time-based transition."""
        return [*await self.open_due(), *await self.close_due()]

    async def is_complete(self, ceremony: Ceremony) -> bool:
        """True if every circuit reached its final index with an empty queue."""
        for progress in await self._progress(ceremony):
            if not (progress.reached_final_index and progress.queue_empty):
                return False
        return True

    async def close_if_complete(self, ceremony_id: str) -> LifecycleTransitionDTO | None:
        """Close an opened ceremony early once all circuits are complete.

        Returns:
            The transition, or None if the ceremony stays as it is.
        """
        ceremony = await self.require_ceremony(ceremony_id)
        if ceremony.state != CeremonyState.OPENED:
            return None
        if not await self.is_complete(ceremony):
            return None
        try:
            return await self.transition(
                ceremony_id, CeremonyState.CLOSED, "all_circuits_complete"
            )
        except ConcurrentModificationError:
            self._log.info("ceremony_already_closed", ceremony_id=ceremony_id)
            return None

    async def prepare_coordinator_for_finalization(
        self, ceremony_id: str, coordinator_id: str
    ) -> Participant:
        """Move the coordinator's participant record to FINALIZING.

        Raises:
            NotCoordinatorError: If coordinator_id is not the coordinator.
            CeremonyNotClosedError: If the ceremony is not CLOSED.
            StateMismatchError: If the coordinator holds a queue position or
                already finalized.
        """
        ceremony = await self.require_ceremony(ceremony_id)
        self._require_coordinator(ceremony, coordinator_id)
        self._require_closed(ceremony, "prepare coordinator for finalization")

        now = self._time.now()
        coordinator = await self._participants.register(
            Participant(ceremony_id=ceremony_id, participant_id=coordinator_id, last_updated=now)
        )
        if coordinator.status == ParticipantStatus.FINALIZING:
            return coordinator
        if coordinator.status == ParticipantStatus.FINALIZED or coordinator.is_queued:
            raise StateMismatchError(
                subject=f"coordinator {coordinator_id}",
                current_state=(
                    "queued" if coordinator.is_queued else coordinator.status.value
                ),
                expected_states=("not queued",),
                operation="prepare for finalization",
            )
        finalizing = coordinator.finalizing(now)
        await self._participants.save_participant(finalizing)
        self._log_operation(
            "prepare_coordinator_for_finalization",
            ceremony_id=ceremony_id,
            participant_id=coordinator_id,
        ).info("coordinator_finalizing")
        return finalizing

    async def finalize_circuit(
        self,
        ceremony_id: str,
        circuit_id: str,
        coordinator_id: str,
        artifacts: FinalArtifactsDTO,
        beacon: str,
    ) -> CircuitFinalization:
        """Digest and persist a circuit's final key material.

        Args:
            ceremony_id: The ceremony.
            circuit_id: The circuit to finalize.
            coordinator_id: Must be the ceremony coordinator.
            artifacts: Final verification key and verifier contract.
            beacon: Public randomness applied in the final step.

        Returns:
            The persisted finalization.

        Raises:
            NotCoordinatorError: If coordinator_id is not the coordinator.
            CeremonyNotClosedError: If the ceremony is not CLOSED.
            StateMismatchError: If the coordinator is not FINALIZING or the
                circuit is already finalized.
            IncompleteCircuitError: If the circuit has no terminal valid record.
        """
        ceremony = await self.require_ceremony(ceremony_id)
        self._require_coordinator(ceremony, coordinator_id)
        self._require_closed(ceremony, "finalize circuit")
        await self._require_finalizing_coordinator(ceremony_id, coordinator_id)
        circuit = ceremony.circuit(circuit_id)

        if await self._contributions.get_finalization(circuit_id) is not None:
            raise StateMismatchError(
                subject=f"circuit {circuit_id}",
                current_state="finalized",
                expected_states=("complete",),
                operation="finalize circuit",
            )
        terminal = await self._terminal_record(ceremony_id, circuit)

        finalization = CircuitFinalization(
            ceremony_id=ceremony_id,
            circuit_id=circuit_id,
            coordinator_id=coordinator_id,
            final_record_id=terminal.record_id,
            verification_key_hash=self._hashes.hash_artifact(artifacts.verification_key),
            verifier_contract_hash=self._hashes.hash_artifact(artifacts.verifier_contract),
            beacon=beacon,
            beacon_hash=self._hashes.hash_beacon(beacon),
            finalized_at=self._time.now(),
        )
        await self._contributions.save_finalization(finalization)
        self._log_operation(
            "finalize_circuit", ceremony_id=ceremony_id, circuit_id=circuit_id
        ).info(
            "circuit_finalized",
            final_zkey_index=terminal.zkey_label,
            verification_key_hash=finalization.verification_key_hash,
        )
        return finalization

    async def finalize_ceremony(self, ceremony_id: str, coordinator_id: str) -> Ceremony:
        """Flip a closed ceremony and its coordinator to FINALIZED.

        Raises:
            NotCoordinatorError: If coordinator_id is not the coordinator.
            CeremonyNotClosedError: If the ceremony is not CLOSED.
            StateMismatchError: If the coordinator is not FINALIZING.
            IncompleteCircuitError: If a circuit lacks a terminal valid record
                or has not been finalized.
            ConcurrentModificationError: If another caller finalized first.
        """
        ceremony = await self.require_ceremony(ceremony_id)
        self._require_coordinator(ceremony, coordinator_id)
        self._require_closed(ceremony, "finalize ceremony")
        coordinator = await self._require_finalizing_coordinator(ceremony_id, coordinator_id)

        for circuit in ceremony.circuits:
            terminal = await self._terminal_record(ceremony_id, circuit)
            finalization = await self._contributions.get_finalization(circuit.circuit_id)
            if finalization is None:
                raise IncompleteCircuitError(
                    ceremony_id, circuit.circuit_id, "final artifacts were not digested"
                )
            if finalization.final_record_id != terminal.record_id:
                raise IncompleteCircuitError(
                    ceremony_id,
                    circuit.circuit_id,
                    "finalization does not reference the terminal contribution",
                )

        now = self._time.now()
        finalized = await self._ceremonies.transition_state_cas(
            ceremony_id, CeremonyState.CLOSED, CeremonyState.FINALIZED, now
        )
        await self._participants.save_participant(coordinator.finalized(now))
        self._log_operation(
            "finalize_ceremony", ceremony_id=ceremony_id, participant_id=coordinator_id
        ).info("ceremony_finalized", circuits=len(ceremony.circuits))
        return finalized

    async def _invalidate_pending_joins(self, ceremony: Ceremony) -> None:
        for circuit in ceremony.circuits:
            try:
                await self._ledger_service.touch(circuit.circuit_id, "ceremony_closed")
            except ConflictRetryExhaustedError:
                # Every commit that beat this one also bumped the version.
                self._log.warning(
                    "queue_touch_superseded",
                    ceremony_id=ceremony.ceremony_id,
                    circuit_id=circuit.circuit_id,
                )

    async def _apply_due(
        self, due: list[Ceremony], target: CeremonyState, reason: str
    ) -> list[LifecycleTransitionDTO]:
        applied: list[LifecycleTransitionDTO] = []
        for ceremony in due:
            try:
                applied.append(await self.transition(ceremony.ceremony_id, target, reason))
            except ConcurrentModificationError:
                self._log.info(
                    "ceremony_transition_lost_race",
                    ceremony_id=ceremony.ceremony_id,
                    target=target.value,
                )
        return applied

    async def _progress(self, ceremony: Ceremony) -> list[_CircuitProgress]:
        progress = []
        for circuit in ceremony.circuits:
            queue = await self._ledger.read_queue(circuit.circuit_id)
            progress.append(
                _CircuitProgress(
                    circuit=circuit,
                    completed=queue.completed_contributions,
                    queue_empty=queue.is_empty,
                )
            )
        return progress

    async def _terminal_record(self, ceremony_id: str, circuit: Circuit) -> ContributionRecord:
        """Find the valid record at the circuit's final index.

        The final index is the last completed index; a circuit with
        expected_contributions must have reached that count first.

        Raises:
            IncompleteCircuitError: If the slot is still held, a final index
                was not reached, or no valid record sits at it.
        """
        queue = await self._ledger.read_queue(circuit.circuit_id)
        if not queue.is_empty:
            raise IncompleteCircuitError(
                ceremony_id,
                circuit.circuit_id,
                f"{len(queue.contributors)} participants are still queued",
            )
        if queue.completed_contributions == 0:
            raise IncompleteCircuitError(
                ceremony_id, circuit.circuit_id, "no valid contribution was recorded"
            )
        expected = circuit.expected_contributions
        if expected is not None and queue.completed_contributions < expected:
            raise IncompleteCircuitError(
                ceremony_id,
                circuit.circuit_id,
                f"{queue.completed_contributions} of {expected} contributions completed",
            )
        final_index = queue.completed_contributions - 1
        for record in await self._contributions.list_contributions(circuit.circuit_id):
            if record.valid and record.zkey_index == final_index:
                return record
        raise IncompleteCircuitError(
            ceremony_id,
            circuit.circuit_id,
            f"no valid contribution at final index {final_index}",
        )

    async def _require_finalizing_coordinator(
        self, ceremony_id: str, coordinator_id: str
    ) -> Participant:
        coordinator = await self._participants.get_participant(ceremony_id, coordinator_id)
        status = coordinator.status if coordinator is not None else None
        if coordinator is None or status != ParticipantStatus.FINALIZING:
            raise StateMismatchError(
                subject=f"coordinator {coordinator_id}",
                current_state=status.value if status is not None else "unregistered",
                expected_states=(ParticipantStatus.FINALIZING.value,),
                operation="finalize",
            )
        return coordinator

    @staticmethod
    def _require_coordinator(ceremony: Ceremony, participant_id: str) -> None:
        if ceremony.coordinator_id != participant_id:
            raise NotCoordinatorError(ceremony.ceremony_id, participant_id)

    @staticmethod
    def _require_closed(ceremony: Ceremony, operation: str) -> None:
        if ceremony.state == CeremonyState.FINALIZED:
            raise StateMismatchError(
                subject=f"ceremony {ceremony.ceremony_id}",
                current_state=ceremony.state.value,
                expected_states=(CeremonyState.CLOSED.value,),
                operation=operation,
            )
        if ceremony.state != CeremonyState.CLOSED:
            raise CeremonyNotClosedError(ceremony.ceremony_id, ceremony.state.value, operation)
