"""Contribution verifier gateway.

Accepts the result of the opaque contribution/verification computation
and commits it, atomically with the queue advance:

- the contribution record, indexed at the circuit's completed count
- the refreshed running averages and completed count (valid outcomes)
- the failed count (invalid outcomes, which do not consume an index)
- the reporter's CONTRIBUTED status and the promotion of the next holder

This is the only path that advances completed_contributions.
"""

from __future__ import annotations

from collections.abc import Sequence

from uuid6 import uuid7

from ceremony_scheduler.application.ports.ceremony_repository import (
    CeremonyRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_ledger import LedgerBatch
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.application.services.queue_ledger_service import (
    LedgerMutation,
    QueueLedgerService,
)
from ceremony_scheduler.domain.errors.ceremony import (
    CeremonyNotFoundError,
    StateMismatchError,
)
from ceremony_scheduler.domain.errors.queue import NotCurrentContributorError
from ceremony_scheduler.domain.models.ceremony import CeremonyState
from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue
from ceremony_scheduler.domain.models.contribution import (
    ArtifactReference,
    ContributionRecord,
)
from ceremony_scheduler.domain.services.timing_estimator import updated_averages
from ceremony_scheduler.infrastructure.monitoring.scheduler_metrics import (
    SchedulerMetrics,
)

# The in-flight contributor may still report after the ceremony closed.
REPORTABLE_STATES = frozenset({CeremonyState.OPENED, CeremonyState.CLOSED})


class ContributionVerifierGateway(LoggingMixin):
    """Records verification outcomes and releases the contribution slot."""

    def __init__(
        self,
        ceremonies: CeremonyRepositoryProtocol,
        ledger_service: QueueLedgerService,
        time_authority: TimeAuthorityProtocol,
        metrics: SchedulerMetrics | None = None,
    ) -> None:
        self._ceremonies = ceremonies
        self._ledger_service = ledger_service
        self._time = time_authority
        self._metrics = metrics
        self._init_logger()

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
        """Record a contribution outcome and advance the queue.

        Args:
            ceremony_id: Ceremony the circuit belongs to.
            circuit_id: Circuit that was contributed to.
            participant_id: The reporter; must hold the slot.
            contribution_time_ms: Reported computation time.
            verification_time_ms: Reported verification time.
            valid: Verifier verdict.
            artifacts: References to the uploaded artifacts.

        Returns:
            The committed contribution record.

        Raises:
            ValueError: If a reported timing is negative.
            CeremonyNotFoundError: If the ceremony does not exist.
            CircuitNotFoundError: If the circuit is not part of the ceremony.
            StateMismatchError: If the ceremony is neither opened nor closed.
            NotCurrentContributorError: If the reporter does not hold the slot,
                e.g. a retried report after an eviction.
            ConflictRetryExhaustedError: If the write kept losing races.
        """
        if contribution_time_ms < 0 or verification_time_ms < 0:
            raise ValueError("Reported timings cannot be negative")

        log = self._log_operation(
            "report_outcome",
            ceremony_id=ceremony_id,
            circuit_id=circuit_id,
            participant_id=participant_id,
        )

        ceremony = await self._ceremonies.get(ceremony_id)
        if ceremony is None:
            raise CeremonyNotFoundError(ceremony_id)
        ceremony.circuit(circuit_id)
        if ceremony.state not in REPORTABLE_STATES:
            raise StateMismatchError(
                subject=f"ceremony {ceremony_id}",
                current_state=ceremony.state.value,
                expected_states=sorted(s.value for s in REPORTABLE_STATES),
                operation="report a contribution outcome",
            )

        artifact_refs = tuple(artifacts)

        async def plan(queue: CircuitQueue) -> LedgerMutation[ContributionRecord]:
            now = self._time.now()
            if queue.current_contributor != participant_id:
                raise NotCurrentContributorError(
                    circuit_id, participant_id, queue.current_contributor
                )
            participant = await self._ledger_service.require_participant(
                ceremony_id, participant_id
            )
            record = ContributionRecord(
                record_id=uuid7(),
                ceremony_id=ceremony_id,
                circuit_id=circuit_id,
                participant_id=participant_id,
                zkey_index=queue.completed_contributions,
                contribution_time_ms=contribution_time_ms,
                verification_time_ms=verification_time_ms,
                valid=valid,
                created_at=now,
                artifacts=artifact_refs,
            )
            if valid:
                scored = queue.with_valid_contribution(
                    updated_averages(
                        queue.avg_timings,
                        contribution_time_ms,
                        verification_time_ms,
                        queue.completed_contributions + 1,
                    ),
                    now,
                )
            else:
                scored = queue.with_failed_contribution(now)

            released, updates = await self._ledger_service.release_head(
                ceremony_id, scored, participant.contributed(now), now
            )
            return LedgerMutation(
                queue=released,
                batch=LedgerBatch(participants=updates, contribution=record),
                result=record,
                promoted=released.current_contributor,
            )

        record = await self._ledger_service.commit(circuit_id, "report_outcome", plan)

        if self._metrics is not None:
            self._metrics.record_outcome(circuit_id, valid)
        log.info(
            "contribution_outcome_recorded",
            valid=valid,
            zkey_index=record.zkey_label,
            contribution_time_ms=contribution_time_ms,
            verification_time_ms=verification_time_ms,
        )
        return record
