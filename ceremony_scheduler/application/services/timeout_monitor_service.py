"""Timeout monitor service.

Periodically checks the slot holder of every circuit of every opened or
closed ceremony against the ceremony's timeout policy. A closed ceremony
is still checked so that a holder in flight at the end date cannot keep
its circuit from being finalized.

Checks are read-only; an overrun holder is evicted through the same
atomic ledger path as any other mutation, so an eviction racing a
verification outcome has exactly one winner.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

from ceremony_scheduler.application.ports.ceremony_repository import (
    CeremonyRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_ledger import (
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
)
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.application.services.queue_ledger_service import (
    QueueLedgerService,
)
from ceremony_scheduler.config.scheduler_config import (
    DEFAULT_SCHEDULER_CONFIG,
    SchedulerConfig,
)
from ceremony_scheduler.domain.errors.queue import AlreadyAdvancedError
from ceremony_scheduler.domain.exceptions import SchedulerError
from ceremony_scheduler.domain.models.ceremony import Ceremony, CeremonyState, Circuit
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause, TimeoutRecord
from ceremony_scheduler.domain.services.timeout_policy import detect_timeout

# Ceremonies whose slot holders are checked
MONITORED_STATES = (CeremonyState.OPENED, CeremonyState.CLOSED)


class TimeoutMonitorService(LoggingMixin):
    """Detects and evicts stalled slot holders.

    After a sweep evicts anyone in a ceremony, the optional after_eviction
    hook is awaited with that ceremony id. The container wires it to
    close the ceremony early once its last queue has drained.
    """

    def __init__(
        self,
        ceremonies: CeremonyRepositoryProtocol,
        ledger: QueueLedgerProtocol,
        participants: ParticipantRepositoryProtocol,
        ledger_service: QueueLedgerService,
        time_authority: TimeAuthorityProtocol,
        config: SchedulerConfig = DEFAULT_SCHEDULER_CONFIG,
        after_eviction: Callable[[str], Awaitable[object]] | None = None,
    ) -> None:
        self._ceremonies = ceremonies
        self._ledger = ledger
        self._participants = participants
        self._ledger_service = ledger_service
        self._time = time_authority
        self._config = config
        self._after_eviction = after_eviction
        self._init_logger()

    async def check_circuit(
        self, ceremony: Ceremony, circuit: Circuit
    ) -> TimeoutRecord | None:
        """Evict the slot holder of one circuit if it overran its window.

        Args:
            ceremony: The ceremony (supplies the timeout policy).
            circuit: The circuit to check.

        Returns:
            The timeout record if a holder was evicted, None otherwise.

        Raises:
            AlreadyAdvancedError: If the holder left the slot between the
                check and the eviction.
        """
        queue = await self._ledger.read_queue(circuit.circuit_id)
        holder = queue.current_contributor
        if holder is None:
            return None

        participant = await self._participants.get_participant(ceremony.ceremony_id, holder)
        if participant is None:
            self._log.warning(
                "slot_holder_not_registered",
                ceremony_id=ceremony.ceremony_id,
                circuit_id=circuit.circuit_id,
                participant_id=holder,
            )
            return None

        now = self._time.now()
        cause = detect_timeout(
            participant,
            ceremony.timeout_policy,
            queue.avg_timings,
            now,
            self._config.verification_window,
        )
        if cause is None:
            return None

        self._log_operation(
            "check_circuit",
            ceremony_id=ceremony.ceremony_id,
            circuit_id=circuit.circuit_id,
            participant_id=holder,
        ).info("slot_holder_overran_window", cause=cause.value)
        return await self.evict(ceremony, circuit.circuit_id, holder, cause)

    async def evict(
        self,
        ceremony: Ceremony,
        circuit_id: str,
        participant_id: str,
        cause: TimeoutCause,
    ) -> TimeoutRecord:
        """Evict a slot holder with the ceremony's cooldown."""
        return await self._ledger_service.evict(
            ceremony.ceremony_id,
            circuit_id,
            participant_id,
            cause,
            timedelta(seconds=ceremony.timeout_policy.cooldown_seconds),
        )

    async def sweep(self) -> list[TimeoutRecord]:
        """Check every circuit of every opened or closed ceremony once.

        A circuit whose holder left the slot while being checked is skipped.
        Any other scheduler error ends the check of that circuit only; it is
        logged and the sweep moves on.

        Returns:
            The timeout records of the evictions performed.
        """
        evicted: list[TimeoutRecord] = []
        for state in MONITORED_STATES:
            for ceremony in await self._ceremonies.list_by_state(state):
                evicted.extend(await self._sweep_ceremony(ceremony))
        if evicted:
            self._log.info("timeout_sweep_completed", evicted=len(evicted))
        return evicted

    async def _sweep_ceremony(self, ceremony: Ceremony) -> list[TimeoutRecord]:
        evicted: list[TimeoutRecord] = []
        for circuit in ceremony.circuits:
            try:
                record = await self.check_circuit(ceremony, circuit)
            except AlreadyAdvancedError as e:
                self._log.info(
                    "eviction_superseded",
                    ceremony_id=ceremony.ceremony_id,
                    circuit_id=circuit.circuit_id,
                    participant_id=e.participant_id,
                    current_contributor=e.current_contributor,
                )
                continue
            except SchedulerError as e:
                self._log.error(
                    "timeout_check_failed",
                    ceremony_id=ceremony.ceremony_id,
                    circuit_id=circuit.circuit_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            if record is not None:
                evicted.append(record)

        if evicted and self._after_eviction is not None:
            try:
                await self._after_eviction(ceremony.ceremony_id)
            except SchedulerError as e:
                self._log.error(
                    "after_eviction_failed",
                    ceremony_id=ceremony.ceremony_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return evicted

    async def run(self, stop_event: asyncio.Event) -> None:
        """Sweep on the configured interval until stop_event is set.

        A failed sweep is logged and the loop waits for the next interval.
        """
        interval = self._config.monitor_poll_interval_seconds
        self._log.info("timeout_monitor_started", poll_interval_seconds=interval)
        while not stop_event.is_set():
            try:
                await self.sweep()
            except SchedulerError as e:
                self._log.error(
                    "timeout_sweep_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                )
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
        self._log.info("timeout_monitor_stopped")
