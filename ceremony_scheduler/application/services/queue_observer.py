"""Queue observation for waiting participants.

Participants are not polled. Each one subscribes to its circuit's queue
changes and recomputes its position and estimated wait from every
delivered snapshot. Snapshots can arrive twice or out of order, so the
observer always recomputes from the full snapshot and ignores snapshots
older than the last version it has seen.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from uuid import UUID

from ceremony_scheduler.application.dtos.scheduler import QueueObservation
from ceremony_scheduler.application.ports.queue_notifier import QueueNotifierProtocol
from ceremony_scheduler.application.services.base import LoggingMixin
from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue
from ceremony_scheduler.domain.services.timing_estimator import estimate_wait_seconds

ObservationCallback = Callable[[QueueObservation], Awaitable[None] | None]


def build_observation(queue: CircuitQueue, participant_id: str) -> QueueObservation:
    """Compute a participant's view of a queue snapshot."""
    position = queue.position_of(participant_id)
    return QueueObservation(
        circuit_id=queue.circuit_id,
        participant_id=participant_id,
        position=position,
        is_current=queue.current_contributor == participant_id,
        estimated_wait_seconds=(
            estimate_wait_seconds(queue.avg_timings, position) if position else None
        ),
        current_contributor=queue.current_contributor,
        waiting_contributors=queue.waiting_contributors,
        completed_contributions=queue.completed_contributions,
        failed_contributions=queue.failed_contributions,
        queue_version=queue.version,
    )


class QueueObserver(LoggingMixin):
    """Keeps one participant's observation of one circuit up to date.

    Attributes:
        circuit_id: The observed circuit.
        participant_id: The observing participant.
    """

    def __init__(
        self,
        notifier: QueueNotifierProtocol,
        circuit_id: str,
        participant_id: str,
        callback: ObservationCallback | None = None,
    ) -> None:
        self._notifier = notifier
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        self._callback = callback
        self._subscription_id: UUID | None = None
        self._latest: QueueObservation | None = None
        self._init_logger(component="observer")

    @property
    def latest(self) -> QueueObservation | None:
        return self._latest

    @property
    def is_active(self) -> bool:
        return self._subscription_id is not None

    def start(self) -> None:
        if self._subscription_id is None:
            self._subscription_id = self._notifier.subscribe(self.circuit_id, self.deliver)

    def stop(self) -> None:
        if self._subscription_id is not None:
            self._notifier.unsubscribe(self._subscription_id)
            self._subscription_id = None

    async def deliver(self, queue: CircuitQueue) -> QueueObservation | None:
        """Recompute the observation from a delivered snapshot.

        Returns:
            The new observation, or None if the snapshot was stale.
        """
        if queue.circuit_id != self.circuit_id:
            raise ValueError(
                f"Observer of {self.circuit_id} received a snapshot of {queue.circuit_id}"
            )
        if self._latest is not None and queue.version < self._latest.queue_version:
            self._log.debug(
                "stale_snapshot_ignored",
                circuit_id=self.circuit_id,
                participant_id=self.participant_id,
                version=queue.version,
                latest_version=self._latest.queue_version,
            )
            return None

        observation = build_observation(queue, self.participant_id)
        self._latest = observation
        if self._callback is not None:
            result = self._callback(observation)
            if inspect.isawaitable(result):
                await result
        return observation
