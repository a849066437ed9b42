"""In-process change-subscription hub for circuit queues."""

from __future__ import annotations

import inspect
from collections import deque
from uuid import UUID

import structlog
from uuid6 import uuid7

from ceremony_scheduler.application.ports.queue_notifier import (
    QueueChangeCallback,
    QueueNotifierProtocol,
)
from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue

log = structlog.get_logger()

# Recent snapshots kept for inspection
DEFAULT_HISTORY_SIZE = 100


class QueueNotifierStub(QueueNotifierProtocol):
    """Delivers committed queue snapshots to in-process subscribers.

    A failing subscriber is logged and skipped; it never blocks delivery
    to the others or fails the commit that triggered the notification.

    Attributes:
        published: The most recent snapshots published, oldest first,
            bounded by history_size.
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if history_size < 0:
            raise ValueError(f"history_size must be >= 0, got {history_size}")
        self._subscriptions: dict[UUID, tuple[str, QueueChangeCallback]] = {}
        self.published: deque[CircuitQueue] = deque(maxlen=history_size)

    def subscribe(self, circuit_id: str, callback: QueueChangeCallback) -> UUID:
        subscription_id = uuid7()
        self._subscriptions[subscription_id] = (circuit_id, callback)
        log.debug(
            "queue_subscription_added",
            subscription_id=str(subscription_id),
            circuit_id=circuit_id,
        )
        return subscription_id

    def unsubscribe(self, subscription_id: UUID) -> bool:
        removed = self._subscriptions.pop(subscription_id, None)
        if removed is not None:
            log.debug("queue_subscription_removed", subscription_id=str(subscription_id))
        return removed is not None

    def subscriber_count(self, circuit_id: str) -> int:
        return sum(1 for cid, _ in self._subscriptions.values() if cid == circuit_id)

    async def publish(self, queue: CircuitQueue) -> int:
        """Deliver a snapshot to every subscriber of its circuit.

        Returns:
            Number of subscribers that accepted the snapshot.
        """
        self.published.append(queue)
        delivered = 0
        for subscription_id, (circuit_id, callback) in list(self._subscriptions.items()):
            if circuit_id != queue.circuit_id:
                continue
            try:
                result = callback(queue)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                log.warning(
                    "queue_notification_failed",
                    subscription_id=str(subscription_id),
                    circuit_id=queue.circuit_id,
                    version=queue.version,
                    error=str(e),
                )
        return delivered
