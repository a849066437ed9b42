"""Queue change notification port.

Delivers the full queue snapshot to every subscriber of a circuit after
each committed change. Delivery is at-least-once and unordered across
commits; subscribers recompute from the snapshot they receive and use
the queue version to discard stale ones.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Protocol
from uuid import UUID

from ceremony_scheduler.domain.models.circuit_queue import CircuitQueue

QueueChangeCallback = Callable[[CircuitQueue], Awaitable[None] | None]


class QueueNotifierProtocol(Protocol):
    """Protocol for the change-subscription channel."""

    def subscribe(self, circuit_id: str, callback: QueueChangeCallback) -> UUID:
        """Register a callback for a circuit's queue changes.

        Returns:
            Subscription ID used to unsubscribe.
        """
        ...

    def unsubscribe(self, subscription_id: UUID) -> bool:
        """Remove a subscription. Returns False if it was unknown."""
        ...

    async def publish(self, queue: CircuitQueue) -> int:
        """Deliver a committed snapshot to the circuit's subscribers.

        Returns:
            Number of subscribers the snapshot was delivered to.
        """
        ...
