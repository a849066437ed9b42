"""Unit tests for queue observation.

Observers recompute position and estimate from every snapshot and
ignore snapshots older than the latest one seen.
"""

import pytest

from ceremony_scheduler.application.dtos.scheduler import QueueObservation
from ceremony_scheduler.application.services.queue_observer import (
    QueueObserver,
    build_observation,
)
from ceremony_scheduler.domain.models.circuit_queue import AvgTimings, CircuitQueue
from ceremony_scheduler.infrastructure.stubs.queue_notifier_stub import (
    QueueNotifierStub,
)

AVG = AvgTimings(contribution_seconds=120.0, verification_seconds=30.0)


def _queue(*contributors: str, version: int = 1, avg: AvgTimings = AVG) -> CircuitQueue:
    return CircuitQueue(
        circuit_id="circuit-1",
        contributors=contributors,
        current_contributor=contributors[0] if contributors else None,
        avg_timings=avg,
        completed_contributions=1,
        version=version,
    )


class TestBuildObservation:
    """Tests for build_observation."""

    def test_waiting_participant(self) -> None:
        observation = build_observation(_queue("alice", "bob", "carol"), "carol")
        assert observation.position == 3
        assert observation.is_current is False
        assert observation.estimated_wait_seconds == 300
        assert observation.current_contributor == "alice"
        assert observation.waiting_contributors == 2

    def test_current_contributor(self) -> None:
        observation = build_observation(_queue("alice", "bob"), "alice")
        assert observation.position == 1
        assert observation.is_current is True
        assert observation.estimated_wait_seconds == 0

    def test_not_queued(self) -> None:
        observation = build_observation(_queue("alice"), "zed")
        assert observation.position is None
        assert observation.estimated_wait_seconds is None

    def test_cold_start_has_no_estimate(self) -> None:
        observation = build_observation(_queue("alice", "bob", avg=AvgTimings()), "bob")
        assert observation.position == 2
        assert observation.estimated_wait_seconds is None

    def test_observation_serializes(self) -> None:
        observation = build_observation(_queue("alice", "bob"), "bob")
        payload = observation.model_dump(mode="json")
        assert payload["position"] == 2
        assert payload["queue_version"] == 1
        assert QueueObservation.model_validate(payload) == observation


class TestQueueObserver:
    """Tests for QueueObserver."""

    async def test_receives_published_snapshots(self) -> None:
        notifier = QueueNotifierStub()
        seen: list[QueueObservation] = []
        observer = QueueObserver(notifier, "circuit-1", "bob", seen.append)
        observer.start()

        await notifier.publish(_queue("alice", "bob", version=1))
        await notifier.publish(_queue("bob", version=2))

        assert [o.position for o in seen] == [2, 1]
        assert observer.latest is not None and observer.latest.is_current

    async def test_stale_snapshot_ignored(self) -> None:
        observer = QueueObserver(QueueNotifierStub(), "circuit-1", "bob")
        await observer.deliver(_queue("bob", version=5))
        assert await observer.deliver(_queue("alice", "bob", version=4)) is None
        assert observer.latest is not None and observer.latest.queue_version == 5

    async def test_duplicate_snapshot_is_recomputed(self) -> None:
        observer = QueueObserver(QueueNotifierStub(), "circuit-1", "bob")
        first = await observer.deliver(_queue("alice", "bob", version=3))
        again = await observer.deliver(_queue("alice", "bob", version=3))
        assert first == again

    async def test_async_callback_awaited(self) -> None:
        seen: list[int | None] = []

        async def callback(observation: QueueObservation) -> None:
            seen.append(observation.position)

        observer = QueueObserver(QueueNotifierStub(), "circuit-1", "bob", callback)
        await observer.deliver(_queue("alice", "bob"))
        assert seen == [2]

    async def test_wrong_circuit_rejected(self) -> None:
        observer = QueueObserver(QueueNotifierStub(), "circuit-2", "bob")
        with pytest.raises(ValueError):
            await observer.deliver(_queue("bob"))

    async def test_stop_unsubscribes(self) -> None:
        notifier = QueueNotifierStub()
        observer = QueueObserver(notifier, "circuit-1", "bob")
        observer.start()
        observer.start()
        assert notifier.subscriber_count("circuit-1") == 1
        assert observer.is_active

        observer.stop()
        assert not observer.is_active
        assert notifier.subscriber_count("circuit-1") == 0
