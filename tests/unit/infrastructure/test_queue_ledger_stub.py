"""Unit tests for the in-memory queue ledger.

Covers versioned conditional writes, atomic batches and the
dependent record repositories.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest
from uuid6 import uuid7

from ceremony_scheduler.application.ports.queue_ledger import LedgerBatch
from ceremony_scheduler.domain.errors.ceremony import CircuitNotFoundError
from ceremony_scheduler.domain.errors.queue import AlreadyContributedError
from ceremony_scheduler.domain.models.contribution import (
    CircuitFinalization,
    ContributionRecord,
)
from ceremony_scheduler.domain.models.participant import Participant
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause, TimeoutRecord
from ceremony_scheduler.infrastructure.stubs.queue_ledger_stub import QueueLedgerStub
from ceremony_scheduler.infrastructure.stubs.queue_notifier_stub import (
    QueueNotifierStub,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(participant_id: str, index: int = 0) -> ContributionRecord:
    return ContributionRecord(
        record_id=uuid7(),
        ceremony_id="ceremony-1",
        circuit_id="circuit-1",
        participant_id=participant_id,
        zkey_index=index,
        contribution_time_ms=1000,
        verification_time_ms=100,
        valid=True,
        created_at=NOW,
    )


def _timeout(started_at: datetime) -> TimeoutRecord:
    return TimeoutRecord(
        timeout_id=uuid7(),
        ceremony_id="ceremony-1",
        circuit_id="circuit-1",
        participant_id="alice",
        cause=TimeoutCause.BLOCKING_CONTRIBUTION,
        started_at=started_at,
        ends_at=started_at + timedelta(minutes=10),
    )


@pytest.fixture
def notifier() -> QueueNotifierStub:
    return QueueNotifierStub()


@pytest.fixture
async def ledger(notifier: QueueNotifierStub) -> QueueLedgerStub:
    stub = QueueLedgerStub(notifier=notifier)
    await stub.initialize_queue("circuit-1")
    return stub


class TestQueueVersioning:
    """Tests for conditional writes."""

    async def test_initialized_queue_is_empty_at_version_zero(
        self, ledger: QueueLedgerStub
    ) -> None:
        queue = await ledger.read_queue("circuit-1")
        assert queue.is_empty
        assert queue.version == 0

    async def test_initialize_is_idempotent(self, ledger: QueueLedgerStub) -> None:
        queue = await ledger.read_queue("circuit-1")
        joined = queue.with_contributor_joined("alice", NOW)
        await ledger.write_queue_if_unchanged("circuit-1", 0, joined)
        again = await ledger.initialize_queue("circuit-1")
        assert again.contributors == ("alice",)

    async def test_unknown_circuit_raises(self, ledger: QueueLedgerStub) -> None:
        with pytest.raises(CircuitNotFoundError):
            await ledger.read_queue("circuit-9")

    async def test_write_increments_version(self, ledger: QueueLedgerStub) -> None:
        queue = await ledger.read_queue("circuit-1")
        joined = queue.with_contributor_joined("alice", NOW)
        assert await ledger.write_queue_if_unchanged("circuit-1", 0, joined) is True
        stored = await ledger.read_queue("circuit-1")
        assert stored.version == 1
        assert stored.current_contributor == "alice"
        assert ledger.commit_count == 1

    async def test_stale_write_rejected(self, ledger: QueueLedgerStub) -> None:
        """The second writer from the same snapshot loses."""
        snapshot = await ledger.read_queue("circuit-1")
        assert await ledger.write_queue_if_unchanged(
            "circuit-1", 0, snapshot.with_contributor_joined("alice", NOW)
        )
        assert not await ledger.write_queue_if_unchanged(
            "circuit-1", 0, snapshot.with_contributor_joined("bob", NOW)
        )
        stored = await ledger.read_queue("circuit-1")
        assert stored.contributors == ("alice",)
        assert ledger.conflict_count == 1

    async def test_mismatched_circuit_rejected(self, ledger: QueueLedgerStub) -> None:
        await ledger.initialize_queue("circuit-2")
        other = await ledger.read_queue("circuit-2")
        with pytest.raises(ValueError):
            await ledger.write_queue_if_unchanged("circuit-1", 0, other)

    async def test_commit_publishes_snapshot(
        self, ledger: QueueLedgerStub, notifier: QueueNotifierStub
    ) -> None:
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged(
            "circuit-1", 0, queue.with_contributor_joined("alice", NOW)
        )
        assert [q.version for q in notifier.published] == [1]

    async def test_rejected_write_publishes_nothing(
        self, ledger: QueueLedgerStub, notifier: QueueNotifierStub
    ) -> None:
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged("circuit-1", 3, queue)
        assert list(notifier.published) == []


class TestLedgerBatch:
    """Tests for records committed with the queue."""

    async def test_batch_commits_with_queue(self, ledger: QueueLedgerStub) -> None:
        participant = Participant(ceremony_id="ceremony-1", participant_id="alice")
        record = _record("alice")
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged(
            "circuit-1",
            0,
            queue.touched(NOW),
            LedgerBatch(participants=(participant,), contribution=record),
        )
        assert await ledger.get_participant("ceremony-1", "alice") == participant
        assert await ledger.get_contribution("circuit-1", "alice") == record

    async def test_rejected_write_discards_batch(self, ledger: QueueLedgerStub) -> None:
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged(
            "circuit-1", 5, queue, LedgerBatch(contribution=_record("alice"))
        )
        assert await ledger.list_contributions("circuit-1") == []

    async def test_duplicate_contribution_rejected(self, ledger: QueueLedgerStub) -> None:
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged(
            "circuit-1", 0, queue, LedgerBatch(contribution=_record("alice"))
        )
        queue = await ledger.read_queue("circuit-1")
        with pytest.raises(AlreadyContributedError):
            await ledger.write_queue_if_unchanged(
                "circuit-1", 1, queue, LedgerBatch(contribution=_record("alice", 1))
            )
        assert (await ledger.read_queue("circuit-1")).version == 1

    async def test_participant_claimed_by_other_queue_is_conflict(
        self, ledger: QueueLedgerStub
    ) -> None:
        """A join that lost the participant to another circuit does not commit."""
        await ledger.initialize_queue("circuit-2")
        alice = Participant(ceremony_id="ceremony-1", participant_id="alice")
        queue_2 = await ledger.read_queue("circuit-2")
        assert await ledger.write_queue_if_unchanged(
            "circuit-2",
            0,
            queue_2.with_contributor_joined("alice", NOW),
            LedgerBatch(participants=(alice.queued("circuit-2", 2, NOW),)),
        )

        queue_1 = await ledger.read_queue("circuit-1")
        committed = await ledger.write_queue_if_unchanged(
            "circuit-1",
            0,
            queue_1.with_contributor_joined("alice", NOW),
            LedgerBatch(participants=(alice.queued("circuit-1", 1, NOW),)),
        )

        assert not committed
        assert ledger.conflict_count == 1
        assert (await ledger.read_queue("circuit-1")).is_empty
        stored = await ledger.get_participant("ceremony-1", "alice")
        assert stored is not None
        assert stored.queued_circuit_id == "circuit-2"

    async def test_rewriting_own_queue_is_not_a_conflict(
        self, ledger: QueueLedgerStub
    ) -> None:
        alice = Participant(ceremony_id="ceremony-1", participant_id="alice").queued(
            "circuit-1", 1, NOW
        )
        queue = await ledger.read_queue("circuit-1")
        await ledger.write_queue_if_unchanged(
            "circuit-1",
            0,
            queue.with_contributor_joined("alice", NOW),
            LedgerBatch(participants=(alice,)),
        )

        queue = await ledger.read_queue("circuit-1")
        assert await ledger.write_queue_if_unchanged(
            "circuit-1",
            1,
            queue.touched(NOW),
            LedgerBatch(participants=(alice.promoted(NOW),)),
        )


class TestParticipantRepository:
    async def test_register_is_idempotent(self, ledger: QueueLedgerStub) -> None:
        first = Participant(ceremony_id="ceremony-1", participant_id="alice")
        stored = replace(first, contribution_progress=2)
        await ledger.save_participant(stored)
        assert await ledger.register(first) == stored

    async def test_unknown_participant(self, ledger: QueueLedgerStub) -> None:
        assert await ledger.get_participant("ceremony-1", "nobody") is None


class TestRecordRepositories:
    async def test_latest_timeout_is_most_recent(self, ledger: QueueLedgerStub) -> None:
        early, late = _timeout(NOW), _timeout(NOW + timedelta(hours=1))
        for record in (late, early):
            queue = await ledger.read_queue("circuit-1")
            await ledger.write_queue_if_unchanged(
                "circuit-1", queue.version, queue, LedgerBatch(timeout=record)
            )
        assert await ledger.latest_timeout("ceremony-1", "alice") == late
        assert len(await ledger.list_timeouts("ceremony-1", "alice")) == 2

    async def test_no_timeouts(self, ledger: QueueLedgerStub) -> None:
        assert await ledger.latest_timeout("ceremony-1", "alice") is None

    async def test_finalization_saved_once(self, ledger: QueueLedgerStub) -> None:
        finalization = CircuitFinalization(
            ceremony_id="ceremony-1",
            circuit_id="circuit-1",
            coordinator_id="coordinator",
            final_record_id=uuid7(),
            verification_key_hash="a" * 64,
            verifier_contract_hash="b" * 64,
            beacon="beacon",
            beacon_hash="c" * 64,
            finalized_at=NOW,
        )
        await ledger.save_finalization(finalization)
        assert await ledger.get_finalization("circuit-1") == finalization
        with pytest.raises(ValueError, match="already finalized"):
            await ledger.save_finalization(finalization)

    async def test_clear(self, ledger: QueueLedgerStub) -> None:
        ledger.clear()
        with pytest.raises(CircuitNotFoundError):
            await ledger.read_queue("circuit-1")
