"""Unit tests for TimeoutMonitorService."""

import asyncio
from datetime import timedelta

import pytest

from ceremony_scheduler.application.services.timeout_monitor_service import (
    TimeoutMonitorService,
)
from ceremony_scheduler.bootstrap.container import SchedulerContainer
from ceremony_scheduler.config.scheduler_config import TEST_SCHEDULER_CONFIG
from ceremony_scheduler.domain.errors.ceremony import CeremonyNotFoundError
from ceremony_scheduler.domain.errors.queue import AlreadyAdvancedError
from ceremony_scheduler.domain.models.ceremony import (
    Ceremony,
    CeremonyState,
    TimeoutPolicy,
    TimeoutPolicyType,
)
from ceremony_scheduler.domain.models.participant import ParticipantStatus
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause
from tests.helpers.ceremony_factory import (
    enqueue,
    make_ceremony,
    make_circuits,
    open_ceremony,
)
from tests.helpers.fake_time_authority import FakeTimeAuthority

CEREMONY = "ceremony-1"
CIRCUIT = "circuit-1"
ONE_HOUR = timedelta(hours=1)


class TestCheckCircuit:
    """Tests for check_circuit."""

    async def test_holder_within_window_is_kept(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        fake_time_authority.advance(delta=ONE_HOUR)

        record = await scheduler.monitor.check_circuit(
            opened_ceremony, opened_ceremony.circuit(CIRCUIT)
        )

        assert record is None
        assert (await scheduler.ledger.read_queue(CIRCUIT)).current_contributor == "alice"

    async def test_overrun_holder_is_evicted(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))

        record = await scheduler.monitor.check_circuit(
            opened_ceremony, opened_ceremony.circuit(CIRCUIT)
        )

        assert record is not None
        assert record.cause == TimeoutCause.BLOCKING_CONTRIBUTION
        assert record.ends_at - record.started_at == timedelta(seconds=600)
        queue = await scheduler.ledger.read_queue(CIRCUIT)
        assert queue.current_contributor == "bob"
        assert queue.failed_contributions == 1

    async def test_empty_queue_is_skipped(
        self, scheduler: SchedulerContainer, opened_ceremony: Ceremony
    ) -> None:
        assert (
            await scheduler.monitor.check_circuit(
                opened_ceremony, opened_ceremony.circuit(CIRCUIT)
            )
            is None
        )

    async def test_verifying_holder_uses_verification_window(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice")
        for _ in range(3):
            await scheduler.coordinator.progress_contribution_step(CEREMONY, CIRCUIT, "alice")
        fake_time_authority.advance(delta=scheduler.config.verification_window)
        assert (
            await scheduler.monitor.check_circuit(
                opened_ceremony, opened_ceremony.circuit(CIRCUIT)
            )
            is None
        )

        fake_time_authority.advance(seconds=1)
        record = await scheduler.monitor.check_circuit(
            opened_ceremony, opened_ceremony.circuit(CIRCUIT)
        )
        assert record is not None
        assert record.cause == TimeoutCause.BLOCKING_VERIFICATION

    async def test_dynamic_policy_uses_average(
        self,
        scheduler: SchedulerContainer,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        ceremony = await open_ceremony(
            scheduler,
            make_ceremony(timeout_policy=TimeoutPolicy(policy_type=TimeoutPolicyType.DYNAMIC)),
        )
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        await scheduler.coordinator.report_outcome(CEREMONY, CIRCUIT, "alice", 100_000, 10_000, True)

        fake_time_authority.advance(seconds=200)
        assert await scheduler.monitor.check_circuit(ceremony, ceremony.circuit(CIRCUIT)) is None

        fake_time_authority.advance(seconds=1)
        record = await scheduler.monitor.check_circuit(ceremony, ceremony.circuit(CIRCUIT))
        assert record is not None
        assert record.participant_id == "bob"


class TestSweep:
    """Tests for sweep and run."""

    async def test_sweep_covers_every_circuit(
        self,
        scheduler: SchedulerContainer,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await open_ceremony(scheduler, make_ceremony(circuits=make_circuits(2)))
        await enqueue(scheduler, CEREMONY, "circuit-1", "alice")
        await enqueue(scheduler, CEREMONY, "circuit-2", "bob")
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))

        records = await scheduler.monitor.sweep()

        assert sorted(r.participant_id for r in records) == ["alice", "bob"]
        for participant_id in ("alice", "bob"):
            participant = await scheduler.ledger.get_participant(CEREMONY, participant_id)
            assert participant is not None
            assert participant.status == ParticipantStatus.TIMED_OUT

    async def test_sweep_draining_last_queue_closes_ceremony(
        self,
        scheduler: SchedulerContainer,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await open_ceremony(
            scheduler, make_ceremony(circuits=make_circuits(1, expected_contributions=1))
        )
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        await scheduler.coordinator.report_outcome(CEREMONY, CIRCUIT, "alice", 1, 1, True)
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))

        records = await scheduler.monitor.sweep()

        assert [r.participant_id for r in records] == ["bob"]
        ceremony = await scheduler.lifecycle.require_ceremony(CEREMONY)
        assert ceremony.state == CeremonyState.CLOSED

    async def test_sweep_evicts_stalled_holder_of_closed_ceremony(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        """A holder still in flight at close cannot keep the circuit forever."""
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice")
        await scheduler.lifecycle.transition(CEREMONY, CeremonyState.CLOSED, "manual")
        fake_time_authority.advance(delta=ONE_HOUR * 2)

        records = await scheduler.monitor.sweep()

        assert [r.participant_id for r in records] == ["alice"]
        assert (await scheduler.ledger.read_queue(CIRCUIT)).is_empty

    async def test_sweep_skips_scheduled_ceremonies(
        self,
        scheduler: SchedulerContainer,
        fake_time_authority: FakeTimeAuthority,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await scheduler.lifecycle.schedule_ceremony(
            make_ceremony(start=fake_time_authority.now() + ONE_HOUR)
        )
        checked: list[str] = []

        async def record_check(ceremony: Ceremony, circuit: object) -> None:
            checked.append(ceremony.ceremony_id)

        monkeypatch.setattr(scheduler.monitor, "check_circuit", record_check)
        assert await scheduler.monitor.sweep() == []
        assert checked == []

    async def test_sweep_survives_exhausted_write_retries(
        self,
        scheduler: SchedulerContainer,
        fake_time_authority: FakeTimeAuthority,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A circuit whose eviction keeps losing races does not stop the others."""
        await open_ceremony(scheduler, make_ceremony(circuits=make_circuits(2)))
        await enqueue(scheduler, CEREMONY, "circuit-1", "alice")
        await enqueue(scheduler, CEREMONY, "circuit-2", "bob")
        fake_time_authority.advance(delta=ONE_HOUR * 2)
        write = scheduler.ledger.write_queue_if_unchanged

        async def circuit_1_always_conflicts(circuit_id: str, *args: object) -> bool:
            if circuit_id == "circuit-1":
                return False
            return await write(circuit_id, *args)  # type: ignore[arg-type]

        monkeypatch.setattr(
            scheduler.ledger, "write_queue_if_unchanged", circuit_1_always_conflicts
        )

        records = await scheduler.monitor.sweep()

        assert [r.participant_id for r in records] == ["bob"]
        assert (await scheduler.ledger.read_queue("circuit-1")).current_contributor == "alice"

    async def test_sweep_survives_failing_after_eviction_hook(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        async def missing_ceremony(ceremony_id: str) -> None:
            raise CeremonyNotFoundError(ceremony_id)

        monitor = TimeoutMonitorService(
            ceremonies=scheduler.ceremonies,
            ledger=scheduler.ledger,
            participants=scheduler.ledger,
            ledger_service=scheduler.ledger_service,
            time_authority=fake_time_authority,
            config=TEST_SCHEDULER_CONFIG,
            after_eviction=missing_ceremony,
        )
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice")
        fake_time_authority.advance(delta=ONE_HOUR * 2)

        records = await monitor.sweep()

        assert [r.participant_id for r in records] == ["alice"]

    async def test_sweep_tolerates_superseded_eviction(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The holder reporting between detection and eviction is not an error."""
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))

        original_evict = scheduler.ledger_service.evict

        async def report_first(*args: object, **kwargs: object) -> object:
            await scheduler.gateway.report_outcome(CEREMONY, CIRCUIT, "alice", 1000, 100, True)
            return await original_evict(*args, **kwargs)  # type: ignore[arg-type]

        monkeypatch.setattr(scheduler.ledger_service, "evict", report_first)

        assert await scheduler.monitor.sweep() == []
        queue = await scheduler.ledger.read_queue(CIRCUIT)
        assert queue.current_contributor == "bob"
        assert queue.completed_contributions == 1
        assert queue.failed_contributions == 0

    async def test_check_circuit_surfaces_superseded_eviction(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice", "bob")
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))
        original_evict = scheduler.ledger_service.evict

        async def report_first(*args: object, **kwargs: object) -> object:
            await scheduler.gateway.report_outcome(CEREMONY, CIRCUIT, "alice", 1000, 100, True)
            return await original_evict(*args, **kwargs)  # type: ignore[arg-type]

        monkeypatch.setattr(scheduler.ledger_service, "evict", report_first)

        with pytest.raises(AlreadyAdvancedError):
            await scheduler.monitor.check_circuit(
                opened_ceremony, opened_ceremony.circuit(CIRCUIT)
            )

    async def test_run_sweeps_until_stopped(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice")
        fake_time_authority.advance(delta=ONE_HOUR + timedelta(seconds=1))
        stop = asyncio.Event()

        task = asyncio.create_task(scheduler.monitor.run(stop))
        for _ in range(50):
            if (await scheduler.ledger.read_queue(CIRCUIT)).is_empty:
                break
            await asyncio.sleep(0)
        stop.set()
        await asyncio.wait_for(task, timeout=5)

        assert (await scheduler.ledger.read_queue(CIRCUIT)).is_empty

    async def test_run_keeps_sweeping_while_writes_conflict(
        self,
        scheduler: SchedulerContainer,
        opened_ceremony: Ceremony,
        fake_time_authority: FakeTimeAuthority,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await enqueue(scheduler, CEREMONY, CIRCUIT, "alice")
        fake_time_authority.advance(delta=ONE_HOUR * 2)
        attempts: list[str] = []

        async def always_conflict(circuit_id: str, *args: object) -> bool:
            attempts.append(circuit_id)
            return False

        monkeypatch.setattr(scheduler.ledger, "write_queue_if_unchanged", always_conflict)
        stop = asyncio.Event()

        task = asyncio.create_task(scheduler.monitor.run(stop))
        for _ in range(100):
            if len(attempts) >= TEST_SCHEDULER_CONFIG.max_write_attempts:
                break
            await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert len(attempts) == TEST_SCHEDULER_CONFIG.max_write_attempts
        assert not task.done()
        stop.set()
        await asyncio.wait_for(task, timeout=5)

    async def test_run_survives_failed_sweep(
        self,
        scheduler: SchedulerContainer,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        sweeps: list[int] = []

        async def failing_sweep() -> list[object]:
            sweeps.append(1)
            raise CeremonyNotFoundError("ceremony-9")

        monkeypatch.setattr(scheduler.monitor, "sweep", failing_sweep)
        stop = asyncio.Event()

        task = asyncio.create_task(scheduler.monitor.run(stop))
        for _ in range(10):
            if sweeps:
                break
            await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert sweeps == [1]
        assert not task.done()
        stop.set()
        await asyncio.wait_for(task, timeout=5)
