"""In-memory scheduler wiring.

Builds the full scheduler stack on top of the in-memory ledger stubs:
one shared ledger (queues, participants, contributions, timeouts), a
ceremony repository, the change-subscription hub and every service.
"""

from __future__ import annotations

from dataclasses import dataclass

from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol
from ceremony_scheduler.application.services.ceremony_lifecycle_service import (
    CeremonyLifecycleService,
)
from ceremony_scheduler.application.services.contribution_verifier_gateway import (
    ContributionVerifierGateway,
)
from ceremony_scheduler.application.services.queue_ledger_service import (
    QueueLedgerService,
)
from ceremony_scheduler.application.services.scheduler_coordinator import (
    SchedulerCoordinator,
)
from ceremony_scheduler.application.services.time_authority_service import (
    TimeAuthorityService,
)
from ceremony_scheduler.application.services.timeout_monitor_service import (
    TimeoutMonitorService,
)
from ceremony_scheduler.config.scheduler_config import (
    DEFAULT_SCHEDULER_CONFIG,
    SchedulerConfig,
)
from ceremony_scheduler.infrastructure.monitoring.scheduler_metrics import (
    SchedulerMetrics,
)
from ceremony_scheduler.infrastructure.stubs.ceremony_repository_stub import (
    CeremonyRepositoryStub,
)
from ceremony_scheduler.infrastructure.stubs.queue_ledger_stub import QueueLedgerStub
from ceremony_scheduler.infrastructure.stubs.queue_notifier_stub import (
    QueueNotifierStub,
)


@dataclass(frozen=True)
class SchedulerContainer:
    """Every wired component of an in-memory scheduler."""

    time_authority: TimeAuthorityProtocol
    config: SchedulerConfig
    metrics: SchedulerMetrics
    notifier: QueueNotifierStub
    ledger: QueueLedgerStub
    ceremonies: CeremonyRepositoryStub
    ledger_service: QueueLedgerService
    gateway: ContributionVerifierGateway
    monitor: TimeoutMonitorService
    lifecycle: CeremonyLifecycleService
    coordinator: SchedulerCoordinator


def build_in_memory_scheduler(
    time_authority: TimeAuthorityProtocol | None = None,
    config: SchedulerConfig | None = None,
    metrics: SchedulerMetrics | None = None,
) -> SchedulerContainer:
    """Wire a scheduler on in-memory storage.

    Args:
        time_authority: Clock; defaults to the system clock.
        config: Scheduler config; defaults to DEFAULT_SCHEDULER_CONFIG.
        metrics: Metrics; defaults to a fresh registry.

    Returns:
        The wired container.
    """
    time_authority = time_authority or TimeAuthorityService()
    config = config or DEFAULT_SCHEDULER_CONFIG
    metrics = metrics or SchedulerMetrics()

    notifier = QueueNotifierStub()
    ledger = QueueLedgerStub(notifier=notifier)
    ceremonies = CeremonyRepositoryStub()

    ledger_service = QueueLedgerService(
        ledger=ledger,
        participants=ledger,
        contributions=ledger,
        timeouts=ledger,
        time_authority=time_authority,
        config=config,
        metrics=metrics,
    )
    gateway = ContributionVerifierGateway(
        ceremonies=ceremonies,
        ledger_service=ledger_service,
        time_authority=time_authority,
        metrics=metrics,
    )
    lifecycle = CeremonyLifecycleService(
        ceremonies=ceremonies,
        ledger=ledger,
        participants=ledger,
        contributions=ledger,
        ledger_service=ledger_service,
        time_authority=time_authority,
    )
    monitor = TimeoutMonitorService(
        ceremonies=ceremonies,
        ledger=ledger,
        participants=ledger,
        ledger_service=ledger_service,
        time_authority=time_authority,
        config=config,
        after_eviction=lifecycle.close_if_complete,
    )
    coordinator = SchedulerCoordinator(
        lifecycle=lifecycle,
        ledger_service=ledger_service,
        gateway=gateway,
        monitor=monitor,
        ledger=ledger,
        participants=ledger,
        notifier=notifier,
        time_authority=time_authority,
    )
    return SchedulerContainer(
        time_authority=time_authority,
        config=config,
        metrics=metrics,
        notifier=notifier,
        ledger=ledger,
        ceremonies=ceremonies,
        ledger_service=ledger_service,
        gateway=gateway,
        monitor=monitor,
        lifecycle=lifecycle,
        coordinator=coordinator,
    )
