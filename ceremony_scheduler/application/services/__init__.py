"""Application services for the ceremony scheduler."""

from ceremony_scheduler.application.services.artifact_hash_service import (
    ArtifactHashService,
)
from ceremony_scheduler.application.services.ceremony_lifecycle_service import (
    CeremonyLifecycleService,
)
from ceremony_scheduler.application.services.contribution_verifier_gateway import (
    ContributionVerifierGateway,
)
from ceremony_scheduler.application.services.queue_ledger_service import (
    LedgerMutation,
    QueueLedgerService,
)
from ceremony_scheduler.application.services.queue_observer import (
    QueueObserver,
    build_observation,
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

__all__ = [
    "ArtifactHashService",
    "CeremonyLifecycleService",
    "ContributionVerifierGateway",
    "LedgerMutation",
    "QueueLedgerService",
    "QueueObserver",
    "SchedulerCoordinator",
    "TimeAuthorityService",
    "TimeoutMonitorService",
    "build_observation",
]
