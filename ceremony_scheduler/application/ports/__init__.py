"""Application ports (interfaces) for the ceremony scheduler."""

from ceremony_scheduler.application.ports.ceremony_repository import (
    CeremonyRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_ledger import (
    ContributionRepositoryProtocol,
    LedgerBatch,
    ParticipantRepositoryProtocol,
    QueueLedgerProtocol,
    TimeoutRepositoryProtocol,
)
from ceremony_scheduler.application.ports.queue_notifier import (
    QueueChangeCallback,
    QueueNotifierProtocol,
)
from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol

__all__ = [
    "CeremonyRepositoryProtocol",
    "ContributionRepositoryProtocol",
    "LedgerBatch",
    "ParticipantRepositoryProtocol",
    "QueueChangeCallback",
    "QueueLedgerProtocol",
    "QueueNotifierProtocol",
    "TimeAuthorityProtocol",
    "TimeoutRepositoryProtocol",
]
