"""Domain errors for the ceremony scheduler.

All exceptions inherit from SchedulerError.
"""

from ceremony_scheduler.domain.errors.ceremony import (
    CeremonyError,
    CeremonyNotClosedError,
    CeremonyNotFoundError,
    CeremonyNotOpenedError,
    CircuitNotFoundError,
    IncompleteCircuitError,
    NotCoordinatorError,
    ParticipantNotFoundError,
    StateMismatchError,
)
from ceremony_scheduler.domain.errors.concurrent_modification import (
    ConcurrentModificationError,
    ConflictRetryExhaustedError,
)
from ceremony_scheduler.domain.errors.queue import (
    AlreadyAdvancedError,
    AlreadyContributedError,
    AlreadyQueuedError,
    CannotLeaveWhileContributingError,
    EmptyQueueError,
    NotCurrentContributorError,
    NotQueuedError,
    QueueError,
)
from ceremony_scheduler.domain.errors.retry import NoRetryYetError

__all__: list[str] = [
    "AlreadyAdvancedError",
    "AlreadyContributedError",
    "AlreadyQueuedError",
    "CannotLeaveWhileContributingError",
    "CeremonyError",
    "CeremonyNotClosedError",
    "CeremonyNotFoundError",
    "CeremonyNotOpenedError",
    "CircuitNotFoundError",
    "ConcurrentModificationError",
    "ConflictRetryExhaustedError",
    "EmptyQueueError",
    "IncompleteCircuitError",
    "NoRetryYetError",
    "NotCoordinatorError",
    "NotCurrentContributorError",
    "NotQueuedError",
    "ParticipantNotFoundError",
    "QueueError",
    "StateMismatchError",
]
