"""Circuit queue errors.

These errors describe precondition failures on a circuit waiting queue:
double joins, reports from a participant that does not hold the slot,
and releases that lost a race against another writer. None of them is
retried by the scheduler; they are surfaced to the caller as-is.
"""

from __future__ import annotations

from ceremony_scheduler.domain.exceptions import SchedulerError


class QueueError(SchedulerError):
    """Base class for circuit queue precondition failures."""

    pass


class AlreadyQueuedError(QueueError):
    """Raised when a participant tries to join a queue they are already in.

    Also raised when the participant is waiting for, or contributing to,
    another circuit of the same ceremony.

    Attributes:
        circuit_id: Circuit whose queue already holds the participant.
        participant_id: The participant that tried to join.
    """

    def __init__(self, circuit_id: str, participant_id: str) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} is already queued for circuit {circuit_id}"
        )


class NotCurrentContributorError(QueueError):
    """Raised when an operation requires the caller to hold the slot.

    Attributes:
        circuit_id: Circuit the operation targeted.
        participant_id: The participant that attempted the operation.
        current_contributor: The participant actually holding the slot, if any.
    """

    def __init__(
        self,
        circuit_id: str,
        participant_id: str,
        current_contributor: str | None,
    ) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        self.current_contributor = current_contributor
        holder = current_contributor if current_contributor is not None else "nobody"
        super().__init__(
            f"Participant {participant_id} is not the current contributor of "
            f"circuit {circuit_id} (slot held by {holder})"
        )


class EmptyQueueError(QueueError):
    """Raised when the head of an empty queue is released."""

    def __init__(self, circuit_id: str) -> None:
        self.circuit_id = circuit_id
        super().__init__(f"Queue for circuit {circuit_id} is empty")


class AlreadyAdvancedError(QueueError):
    """Raised when an eviction targets a contributor that already left the slot.

    This happens when a timeout eviction races a verification outcome and
    the outcome commits first.

    Attributes:
        circuit_id: Circuit the eviction targeted.
        participant_id: The contributor the caller expected at the head.
        current_contributor: Who holds the slot now, if anyone.
    """

    def __init__(
        self,
        circuit_id: str,
        participant_id: str,
        current_contributor: str | None,
    ) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        self.current_contributor = current_contributor
        super().__init__(
            f"Queue for circuit {circuit_id} already advanced past participant "
            f"{participant_id} (current contributor: {current_contributor})"
        )


class NotQueuedError(QueueError):
    """Raised when a participant who is not waiting tries to leave a queue."""

    def __init__(self, circuit_id: str, participant_id: str) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} is not waiting for circuit {circuit_id}"
        )


class CannotLeaveWhileContributingError(QueueError):
    """Raised when the current contributor tries to leave the queue.

    The slot holder leaves only through a verification outcome or an
    eviction, so that the release is always recorded.
    """

    def __init__(self, circuit_id: str, participant_id: str) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} holds the slot of circuit {circuit_id} "
            "and cannot leave the queue"
        )


class AlreadyContributedError(QueueError):
    """Raised when a participant joins a circuit they already contributed to."""

    def __init__(self, circuit_id: str, participant_id: str) -> None:
        self.circuit_id = circuit_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} already has a contribution record "
            f"for circuit {circuit_id}"
        )
