"""Ceremony lifecycle errors.

Raised when an operation refers to unknown ceremonies, circuits or
participants, or when the ceremony (or a participant) is not in a state
that permits the operation.
"""

from __future__ import annotations

from collections.abc import Iterable

from ceremony_scheduler.domain.exceptions import SchedulerError


class CeremonyError(SchedulerError):
    """Base class for ceremony lifecycle errors."""

    pass


class CeremonyNotFoundError(CeremonyError):
    """Raised when a ceremony ID is not known to the repository."""

    def __init__(self, ceremony_id: str) -> None:
        self.ceremony_id = ceremony_id
        super().__init__(f"Ceremony not found: {ceremony_id}")


class CircuitNotFoundError(CeremonyError):
    """Raised when a circuit ID has no queue or is not part of the ceremony."""

    def __init__(self, circuit_id: str, ceremony_id: str | None = None) -> None:
        self.circuit_id = circuit_id
        self.ceremony_id = ceremony_id
        scope = f" in ceremony {ceremony_id}" if ceremony_id is not None else ""
        super().__init__(f"Circuit not found: {circuit_id}{scope}")


class ParticipantNotFoundError(CeremonyError):
    """Raised when a participant has not registered for the ceremony."""

    def __init__(self, ceremony_id: str, participant_id: str) -> None:
        self.ceremony_id = ceremony_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} is not registered for ceremony {ceremony_id}"
        )


class StateMismatchError(CeremonyError):
    """Raised when an entity is not in a state that permits an operation.

    Attributes:
        subject: Human-readable identifier of the entity, e.g. "ceremony c-1".
        current_state: The state the entity is in.
        expected_states: States in which the operation would be allowed.
        operation: The operation that was refused.
    """

    def __init__(
        self,
        subject: str,
        current_state: str,
        expected_states: Iterable[str],
        operation: str,
        detail: str | None = None,
    ) -> None:
        self.subject = subject
        self.current_state = current_state
        self.expected_states = tuple(expected_states)
        self.operation = operation
        expected = ", ".join(self.expected_states) or "none"
        message = (
            f"Cannot {operation}: {subject} is {current_state} "
            f"(expected one of: {expected})"
        )
        if detail:
            message = f"{message}. {detail}"
        super().__init__(message)


class CeremonyNotOpenedError(StateMismatchError):
    """Raised when a queue operation requires an opened ceremony."""

    def __init__(self, ceremony_id: str, current_state: str, operation: str = "join") -> None:
        self.ceremony_id = ceremony_id
        super().__init__(
            subject=f"ceremony {ceremony_id}",
            current_state=current_state,
            expected_states=("opened",),
            operation=operation,
        )


class CeremonyNotClosedError(StateMismatchError):
    """Raised when a finalization step runs before the ceremony closed."""

    def __init__(self, ceremony_id: str, current_state: str, operation: str) -> None:
        self.ceremony_id = ceremony_id
        super().__init__(
            subject=f"ceremony {ceremony_id}",
            current_state=current_state,
            expected_states=("closed",),
            operation=operation,
        )


class IncompleteCircuitError(StateMismatchError):
    """Raised when a circuit has no terminal valid contribution yet.

    Attributes:
        ceremony_id: Ceremony the circuit belongs to.
        circuit_id: The incomplete circuit.
    """

    def __init__(self, ceremony_id: str, circuit_id: str, reason: str) -> None:
        self.ceremony_id = ceremony_id
        self.circuit_id = circuit_id
        super().__init__(
            subject=f"circuit {circuit_id}",
            current_state="incomplete",
            expected_states=("complete",),
            operation=f"finalize ceremony {ceremony_id}",
            detail=reason,
        )


class NotCoordinatorError(CeremonyError):
    """Raised when a finalization operation is invoked by someone else."""

    def __init__(self, ceremony_id: str, participant_id: str) -> None:
        self.ceremony_id = ceremony_id
        self.participant_id = participant_id
        super().__init__(
            f"Participant {participant_id} is not the coordinator of ceremony {ceremony_id}"
        )
