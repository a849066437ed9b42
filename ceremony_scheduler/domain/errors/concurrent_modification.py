"""Optimistic concurrency errors for the queue ledger.

Every queue mutation is a versioned read-modify-write. A write whose
expected version no longer matches the stored one loses the race and
is retried from a fresh read, a bounded number of times.
"""

from __future__ import annotations

from ceremony_scheduler.domain.exceptions import SchedulerError


class ConcurrentModificationError(SchedulerError):
    """Raised when a compare-and-swap fails because another writer won.

    This is a recoverable error - the caller should re-read the resource
    and decide whether to retry or abort.

    Attributes:
        resource_id: Identifier of the resource that was being modified.
        expected: The version or state the writer expected to find.
        operation: Description of the operation that failed.
    """

    def __init__(self, resource_id: str, expected: str, operation: str) -> None:
        self.resource_id = resource_id
        self.expected = expected
        self.operation = operation
        super().__init__(
            f"Concurrent modification detected for {resource_id} during "
            f"{operation}. Expected: {expected}. Another writer modified it first."
        )


class ConflictRetryExhaustedError(ConcurrentModificationError):
    """Raised when a queue write keeps losing races past the retry budget.

    Attributes:
        circuit_id: Circuit whose queue could not be written.
        attempts: Number of write attempts made.
    """

    def __init__(self, circuit_id: str, operation: str, attempts: int) -> None:
        self.circuit_id = circuit_id
        self.attempts = attempts
        super().__init__(
            resource_id=f"queue {circuit_id}",
            expected=f"stable version across {attempts} attempts",
            operation=operation,
        )
