"""Base exception classes for the ceremony scheduler domain layer."""


class SchedulerError(Exception):
    """Base exception for all scheduler domain errors.

    All domain-specific exceptions MUST inherit from this class so that
    callers (participant clients, coordinator tooling) can surface them
    uniformly.
    """

    def __init__(self, message: str = "") -> None:
        """Initialize the exception with an optional message.

        Args:
            message: Human-readable error description.
        """
        super().__init__(message)
