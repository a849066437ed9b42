"""Time Authority Protocol - interface for server-trusted timestamps.

All services that compare against deadlines (timeout windows, cooldowns,
ceremony start and end dates) MUST inject a TimeAuthorityProtocol
implementation instead of calling datetime.now() directly. The clock is
owned by the scheduler, never supplied by a participant, so a client
cannot claim extra time.

For testing, use FakeTimeAuthority from tests/helpers/fake_time_authority.py.
"""

from abc import ABC, abstractmethod
from datetime import datetime


class TimeAuthorityProtocol(ABC):
    """Abstract interface for time authority.

    Example usage:
        class MyService:
            def __init__(self, time_authority: TimeAuthorityProtocol) -> None:
                self._time = time_authority

            def process(self) -> None:
                now = self._time.now()  # NOT datetime.now()
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return current time with timezone awareness (UTC)."""
        ...

    @abstractmethod
    def utcnow(self) -> datetime:
        """Return current UTC time as a timezone-aware datetime."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Return monotonic clock value for measuring elapsed time.

        Returns:
            Monotonically increasing float value (in seconds). Only
            differences are meaningful.
        """
        ...
