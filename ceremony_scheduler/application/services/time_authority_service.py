"""System clock implementation of the time authority.

The scheduler process is the only source of time for timeout windows,
cooldowns and ceremony dates. Timestamps are always timezone-aware UTC.
"""

import time
from datetime import datetime, timezone

from ceremony_scheduler.application.ports.time_authority import TimeAuthorityProtocol


class TimeAuthorityService(TimeAuthorityProtocol):
    """Time authority backed by the host clock.

    Example:
        >>> authority = TimeAuthorityService()
        >>> authority.now().tzinfo is not None
        True
    """

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()
