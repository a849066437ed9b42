"""Timeout records for evicted contributors."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID


class TimeoutCause(Enum):
    """Why a contributor was evicted from the slot."""

    BLOCKING_CONTRIBUTION = "blocking_contribution"
    BLOCKING_VERIFICATION = "blocking_verification"
    CRASH_RECOVERY = "crash_recovery"


@dataclass(frozen=True, eq=True)
class TimeoutRecord:
    """An eviction and the cooldown it imposes on re-joining.

    Attributes:
        timeout_id: UUIDv7 of the record.
        ceremony_id: Ceremony the eviction happened in.
        circuit_id: Circuit whose slot was released.
        participant_id: The evicted contributor.
        cause: Why the contributor was evicted.
        started_at: Eviction instant.
        ends_at: End of the re-join cooldown.
    """

    timeout_id: UUID
    ceremony_id: str
    circuit_id: str
    participant_id: str
    cause: TimeoutCause
    started_at: datetime
    ends_at: datetime

    def __post_init__(self) -> None:
        if self.ends_at < self.started_at:
            raise ValueError("Timeout cannot end before it starts")

    def is_active(self, now: datetime) -> bool:
        """True while the cooldown forbids re-joining."""
        return now < self.ends_at
