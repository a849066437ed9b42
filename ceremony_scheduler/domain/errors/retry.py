"""Re-join cooldown error."""

from __future__ import annotations

from datetime import datetime

from ceremony_scheduler.domain.exceptions import SchedulerError


class NoRetryYetError(SchedulerError):
    """Raised when a timed-out participant re-joins before the cooldown ends.

    Attributes:
        participant_id: The participant serving the cooldown.
        retry_at: Earliest instant at which a new join is accepted.
    """

    def __init__(self, participant_id: str, retry_at: datetime) -> None:
        self.participant_id = participant_id
        self.retry_at = retry_at
        super().__init__(
            f"Participant {participant_id} timed out and may not re-join "
            f"before {retry_at.isoformat()}"
        )
