"""Timeout detection for the slot holder of a circuit.

Decides, from the ceremony's policy and the circuit's averages, whether
the current contributor has overrun its window. Detection is read-only;
eviction goes through the ledger like every other mutation.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from ceremony_scheduler.domain.models.ceremony import TimeoutPolicy, TimeoutPolicyType
from ceremony_scheduler.domain.models.circuit_queue import AvgTimings
from ceremony_scheduler.domain.models.participant import (
    ContributionStep,
    Participant,
    ParticipantStatus,
)
from ceremony_scheduler.domain.models.timeout_record import TimeoutCause


def contribution_window(policy: TimeoutPolicy, avg_timings: AvgTimings) -> timedelta | None:
    """Compute how long the slot holder may compute before eviction.

    Args:
        policy: The ceremony's timeout policy.
        avg_timings: The circuit's running averages.

    Returns:
        The window, or None when the DYNAMIC policy has neither an average
        nor a fallback window (first contributor is never evicted).
    """
    if policy.policy_type == TimeoutPolicyType.FIXED:
        return timedelta(seconds=policy.fixed_window_seconds)
    if avg_timings.contribution_seconds == 0:
        if policy.dynamic_fallback_window_seconds is None:
            return None
        return timedelta(seconds=policy.dynamic_fallback_window_seconds)
    return timedelta(seconds=policy.dynamic_multiplier * avg_timings.contribution_seconds)


def detect_timeout(
    participant: Participant,
    policy: TimeoutPolicy,
    avg_timings: AvgTimings,
    now: datetime,
    verification_window: timedelta,
) -> TimeoutCause | None:
    """Decide whether the slot holder overran its window.

    While VERIFYING the fixed verification window applies, measured from
    ``verification_started_at``. Otherwise the policy window applies,
    measured from ``contribution_started_at``. Expiry is strict: a holder
    exactly at the window boundary is not evicted.

    Returns:
        The eviction cause, or None if the participant is within its window.
    """
    if participant.status != ParticipantStatus.CONTRIBUTING:
        return None

    if (
        participant.contribution_step == ContributionStep.VERIFYING
        and participant.verification_started_at is not None
    ):
        if now - participant.verification_started_at > verification_window:
            return TimeoutCause.BLOCKING_VERIFICATION
        return None

    if participant.contribution_started_at is None:
        return None
    window = contribution_window(policy, avg_timings)
    if window is None:
        return None
    if now - participant.contribution_started_at > window:
        return TimeoutCause.BLOCKING_CONTRIBUTION
    return None
