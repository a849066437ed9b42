"""Timing estimator.

Pure functions deriving expected waiting times from a circuit's running
averages, and the running-mean rule that keeps those averages current.
Estimates are a derived view; only the averages are persisted.
"""

from __future__ import annotations

import math

from ceremony_scheduler.domain.models.circuit_queue import AvgTimings

MILLISECONDS_PER_SECOND: int = 1000


def estimate_wait_seconds(avg_timings: AvgTimings, position_in_queue: int) -> int | None:
    """Estimate how long a queued participant waits for the slot.

    The estimate is ``floor(avg_contribution + avg_verification) * (position - 1)``.

    Args:
        avg_timings: The circuit's running averages, in seconds.
        position_in_queue: 1-based position; 1 is the current contributor.

    Returns:
        Seconds until the slot is expected to free up for the participant.
        0 for the current contributor. None when the circuit has no
        completed contribution yet, since an estimate of 0 would mislead.

    Raises:
        ValueError: If position_in_queue is smaller than 1.
    """
    if position_in_queue < 1:
        raise ValueError(f"position_in_queue must be >= 1, got {position_in_queue}")
    if position_in_queue == 1:
        return 0
    if not avg_timings.has_samples:
        return None
    return math.floor(avg_timings.full_contribution_seconds) * (position_in_queue - 1)


def running_mean(previous: float, sample: float, sample_count: int) -> float:
    """Fold one sample into a running mean.

    ``avg_new = avg_old + (sample - avg_old) / n`` where n includes the new sample.

    Raises:
        ValueError: If sample_count is smaller than 1.
    """
    if sample_count < 1:
        raise ValueError(f"sample_count must be >= 1, got {sample_count}")
    return previous + (sample - previous) / sample_count


def updated_averages(
    avg_timings: AvgTimings,
    contribution_time_ms: int,
    verification_time_ms: int,
    sample_count: int,
) -> AvgTimings:
    """Fold a valid outcome's reported timings into the circuit averages.

    Args:
        avg_timings: Current averages, in seconds.
        contribution_time_ms: Reported computation time in milliseconds.
        verification_time_ms: Reported verification time in milliseconds.
        sample_count: Completed contributions including this one.

    Returns:
        The refreshed averages.
    """
    if contribution_time_ms < 0 or verification_time_ms < 0:
        raise ValueError("Reported timings cannot be negative")
    return AvgTimings(
        contribution_seconds=running_mean(
            avg_timings.contribution_seconds,
            contribution_time_ms / MILLISECONDS_PER_SECOND,
            sample_count,
        ),
        verification_seconds=running_mean(
            avg_timings.verification_seconds,
            verification_time_ms / MILLISECONDS_PER_SECOND,
            sample_count,
        ),
    )
