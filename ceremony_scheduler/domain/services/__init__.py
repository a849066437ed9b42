"""Pure domain services (no I/O)."""

from ceremony_scheduler.domain.services.timeout_policy import (
    contribution_window,
    detect_timeout,
)
from ceremony_scheduler.domain.services.timing_estimator import (
    estimate_wait_seconds,
    running_mean,
    updated_averages,
)

__all__ = [
    "contribution_window",
    "detect_timeout",
    "estimate_wait_seconds",
    "running_mean",
    "updated_averages",
]
