"""Scheduler configuration.

Retry budget for ledger write conflicts, backoff between attempts, the
timeout monitor poll interval and the verification window. All values
can be overridden via environment variables for production tuning.
Per-ceremony eviction policy lives on the ceremony (TimeoutPolicy).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta


def _get_int_env(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Parsed integer value or default.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


# =============================================================================
# Ledger write retries
# =============================================================================

DEFAULT_MAX_WRITE_ATTEMPTS = 5
MIN_WRITE_ATTEMPTS = 1
MAX_WRITE_ATTEMPTS = 20

# Backoff before attempt n+1 is min(base * 2**(n-1), max)
DEFAULT_BACKOFF_BASE_MS = 50
MIN_BACKOFF_MS = 0
MAX_BACKOFF_BASE_MS = 1_000

DEFAULT_BACKOFF_MAX_MS = 1_000
MAX_BACKOFF_CAP_MS = 30_000

# =============================================================================
# Timeout monitor
# =============================================================================

DEFAULT_MONITOR_POLL_SECONDS = 60
MIN_MONITOR_POLL_SECONDS = 1
MAX_MONITOR_POLL_SECONDS = 3_600

# Slot holders in VERIFYING are evicted after 59 minutes
DEFAULT_VERIFICATION_WINDOW_SECONDS = 3_540
MIN_VERIFICATION_WINDOW_SECONDS = 60
MAX_VERIFICATION_WINDOW_SECONDS = 86_400


@dataclass(frozen=True)
class SchedulerConfig:
    """Configuration for ledger retries and the timeout monitor.

    Attributes:
        max_write_attempts: Conditional write attempts before giving up.
                           Default: 5. Range: 1-20.
        backoff_base_ms: Backoff before the second attempt, doubled per
                        attempt. Default: 50 ms. Range: 0-1000.
        backoff_max_ms: Cap on the backoff. Default: 1000 ms. Range:
                       backoff_base_ms-30000.
        monitor_poll_interval_seconds: Sleep between timeout sweeps.
                                      Default: 60. Range: 1-3600.
        verification_window_seconds: How long a slot holder may stay in
                                    VERIFYING. Default: 3540. Range: 60-86400.
    """

    max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS
    backoff_base_ms: int = DEFAULT_BACKOFF_BASE_MS
    backoff_max_ms: int = DEFAULT_BACKOFF_MAX_MS
    monitor_poll_interval_seconds: int = DEFAULT_MONITOR_POLL_SECONDS
    verification_window_seconds: int = DEFAULT_VERIFICATION_WINDOW_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not MIN_WRITE_ATTEMPTS <= self.max_write_attempts <= MAX_WRITE_ATTEMPTS:
            raise ValueError(
                f"max_write_attempts must be between {MIN_WRITE_ATTEMPTS} "
                f"and {MAX_WRITE_ATTEMPTS}, got {self.max_write_attempts}"
            )
        if not MIN_BACKOFF_MS <= self.backoff_base_ms <= MAX_BACKOFF_BASE_MS:
            raise ValueError(
                f"backoff_base_ms must be between {MIN_BACKOFF_MS} "
                f"and {MAX_BACKOFF_BASE_MS}, got {self.backoff_base_ms}"
            )
        if not self.backoff_base_ms <= self.backoff_max_ms <= MAX_BACKOFF_CAP_MS:
            raise ValueError(
                f"backoff_max_ms must be between backoff_base_ms ({self.backoff_base_ms}) "
                f"and {MAX_BACKOFF_CAP_MS}, got {self.backoff_max_ms}"
            )
        if (
            not MIN_MONITOR_POLL_SECONDS
            <= self.monitor_poll_interval_seconds
            <= MAX_MONITOR_POLL_SECONDS
        ):
            raise ValueError(
                f"monitor_poll_interval_seconds must be between {MIN_MONITOR_POLL_SECONDS} "
                f"and {MAX_MONITOR_POLL_SECONDS}, got {self.monitor_poll_interval_seconds}"
            )
        if (
            not MIN_VERIFICATION_WINDOW_SECONDS
            <= self.verification_window_seconds
            <= MAX_VERIFICATION_WINDOW_SECONDS
        ):
            raise ValueError(
                f"verification_window_seconds must be between "
                f"{MIN_VERIFICATION_WINDOW_SECONDS} and {MAX_VERIFICATION_WINDOW_SECONDS}, "
                f"got {self.verification_window_seconds}"
            )

    @property
    def verification_window(self) -> timedelta:
        return timedelta(seconds=self.verification_window_seconds)

    def backoff_seconds(self, attempt: int) -> float:
        """Get the delay to wait after a failed attempt.

        Args:
            attempt: 1-based number of the attempt that just failed.

        Returns:
            Delay in seconds, exponential in the attempt number and capped.
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay_ms = min(self.backoff_base_ms * 2 ** (attempt - 1), self.backoff_max_ms)
        return delay_ms / 1000

    @classmethod
    def from_environment(cls) -> SchedulerConfig:
        """Create config from environment variables with defaults.

        Environment Variables:
            SCHEDULER_MAX_WRITE_ATTEMPTS: Write attempts (default: 5)
            SCHEDULER_BACKOFF_BASE_MS: Base backoff in ms (default: 50)
            SCHEDULER_BACKOFF_MAX_MS: Backoff cap in ms (default: 1000)
            TIMEOUT_MONITOR_POLL_SECONDS: Sweep interval (default: 60)
            VERIFICATION_WINDOW_SECONDS: Verification window (default: 3540)

        Out-of-range values are clamped into range.

        Returns:
            SchedulerConfig with values from environment or defaults.
        """
        attempts = _clamp(
            _get_int_env("SCHEDULER_MAX_WRITE_ATTEMPTS", DEFAULT_MAX_WRITE_ATTEMPTS),
            MIN_WRITE_ATTEMPTS,
            MAX_WRITE_ATTEMPTS,
        )
        base_ms = _clamp(
            _get_int_env("SCHEDULER_BACKOFF_BASE_MS", DEFAULT_BACKOFF_BASE_MS),
            MIN_BACKOFF_MS,
            MAX_BACKOFF_BASE_MS,
        )
        max_ms = _clamp(
            _get_int_env("SCHEDULER_BACKOFF_MAX_MS", DEFAULT_BACKOFF_MAX_MS),
            base_ms,
            MAX_BACKOFF_CAP_MS,
        )
        poll = _clamp(
            _get_int_env("TIMEOUT_MONITOR_POLL_SECONDS", DEFAULT_MONITOR_POLL_SECONDS),
            MIN_MONITOR_POLL_SECONDS,
            MAX_MONITOR_POLL_SECONDS,
        )
        verification = _clamp(
            _get_int_env("VERIFICATION_WINDOW_SECONDS", DEFAULT_VERIFICATION_WINDOW_SECONDS),
            MIN_VERIFICATION_WINDOW_SECONDS,
            MAX_VERIFICATION_WINDOW_SECONDS,
        )
        return cls(
            max_write_attempts=attempts,
            backoff_base_ms=base_ms,
            backoff_max_ms=max_ms,
            monitor_poll_interval_seconds=poll,
            verification_window_seconds=verification,
        )


# Pre-defined configurations for common use cases

# Default production config
DEFAULT_SCHEDULER_CONFIG = SchedulerConfig()

# Testing config: no backoff delay, fast monitor loop
TEST_SCHEDULER_CONFIG = SchedulerConfig(
    max_write_attempts=DEFAULT_MAX_WRITE_ATTEMPTS,
    backoff_base_ms=MIN_BACKOFF_MS,  # 0 ms
    backoff_max_ms=MIN_BACKOFF_MS,  # 0 ms
    monitor_poll_interval_seconds=MIN_MONITOR_POLL_SECONDS,  # 1 second
    verification_window_seconds=DEFAULT_VERIFICATION_WINDOW_SECONDS,
)
