"""Configuration module for the ceremony scheduler.

Available Configurations:
- SchedulerConfig: Ledger write retries and timeout monitor tuning
"""

from ceremony_scheduler.config.scheduler_config import (
    DEFAULT_SCHEDULER_CONFIG,
    TEST_SCHEDULER_CONFIG,
    SchedulerConfig,
)

__all__ = [
    "SchedulerConfig",
    "DEFAULT_SCHEDULER_CONFIG",
    "TEST_SCHEDULER_CONFIG",
]
