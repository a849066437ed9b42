"""Prometheus metrics for the scheduler."""

from ceremony_scheduler.infrastructure.monitoring.scheduler_metrics import (
    SchedulerMetrics,
)

__all__ = ["SchedulerMetrics"]
