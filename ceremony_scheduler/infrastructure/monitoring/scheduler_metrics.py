"""Prometheus metrics for the contribution scheduler.

Counters for joins, promotions, evictions, outcomes and ledger write
conflicts, a per-circuit queue length gauge and a histogram of how long
queue commits take including retries. Every instance owns its registry
unless one is injected, so tests stay isolated.
"""

import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Content type for a Prometheus scrape endpoint
METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

# Queue commits are in-memory or single round trips; buckets in seconds
COMMIT_DURATION_BUCKETS = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0)


class SchedulerMetrics:
    """Collects scheduler Prometheus metrics.

    Attributes:
        joins_total: Counter of committed joins per circuit.
        promotions_total: Counter of participants taking a slot per circuit.
        evictions_total: Counter of evictions per circuit and cause.
        outcomes_total: Counter of reported outcomes per circuit and validity.
        ledger_conflicts_total: Counter of lost queue writes per operation.
        queue_length: Gauge of queue length (slot holder included) per circuit.
        commit_duration_seconds: Histogram of queue commit latency per operation.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize scheduler metrics.

        Args:
            registry: Optional custom registry for testing isolation.
        """
        self._registry = registry or CollectorRegistry()
        self._environment = os.environ.get("ENVIRONMENT", "development")

        self.joins_total = Counter(
            name="scheduler_joins_total",
            documentation="Total committed queue joins",
            labelnames=["environment", "circuit_id"],
            registry=self._registry,
        )
        self.promotions_total = Counter(
            name="scheduler_promotions_total",
            documentation="Total promotions to current contributor",
            labelnames=["environment", "circuit_id"],
            registry=self._registry,
        )
        self.evictions_total = Counter(
            name="scheduler_evictions_total",
            documentation="Total contributor evictions",
            labelnames=["environment", "circuit_id", "cause"],
            registry=self._registry,
        )
        self.outcomes_total = Counter(
            name="scheduler_contribution_outcomes_total",
            documentation="Total reported contribution outcomes",
            labelnames=["environment", "circuit_id", "valid"],
            registry=self._registry,
        )
        self.ledger_conflicts_total = Counter(
            name="scheduler_ledger_conflicts_total",
            documentation="Total queue writes that lost a version race",
            labelnames=["environment", "operation"],
            registry=self._registry,
        )
        self.queue_length = Gauge(
            name="scheduler_queue_length",
            documentation="Participants in the circuit queue, slot holder included",
            labelnames=["environment", "circuit_id"],
            registry=self._registry,
        )
        self.commit_duration_seconds = Histogram(
            name="scheduler_commit_duration_seconds",
            documentation="Queue commit duration in seconds, retries included",
            labelnames=["environment", "operation"],
            buckets=COMMIT_DURATION_BUCKETS,
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_join(self, circuit_id: str) -> None:
        self.joins_total.labels(environment=self._environment, circuit_id=circuit_id).inc()

    def record_promotion(self, circuit_id: str) -> None:
        self.promotions_total.labels(
            environment=self._environment, circuit_id=circuit_id
        ).inc()

    def record_eviction(self, circuit_id: str, cause: str) -> None:
        self.evictions_total.labels(
            environment=self._environment, circuit_id=circuit_id, cause=cause
        ).inc()

    def record_outcome(self, circuit_id: str, valid: bool) -> None:
        self.outcomes_total.labels(
            environment=self._environment,
            circuit_id=circuit_id,
            valid=str(valid).lower(),
        ).inc()

    def record_conflict(self, operation: str) -> None:
        self.ledger_conflicts_total.labels(
            environment=self._environment, operation=operation
        ).inc()

    def observe_commit_duration(self, operation: str, seconds: float) -> None:
        self.commit_duration_seconds.labels(
            environment=self._environment, operation=operation
        ).observe(seconds)

    def set_queue_length(self, circuit_id: str, length: int) -> None:
        self.queue_length.labels(
            environment=self._environment, circuit_id=circuit_id
        ).set(length)

    def sample(self, name: str, labels: dict[str, str]) -> float | None:
        """Read one sample value, filling in the environment label."""
        return self._registry.get_sample_value(
            name, {"environment": self._environment, **labels}
        )

    def generate_latest(self) -> bytes:
        """Render the registry in Prometheus exposition format."""
        return generate_latest(self._registry)
