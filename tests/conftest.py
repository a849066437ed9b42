"""
Pytest configuration and shared fixtures for ceremony scheduler tests.

Testing Standards:
- Async tests and fixtures run under pytest-asyncio auto mode (pyproject.toml)
- Time-dependent tests use FakeTimeAuthority, never the wall clock
- Unit tests go in tests/unit/
- Integration tests go in tests/integration/
"""

import pytest
from prometheus_client import CollectorRegistry

from ceremony_scheduler.bootstrap.container import (
    SchedulerContainer,
    build_in_memory_scheduler,
)
from ceremony_scheduler.config.scheduler_config import TEST_SCHEDULER_CONFIG
from ceremony_scheduler.domain.models.ceremony import Ceremony
from ceremony_scheduler.infrastructure.monitoring.scheduler_metrics import (
    SchedulerMetrics,
)
from tests.helpers import CEREMONY_START, FakeTimeAuthority, make_ceremony, open_ceremony


@pytest.fixture
def project_version() -> str:
    """Provide the current project version for tests."""
    from ceremony_scheduler import __version__

    return __version__


@pytest.fixture
def fake_time_authority() -> FakeTimeAuthority:
    """Clock frozen at the default ceremony start date."""
    return FakeTimeAuthority(frozen_at=CEREMONY_START)


@pytest.fixture
def scheduler_metrics() -> SchedulerMetrics:
    return SchedulerMetrics(registry=CollectorRegistry())


@pytest.fixture
def scheduler(
    fake_time_authority: FakeTimeAuthority,
    scheduler_metrics: SchedulerMetrics,
) -> SchedulerContainer:
    """In-memory scheduler with zero backoff and a fake clock."""
    return build_in_memory_scheduler(
        time_authority=fake_time_authority,
        config=TEST_SCHEDULER_CONFIG,
        metrics=scheduler_metrics,
    )


@pytest.fixture
async def opened_ceremony(scheduler: SchedulerContainer) -> Ceremony:
    """A single-circuit ceremony with the default fixed policy, already opened."""
    return await open_ceremony(scheduler, make_ceremony())
